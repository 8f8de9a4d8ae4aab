"""测试共享的假适配器和应用工厂"""

import sys
from pathlib import Path

import pytest

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config_models import GatewayConfig  # noqa: E402
from core.exceptions import ErrorHandler, UpstreamException  # noqa: E402
from core.providers import ProviderRegistry  # noqa: E402
from core.providers.base import BaseAdapter, build_chunk, build_completion  # noqa: E402

GATEWAY_KEY = "gateway-secret"
CREATED = 1700000000


class FakeAdapterA(BaseAdapter):
    """按顺序产出三个片段"""

    name = "provider-a"
    required_credential_keys = ("PROVIDER_A_KEY",)
    supported_models = ("a-1",)

    calls: list = []

    async def invoke(self, request, upstream_key=None):
        FakeAdapterA.calls.append(("invoke", request.model, upstream_key))
        return build_completion(
            "cmpl-a", request.model, f"key={self.resolve_api_key(upstream_key)}", "stop", created=CREATED
        )

    async def stream(self, request, cancel_event, upstream_key=None):
        FakeAdapterA.calls.append(("stream", request.model, upstream_key))
        yield build_chunk("cmpl-a", request.model, role="assistant", content="", created=CREATED)
        yield build_chunk("cmpl-a", request.model, content="Hello", created=CREATED)
        yield build_chunk("cmpl-a", request.model, finish_reason="stop", created=CREATED)


class FakeAdapterB(BaseAdapter):
    name = "provider-b"
    required_credential_keys = ("PROVIDER_B_KEY",)
    supported_models = ("b-1",)

    async def invoke(self, request, upstream_key=None):
        return build_completion("cmpl-b", request.model, "from b", "stop", created=CREATED)

    async def stream(self, request, cancel_event, upstream_key=None):
        yield build_chunk("cmpl-b", request.model, content="from b", created=CREATED)


class FailingAdapter(BaseAdapter):
    """按模型名模拟各种上游错误"""

    name = "failing"
    required_credential_keys = ("PROVIDER_F_KEY",)
    supported_models = ("rate-limited", "crash", "stream-fails-early", "stream-fails-late")

    async def invoke(self, request, upstream_key=None):
        if request.model == "rate-limited":
            raise UpstreamException("slow down", provider=self.name, status_code=429)
        raise RuntimeError("boom")

    async def stream(self, request, cancel_event, upstream_key=None):
        if request.model == "stream-fails-early":
            raise UpstreamException("upstream unavailable", provider=self.name, status_code=503)
        yield build_chunk("cmpl-f", request.model, content="partial", created=CREATED)
        raise UpstreamException("connection reset", provider=self.name, status_code=502)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """隔离进程环境中的网关配置"""
    for key in ("API_KEY", "CORS_ORIGIN", "GATEWAY_CONFIG", "GATEWAY_HOST", "GATEWAY_PORT", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    FakeAdapterA.calls = []


@pytest.fixture
def fake_registry():
    return ProviderRegistry(catalog=(FakeAdapterA, FakeAdapterB, FailingAdapter))


@pytest.fixture
def error_handler():
    return ErrorHandler()


@pytest.fixture
def client(monkeypatch, fake_registry, error_handler):
    """只配置了 PROVIDER_A_KEY 的测试客户端"""
    from fastapi.testclient import TestClient

    from main import create_app

    monkeypatch.setenv("PROVIDER_A_KEY", "key-a")
    monkeypatch.delenv("PROVIDER_B_KEY", raising=False)
    monkeypatch.delenv("PROVIDER_F_KEY", raising=False)
    monkeypatch.setenv("API_KEY", GATEWAY_KEY)

    app = create_app(GatewayConfig(), registry=fake_registry, error_handler=error_handler)
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {GATEWAY_KEY}"}
