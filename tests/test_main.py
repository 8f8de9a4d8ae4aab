"""应用入口测试"""

import sys

import pytest
from fastapi.testclient import TestClient

import main as main_module
from core.config_models import GatewayConfig
from main import create_app


@pytest.fixture
def provider_free_environment(monkeypatch):
    """移除所有Provider凭据"""
    from core.providers import ProviderRegistry

    for key in ProviderRegistry().credential_keys():
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("API_KEY", "k")


class TestCreateApp:
    """应用构建"""

    def test_routes(self, provider_free_environment):
        app = create_app(GatewayConfig())
        paths = app.openapi()["paths"]
        assert set(paths["/v1/chat/completions"]) == {"options", "post"}
        assert set(paths["/v1/models"]) == {"get"}

    def test_no_credentials_no_models(self, provider_free_environment):
        client = TestClient(create_app(GatewayConfig()))
        response = client.get("/v1/models", headers={"Authorization": "Bearer k"})
        assert response.status_code == 200
        assert response.json() == {"object": "list", "data": []}

    def test_real_catalog_lists_configured_provider(self, provider_free_environment, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "gq")
        client = TestClient(create_app(GatewayConfig()))
        data = client.get("/v1/models", headers={"Authorization": "Bearer k"}).json()["data"]
        assert data
        assert {model["owned_by"] for model in data} == {"groq"}

    def test_cors_origin(self, provider_free_environment):
        config = GatewayConfig.model_validate({"server": {"cors_origin": "https://ui.example"}})
        client = TestClient(create_app(config))
        response = client.options(
            "/v1/chat/completions",
            headers={
                "Origin": "https://ui.example",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "authorization,content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://ui.example"

    def test_cors_origin_read_per_request(self, provider_free_environment, monkeypatch):
        """CORS_ORIGIN 变更后下一次预检即生效"""
        monkeypatch.setenv("CORS_ORIGIN", "https://old.example")
        client = TestClient(create_app(GatewayConfig()))
        monkeypatch.setenv("CORS_ORIGIN", "https://new.example, https://admin.example")

        def preflight(origin):
            return client.options(
                "/v1/chat/completions",
                headers={"Origin": origin, "Access-Control-Request-Method": "POST"},
            )

        response = preflight("https://new.example")
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://new.example"
        assert preflight("https://admin.example").status_code == 200
        assert preflight("https://old.example").status_code == 400

        monkeypatch.delenv("CORS_ORIGIN")
        response = client.get(
            "/v1/models", headers={"Authorization": "Bearer k", "Origin": "https://elsewhere.example"}
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_lifespan(self, provider_free_environment):
        with TestClient(create_app(GatewayConfig())) as client:
            assert client.options("/v1/chat/completions").json() == {"body": "ok"}


class TestMain:
    """命令行入口"""

    def test_arguments_are_passed_to_uvicorn(self, tmp_path, monkeypatch):
        path = tmp_path / "gateway.yaml"
        path.write_text("server:\n  host: 127.0.0.1\n  port: 8000\n", encoding="utf-8")
        monkeypatch.setenv("GATEWAY_CONFIG", "")

        calls = []
        monkeypatch.setattr(main_module.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
        monkeypatch.setattr(sys, "argv", ["main.py", "--port", "9001", "--config", str(path)])

        main_module.main()

        app, kwargs = calls[0]
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9001
        assert app.title == "Unified LLM Gateway"
