"""
Anthropic on Vertex AI 适配器
请求体沿用Anthropic消息格式，使用Google服务账号的访问令牌认证
"""

import asyncio
import json
from collections.abc import Mapping
from typing import Any, Optional

import google.auth.exceptions
import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from core.exceptions import ConfigurationException, ErrorCode, UpstreamException
from core.utils.logger import get_logger

from ..base import ChatCompletionRequest
from .anthropic import AnthropicAdapter

logger = get_logger(__name__)

VERTEX_ANTHROPIC_VERSION = "vertex-2023-10-16"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# 服务账号JSON -> 凭据对象，令牌过期前复用
_service_account_credentials: dict[str, service_account.Credentials] = {}


def vertex_base_url(region: str) -> str:
    if region == "global":
        return "https://aiplatform.googleapis.com/v1"
    return f"https://{region}-aiplatform.googleapis.com/v1"


class AnthropicVertexAdapter(AnthropicAdapter):
    """Vertex AI 上的 Claude 模型"""

    name = "anthropic-vertex"
    required_credential_keys = (
        "ANTHROPIC_VERTEX_PROJECT_ID",
        "CLOUD_ML_REGION",
        "GOOGLE_SERVICE_ACCOUNT_JSON",
    )
    optional_credential_keys = ()
    base_url_key = "ANTHROPIC_VERTEX_BASE_URL"
    supported_models = (
        "claude-3-5-sonnet-v2@20241022",
        "claude-3-5-sonnet@20240620",
        "claude-3-5-haiku@20241022",
        "claude-3-opus@20240229",
        "claude-3-sonnet@20240229",
        "claude-3-haiku@20240307",
    )

    def __init__(
        self,
        credentials: Mapping[str, str],
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(credentials, timeout, transport)
        self.project_id = credentials.get("ANTHROPIC_VERTEX_PROJECT_ID", "")
        self.region = credentials.get("CLOUD_ML_REGION", "")
        if not credentials.get(self.base_url_key):
            self.base_url = vertex_base_url(self.region)

    def get_messages_path(self, request: ChatCompletionRequest, stream: bool) -> str:
        method = "streamRawPredict" if stream else "rawPredict"
        return (
            f"/projects/{self.project_id}/locations/{self.region}"
            f"/publishers/anthropic/models/{request.model}:{method}"
        )

    def resolve_api_key(self, upstream_key: Optional[str] = None) -> str:
        # x-api-key 透传时视为调用方自己的访问令牌
        return upstream_key or ""

    async def build_headers(self, upstream_key: Optional[str] = None) -> dict[str, str]:
        token = self.resolve_api_key(upstream_key) or await self.fetch_access_token()
        return {"Authorization": f"Bearer {token}"}

    async def fetch_access_token(self) -> str:
        """用服务账号换取访问令牌，google-auth 的刷新是同步调用，放到线程中执行"""
        credentials = self.load_service_account()
        if not credentials.valid:
            try:
                await asyncio.to_thread(credentials.refresh, Request())
            except google.auth.exceptions.GoogleAuthError as e:
                logger.error(f"{self.name} token refresh failed: {e}")
                raise UpstreamException(
                    f"{self.name} token refresh failed: {e}",
                    provider=self.name,
                    status_code=502,
                    error_code=ErrorCode.UPSTREAM_UNREACHABLE,
                    cause=e,
                ) from e
        return credentials.token

    def load_service_account(self) -> service_account.Credentials:
        raw = self.credentials["GOOGLE_SERVICE_ACCOUNT_JSON"]
        cached = _service_account_credentials.get(raw)
        if cached is not None:
            return cached

        try:
            info = json.loads(raw)
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=[CLOUD_PLATFORM_SCOPE]
            )
        except (ValueError, TypeError, KeyError) as e:
            raise ConfigurationException(
                f"GOOGLE_SERVICE_ACCOUNT_JSON is not a valid service account key: {e}",
                cause=e,
            ) from e

        _service_account_credentials[raw] = credentials
        return credentials

    def transform_request(self, request: ChatCompletionRequest) -> dict[str, Any]:
        # 模型由URL决定
        payload = super().transform_request(request)
        payload.pop("model", None)
        payload["anthropic_version"] = VERTEX_ANTHROPIC_VERSION
        return payload
