"""
Azure OpenAI Provider适配器
按部署名称路由，请求体与OpenAI相同
"""

from collections.abc import Mapping
from typing import Any, Optional

import httpx

from ..base import ChatCompletionRequest
from .openai import OpenAIAdapter

DEFAULT_API_VERSION = "2024-06-01"


class AzureOpenAIAdapter(OpenAIAdapter):
    """Azure OpenAI适配器"""

    name = "azure-openai"
    required_credential_keys = ("AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT")
    optional_credential_keys = ("AZURE_OPENAI_API_VERSION", "AZURE_OPENAI_DEPLOYMENTS")
    base_url_key = "AZURE_OPENAI_ENDPOINT"
    supported_models = ("gpt-4o", "gpt-4o-mini", "gpt-4", "gpt-35-turbo")

    def __init__(
        self,
        credentials: Mapping[str, str],
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(credentials, timeout, transport)

        # 逗号分隔的部署名称覆盖默认模型列表
        deployments = credentials.get("AZURE_OPENAI_DEPLOYMENTS")
        if deployments:
            self.supported_models = tuple(
                name.strip() for name in deployments.split(",") if name.strip()
            )
        self.api_version = credentials.get("AZURE_OPENAI_API_VERSION") or DEFAULT_API_VERSION

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        return {"api-key": api_key}

    def get_request_params(self) -> Optional[dict[str, str]]:
        return {"api-version": self.api_version}

    def get_chat_path(self, request: ChatCompletionRequest) -> str:
        return f"/openai/deployments/{request.model}/chat/completions"

    def transform_request(self, request: ChatCompletionRequest, stream: bool) -> dict[str, Any]:
        # 部署由URL决定
        payload = super().transform_request(request, stream)
        payload.pop("model", None)
        return payload
