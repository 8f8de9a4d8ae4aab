"""
OpenAI Provider适配器
支持官方OpenAI API和兼容的API服务
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any, Optional

from core.utils.logger import get_logger

from ..base import (
    BaseAdapter,
    ChatCompletion,
    ChatCompletionChunk,
    ChatCompletionRequest,
)

logger = get_logger(__name__)


class OpenAIAdapter(BaseAdapter):
    """OpenAI适配器，请求和响应已经是网关的标准格式，只做透传"""

    name = "openai"
    required_credential_keys = ("OPENAI_API_KEY",)
    optional_credential_keys = ("OPENAI_ORGANIZATION",)
    base_url_key = "OPENAI_BASE_URL"
    default_base_url = "https://api.openai.com/v1"
    supported_models = (
        "gpt-4o",
        "gpt-4o-2024-08-06",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "o1",
        "o1-mini",
        "o3-mini",
    )

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        """获取OpenAI认证头"""
        headers = {"Authorization": f"Bearer {api_key}"}
        organization = self.credentials.get("OPENAI_ORGANIZATION")
        if organization:
            headers["OpenAI-Organization"] = organization
        return headers

    def get_chat_path(self, request: ChatCompletionRequest) -> str:
        return "/chat/completions"

    def get_request_params(self) -> Optional[dict[str, str]]:
        return None

    def transform_request(self, request: ChatCompletionRequest, stream: bool) -> dict[str, Any]:
        """OpenAI兼容接口直接使用原始请求体"""
        payload = request.payload
        payload["stream"] = stream
        return payload

    async def invoke(
        self, request: ChatCompletionRequest, upstream_key: Optional[str] = None
    ) -> ChatCompletion:
        """OpenAI聊天完成"""
        headers = self.get_auth_headers(self.resolve_api_key(upstream_key))
        logger.info(f"{self.name} API request - model: {request.model}, messages: {len(request.messages)}")
        data = await self.post_json(
            self.get_chat_path(request),
            self.transform_request(request, stream=False),
            headers,
            params=self.get_request_params(),
        )
        return ChatCompletion.model_validate(data)

    async def stream(
        self,
        request: ChatCompletionRequest,
        cancel_event: asyncio.Event,
        upstream_key: Optional[str] = None,
    ) -> AsyncIterator[ChatCompletionChunk]:
        """OpenAI流式聊天完成"""
        headers = self.get_auth_headers(self.resolve_api_key(upstream_key))
        logger.info(f"{self.name} stream request - model: {request.model}")
        events = self.stream_events(
            self.get_chat_path(request),
            self.transform_request(request, stream=True),
            headers,
            cancel_event,
            params=self.get_request_params(),
        )

        async with aclosing(events):
            async for data in events:
                if data == "[DONE]":
                    break

                event = self.decode_event(data)
                if event is None:
                    continue
                if "error" in event:
                    raise self.stream_error(event["error"])
                if "choices" not in event:
                    continue
                yield ChatCompletionChunk.model_validate(event)
