"""
Cohere Provider适配器
使用Cohere v2 Chat API
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
    Usage,
    build_chunk,
    build_completion,
    generate_completion_id,
    message_text,
)

logger = get_logger(__name__)

FINISH_REASONS = {
    "COMPLETE": "stop",
    "STOP_SEQUENCE": "stop",
    "MAX_TOKENS": "length",
    "TOOL_CALL": "tool_calls",
    "ERROR": "error",
}

# OpenAI参数名 -> Cohere参数名
CHAT_PARAMS = {
    "temperature": "temperature",
    "top_p": "p",
    "top_k": "k",
    "max_tokens": "max_tokens",
    "seed": "seed",
    "frequency_penalty": "frequency_penalty",
    "presence_penalty": "presence_penalty",
}


class CohereAdapter(BaseAdapter):
    """Cohere适配器"""

    name = "cohere"
    required_credential_keys = ("COHERE_API_KEY",)
    base_url_key = "COHERE_BASE_URL"
    default_base_url = "https://api.cohere.com/v2"
    supported_models = (
        "command-r-plus",
        "command-r",
        "command-r7b-12-2024",
        "command-light",
        "command",
    )

    async def invoke(
        self, request: ChatCompletionRequest, upstream_key: Optional[str] = None
    ) -> ChatCompletion:
        headers = self.get_auth_headers(self.resolve_api_key(upstream_key))
        logger.info(f"{self.name} API request - model: {request.model}, messages: {len(request.messages)}")
        data = await self.post_json("/chat", self.transform_request(request, False), headers)

        content = data.get("message", {}).get("content") or []
        text = "".join(block.get("text", "") for block in content if block.get("type") == "text")
        reason = data.get("finish_reason")

        return build_completion(
            data.get("id") or generate_completion_id(),
            request.model,
            text,
            FINISH_REASONS.get(reason, reason),
            usage=self._extract_usage(data.get("usage")),
        )

    async def stream(
        self,
        request: ChatCompletionRequest,
        cancel_event: asyncio.Event,
        upstream_key: Optional[str] = None,
    ) -> AsyncIterator[ChatCompletionChunk]:
        headers = self.get_auth_headers(self.resolve_api_key(upstream_key))
        completion_id = generate_completion_id()
        events = self.stream_events(
            "/chat", self.transform_request(request, True), headers, cancel_event
        )

        async with aclosing(events):
            async for data in events:
                event = self.decode_event(data)
                if event is None:
                    continue

                event_type = event.get("type")
                if event_type == "message-start":
                    completion_id = event.get("id") or completion_id
                    yield build_chunk(completion_id, request.model, role="assistant", content="")

                elif event_type == "content-delta":
                    text = (
                        event.get("delta", {})
                        .get("message", {})
                        .get("content", {})
                        .get("text", "")
                    )
                    yield build_chunk(completion_id, request.model, content=text)

                elif event_type == "message-end":
                    delta = event.get("delta", {})
                    reason = delta.get("finish_reason")
                    if reason == "ERROR":
                        raise self.stream_error(delta.get("error") or "Cohere stream failed")
                    yield build_chunk(
                        completion_id,
                        request.model,
                        finish_reason=FINISH_REASONS.get(reason, reason),
                        usage=self._extract_usage(delta.get("usage")),
                    )
                    break

    def transform_request(self, request: ChatCompletionRequest, stream: bool) -> dict[str, Any]:
        """转换为Cohere格式请求"""
        messages = [
            {"role": msg.get("role", "user"), "content": message_text(msg.get("content"))}
            for msg in request.messages
        ]

        payload: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "stream": stream,
        }
        for key, field in CHAT_PARAMS.items():
            value = request.option(key)
            if value is not None:
                payload[field] = value

        stop = request.option("stop")
        if stop:
            payload["stop_sequences"] = [stop] if isinstance(stop, str) else list(stop)

        return payload

    def _extract_usage(self, usage: Optional[dict[str, Any]]) -> Optional[Usage]:
        if not usage:
            return None
        tokens = usage.get("tokens") or usage.get("billed_units") or {}
        input_tokens = int(tokens.get("input_tokens", 0))
        output_tokens = int(tokens.get("output_tokens", 0))
        return Usage(
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )
