"""
Anthropic Provider适配器
支持Claude系列模型
"""

import asyncio
import json
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
    message_text,
)

logger = get_logger(__name__)

# Anthropic stop_reason -> OpenAI finish_reason
FINISH_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}

DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter(BaseAdapter):
    """Anthropic适配器"""

    name = "anthropic"
    required_credential_keys = ("ANTHROPIC_API_KEY",)
    optional_credential_keys = ("ANTHROPIC_API_VERSION",)
    base_url_key = "ANTHROPIC_BASE_URL"
    default_base_url = "https://api.anthropic.com/v1"
    supported_models = (
        "claude-3-5-sonnet-20241022",
        "claude-3-5-sonnet-20240620",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    )

    def get_messages_path(self, request: ChatCompletionRequest, stream: bool) -> str:
        return "/messages"

    async def build_headers(self, upstream_key: Optional[str] = None) -> dict[str, str]:
        return self.get_auth_headers(self.resolve_api_key(upstream_key))

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        """获取Anthropic认证头"""
        return {
            "x-api-key": api_key,
            "anthropic-version": self.credentials.get("ANTHROPIC_API_VERSION", "2023-06-01"),
        }

    async def invoke(
        self, request: ChatCompletionRequest, upstream_key: Optional[str] = None
    ) -> ChatCompletion:
        """Anthropic消息完成"""
        headers = await self.build_headers(upstream_key)
        logger.info(f"{self.name} API request - model: {request.model}, messages: {len(request.messages)}")

        data = await self.post_json(
            self.get_messages_path(request, stream=False), self.transform_request(request), headers
        )
        return self.transform_response(data, request.model)

    async def stream(
        self,
        request: ChatCompletionRequest,
        cancel_event: asyncio.Event,
        upstream_key: Optional[str] = None,
    ) -> AsyncIterator[ChatCompletionChunk]:
        """Anthropic流式消息完成"""
        headers = await self.build_headers(upstream_key)
        payload = self.transform_request(request)
        payload["stream"] = True

        completion_id = ""
        model = request.model
        events = self.stream_events(
            self.get_messages_path(request, stream=True), payload, headers, cancel_event
        )

        async with aclosing(events):
            async for data in events:
                event = self.decode_event(data)
                if event is None:
                    continue

                event_type = event.get("type")
                if event_type == "message_start":
                    message = event.get("message", {})
                    completion_id = message.get("id", "")
                    model = message.get("model", model)
                    yield build_chunk(completion_id, model, role="assistant", content="")

                elif event_type == "content_block_delta":
                    delta = event.get("delta", {})
                    if delta.get("type") == "text_delta":
                        yield build_chunk(completion_id, model, content=delta.get("text", ""))

                elif event_type == "message_delta":
                    stop_reason = event.get("delta", {}).get("stop_reason")
                    if stop_reason:
                        output_tokens = event.get("usage", {}).get("output_tokens", 0)
                        yield build_chunk(
                            completion_id,
                            model,
                            finish_reason=FINISH_REASONS.get(stop_reason, stop_reason),
                            usage=Usage(
                                completion_tokens=output_tokens,
                                total_tokens=output_tokens,
                            ),
                        )

                elif event_type == "error":
                    raise self.stream_error(event.get("error", event))

                elif event_type == "message_stop":
                    break

    def transform_request(self, request: ChatCompletionRequest) -> dict[str, Any]:
        """转换为Anthropic格式请求"""
        system_parts = []
        messages = []

        for msg in request.messages:
            role = msg.get("role")
            if role == "system":
                # Anthropic的system消息单独处理
                system_parts.append(message_text(msg.get("content")))
            elif role in ("user", "assistant"):
                messages.append({"role": role, "content": message_text(msg.get("content"))})

        payload: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            # Anthropic要求max_tokens
            "max_tokens": request.option(
                "max_tokens", request.option("max_completion_tokens", DEFAULT_MAX_TOKENS)
            ),
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)

        for key in ("temperature", "top_p", "top_k"):
            value = request.option(key)
            if value is not None:
                payload[key] = value

        stop = request.option("stop")
        if stop:
            payload["stop_sequences"] = [stop] if isinstance(stop, str) else list(stop)

        return payload

    def transform_response(self, data: dict[str, Any], requested_model: str) -> ChatCompletion:
        """转换Anthropic响应为标准格式"""
        text_content = ""
        tool_calls = []

        for block in data.get("content", []):
            if block.get("type") == "text":
                text_content += block.get("text", "")
            elif block.get("type") == "tool_use":
                tool_calls.append(
                    {
                        "id": block.get("id"),
                        "type": "function",
                        "function": {
                            "name": block.get("name"),
                            "arguments": json.dumps(block.get("input", {})),
                        },
                    }
                )

        usage = data.get("usage", {})
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        stop_reason = data.get("stop_reason")

        extra = {"tool_calls": tool_calls} if tool_calls else {}
        return build_completion(
            data.get("id", ""),
            data.get("model", requested_model),
            text_content,
            FINISH_REASONS.get(stop_reason, stop_reason),
            usage=Usage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            **extra,
        )
