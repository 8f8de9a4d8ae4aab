"""
Google Gemini Provider适配器
使用Generative Language API的 generateContent / streamGenerateContent
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

# Gemini finishReason -> OpenAI finish_reason
FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
    "BLOCKLIST": "content_filter",
    "PROHIBITED_CONTENT": "content_filter",
}

# OpenAI参数名 -> generationConfig字段
GENERATION_PARAMS = {
    "temperature": "temperature",
    "top_p": "topP",
    "top_k": "topK",
    "max_tokens": "maxOutputTokens",
    "max_completion_tokens": "maxOutputTokens",
}


class GoogleAdapter(BaseAdapter):
    """Google Gemini适配器"""

    name = "google"
    required_credential_keys = ("GOOGLE_API_KEY",)
    base_url_key = "GOOGLE_BASE_URL"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"
    supported_models = (
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
    )

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        return {"x-goog-api-key": api_key}

    async def invoke(
        self, request: ChatCompletionRequest, upstream_key: Optional[str] = None
    ) -> ChatCompletion:
        headers = self.get_auth_headers(self.resolve_api_key(upstream_key))
        logger.info(f"{self.name} API request - model: {request.model}, messages: {len(request.messages)}")
        data = await self.post_json(
            f"/models/{request.model}:generateContent",
            self.transform_request(request),
            headers,
        )

        text, finish_reason = self._extract_candidate(data)
        return build_completion(
            generate_completion_id(),
            request.model,
            text,
            finish_reason,
            usage=self._extract_usage(data),
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
            f"/models/{request.model}:streamGenerateContent",
            self.transform_request(request),
            headers,
            cancel_event,
            params={"alt": "sse"},
        )

        first = True
        async with aclosing(events):
            async for data in events:
                event = self.decode_event(data)
                if event is None:
                    continue
                if "error" in event:
                    raise self.stream_error(event["error"])

                text, finish_reason = self._extract_candidate(event)
                yield build_chunk(
                    completion_id,
                    request.model,
                    content=text,
                    role="assistant" if first else None,
                    finish_reason=finish_reason,
                    usage=self._extract_usage(event) if finish_reason else None,
                )
                first = False

    def transform_request(self, request: ChatCompletionRequest) -> dict[str, Any]:
        """转换为Gemini格式请求"""
        system_parts = []
        contents = []

        for msg in request.messages:
            role = msg.get("role")
            text = message_text(msg.get("content"))
            if role == "system":
                system_parts.append({"text": text})
            elif role == "assistant":
                contents.append({"role": "model", "parts": [{"text": text}]})
            else:
                contents.append({"role": "user", "parts": [{"text": text}]})

        payload: dict[str, Any] = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}

        generation_config = {}
        for key, field in GENERATION_PARAMS.items():
            value = request.option(key)
            if value is not None:
                generation_config[field] = value

        stop = request.option("stop")
        if stop:
            generation_config["stopSequences"] = [stop] if isinstance(stop, str) else list(stop)

        if generation_config:
            payload["generationConfig"] = generation_config

        return payload

    def _extract_candidate(self, data: dict[str, Any]) -> tuple[str, Optional[str]]:
        """提取第一个候选的文本和结束原因"""
        candidates = data.get("candidates") or []
        if not candidates:
            return "", None

        candidate = candidates[0]
        parts = candidate.get("content", {}).get("parts", [])
        text = "".join(part.get("text", "") for part in parts)

        reason = candidate.get("finishReason")
        if reason is None or reason == "FINISH_REASON_UNSPECIFIED":
            return text, None
        return text, FINISH_REASONS.get(reason, reason.lower())

    def _extract_usage(self, data: dict[str, Any]) -> Optional[Usage]:
        metadata = data.get("usageMetadata")
        if not metadata:
            return None
        return Usage(
            prompt_tokens=metadata.get("promptTokenCount", 0),
            completion_tokens=metadata.get("candidatesTokenCount", 0),
            total_tokens=metadata.get("totalTokenCount", 0),
        )
