"""
聊天完成请求处理器
负责模型分发、非流式调用和流式响应
"""

import asyncio
import time
from collections.abc import Mapping
from typing import Callable, Optional, Union

from fastapi.responses import JSONResponse

from core.exceptions import ErrorHandler, get_error_handler
from core.providers import ChatCompletionRequest, ProviderRegistry, resolve_adapter
from core.providers.base import BaseAdapter
from core.utils.logger import get_logger

from .streaming import EventStreamResponse, StreamNormalizer

logger = get_logger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ChatCompletionHandler:
    """聊天完成处理器"""

    def __init__(
        self,
        registry: ProviderRegistry,
        credentials_provider: Callable[[], Mapping[str, str]],
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Args:
            registry: Provider注册中心
            credentials_provider: 每次请求时调用，返回当前凭据映射
            error_handler: 流式中途错误的上报通道
        """
        self.registry = registry
        self.credentials_provider = credentials_provider
        self.error_handler = error_handler or get_error_handler()

    def select_adapter(self, model: str) -> BaseAdapter:
        """根据本次请求的凭据选择适配器"""
        adapters = self.registry.active_adapters(self.credentials_provider())
        return resolve_adapter(model, adapters)

    async def handle_request(
        self, request: ChatCompletionRequest, upstream_key: Optional[str] = None
    ) -> Union[JSONResponse, EventStreamResponse]:
        """
        处理聊天完成请求

        Args:
            request: 聊天请求
            upstream_key: x-api-key 头中透传的上游凭据

        Returns:
            非流式请求返回JSON响应，流式请求返回SSE响应
        """
        adapter = self.select_adapter(request.model)
        logger.info(
            f"Dispatching model '{request.model}' to {adapter.name}",
            stream=request.stream,
            upstream_key_forwarded=bool(upstream_key),
        )

        if request.stream:
            return await self.handle_stream_request(adapter, request, upstream_key)

        start_time = time.time()
        completion = await adapter.invoke(request, upstream_key)
        logger.info(
            f"Completed {adapter.name} request in {time.time() - start_time:.3f}s",
            model=request.model,
        )
        return JSONResponse(content=completion.model_dump(mode="json"))

    async def handle_stream_request(
        self,
        adapter: BaseAdapter,
        request: ChatCompletionRequest,
        upstream_key: Optional[str] = None,
    ) -> EventStreamResponse:
        """处理流式请求，首个片段之前的错误按普通错误响应返回"""
        cancel_event = asyncio.Event()
        normalizer = StreamNormalizer(
            adapter.stream(request, cancel_event, upstream_key),
            cancel_event,
            error_handler=self.error_handler,
            context={"provider": adapter.name, "model": request.model},
        )
        await normalizer.start()

        return EventStreamResponse(normalizer, headers=STREAM_HEADERS)
