"""
流式响应转换
把适配器产出的片段序列转换为SSE事件，并把客户端断开传递给适配器
"""

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import Any, Optional

from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from core.exceptions import ErrorHandler, get_error_handler
from core.providers.base import ChatCompletionChunk
from core.utils.logger import get_logger

logger = get_logger(__name__)


def format_sse(chunk: ChatCompletionChunk) -> str:
    """把一个片段编码为一条SSE事件"""
    return f"data: {chunk.model_dump_json()}\n\n"


class StreamNormalizer:
    """
    流式片段转发器

    每次只从适配器拉取一个片段，发送完成后再拉取下一个。
    客户端断开时设置一次取消信号并关闭适配器序列，之后不再发送任何片段。
    发送开始后的上游错误只记录日志并结束流，不再写入错误事件。
    """

    def __init__(
        self,
        chunks: AsyncIterator[ChatCompletionChunk],
        cancel_event: asyncio.Event,
        error_handler: Optional[ErrorHandler] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self._chunks = chunks
        self.cancel_event = cancel_event
        self.error_handler = error_handler or get_error_handler()
        self.context = context or {}

        self._pending: Optional[ChatCompletionChunk] = None
        self._started = False
        self._closed = False
        self.emitted = 0
        self.cancel_count = 0

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """
        预取第一个片段

        在响应头发送之前调用，首个片段之前的错误直接抛出，
        由调用方按普通错误响应处理。
        """
        if self._started:
            return
        self._started = True
        try:
            self._pending = await self._chunks.__anext__()
        except StopAsyncIteration:
            self._pending = None
            await self._close()
        except BaseException:
            await self._close()
            raise

    def cancel(self) -> None:
        """设置取消信号，只生效一次"""
        if self.cancel_event.is_set():
            return
        self.cancel_event.set()
        self.cancel_count += 1
        logger.info("Stream cancelled by client", emitted=self.emitted, **self.context)

    def disconnect(self) -> None:
        """客户端断开，适配器序列尚未结束时设置取消信号"""
        if not self._closed:
            self.cancel()

    async def aclose(self) -> None:
        """关闭适配器序列，未正常结束时按客户端断开处理"""
        self.disconnect()
        await self._close()

    async def events(self) -> AsyncIterator[str]:
        """按生成顺序产出SSE事件"""
        try:
            await self.start()
            while self._pending is not None and not self.cancelled:
                chunk, self._pending = self._pending, None
                self.emitted += 1
                yield format_sse(chunk)

                if self.cancelled:
                    break
                try:
                    self._pending = await self._chunks.__anext__()
                except StopAsyncIteration:
                    break
        except (GeneratorExit, asyncio.CancelledError):
            self.cancel()
            raise
        except Exception as e:
            # 已经发送的片段无法撤回，只能结束流
            self.error_handler.report(e, {"emitted": self.emitted, **self.context})
        finally:
            await self._close()

    async def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()


class EventStreamResponse(StreamingResponse):
    """
    转发 StreamNormalizer 的SSE响应

    监听到客户端断开时先设置取消信号，再由Starlette取消发送任务。
    响应结束时关闭事件序列和适配器序列，包括发送途中出错的情况。
    """

    def __init__(self, normalizer: StreamNormalizer, headers: Optional[Mapping[str, str]] = None):
        self.normalizer = normalizer
        self._events = normalizer.events()
        super().__init__(self._events, media_type="text/event-stream", headers=headers)

    async def listen_for_disconnect(self, receive: Receive) -> None:
        await super().listen_for_disconnect(receive)
        self.normalizer.disconnect()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self._events.aclose()
            await self.normalizer.aclose()
