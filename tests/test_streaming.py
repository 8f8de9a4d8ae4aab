"""流式转发测试"""

import asyncio
import json

import pytest

from core.exceptions import ErrorHandler, UpstreamException
from core.handlers.streaming import EventStreamResponse, StreamNormalizer, format_sse
from core.providers.base import build_chunk


class CountingStream:
    """无限产出片段，记录关闭时是否已收到取消信号"""

    def __init__(self, cancel_event, delay_after=None):
        self.cancel_event = cancel_event
        self.delay_after = delay_after
        self.produced = 0
        self.closed = False
        self.cancel_seen_on_close = None

    async def chunks(self):
        try:
            while True:
                if self.delay_after is not None and self.produced >= self.delay_after:
                    await asyncio.sleep(10)
                self.produced += 1
                yield build_chunk("cmpl-x", "m", content=str(self.produced), created=1)
        finally:
            self.closed = True
            self.cancel_seen_on_close = self.cancel_event.is_set()


async def finite(count):
    for i in range(count):
        yield build_chunk("cmpl-x", "m", content=str(i), created=1)


def decode(event):
    assert event.startswith("data: ") and event.endswith("\n\n")
    return json.loads(event[len("data: "):-2])


class TestForwarding:
    """正常转发"""

    @pytest.mark.asyncio
    async def test_events_in_production_order(self):
        cancel_event = asyncio.Event()
        normalizer = StreamNormalizer(finite(3), cancel_event, ErrorHandler())

        events = [event async for event in normalizer.events()]

        assert [decode(event)["choices"][0]["delta"]["content"] for event in events] == ["0", "1", "2"]
        assert normalizer.emitted == 3
        assert not cancel_event.is_set()

    @pytest.mark.asyncio
    async def test_empty_sequence(self):
        normalizer = StreamNormalizer(finite(0), asyncio.Event(), ErrorHandler())
        await normalizer.start()
        assert [event async for event in normalizer.events()] == []

    def test_format_sse(self):
        chunk = build_chunk("cmpl-x", "m", content="hi", created=1)
        assert format_sse(chunk) == f"data: {chunk.model_dump_json()}\n\n"

    @pytest.mark.asyncio
    async def test_start_pulls_only_the_first_chunk(self):
        cancel_event = asyncio.Event()
        source = CountingStream(cancel_event)
        normalizer = StreamNormalizer(source.chunks(), cancel_event, ErrorHandler())

        await normalizer.start()
        assert source.produced == 1

        events = normalizer.events()
        await events.__anext__()
        assert source.produced == 1
        await events.__anext__()
        assert source.produced == 2
        await events.aclose()


class TestCancellation:
    """客户端断开"""

    @pytest.mark.asyncio
    async def test_client_disconnect_cancels_once(self):
        """断开后不再产出片段，取消信号只设置一次"""
        cancel_event = asyncio.Event()
        source = CountingStream(cancel_event)
        normalizer = StreamNormalizer(source.chunks(), cancel_event, ErrorHandler())

        events = normalizer.events()
        await events.__anext__()
        await events.__anext__()
        await events.aclose()

        assert cancel_event.is_set()
        assert normalizer.cancel_count == 1
        assert normalizer.emitted == 2
        assert source.closed
        assert source.cancel_seen_on_close is True

        normalizer.cancel()
        assert normalizer.cancel_count == 1

        with pytest.raises(StopAsyncIteration):
            await events.__anext__()

    @pytest.mark.asyncio
    async def test_no_chunks_after_cancel_signal(self):
        cancel_event = asyncio.Event()
        source = CountingStream(cancel_event)
        normalizer = StreamNormalizer(source.chunks(), cancel_event, ErrorHandler())

        events = normalizer.events()
        await events.__anext__()
        normalizer.cancel()

        with pytest.raises(StopAsyncIteration):
            await events.__anext__()
        assert normalizer.emitted == 1
        assert normalizer.cancel_count == 1
        assert source.closed

    @pytest.mark.asyncio
    async def test_task_cancellation_while_waiting_for_upstream(self):
        """等待上游时任务被取消也会设置取消信号"""
        cancel_event = asyncio.Event()
        source = CountingStream(cancel_event, delay_after=1)
        normalizer = StreamNormalizer(source.chunks(), cancel_event, ErrorHandler())
        received = []
        first_received = asyncio.Event()

        async def consume():
            async for event in normalizer.events():
                received.append(event)
                first_received.set()

        task = asyncio.create_task(consume())
        await first_received.wait()
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(received) == 1
        assert cancel_event.is_set()
        assert normalizer.cancel_count == 1
        assert source.closed


class TestMidStreamFault:
    """发送开始后的上游错误"""

    @pytest.mark.asyncio
    async def test_fault_ends_stream_and_is_reported(self):
        async def failing():
            yield build_chunk("cmpl-x", "m", content="partial", created=1)
            raise UpstreamException("connection reset", status_code=502)

        handler = ErrorHandler()
        cancel_event = asyncio.Event()
        normalizer = StreamNormalizer(failing(), cancel_event, handler)

        events = [event async for event in normalizer.events()]

        assert len(events) == 1
        assert decode(events[0])["choices"][0]["delta"]["content"] == "partial"
        assert handler.get_error_stats()["error_by_status"] == {502: 1}
        assert not cancel_event.is_set()

    @pytest.mark.asyncio
    async def test_fault_before_first_chunk_raises_from_start(self):
        async def failing():
            raise UpstreamException("unauthorized upstream", status_code=401)
            yield

        handler = ErrorHandler()
        normalizer = StreamNormalizer(failing(), asyncio.Event(), handler)

        with pytest.raises(UpstreamException):
            await normalizer.start()
        assert handler.get_error_stats()["total_errors"] == 0


def body_events(messages):
    return [
        message["body"]
        for message in messages
        if message["type"] == "http.response.body" and message.get("body")
    ]


class TestEventStreamResponse:
    """ASGI层的断开处理"""

    @pytest.mark.asyncio
    async def test_disconnect_sets_signal_before_upstream_closes(self):
        """等待上游时客户端断开，适配器关闭前已能看到取消信号"""
        cancel_event = asyncio.Event()
        source = CountingStream(cancel_event, delay_after=1)
        normalizer = StreamNormalizer(source.chunks(), cancel_event, ErrorHandler())
        await normalizer.start()
        response = EventStreamResponse(normalizer)

        sent = []
        first_body = asyncio.Event()

        async def send(message):
            sent.append(message)
            if message["type"] == "http.response.body" and message.get("body"):
                first_body.set()

        async def receive():
            await first_body.wait()
            return {"type": "http.disconnect"}

        scope = {"type": "http", "asgi": {"version": "3.0", "spec_version": "2.0"}}
        await asyncio.wait_for(response(scope, receive, send), timeout=5)

        assert len(body_events(sent)) == 1
        assert source.closed
        assert source.cancel_seen_on_close is True
        assert normalizer.cancel_count == 1

    @pytest.mark.asyncio
    async def test_send_failure_closes_upstream(self):
        """发送途中连接失效时关闭适配器序列"""
        cancel_event = asyncio.Event()
        source = CountingStream(cancel_event)
        normalizer = StreamNormalizer(source.chunks(), cancel_event, ErrorHandler())
        await normalizer.start()
        response = EventStreamResponse(normalizer)

        async def send(message):
            if message["type"] == "http.response.body":
                raise OSError("connection lost")

        async def receive():
            await asyncio.Event().wait()

        scope = {"type": "http", "asgi": {"version": "3.0", "spec_version": "2.4"}}
        with pytest.raises(Exception):
            await asyncio.wait_for(response(scope, receive, send), timeout=5)

        assert source.closed
        assert source.cancel_seen_on_close is True
        assert normalizer.cancel_count == 1

    @pytest.mark.asyncio
    async def test_completed_stream_is_not_cancelled(self):
        cancel_event = asyncio.Event()
        normalizer = StreamNormalizer(finite(2), cancel_event, ErrorHandler())
        await normalizer.start()
        response = EventStreamResponse(normalizer)
        sent = []

        async def send(message):
            sent.append(message)

        async def receive():
            await asyncio.Event().wait()

        scope = {"type": "http", "asgi": {"version": "3.0", "spec_version": "2.0"}}
        await asyncio.wait_for(response(scope, receive, send), timeout=5)

        assert len(body_events(sent)) == 2
        assert sent[0]["type"] == "http.response.start"
        assert not cancel_event.is_set()
        assert normalizer.cancel_count == 0
        assert normalizer.closed

    @pytest.mark.asyncio
    async def test_aclose_before_sending(self):
        """响应从未发送时关闭也会释放上游"""
        cancel_event = asyncio.Event()
        source = CountingStream(cancel_event)
        normalizer = StreamNormalizer(source.chunks(), cancel_event, ErrorHandler())
        await normalizer.start()

        await normalizer.aclose()
        await normalizer.aclose()

        assert source.closed
        assert source.cancel_seen_on_close is True
        assert normalizer.cancel_count == 1
        assert normalizer.emitted == 0
