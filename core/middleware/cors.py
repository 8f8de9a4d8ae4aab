"""
CORS中间件 - 每次请求重新读取允许的来源
"""

from typing import Any, Callable, Optional

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send


def parse_origins(value: Optional[str]) -> tuple[str, ...]:
    """逗号分隔的来源列表"""
    if not value:
        return ()
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


class DynamicCORSMiddleware:
    """
    按请求时的来源配置执行CORS

    来源不变时复用同一个 CORSMiddleware，变化后按新来源重新构建。
    """

    def __init__(self, app: ASGIApp, origin_provider: Callable[[], Optional[str]], **options: Any):
        self.app = app
        self.origin_provider = origin_provider
        self.options = options
        self._origins: Optional[tuple[str, ...]] = None
        self._cors: Optional[CORSMiddleware] = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        await self._current()(scope, receive, send)

    def _current(self) -> CORSMiddleware:
        origins = parse_origins(self.origin_provider())
        if self._cors is None or origins != self._origins:
            self._cors = CORSMiddleware(self.app, allow_origins=list(origins), **self.options)
            self._origins = origins
        return self._cors
