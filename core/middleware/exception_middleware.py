"""
FastAPI exception middleware for unified error handling
"""

import time

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.exceptions import ErrorHandler, get_error_handler


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """统一异常处理中间件，所有未处理的异常都转换为统一的错误响应"""

    def __init__(self, app, error_handler: ErrorHandler = None):
        super().__init__(app)
        self.error_handler = error_handler or get_error_handler()

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        try:
            return await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            return self._handle_exception(request, e, duration_ms)

    def _handle_exception(
        self, request: Request, exc: Exception, duration_ms: float
    ) -> JSONResponse:
        """处理异常并返回统一格式的错误响应"""
        normalized = self.error_handler.report(
            exc,
            {
                "method": request.method,
                "path": request.url.path,
                "model": getattr(request.state, "model", None),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return JSONResponse(status_code=normalized.status_code, content=normalized.body)
