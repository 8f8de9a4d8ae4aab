"""
日志中间件 - 自动记录API请求和响应
"""

import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.utils.logger import get_logger

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "x-api-key",
    "api-key",
}


class LoggingMiddleware(BaseHTTPMiddleware):
    """API请求/响应日志中间件，为每个请求分配请求ID"""

    def __init__(
        self,
        app,
        log_requests: bool = True,
        log_responses: bool = True,
        skip_paths: Optional[set] = None,
    ):
        super().__init__(app)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.skip_paths = skip_paths or {"/docs", "/redoc", "/openapi.json", "/favicon.ico"}
        self.logger = get_logger("gateway.access")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 生成或获取请求ID
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        if request.url.path in self.skip_paths:
            return await call_next(request)

        # 设置日志上下文
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.time()

        try:
            if self.log_requests:
                self.logger.info(
                    f"API Request: {request.method} {request.url.path}",
                    method=request.method,
                    path=request.url.path,
                    client_ip=self._get_client_ip(request),
                    headers=self._filter_headers(dict(request.headers)),
                )

            response = await call_next(request)
            process_time = time.time() - start_time

            if self.log_responses:
                self._log_response(response, process_time)

            # 添加请求ID到响应头
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    def _log_response(self, response: Response, process_time: float) -> None:
        """记录响应信息"""
        # 确定日志级别
        if response.status_code >= 500:
            log_level = "error"
        elif response.status_code >= 400:
            log_level = "warning"
        else:
            log_level = "info"

        message = f"API Response: {response.status_code} - {process_time:.4f}s"
        getattr(self.logger, log_level)(
            message,
            status_code=response.status_code,
            process_time=round(process_time, 4),
        )

    def _filter_headers(self, headers: dict[str, str]) -> dict[str, str]:
        """过滤敏感的请求头"""
        filtered = {}
        for key, value in headers.items():
            if key.lower() in SENSITIVE_HEADERS:
                filtered[key] = "***"
            else:
                filtered[key] = value
        return filtered

    def _get_client_ip(self, request: Request) -> str:
        """获取客户端IP地址"""
        # 检查代理头
        for header in ["x-forwarded-for", "x-real-ip"]:
            if header in request.headers:
                ip = request.headers[header].split(",")[0].strip()
                if ip:
                    return ip

        if request.client:
            return request.client.host

        return "unknown"
