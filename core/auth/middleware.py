# -*- coding: utf-8 -*-
"""
Authentication middleware for the gateway
"""

from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.exceptions import UnauthorizedException, get_error_handler
from core.utils.logger import get_logger

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


def authorize(authorization_header: Optional[str], expected_key: Optional[str]) -> None:
    """
    校验网关访问令牌

    Args:
        authorization_header: 请求的Authorization头
        expected_key: 配置的网关访问密钥

    Raises:
        UnauthorizedException: 头缺失、格式不是 "Bearer <token>"、或令牌不匹配
    """
    if not authorization_header:
        raise UnauthorizedException("missing Authorization header")
    if not authorization_header.startswith(BEARER_PREFIX):
        raise UnauthorizedException("Authorization header is not a bearer token")
    # 未配置网关密钥时拒绝所有请求
    if not expected_key:
        raise UnauthorizedException("gateway access key is not configured")
    if authorization_header[len(BEARER_PREFIX):] != expected_key:
        raise UnauthorizedException("token mismatch")


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    网关令牌认证中间件

    在模型解析和任何上游调用之前检查Authorization头。
    OPTIONS预检请求不做认证。
    """

    def __init__(self, app, key_provider: Callable[[], Optional[str]]):
        """
        Args:
            app: ASGI应用
            key_provider: 每次请求时调用，返回当前的网关访问密钥
        """
        super().__init__(app)
        self.key_provider = key_provider

        # 不需要认证的路径
        self.excluded_paths = {"/docs", "/openapi.json", "/redoc"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS" or request.url.path in self.excluded_paths:
            return await call_next(request)

        try:
            authorize(request.headers.get("Authorization"), self.key_provider())
        except UnauthorizedException as e:
            client = request.client.host if request.client else "unknown"
            logger.warning(f"Rejected request to {request.url.path} from {client}: {e.reason}")
            normalized = get_error_handler().normalize(e)
            return JSONResponse(status_code=normalized.status_code, content=normalized.body)

        return await call_next(request)
