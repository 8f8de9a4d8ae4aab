"""
统一异常处理模块
"""

from .base_exceptions import (
    ConfigurationException,
    GatewayException,
    ModelNotSupportedException,
    UnauthorizedException,
    UpstreamException,
)
from .error_codes import ErrorCode, get_error_message
from .error_handler import (
    ErrorHandler,
    NormalizedError,
    describe_error,
    extract_status_code,
    get_error_handler,
    normalize_error,
)

__all__ = [
    # 错误码
    "ErrorCode",
    "get_error_message",
    # 异常类
    "GatewayException",
    "UnauthorizedException",
    "ModelNotSupportedException",
    "UpstreamException",
    "ConfigurationException",
    # 错误处理器
    "ErrorHandler",
    "NormalizedError",
    "describe_error",
    "extract_status_code",
    "get_error_handler",
    "normalize_error",
]
