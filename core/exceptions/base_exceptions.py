"""
统一异常基类
Base structure of every fault raised inside the gateway.
"""

from datetime import datetime
from typing import Any, Optional

from .error_codes import ErrorCode, get_error_message


class GatewayException(Exception):
    """网关基础异常类"""

    status_code: int = 500

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        self.error_code = error_code
        self.message = message or get_error_message(error_code)
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now()

        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式"""
        return {
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(error_code={self.error_code.value}, message='{self.message}')"


class UnauthorizedException(GatewayException):
    """调用方未通过网关认证"""

    status_code = 401

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        details = {"reason": reason} if reason else None
        super().__init__(ErrorCode.UNAUTHORIZED, "Unauthorized", details=details)


class ModelNotSupportedException(GatewayException):
    """没有任何已激活的适配器声明该模型"""

    status_code = 400

    def __init__(self, model: str):
        super().__init__(
            ErrorCode.MODEL_NOT_SUPPORTED,
            f"Model {model} not supported",
            details={"model": model},
        )
        self.model = model


class UpstreamException(GatewayException):
    """上游Provider调用失败"""

    status_code = 502

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.UPSTREAM_ERROR,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        if provider:
            details["provider"] = provider
        super().__init__(
            error_code, message, status_code=status_code, details=details, **kwargs
        )
        self.provider = provider


class ConfigurationException(GatewayException):
    """配置相关异常"""

    def __init__(
        self,
        message: Optional[str] = None,
        config_path: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.CONFIG_INVALID,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        if config_path:
            details["config_path"] = config_path
        super().__init__(error_code, message, details=details, **kwargs)
