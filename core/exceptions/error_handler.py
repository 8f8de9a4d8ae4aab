"""
统一错误处理器
Turns any fault raised while serving a request into one outward error envelope.
"""

import sys
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..utils.logger import get_logger
from .base_exceptions import (
    GatewayException,
    ModelNotSupportedException,
    UnauthorizedException,
)
from .error_codes import ErrorCode, get_error_message

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = get_error_message(ErrorCode.UNKNOWN_ERROR)


@dataclass
class NormalizedError:
    """归一化后的错误响应"""

    status_code: int
    body: dict[str, Any]


def extract_status_code(fault: object, default: int = 500) -> int:
    """从异常中提取HTTP状态码，无法提取时返回默认值"""
    candidates = [getattr(fault, "status_code", None), getattr(fault, "status", None)]
    if isinstance(fault, httpx.HTTPStatusError):
        candidates.append(fault.response.status_code)

    for candidate in candidates:
        # bool is an int subclass
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            if 400 <= candidate <= 599:
                return candidate
    return default


def describe_error(fault: object) -> str:
    """
    序列化异常描述，永不抛出

    Args:
        fault: 任意异常或被抛出的值

    Returns:
        可读的错误描述
    """
    try:
        message = getattr(fault, "message", None)
        if not isinstance(message, str) or not message:
            message = str(fault)
        if not message and isinstance(fault, BaseException):
            message = type(fault).__name__
        return message or GENERIC_ERROR_MESSAGE
    except Exception:
        return GENERIC_ERROR_MESSAGE


class ErrorHandler:
    """统一错误处理器"""

    def __init__(self):
        self.error_stats = {
            "total_errors": 0,
            "error_by_code": {},
            "error_by_status": {},
        }

    def normalize(self, fault: object) -> NormalizedError:
        """将异常转换为统一的错误格式"""
        try:
            if isinstance(fault, (UnauthorizedException, ModelNotSupportedException)):
                return NormalizedError(fault.status_code, {"error": fault.message})

            return NormalizedError(
                extract_status_code(fault), {"message": describe_error(fault)}
            )
        except Exception:
            return NormalizedError(500, {"message": GENERIC_ERROR_MESSAGE})

    def report(
        self, fault: object, context: Optional[dict[str, Any]] = None
    ) -> NormalizedError:
        """归一化异常，更新统计并记录日志"""
        normalized = self.normalize(fault)
        self._update_error_stats(fault, normalized)
        self._log_error(fault, normalized, context)
        return normalized

    def _update_error_stats(self, fault: object, normalized: NormalizedError) -> None:
        """更新错误统计"""
        self.error_stats["total_errors"] += 1

        if isinstance(fault, GatewayException):
            code = fault.error_code.value
            self.error_stats["error_by_code"][code] = (
                self.error_stats["error_by_code"].get(code, 0) + 1
            )

        status = normalized.status_code
        self.error_stats["error_by_status"][status] = (
            self.error_stats["error_by_status"].get(status, 0) + 1
        )

    def _log_error(
        self,
        fault: object,
        normalized: NormalizedError,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """记录错误日志"""
        try:
            message = describe_error(fault)
            fields: dict[str, Any] = {"context": context or {}}
            if isinstance(fault, GatewayException):
                fields["error"] = fault.to_dict()

            if normalized.status_code < 500:
                logger.warning(f"Request rejected [{normalized.status_code}]: {message}", **fields)
            elif isinstance(fault, BaseException):
                logger.error(
                    f"Request failed [{normalized.status_code}]: {message}",
                    exc_info=fault,
                    **fields,
                )
            else:
                logger.error(f"Request failed [{normalized.status_code}]: {message}", **fields)
        except Exception as e:
            print(f"Failed to log error: {e}", file=sys.stderr)

    def get_error_stats(self) -> dict[str, Any]:
        """获取错误统计"""
        return {
            "total_errors": self.error_stats["total_errors"],
            "error_by_code": dict(self.error_stats["error_by_code"]),
            "error_by_status": dict(self.error_stats["error_by_status"]),
        }


# 全局错误处理器实例
_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """获取全局错误处理器实例"""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def normalize_error(fault: object) -> NormalizedError:
    """归一化异常的便捷函数"""
    return get_error_handler().normalize(fault)
