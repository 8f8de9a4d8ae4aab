"""
统一错误码体系
Error codes shared by every gateway exception.
"""

from enum import Enum


class ErrorCode(Enum):
    """系统错误码枚举"""

    # 通用错误 (1000-1099)
    UNKNOWN_ERROR = "E1000"

    # 配置错误 (1100-1199)
    CONFIG_LOAD_FAILED = "E1100"
    CONFIG_INVALID = "E1101"

    # 路由错误 (1200-1299)
    MODEL_NOT_SUPPORTED = "E1200"

    # 上游错误 (1300-1399)
    UPSTREAM_ERROR = "E1300"
    UPSTREAM_UNREACHABLE = "E1301"

    # 认证错误 (1600-1699)
    UNAUTHORIZED = "E1600"


ERROR_MESSAGES = {
    ErrorCode.UNKNOWN_ERROR: "Internal server error",
    ErrorCode.CONFIG_LOAD_FAILED: "Failed to load configuration",
    ErrorCode.CONFIG_INVALID: "Invalid configuration",
    ErrorCode.MODEL_NOT_SUPPORTED: "Model not supported",
    ErrorCode.UPSTREAM_ERROR: "Upstream provider error",
    ErrorCode.UPSTREAM_UNREACHABLE: "Upstream provider unreachable",
    ErrorCode.UNAUTHORIZED: "Unauthorized",
}


def get_error_message(error_code: ErrorCode, default: str = "Internal server error") -> str:
    """获取错误码对应的消息"""
    return ERROR_MESSAGES.get(error_code, default)
