"""
Provider适配器模块
提供统一的AI服务提供商接口
"""

from .base import (
    BaseAdapter,
    ChatCompletion,
    ChatCompletionChunk,
    ChatCompletionRequest,
    ModelDescriptor,
    ModelList,
)
from .dispatcher import resolve_adapter
from .registry import PROVIDER_CATALOG, ProviderRegistry

__all__ = [
    # 基础类
    "BaseAdapter",
    "ChatCompletionRequest",
    "ChatCompletion",
    "ChatCompletionChunk",
    "ModelDescriptor",
    "ModelList",
    # 注册中心
    "PROVIDER_CATALOG",
    "ProviderRegistry",
    "resolve_adapter",
]
