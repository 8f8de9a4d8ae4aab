"""
模型分发
把请求的模型名解析为唯一的适配器
"""

from collections.abc import Sequence

from core.exceptions import ModelNotSupportedException

from .base import BaseAdapter


def resolve_adapter(model: str, adapters: Sequence[BaseAdapter]) -> BaseAdapter:
    """
    按顺序返回第一个声明该模型的适配器

    Raises:
        ModelNotSupportedException: 没有适配器声明该模型
    """
    for adapter in adapters:
        if adapter.supports(model):
            return adapter
    raise ModelNotSupportedException(model)
