"""
Provider适配器注册中心
根据当前凭据筛选可用的Provider适配器
"""

import time
from collections.abc import Mapping, Sequence
from typing import Optional

import httpx

from core.utils.logger import get_logger

from .adapters import (
    AnthropicAdapter,
    AnthropicVertexAdapter,
    AzureOpenAIAdapter,
    BailianAdapter,
    CohereAdapter,
    DeepSeekAdapter,
    GoogleAdapter,
    GroqAdapter,
    LingyiwanwuAdapter,
    MoonshotAdapter,
    OpenAIAdapter,
)
from .base import BaseAdapter, ModelDescriptor

logger = get_logger(__name__)

# 注册顺序即模型重叠时的优先级
PROVIDER_CATALOG: tuple[type[BaseAdapter], ...] = (
    OpenAIAdapter,
    AnthropicAdapter,
    AnthropicVertexAdapter,
    GoogleAdapter,
    DeepSeekAdapter,
    MoonshotAdapter,
    LingyiwanwuAdapter,
    GroqAdapter,
    AzureOpenAIAdapter,
    CohereAdapter,
    BailianAdapter,
)


class ProviderRegistry:
    """Provider适配器注册中心"""

    def __init__(
        self,
        catalog: Sequence[type[BaseAdapter]] = PROVIDER_CATALOG,
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        初始化注册中心

        Args:
            catalog: 按优先级排列的适配器类
            timeout: 传给每个适配器的上游超时
            transport: 传给每个适配器的httpx传输层（测试时注入）
        """
        self.catalog = tuple(catalog)
        self.timeout = timeout
        self.transport = transport

    def credential_keys(self) -> tuple[str, ...]:
        """目录中所有适配器会读取的凭据键"""
        keys: dict[str, None] = {}
        for adapter_class in self.catalog:
            for key in adapter_class.credential_keys():
                keys[key] = None
        return tuple(keys)

    def active_adapters(self, credentials: Mapping[str, str]) -> list[BaseAdapter]:
        """
        构建本次请求的可用适配器列表

        Args:
            credentials: 当前凭据映射

        Returns:
            必需凭据全部存在的适配器实例，保持目录顺序
        """
        return [
            adapter_class(credentials, timeout=self.timeout, transport=self.transport)
            for adapter_class in self.catalog
            if adapter_class.is_available(credentials)
        ]

    def list_models(
        self, credentials: Mapping[str, str], created: Optional[int] = None
    ) -> list[ModelDescriptor]:
        """列出所有可用适配器声明的模型"""
        created = created if created is not None else int(time.time())
        return [
            ModelDescriptor(id=model, created=created, owned_by=adapter.name)
            for adapter in self.active_adapters(credentials)
            for model in adapter.supported_models
        ]

    def find_overlaps(self) -> dict[str, list[str]]:
        """找出被多个适配器声明的模型，返回 模型 -> 适配器名称列表"""
        owners: dict[str, list[str]] = {}
        for adapter_class in self.catalog:
            for model in adapter_class.supported_models:
                owners.setdefault(model, []).append(adapter_class.name)
        return {model: names for model, names in owners.items() if len(names) > 1}

    def log_overlaps(self) -> None:
        """启动时记录模型重叠，按目录顺序第一个适配器生效"""
        for model, names in self.find_overlaps().items():
            logger.warning(
                f"Model '{model}' is claimed by {', '.join(names)}; "
                f"'{names[0]}' wins when its credentials are configured"
            )

