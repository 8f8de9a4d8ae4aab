"""
Models API endpoints
模型列表API接口
"""

from collections.abc import Mapping
from typing import Callable

from fastapi import APIRouter

from core.providers import ModelList, ProviderRegistry
from core.utils.logger import get_logger

logger = get_logger(__name__)


def create_models_router(
    registry: ProviderRegistry, credentials_provider: Callable[[], Mapping[str, str]]
) -> APIRouter:
    """创建模型相关的API路由"""

    router = APIRouter(prefix="/v1", tags=["models"])

    @router.get("/models", response_model=ModelList)
    async def list_models() -> ModelList:
        """返回当前凭据下所有可用适配器的模型，created 为请求时间"""
        models = registry.list_models(credentials_provider())
        logger.debug(f"Listing {len(models)} models")
        return ModelList(data=models)

    return router
