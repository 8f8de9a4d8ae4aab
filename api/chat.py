"""
Chat completion API endpoints
聊天完成API接口
"""

from typing import Optional

from fastapi import APIRouter, Header, Request

from core.handlers.chat_handler import ChatCompletionHandler
from core.providers import ChatCompletionRequest
from core.utils.logger import get_logger

logger = get_logger(__name__)


def create_chat_router(chat_handler: ChatCompletionHandler) -> APIRouter:
    """创建聊天相关的API路由"""

    router = APIRouter(prefix="/v1", tags=["chat"])

    @router.options("/chat/completions")
    async def chat_completions_preflight():
        """预检请求，不做认证"""
        return {"body": "ok"}

    @router.post("/chat/completions")
    async def chat_completions(
        request: Request, x_api_key: Optional[str] = Header(default=None)
    ):
        """聊天完成API - 核心功能"""
        # 请求体无法解析时由 ExceptionHandlerMiddleware 按内部错误处理
        chat_request = ChatCompletionRequest.model_validate(await request.json())
        request.state.model = chat_request.model
        return await chat_handler.handle_request(chat_request, x_api_key)

    return router
