#!/usr/bin/env python3
"""
Unified LLM Gateway - OpenAI兼容的多Provider网关
"""

import argparse
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI

from api.chat import create_chat_router
from api.models import create_models_router
from core.auth import AuthenticationMiddleware
from core.config_models import GatewayConfig
from core.exceptions import ErrorHandler, get_error_handler
from core.handlers.chat_handler import ChatCompletionHandler
from core.middleware.cors import DynamicCORSMiddleware
from core.middleware.exception_middleware import ExceptionHandlerMiddleware
from core.middleware.logging import LoggingMiddleware
from core.providers import ProviderRegistry
from core.utils.config import get_cors_origin, get_credentials, get_gateway_key, load_config
from core.utils.logger import get_logger, setup_logging, shutdown_logging

logger = get_logger(__name__)


def create_app(
    config: Optional[GatewayConfig] = None,
    registry: Optional[ProviderRegistry] = None,
    error_handler: Optional[ErrorHandler] = None,
) -> FastAPI:
    """
    创建FastAPI应用

    Args:
        config: 网关配置，None时从配置文件和环境变量加载
        registry: Provider注册中心，None时使用完整的适配器目录
        error_handler: 错误处理器，None时使用全局实例

    Returns:
        FastAPI应用
    """
    config = config or load_config()
    error_handler = error_handler or get_error_handler()

    # 设置日志系统
    setup_logging(config.logging.model_dump(), config.logging.file)

    if registry is None:
        registry = ProviderRegistry(
            timeout=httpx.Timeout(config.upstream.timeout, connect=config.upstream.connect_timeout)
        )

    def credentials_provider():
        # 每次请求重新读取，凭据变更无需重启
        return get_credentials(registry.credential_keys())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        registry.log_overlaps()
        active = [adapter.name for adapter in registry.active_adapters(credentials_provider())]
        logger.info(
            f"{config.system.name} started with {len(active)} active providers",
            providers=active,
        )
        if not get_gateway_key(config):
            logger.warning("No gateway API key configured, all authenticated requests will be rejected")

        yield

        logger.info(f"{config.system.name} shutdown complete")
        shutdown_logging()

    app = FastAPI(
        title=config.system.name,
        description="OpenAI-compatible gateway in front of multiple LLM providers",
        version=config.system.version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # 中间件按添加的逆序执行: CORS -> 日志 -> 异常处理 -> 认证 -> 路由
    app.add_middleware(AuthenticationMiddleware, key_provider=lambda: get_gateway_key(config))
    app.add_middleware(ExceptionHandlerMiddleware, error_handler=error_handler)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        DynamicCORSMiddleware,
        origin_provider=lambda: get_cors_origin(config),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    chat_handler = ChatCompletionHandler(registry, credentials_provider, error_handler)

    # 注册API路由模块
    app.include_router(create_chat_router(chat_handler))
    app.include_router(create_models_router(registry, credentials_provider))

    return app


def main():
    """主函数"""
    parser = argparse.ArgumentParser(description="Unified LLM Gateway")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--config", default=None, help="Path to the YAML configuration file")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    if args.config:
        # reload模式下子进程通过环境变量找到同一个配置文件
        os.environ["GATEWAY_CONFIG"] = args.config

    config = load_config(args.config)
    host = args.host or config.server.host
    port = args.port or config.server.port

    print(
        f"""
{config.system.name} Starting...
Server: http://{host}:{port}
Docs: http://{host}:{port}/docs
    """
    )

    if args.reload:
        uvicorn.run("main:create_app", factory=True, host=host, port=port, reload=True, log_config=None)
    else:
        uvicorn.run(create_app(config), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
