"""日志系统模块 - 结构化格式、JSON文件输出、日志轮换"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger


class GatewayLogger:
    """网关专用日志系统"""

    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        log_file: Optional[Union[str, Path]] = None,
    ):
        self.config = config or {}
        self.log_file = Path(log_file) if log_file else None

        self._setup_standard_logging()

    def _setup_standard_logging(self) -> None:
        """设置标准日志系统"""
        log_level = str(self.config.get("level", "INFO")).upper()
        log_format = self.config.get("format", "text")  # text or json

        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

        # 添加文件处理器（轮换日志）
        if self.log_file:
            try:
                self.log_file.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    self.log_file,
                    maxBytes=self.config.get("max_file_size", 50 * 1024 * 1024),
                    backupCount=self.config.get("backup_count", 5),
                    encoding="utf-8",
                )

                if log_format == "json":
                    formatter = jsonlogger.JsonFormatter(
                        "%(asctime)s %(name)s %(levelname)s %(message)s"
                    )
                else:
                    formatter = logging.Formatter(
                        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                    )
                file_handler.setFormatter(formatter)
                handlers.append(file_handler)
            except OSError as e:
                print(f"Failed to setup file logging: {e}", file=sys.stderr)

        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if log_format == "json":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )

        # 配置根日志记录器
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            handlers=handlers,
            format="%(message)s",
            force=True,  # 覆盖现有配置
        )

        # 禁用第三方库的噪音日志
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    def clear_context(self) -> None:
        """清除请求上下文"""
        structlog.contextvars.clear_contextvars()


# 全局日志实例
_global_logger: Optional[GatewayLogger] = None


def setup_logging(
    config: Optional[dict[str, Any]] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> GatewayLogger:
    """
    设置全局日志系统

    Args:
        config: 日志配置字典
        log_file: 日志文件路径，None表示只输出到stdout

    Returns:
        GatewayLogger实例
    """
    global _global_logger

    if config is None:
        config = {
            "level": "INFO",
            "format": "text",
            "max_file_size": 50 * 1024 * 1024,  # 50MB
            "backup_count": 5,
        }

    _global_logger = GatewayLogger(config, log_file)
    return _global_logger


def get_logger(name: Optional[str] = None):
    """获取日志记录器"""
    return structlog.get_logger(name)


def shutdown_logging() -> None:
    """刷新日志并释放全局日志实例"""
    global _global_logger
    if _global_logger:
        _global_logger.clear_context()
        for handler in logging.getLogger().handlers:
            handler.flush()
        _global_logger = None
