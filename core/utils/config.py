"""配置管理模块"""

import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from ..config_models import GatewayConfig
from ..exceptions import ConfigurationException, ErrorCode
from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "gateway.yaml"

# 环境变量覆盖: 环境变量名 -> (配置段, 字段)
ENV_OVERRIDES = {
    "API_KEY": ("auth", "api_key"),
    "CORS_ORIGIN": ("server", "cors_origin"),
    "GATEWAY_HOST": ("server", "host"),
    "GATEWAY_PORT": ("server", "port"),
    "LOG_LEVEL": ("logging", "level"),
}


def load_config(config_path: Optional[Union[str, Path]] = None) -> GatewayConfig:
    """
    加载网关配置

    Args:
        config_path: YAML配置文件路径，默认为 GATEWAY_CONFIG 环境变量或 config/gateway.yaml。
            文件不存在时只使用默认值和环境变量。

    Returns:
        校验后的配置对象
    """
    # 加载环境变量
    load_dotenv()

    if config_path is None:
        config_path = os.getenv("GATEWAY_CONFIG") or DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(
                f"Invalid YAML in configuration file: {e}",
                config_path=str(config_path),
                error_code=ErrorCode.CONFIG_LOAD_FAILED,
                cause=e,
            ) from e
        if not isinstance(raw, dict):
            raise ConfigurationException(
                "Configuration file must contain a mapping",
                config_path=str(config_path),
            )
        logger.info(f"Loaded configuration from {config_path}")
    else:
        logger.debug(f"Configuration file {config_path} not found, using defaults")

    raw = _replace_env_vars(raw)
    _apply_env_overrides(raw)

    try:
        return GatewayConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationException(
            f"Invalid configuration: {e}", config_path=str(config_path), cause=e
        ) from e


def _apply_env_overrides(raw: dict[str, Any]) -> None:
    """使用环境变量覆盖配置文件中的值"""
    for env_var, (section, field) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            section_data = raw.get(section)
            if not isinstance(section_data, dict):
                section_data = {}
                raw[section] = section_data
            section_data[field] = value


def _replace_env_vars(obj: Any) -> Any:
    """
    递归替换配置中的环境变量占位符

    Args:
        obj: 配置对象

    Returns:
        替换后的配置对象
    """
    if isinstance(obj, dict):
        return {key: _replace_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_replace_env_vars(item) for item in obj]
    elif isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
        # 提取环境变量名 ${VAR_NAME} -> VAR_NAME
        env_var = obj[2:-1]
        default_value = None

        # 支持默认值 ${VAR_NAME:default_value}
        if ":" in env_var:
            env_var, default_value = env_var.split(":", 1)

        value = os.getenv(env_var, default_value)
        if value is None:
            logger.warning(f"Environment variable {env_var} is not set")
            return None
        return value
    else:
        return obj


def get_credentials(
    keys: Optional[Iterable[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Mapping[str, str]:
    """
    从进程环境中生成本次请求的凭据映射

    Args:
        keys: 需要读取的凭据键，None表示读取全部环境变量
        environ: 环境映射，默认为 os.environ

    Returns:
        只读的凭据映射，空值视为未设置
    """
    source = os.environ if environ is None else environ
    if keys is None:
        keys = source.keys()
    snapshot = {key: source[key] for key in keys if source.get(key)}
    return MappingProxyType(snapshot)


def get_gateway_key(config: GatewayConfig) -> Optional[str]:
    """获取网关访问密钥，环境变量优先于配置文件"""
    return os.getenv("API_KEY") or config.auth.api_key


def get_cors_origin(config: GatewayConfig) -> str:
    """获取CORS允许的来源，环境变量优先于配置文件"""
    return os.getenv("CORS_ORIGIN") or config.server.cors_origin
