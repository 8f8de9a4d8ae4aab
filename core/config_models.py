"""
Pydantic models for configuration validation.
"""

from typing import Optional

from pydantic import BaseModel, Field


class Server(BaseModel):
    host: str = "0.0.0.0"
    port: int = 7601
    cors_origin: str = "*"


class Auth(BaseModel):
    # Gateway access key. Re-read from the API_KEY environment variable on
    # every request when set there.
    api_key: Optional[str] = None


class Upstream(BaseModel):
    timeout: float = 300.0
    connect_timeout: float = 10.0


class Logging(BaseModel):
    level: str = "INFO"
    format: str = "text"
    file: Optional[str] = None
    max_file_size: int = 50 * 1024 * 1024
    backup_count: int = 5


class System(BaseModel):
    name: str = "Unified LLM Gateway"
    version: str = "0.1.0"


class GatewayConfig(BaseModel):
    system: System = Field(default_factory=System)
    server: Server = Field(default_factory=Server)
    auth: Auth = Field(default_factory=Auth)
    upstream: Upstream = Field(default_factory=Upstream)
    logging: Logging = Field(default_factory=Logging)

    model_config = {"extra": "ignore"}
