"""
Provider基础适配器
所有Provider适配器的基类，定义标准接口
"""

import asyncio
import json
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from typing import Any, ClassVar, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from core.exceptions import ErrorCode, UpstreamException
from core.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(300.0, connect=10.0)


# --- Request/Response Models ---


class ChatCompletionRequest(BaseModel):
    """OpenAI格式的聊天请求，除 model/stream 外的字段原样透传"""

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    model: str
    stream: bool = False
    messages: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def payload(self) -> dict[str, Any]:
        return self.model_dump()

    def option(self, key: str, default: Any = None) -> Any:
        """读取透传参数"""
        value = (self.model_extra or {}).get(key)
        return default if value is None else value


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str = "assistant"
    content: Optional[str] = None


class Choice(BaseModel):
    model_config = ConfigDict(extra="allow")

    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatCompletion(BaseModel):
    """完整的非流式聊天响应"""

    model_config = ConfigDict(extra="allow")

    id: str
    object: str = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    choices: list[Choice]
    usage: Optional[Usage] = None


class ChoiceDelta(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Optional[str] = None
    content: Optional[str] = None


class ChunkChoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    index: int = 0
    delta: ChoiceDelta = Field(default_factory=ChoiceDelta)
    finish_reason: Optional[str] = None


class ChatCompletionChunk(BaseModel):
    """流式响应中的一个增量片段"""

    model_config = ConfigDict(extra="allow")

    id: str
    object: str = "chat.completion.chunk"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    choices: list[ChunkChoice]
    usage: Optional[Usage] = None


class ModelDescriptor(BaseModel):
    """模型列表中的一项"""

    id: str
    object: str = "model"
    created: int
    owned_by: str


class ModelList(BaseModel):
    object: str = "list"
    data: list[ModelDescriptor]


def generate_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex[:24]}"


def message_text(content: Any) -> str:
    """将OpenAI消息内容（字符串或内容块列表）转换为纯文本"""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return str(content)


def build_chunk(
    completion_id: str,
    model: str,
    content: Optional[str] = None,
    role: Optional[str] = None,
    finish_reason: Optional[str] = None,
    created: Optional[int] = None,
    usage: Optional[Usage] = None,
) -> ChatCompletionChunk:
    """构造单个选择的流式片段"""
    return ChatCompletionChunk(
        id=completion_id,
        created=created or int(time.time()),
        model=model,
        choices=[
            ChunkChoice(
                delta=ChoiceDelta(role=role, content=content),
                finish_reason=finish_reason,
            )
        ],
        usage=usage,
    )


def build_completion(
    completion_id: str,
    model: str,
    content: str,
    finish_reason: Optional[str],
    usage: Optional[Usage] = None,
    created: Optional[int] = None,
    **message_fields: Any,
) -> ChatCompletion:
    """构造单个选择的完整响应"""
    return ChatCompletion(
        id=completion_id,
        created=created or int(time.time()),
        model=model,
        choices=[
            Choice(
                message=ChatMessage(role="assistant", content=content, **message_fields),
                finish_reason=finish_reason,
            )
        ],
        usage=usage,
    )


class BaseAdapter(ABC):
    """
    Provider适配器基类

    适配器按请求创建，只读取传入的凭据映射，不持有跨请求状态。
    子类声明 name / required_credential_keys / supported_models，
    并实现 invoke（非流式）和 stream（流式）两个调用接口。
    """

    name: ClassVar[str]
    required_credential_keys: ClassVar[tuple[str, ...]] = ()
    optional_credential_keys: ClassVar[tuple[str, ...]] = ()
    supported_models: tuple[str, ...] = ()

    default_base_url: ClassVar[str] = ""
    base_url_key: ClassVar[Optional[str]] = None

    def __init__(
        self,
        credentials: Mapping[str, str],
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        初始化适配器

        Args:
            credentials: 本次请求的只读凭据映射
            timeout: 上游请求超时
            transport: 自定义httpx传输层（测试时注入）
        """
        self.credentials = credentials
        self.timeout = timeout or DEFAULT_TIMEOUT
        self.transport = transport

        base_url = self.credentials.get(self.base_url_key) if self.base_url_key else None
        self.base_url = (base_url or self.default_base_url).rstrip("/")

    @classmethod
    def is_available(cls, credentials: Mapping[str, str]) -> bool:
        """所有必需凭据都存在时适配器才可用"""
        return all(key in credentials for key in cls.required_credential_keys)

    @classmethod
    def credential_keys(cls) -> tuple[str, ...]:
        """适配器会读取的全部凭据键"""
        keys = cls.required_credential_keys + cls.optional_credential_keys
        if cls.base_url_key:
            keys += (cls.base_url_key,)
        return keys

    def supports(self, model: str) -> bool:
        return model in self.supported_models

    def resolve_api_key(self, upstream_key: Optional[str] = None) -> str:
        """x-api-key 透传优先，否则使用配置中的主凭据"""
        if upstream_key:
            return upstream_key
        if not self.required_credential_keys:
            return ""
        return self.credentials.get(self.required_credential_keys[0], "")

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        """获取认证头"""
        return {"Authorization": f"Bearer {api_key}"}

    def create_client(self) -> httpx.AsyncClient:
        """为单次调用创建HTTP客户端"""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        )

    @abstractmethod
    async def invoke(
        self, request: ChatCompletionRequest, upstream_key: Optional[str] = None
    ) -> ChatCompletion:
        """
        非流式聊天完成

        Args:
            request: 聊天请求
            upstream_key: 透传的上游凭据

        Returns:
            完整的聊天响应
        """

    @abstractmethod
    def stream(
        self,
        request: ChatCompletionRequest,
        cancel_event: asyncio.Event,
        upstream_key: Optional[str] = None,
    ) -> AsyncIterator[ChatCompletionChunk]:
        """
        流式聊天完成

        Args:
            request: 聊天请求
            cancel_event: 客户端断开时被设置的取消信号
            upstream_key: 透传的上游凭据

        Yields:
            按上游生成顺序的流式片段
        """

    async def post_json(
        self,
        path: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        params: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """发送非流式请求并返回JSON响应"""
        try:
            async with self.create_client() as client:
                response = await client.post(
                    path, json=payload, headers=headers, params=params
                )
                if response.is_error:
                    raise await self.handle_error(response)
                return response.json()
        except httpx.HTTPError as e:
            logger.error(f"{self.name} request failed: {e}")
            raise UpstreamException(
                f"{self.name} request failed: {e}",
                provider=self.name,
                status_code=502,
                error_code=ErrorCode.UPSTREAM_UNREACHABLE,
                cause=e,
            ) from e
        except json.JSONDecodeError as e:
            raise UpstreamException(
                f"{self.name} returned invalid JSON: {e}",
                provider=self.name,
                status_code=502,
                cause=e,
            ) from e

    async def stream_events(
        self,
        path: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        cancel_event: asyncio.Event,
        params: Optional[dict[str, str]] = None,
    ) -> AsyncIterator[str]:
        """
        发送流式请求，逐个产出SSE事件的 data 字段

        取消信号被设置后立即停止读取，退出时关闭上游连接。
        """
        try:
            async with self.create_client() as client:
                async with client.stream(
                    "POST", path, json=payload, headers=headers, params=params
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise await self.handle_error(response)

                    async for line in response.aiter_lines():
                        if cancel_event.is_set():
                            logger.info(f"{self.name} stream cancelled by client")
                            return
                        if not line.startswith("data:"):
                            continue
                        yield line[5:].strip()
        except httpx.HTTPError as e:
            logger.error(f"{self.name} stream request failed: {e}")
            raise UpstreamException(
                f"{self.name} stream request failed: {e}",
                provider=self.name,
                status_code=502,
                error_code=ErrorCode.UPSTREAM_UNREACHABLE,
                cause=e,
            ) from e

    async def handle_error(self, response: httpx.Response) -> UpstreamException:
        """
        处理HTTP错误响应

        Args:
            response: 已读取内容的HTTP响应

        Returns:
            携带上游状态码的异常
        """
        try:
            error_data = response.json()
            error = error_data.get("error", error_data) if isinstance(error_data, dict) else error_data
            if isinstance(error, dict) and error.get("message"):
                error_msg = str(error["message"])
            else:
                error_msg = json.dumps(error_data, ensure_ascii=False)
        except ValueError:
            error_msg = response.text

        logger.warning(f"{self.name} returned {response.status_code}: {error_msg[:200]}")
        return UpstreamException(
            error_msg or f"{self.name} returned HTTP {response.status_code}",
            provider=self.name,
            status_code=response.status_code,
            details={"upstream_status": response.status_code},
        )

    def stream_error(self, error: Any) -> UpstreamException:
        """将流中的错误事件转换为异常"""
        status_code = 502
        message = str(error)
        if isinstance(error, dict):
            message = str(error.get("message") or error)
            for key in ("status", "code"):
                value = error.get(key)
                if isinstance(value, int) and 400 <= value <= 599:
                    status_code = value
                    break

        logger.warning(f"{self.name} stream reported an error: {message[:200]}")
        return UpstreamException(message, provider=self.name, status_code=status_code)

    def decode_event(self, data: str) -> Optional[dict[str, Any]]:
        """解析SSE事件数据，无法解析时返回None"""
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"{self.name} sent undecodable stream event: {data[:100]}")
            return None
        return event if isinstance(event, dict) else None
