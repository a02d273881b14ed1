"""统一的消息与补全结果数据模型。

本模块定义两类结构：

- Message / EntityReference: 会话历史中的一条消息，以及由消息派生出的实体引用。
  Message 可以携带函数调用结果与实体（OKR 会话、目标、关键结果等）标注。
- ChatMessage / ChatRequest / ChatResult: 发给补全服务的扁平消息与请求、响应。
  会话历史线性化（to_linear_transcript）之后得到的就是 ChatMessage 列表。
"""

import json
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, List, Literal, Mapping, Optional

from pydantic import BaseModel

from okr_agent.domain.exceptions import ValidationError


# 消息角色（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant", "tool"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


@dataclass(frozen=True)
class Message:
    """会话历史中的一条消息，加入历史后不再修改。

    - function_name / function_output: 函数执行上下文，output 为 JSON 文本。
    - entity_type / entity_id: 消息涉及的业务实体，两者必须同时出现或同时缺省。
    - operation: 对实体执行的操作，如 "Create"、"Update"。
    - metadata: 附加键值对（AuthorName、UserId、DocumentId 等）。
    """

    role: Role
    content: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)
    function_name: Optional[str] = None
    function_output: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    operation: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if bool(self.entity_type) != bool(self.entity_id):
            raise ValidationError(
                code="INVALID_MESSAGE",
                message="entity_type and entity_id must be set together",
                entity_type=self.entity_type,
                entity_id=self.entity_id,
            )
        # 只读视图：加入历史后 metadata 也不可原地修改
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def has_entity(self) -> bool:
        return bool(self.entity_type and self.entity_id)

    @classmethod
    def from_user(cls, content: str, **metadata: str) -> "Message":
        return cls(role="user", content=content, metadata=metadata)

    @classmethod
    def from_system(cls, content: str, **metadata: str) -> "Message":
        return cls(role="system", content=content, metadata=metadata)

    @classmethod
    def from_assistant(cls, content: str, **metadata: str) -> "Message":
        return cls(role="assistant", content=content, metadata=metadata)

    @classmethod
    def from_function_execution(
        cls,
        function_name: str,
        function_output: Any,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        operation: Optional[str] = None,
        **metadata: str,
    ) -> "Message":
        """由一次函数执行构造 assistant 消息，函数输出序列化为 JSON。"""

        return cls(
            role="assistant",
            function_name=function_name,
            function_output=json.dumps(_to_jsonable(function_output), ensure_ascii=False, default=str),
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            metadata=metadata,
        )


@dataclass(frozen=True)
class EntityReference:
    """由 ConversationHistory.add_message 派生的实体引用，调用方不直接构造。"""

    entity_id: str
    entity_type: str
    timestamp: datetime
    operation: Optional[str]
    message_index: int
    name: Optional[str] = None


@dataclass
class ChatMessage:
    """发给补全服务的一条扁平消息。"""

    role: Role
    content: str


@dataclass
class ChatRequest:
    """一次完整的补全请求。

    Provider 适配层负责把本结构转换成各家 API 的 JSON 请求体。
    """

    provider: str  # 逻辑 Provider 名，如 "glm"
    model: str  # 逻辑模型名，如 "okr-chat"
    messages: List[ChatMessage]
    temperature: float = 0.7
    top_p: float = 0.95
    max_tokens: Optional[int] = None
    timeout: Optional[float] = None  # 单次调用超时（秒），None 使用客户端默认值


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次补全调用的最终结果。

    - choices: 一个或多个候选回答，核心逻辑只使用第一条。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def text(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].message.content or ""
