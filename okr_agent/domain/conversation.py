"""会话历史与实体引用索引。

ConversationHistory 持有一条会话的消息序列，并在追加消息时增量维护
entity_type -> [EntityReference] 的索引，用于把 "the first one"、"the latest"
这类指代解析成具体实体 ID，再线性化为补全服务可用的对话记录。

同一个 ConversationHistory 不做内部加锁，调用方需保证同一会话同一时刻只有一个请求在写。
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Type, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from okr_agent.domain.models import ChatMessage, EntityReference, Message

T = TypeVar("T")

CODE_FENCE = "```"
NAME_CANDIDATE_KEYS = ("Name", "TeamName", "Title", "ObjectiveName")
HIDDEN_METADATA_KEYS = frozenset({"AuthorName"})

_EARLIEST_KEYWORDS = ("initial", "first", "original")
_LATEST_KEYWORDS = ("last", "latest", "current")
_PREVIOUS_KEYWORDS = ("previous", "before")


def parse_json_object(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """尝试把 JSON 文本解析为对象；失败或不是对象时返回 None。"""

    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def extract_entity_name(message: Message) -> Optional[str]:
    payload = parse_json_object(message.function_output)
    if payload is not None:
        for key in NAME_CANDIDATE_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return message.metadata.get("EntityName") or None


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(k in text for k in keywords)


class ConversationHistory:
    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._entity_references: Dict[str, List[EntityReference]] = {}

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def entity_types(self) -> List[str]:
        return list(self._entity_references)

    def entity_references(self, entity_type: str) -> List[EntityReference]:
        return list(self._entity_references.get(entity_type, []))

    def add_message(self, message: Message) -> bool:
        """追加一条消息，返回是否真正写入。

        含代码块的 assistant 回复会被丢弃，避免原始代码干扰实体跟踪。
        """
        if message.role == "assistant" and message.content and CODE_FENCE in message.content:
            return False

        message_index = len(self._messages)
        self._messages.append(message)

        if message.has_entity:
            self._entity_references.setdefault(message.entity_type, []).append(
                EntityReference(
                    entity_id=message.entity_id,
                    entity_type=message.entity_type,
                    timestamp=message.timestamp,
                    operation=message.operation,
                    message_index=message_index,
                    name=extract_entity_name(message),
                )
            )
        return True

    def _ordered_references(self, entity_type: str) -> List[EntityReference]:
        # 稳定排序：时间戳相同的引用保持追加顺序，最后追加者视为最新
        return sorted(self._entity_references.get(entity_type, []), key=lambda r: r.timestamp)

    def get_most_recent_entity_id(self, entity_type: str) -> Optional[str]:
        ordered = self._ordered_references(entity_type)
        return ordered[-1].entity_id if ordered else None

    def _resolve_contextual_entity_id(self, entity_type: str, utterance: Optional[str]) -> Optional[str]:
        ordered = self._ordered_references(entity_type)
        if not ordered:
            return None
        text = (utterance or "").lower()

        if _contains_any(text, _EARLIEST_KEYWORDS):
            return ordered[0].entity_id
        if _contains_any(text, _LATEST_KEYWORDS):
            return ordered[-1].entity_id
        if _contains_any(text, _PREVIOUS_KEYWORDS):
            return ordered[-2].entity_id if len(ordered) > 1 else None

        for ref in reversed(ordered):
            if ref.name and ref.name.lower() in text:
                return ref.entity_id

        # 用户泛指旧条目时不默认指向最新
        if "old" not in text:
            return ordered[-1].entity_id
        return None

    def to_linear_transcript(self) -> List[ChatMessage]:
        """把带标注的历史转换为补全服务使用的 ChatMessage 列表。

        - 函数执行类 assistant 消息输出 "Context: ... / Result: ..." 摘要，原始 content 不再输出。
        - user 消息为每个已知实体类型追加解析到的引用 ID。
        - metadata（AuthorName 除外）以 "key: value" 行追加。
        结果只依赖当前历史状态，重复调用结果相同。
        """
        transcript: List[ChatMessage] = []
        last_function_result: Dict[str, Message] = {}

        for message in sorted(self._messages, key=lambda m: m.timestamp):
            lines: List[str] = []
            if message.content:
                lines.append(message.content)

            if message.function_name:
                last_function_result[message.function_name] = message
                if message.role == "assistant":
                    function_lines: List[str] = []
                    if message.has_entity:
                        function_lines.append(
                            f"Context: {message.operation} operation on {message.entity_type} "
                            f"(ID: {message.entity_id})"
                        )
                    if message.function_output:
                        function_lines.append(f"Result: {message.function_output}")
                    transcript.append(ChatMessage(role=message.role, content="\n".join(function_lines).strip()))
                continue

            if message.role == "user":
                for entity_type in self._entity_references:
                    resolved = self._resolve_contextual_entity_id(entity_type, message.content)
                    if resolved:
                        lines.append(f"\nContext: Referenced {entity_type} ID: {resolved}")

            for key, value in message.metadata.items():
                if key not in HIDDEN_METADATA_KEYS:
                    lines.append(f"{key}: {value}")

            content = "\n".join(lines).strip()
            if content:
                transcript.append(ChatMessage(role=message.role, content=content))
        return transcript

    def clear(self) -> None:
        self._messages.clear()
        self._entity_references.clear()

    def get_entity_history(self, entity_type: str, entity_id: str) -> List[Message]:
        matches = [m for m in self._messages if m.entity_type == entity_type and m.entity_id == entity_id]
        return sorted(matches, key=lambda m: m.timestamp)

    def get_last_function_result(self, function_name: str, result_type: Optional[Type[T]] = None) -> Optional[Any]:
        """返回某函数最近一次的输出；指定 result_type 时用 pydantic 校验转换，失败返回 None。"""

        candidates = [m for m in self._messages if m.function_name == function_name and m.function_output]
        if not candidates:
            return None
        latest = sorted(candidates, key=lambda m: m.timestamp)[-1]
        try:
            data = json.loads(latest.function_output)
            if result_type is None:
                return data
            return TypeAdapter(result_type).validate_python(data)
        except (TypeError, ValueError, PydanticValidationError):
            return None

    def to_api_payload(self) -> List[Dict[str, Any]]:
        """供 API 层返回的消息列表，function_output 尽量解析为 JSON 对象。"""

        items: List[Dict[str, Any]] = []
        for m in self._messages:
            output: Any = m.function_output
            if m.function_output:
                try:
                    output = json.loads(m.function_output)
                except ValueError:
                    pass
            items.append(
                {
                    "role": {"label": m.role},
                    "content": m.content,
                    "function_name": m.function_name,
                    "function_output": output,
                    "entity_type": m.entity_type,
                    "entity_id": m.entity_id,
                    "operation": m.operation,
                    "metadata": dict(m.metadata),
                    "timestamp": m.timestamp.isoformat(),
                }
            )
        return items


class ConversationStore(Protocol):
    def get_or_create(self, conversation_id: Optional[str]) -> ConversationHistory:
        ...

    def reset(self, conversation_id: Optional[str]) -> None:
        ...

    def remove(self, conversation_id: str) -> None:
        ...

    def list_by_participant(self, user_id: Optional[str]) -> Dict[str, ConversationHistory]:
        ...

    def list_all(self) -> Dict[str, ConversationHistory]:
        ...
