"""引导式创建流程的阶段定义与按会话存储的状态。"""

import threading
from enum import Enum
from typing import Dict, Optional


class WorkflowStage(str, Enum):
    NONE = "None"
    CREATED_SESSION = "CreatedSession"
    CREATED_OBJECTIVE = "CreatedObjective"
    CREATED_KEY_RESULT = "CreatedKeyResult"
    CREATED_KEY_RESULT_TASK = "CreatedKeyResultTask"

    @classmethod
    def parse(cls, value: Optional[str]) -> "WorkflowStage":
        """未知取值（如 DocumentProcessed）视为 NONE。"""
        for stage in cls:
            if stage.value == value:
                return stage
        return cls.NONE


CURRENT_STEP = "CurrentStep"
OKR_SESSION_ID = "OkrSessionId"
OBJECTIVE_ID = "ObjectiveId"
KEY_RESULT_ID = "KeyResultId"
DOCUMENT_ID = "DocumentId"


class WorkflowStateStore:
    """conversation_id -> {state_key: state_value}，首次写入时创建。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: Dict[str, Dict[str, str]] = {}

    def set(self, conversation_id: str, key: str, value: str) -> None:
        if not conversation_id:
            return
        with self._lock:
            self._states.setdefault(conversation_id, {})[key] = value

    def get(self, conversation_id: str, key: str, default: Optional[str] = None) -> Optional[str]:
        if not conversation_id:
            return default
        with self._lock:
            return self._states.get(conversation_id, {}).get(key, default)

    def snapshot(self, conversation_id: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._states.get(conversation_id, {}))

    def clear(self, conversation_id: str) -> None:
        if not conversation_id:
            return
        with self._lock:
            self._states.pop(conversation_id, None)

    def __contains__(self, conversation_id: object) -> bool:
        with self._lock:
            return conversation_id in self._states
