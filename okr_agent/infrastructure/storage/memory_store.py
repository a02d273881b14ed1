"""进程内的会话历史存储。

conversation_id -> ConversationHistory 的映射，生命周期与进程相同，不做持久化。
get_or_create 在锁内完成查找与插入，同一 ID 并发首次访问只会创建一个实例。
"""

import threading
from typing import Dict, Optional

from okr_agent.domain.conversation import ConversationHistory, ConversationStore
from okr_agent.infrastructure.logging.logger import logger


class InMemoryConversationStore(ConversationStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._histories: Dict[str, ConversationHistory] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._histories)

    def __contains__(self, conversation_id: object) -> bool:
        with self._lock:
            return conversation_id in self._histories

    def get_or_create(self, conversation_id: Optional[str]) -> ConversationHistory:
        """获取或创建会话历史；空 ID 返回一个不登记的临时历史。"""
        if not conversation_id:
            logger.warning("Empty conversation ID provided, creating temporary chat history")
            return ConversationHistory()

        with self._lock:
            history = self._histories.get(conversation_id)
            if history is None:
                history = ConversationHistory()
                self._histories[conversation_id] = history
                logger.info(
                    "Creating new chat history",
                    extra={"extra": {"conversation_id": conversation_id}},
                )
            return history

    def reset(self, conversation_id: Optional[str]) -> None:
        if not conversation_id:
            logger.warning("Empty conversation ID provided for reset, ignoring")
            return
        with self._lock:
            history = self._histories.get(conversation_id)
        if history is None:
            logger.warning(
                "Attempted to reset non-existent conversation",
                extra={"extra": {"conversation_id": conversation_id}},
            )
            return
        history.clear()
        logger.info("Reset chat history", extra={"extra": {"conversation_id": conversation_id}})

    def remove(self, conversation_id: str) -> None:
        with self._lock:
            removed = self._histories.pop(conversation_id, None)
        if removed is not None:
            logger.info("Removed chat history", extra={"extra": {"conversation_id": conversation_id}})

    def list_by_participant(self, user_id: Optional[str]) -> Dict[str, ConversationHistory]:
        """返回该用户发过消息的会话（按 metadata["UserId"] 不区分大小写匹配）。"""
        if not user_id:
            logger.warning("Empty user ID provided for conversation lookup")
            return {}

        wanted = user_id.casefold()
        snapshot = self.list_all()
        found: Dict[str, ConversationHistory] = {}
        for conversation_id, history in snapshot.items():
            for message in history.messages:
                if message.role != "user":
                    continue
                message_user = message.metadata.get("UserId")
                if message_user and message_user.casefold() == wanted:
                    found[conversation_id] = history
                    break

        logger.info(
            "Found conversations for user",
            extra={"extra": {"user_id": user_id, "count": len(found), "scanned": len(snapshot)}},
        )
        return found

    def list_all(self) -> Dict[str, ConversationHistory]:
        with self._lock:
            return dict(self._histories)
