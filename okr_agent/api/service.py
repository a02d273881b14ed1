"""对外 API 服务模块。

提供简化的函数接口供上层应用（例如 HTTP 路由层）调用，
内部维护进程级单例：会话存储、流程续写引擎与 OKR 助手。
"""

import threading
from typing import Any, Dict, List, Optional

from okr_agent.agents.okr_assistant import OkrAssistant
from okr_agent.config.settings import settings
from okr_agent.documents.pdf_text import PdfSource
from okr_agent.documents.pipeline import DocumentPipeline
from okr_agent.domain.conversation import ConversationHistory, ConversationStore
from okr_agent.domain.models import Message
from okr_agent.infrastructure.logging.logger import logger
from okr_agent.infrastructure.storage.memory_store import InMemoryConversationStore
from okr_agent.providers import as_completion, create_provider
from okr_agent.workflow.engine import WorkflowContinuationEngine


_store: Optional[ConversationStore] = None
_workflow: Optional[WorkflowContinuationEngine] = None
_assistant: Optional[OkrAssistant] = None


def get_store() -> ConversationStore:
    global _store
    if _store is None:
        _store = InMemoryConversationStore()
    return _store


def get_workflow() -> WorkflowContinuationEngine:
    global _workflow
    if _workflow is None:
        _workflow = WorkflowContinuationEngine()
    return _workflow


def get_default_assistant() -> OkrAssistant:
    """获取默认的 OKR 助手实例（单例）。"""
    global _assistant
    if _assistant is None:
        provider = create_provider(settings.default_provider, timeout=settings.completion_timeout)
        complete = as_completion(provider, settings.default_model)
        pipeline = DocumentPipeline(complete, extract=as_completion(provider, "okr-extract", temperature=0.2))
        _assistant = OkrAssistant(
            store=get_store(),
            complete=complete,
            workflow=get_workflow(),
            pipeline=pipeline,
            provider_name=provider.name,
        )
    return _assistant


def get_or_create_conversation(conversation_id: Optional[str]) -> ConversationHistory:
    return get_store().get_or_create(conversation_id)


def reset_conversation(conversation_id: Optional[str]) -> None:
    """清空会话历史（保留实例）并清除该会话的流程状态。"""
    get_store().reset(conversation_id)
    get_workflow().reset(conversation_id)


def remove_conversation(conversation_id: str) -> None:
    get_store().remove(conversation_id)
    get_workflow().reset(conversation_id)


def list_conversations_by_participant(user_id: Optional[str]) -> Dict[str, ConversationHistory]:
    return get_store().list_by_participant(user_id)


def add_message(conversation_id: Optional[str], message: Message) -> bool:
    return get_store().get_or_create(conversation_id).add_message(message)


def process_document(
    base_system_message: str,
    document_text: str,
    query: str,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> str:
    return get_default_assistant().pipeline.process(
        base_system_message, document_text, query, timeout=timeout, cancel=cancel
    )


def upload_document(
    conversation_id: Optional[str],
    content: PdfSource,
    content_type: Optional[str],
    file_name: Optional[str] = None,
    document_id: Optional[str] = None,
    query: Optional[str] = None,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> str:
    """提取上传文件文本并启动文档驱动的创建流程。"""
    return get_default_assistant().analyze_upload(
        conversation_id,
        content,
        content_type,
        file_name=file_name,
        document_id=document_id,
        query=query,
        timeout=timeout,
        cancel=cancel,
    )


def advance_workflow(conversation_id: Optional[str], response_text: str) -> str:
    return get_workflow().advance(conversation_id, response_text)


def run_okr_chat(
    message: str,
    conversation_id: Optional[str] = None,
    user_id: Optional[str] = None,
    author_name: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """运行一轮 OKR 助手对话。

    Returns:
        包含会话ID、回复文本、流程阶段与消息列表的字典

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    try:
        turn = get_default_assistant().chat(
            conversation_id,
            message,
            user_id=user_id,
            author_name=author_name,
            timeout=timeout,
        )
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "conversation_id": conversation_id,
            "error": str(e),
        }})
        raise
    return {
        "conversation_id": turn.conversation_id,
        "response": turn.response,
        "workflow_stage": turn.workflow_stage.value,
        "chat_history": get_conversation_messages(conversation_id) if conversation_id else [],
    }


def get_conversation_messages(conversation_id: str) -> List[Dict[str, Any]]:
    """获取会话的所有消息（function_output 尽量解析为 JSON）。"""
    if conversation_id not in get_store().list_all():
        return []
    return get_store().get_or_create(conversation_id).to_api_payload()
