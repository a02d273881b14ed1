"""OKR 助手编排。

把会话历史、文档管线与流程续写引擎串起来：

用户消息 -> 写入历史 -> 线性化 -> 补全 -> 流程续写 -> 写入历史 -> 返回。
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

from okr_agent.documents.pdf_text import PdfSource, extract_text_from_pdf, is_supported_file_type
from okr_agent.documents.pipeline import DocumentPipeline
from okr_agent.domain.conversation import ConversationHistory, ConversationStore
from okr_agent.domain.exceptions import ValidationError
from okr_agent.domain.models import ChatMessage, Message
from okr_agent.infrastructure.logging.logger import logger
from okr_agent.prompts import load_system_prompt
from okr_agent.providers.base import Completion
from okr_agent.workflow.engine import WorkflowContinuationEngine
from okr_agent.workflow.state import CURRENT_STEP, DOCUMENT_ID, WorkflowStage

DEFAULT_DOCUMENT_QUERY = (
    "Please analyze this document and extract potential objectives and key results. "
    "Organize them into a structured format that would be useful for an OKR planning session."
)
ASSISTANT_AUTHOR = "AI Assistant"
DOCUMENT_PROCESSED = "DocumentProcessed"


@dataclass
class ChatTurn:
    """一轮对话的结果。

    recorded 为 False 表示回复含代码块，按历史规则未写入。
    """

    conversation_id: Optional[str]
    response: str
    workflow_stage: WorkflowStage
    recorded: bool


class OkrAssistant:
    def __init__(
        self,
        store: ConversationStore,
        complete: Completion,
        workflow: Optional[WorkflowContinuationEngine] = None,
        pipeline: Optional[DocumentPipeline] = None,
        system_prompt: Optional[str] = None,
        provider_name: str = "unknown",
    ):
        self._store = store
        self._complete = complete
        self._workflow = workflow or WorkflowContinuationEngine()
        self._pipeline = pipeline or DocumentPipeline(complete)
        self._system_prompt = system_prompt or load_system_prompt("okr-assistant")
        self._provider_name = provider_name

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def workflow(self) -> WorkflowContinuationEngine:
        return self._workflow

    @property
    def pipeline(self) -> DocumentPipeline:
        return self._pipeline

    def chat(
        self,
        conversation_id: Optional[str],
        message: str,
        *,
        user_id: Optional[str] = None,
        author_name: Optional[str] = None,
        document_context: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> ChatTurn:
        """执行一轮对话。

        Args:
            conversation_id: 会话ID；为空时使用不登记的临时历史。
            message: 用户输入。
            user_id: 用户ID，写入 metadata["UserId"] 供按参与者检索。
            author_name: 用户显示名，写入 metadata["AuthorName"]（不进入线性化文本）。
            document_context: 是否处于文档驱动的创建流程；为 None 时根据历史中是否有文档消息判断。
            timeout: 本次补全调用的超时（秒），None 使用客户端默认值。

        Returns:
            ChatTurn
        """
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "conversation_id": conversation_id}

        history = self._store.get_or_create(conversation_id)
        user_meta = {"UserId": user_id or ""}
        if author_name:
            user_meta = {"AuthorName": author_name, **user_meta}
        history.add_message(Message.from_user(message, **user_meta))

        chat_messages = [ChatMessage(role="system", content=self._system_prompt)]
        chat_messages.extend(history.to_linear_transcript())
        self._log(logging.INFO, "Sending transcript", log_ctx, messages=len(chat_messages))

        try:
            response = self._complete(chat_messages, timeout=timeout)
        except Exception as exc:
            self._log(logging.ERROR, "Completion failed", log_ctx, error=str(exc))
            raise

        if document_context is None:
            document_context = self._has_document_context(history)
        if conversation_id and document_context:
            response = self._workflow.advance(conversation_id, response)

        recorded = history.add_message(
            Message.from_assistant(response, AuthorName=ASSISTANT_AUTHOR, Provider=self._provider_name)
        )
        stage = self._workflow.current_stage(conversation_id) if conversation_id else WorkflowStage.NONE
        self._log(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            workflow_stage=stage.value,
            recorded=recorded,
        )
        return ChatTurn(conversation_id=conversation_id, response=response, workflow_stage=stage, recorded=recorded)

    def analyze_document(
        self,
        conversation_id: Optional[str],
        document_text: str,
        *,
        query: Optional[str] = None,
        document_id: Optional[str] = None,
        file_name: Optional[str] = None,
        system_message: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """分析上传的文档并启动引导式创建流程。

        timeout 传给每一次补全调用；cancel 被置位后，管线在下一次补全前停止并返回错误文本。
        """
        base = system_message or self._system_prompt
        base = f"{base}\n\n{load_system_prompt('workflow-continuation')}"
        analysis = self._pipeline.process(
            base,
            document_text,
            query or DEFAULT_DOCUMENT_QUERY,
            timeout=timeout,
            cancel=cancel,
        )

        if not conversation_id:
            return analysis

        self._workflow.reset(conversation_id)
        if document_id:
            self._workflow.track(conversation_id, DOCUMENT_ID, document_id)
        self._workflow.track(conversation_id, CURRENT_STEP, DOCUMENT_PROCESSED)
        analysis = self._workflow.advance(conversation_id, analysis)

        doc_meta = {}
        if document_id:
            doc_meta[DOCUMENT_ID] = document_id
        if file_name:
            doc_meta["DocumentFileName"] = file_name
        label = file_name or "document"
        history = self._store.get_or_create(conversation_id)
        history.add_message(
            Message.from_system(f"Document uploaded: {label}. Analysis available for conversation.", **doc_meta)
        )
        history.add_message(
            Message.from_assistant(f"Document uploaded: {label}\nDocument analysis: {analysis}", **doc_meta)
        )
        logger.info(
            "Document context added to conversation history",
            extra={"extra": {"conversation_id": conversation_id, "document_id": document_id}},
        )
        return analysis

    def analyze_upload(
        self,
        conversation_id: Optional[str],
        content: PdfSource,
        content_type: Optional[str],
        *,
        file_name: Optional[str] = None,
        document_id: Optional[str] = None,
        query: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """提取上传文件的文本后交给 analyze_document。

        Raises:
            ValidationError: 文件为空或类型不受支持。
        """
        if not content:
            raise ValidationError(code="EMPTY_FILE", message="No file was uploaded")
        if not is_supported_file_type(content_type):
            raise ValidationError(
                code="UNSUPPORTED_FILE_TYPE",
                message=f"Unsupported file type: {content_type}",
                file_name=file_name,
            )
        text = extract_text_from_pdf(content)
        logger.info(
            "Extracted upload text",
            extra={"extra": {"conversation_id": conversation_id, "file_name": file_name, "characters": len(text)}},
        )
        return self.analyze_document(
            conversation_id,
            text,
            query=query,
            document_id=document_id,
            file_name=file_name,
            timeout=timeout,
            cancel=cancel,
        )

    def record_function_execution(
        self,
        conversation_id: Optional[str],
        function_name: str,
        output: Any,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        operation: Optional[str] = None,
        entity_name: Optional[str] = None,
    ) -> ConversationHistory:
        """记录一次业务函数执行结果，供后续指代解析与线性化使用。"""
        history = self._store.get_or_create(conversation_id)
        meta = {"EntityName": entity_name} if entity_name else {}
        history.add_message(
            Message.from_function_execution(
                function_name,
                output,
                entity_type=entity_type,
                entity_id=entity_id,
                operation=operation,
                **meta,
            )
        )
        return history

    def reset(self, conversation_id: Optional[str]) -> None:
        self._store.reset(conversation_id)
        self._workflow.reset(conversation_id)

    @staticmethod
    def _has_document_context(history: ConversationHistory) -> bool:
        return any(DOCUMENT_ID in m.metadata or "DocumentFileName" in m.metadata for m in history.messages)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = {**log_ctx, **fields}
        logger.log(level, message, extra={"extra": payload})
