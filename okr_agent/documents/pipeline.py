"""Document ingestion pipeline built on LangGraph.

Small documents are answered with one completion call whose system message
embeds the document. Large documents go through chunk -> extract (one call per
chunk) -> consolidate (one call over all chunk outputs).

Callers may pass a per-call ``timeout`` that reaches every completion call, and
a ``cancel`` event that is checked before each call.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, TypedDict

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from okr_agent.config.settings import settings
from okr_agent.documents.text_utils import chunk_document_content, estimate_token_count, prepare_content
from okr_agent.domain.exceptions import OperationCancelledError
from okr_agent.domain.models import ChatMessage
from okr_agent.infrastructure.logging.logger import logger
from okr_agent.providers.base import Completion

TokenEstimator = Callable[[str], int]
Chunker = Callable[[str, int], List[str]]

NO_CONTENT_RESULT = "No document content available for analysis."

CHUNK_PROMPT = (
    "You are processing part of a larger document. "
    "Extract any objectives, key results, or important information from this section. "
    "Be concise and focus only on key points related to goals, metrics, and priorities."
)

CONSOLIDATION_PREAMBLE = (
    "\n\nI have analyzed a document in sections and extracted key information from each part. "
    "Here are my findings from each section:"
)


class DocumentState(TypedDict, total=False):
    system_message: str
    document: str
    query: str
    timeout: Optional[float]
    cancel: Optional[threading.Event]
    estimated_tokens: int
    chunks: List[str]
    chunk_outputs: List[str]
    result: str


class DocumentPipeline:
    def __init__(
        self,
        complete: Completion,
        estimate_tokens: TokenEstimator = estimate_token_count,
        chunker: Chunker = chunk_document_content,
        *,
        single_request_token_limit: Optional[int] = None,
        augmentation_max_tokens: Optional[int] = None,
        chunk_target_tokens: Optional[int] = None,
        chunk_concurrency: Optional[int] = None,
        extract: Optional[Completion] = None,
    ):
        self._complete = complete
        # 分块抽取可以使用更便宜的模型，默认与主补全相同
        self._extract = extract or complete
        self._estimate = estimate_tokens
        self._chunker = chunker
        self.single_request_token_limit = single_request_token_limit or settings.single_request_token_limit
        self.augmentation_max_tokens = augmentation_max_tokens or settings.augmentation_max_tokens
        self.chunk_target_tokens = chunk_target_tokens or settings.chunk_target_tokens
        self.chunk_concurrency = chunk_concurrency or settings.chunk_concurrency
        self._graph = self._build_graph()

    def process(
        self,
        base_system_message: str,
        document_text: str,
        query: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Answer ``query`` about ``document_text``; failures come back as text.

        ``timeout`` is forwarded to each completion call. Setting ``cancel``
        stops the run before the next completion call.
        """
        if not document_text:
            logger.warning("Empty document content provided for processing")
            return NO_CONTENT_RESULT

        state: DocumentState = {
            "system_message": base_system_message or "",
            "document": document_text,
            "query": query or "",
            "timeout": timeout,
            "cancel": cancel,
            "chunks": [],
            "chunk_outputs": [],
        }
        try:
            result = self._graph.invoke(state)
        except Exception as exc:
            logger.error(
                "Error processing document",
                exc_info=True,
                extra={"extra": {"error": str(exc)}},
            )
            return f"An error occurred while processing the document: {exc}"
        return result.get("result") or ""

    def augment_system_message(self, base_system_message: str, document_text: str) -> str:
        """Append as much of the document as fits in the remaining token budget.

        Estimation or preparation errors fall back to the base message.
        """
        if not document_text:
            return base_system_message
        try:
            remaining = self.augmentation_max_tokens - self._estimate(base_system_message)
            if remaining <= 0:
                logger.warning(
                    "System message already exceeds token limit, document content not added",
                    extra={"extra": {"max_tokens": self.augmentation_max_tokens}},
                )
                return base_system_message
            content = prepare_content(document_text, remaining, self._estimate)
        except Exception as exc:
            logger.error(
                "Error adding document content to system message",
                exc_info=True,
                extra={"extra": {"error": str(exc)}},
            )
            return base_system_message
        return f"{base_system_message}\n\nDOCUMENT CONTENT:\n\n{content}"

    def _call(self, complete: Completion, messages: List[ChatMessage], state: DocumentState) -> str:
        cancel = state.get("cancel")
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(code="CANCELLED", message="Document processing was cancelled")
        return complete(messages, timeout=state.get("timeout"))

    # ---- graph nodes ----

    def _estimate_node(self, state: DocumentState) -> DocumentState:
        tokens = self._estimate(state["document"])
        logger.info("document.estimate", extra={"extra": {"estimated_tokens": tokens}})
        return {"estimated_tokens": tokens}

    def _route(self, state: DocumentState) -> str:
        if state["estimated_tokens"] <= self.single_request_token_limit:
            return "single"
        return "chunk"

    def _single_node(self, state: DocumentState) -> DocumentState:
        system_message = self.augment_system_message(state["system_message"], state["document"])
        messages = [
            ChatMessage(role="system", content=system_message),
            ChatMessage(role="user", content=state["query"]),
        ]
        return {"result": self._call(self._complete, messages, state)}

    def _chunk_node(self, state: DocumentState) -> DocumentState:
        chunks = list(self._chunker(state["document"], self.chunk_target_tokens))
        logger.info(
            "document.chunked",
            extra={"extra": {"estimated_tokens": state["estimated_tokens"], "chunks": len(chunks)}},
        )
        return {"chunks": chunks}

    def _extract_one(self, state: DocumentState, index: int, chunk: str) -> str:
        total = len(state["chunks"])
        logger.info("document.extract", extra={"extra": {"chunk": index + 1, "total": total}})
        messages = [
            ChatMessage(role="system", content=CHUNK_PROMPT),
            ChatMessage(role="user", content=f"Document section {index + 1} of {total}:\n\n{chunk}"),
        ]
        return self._call(self._extract, messages, state)

    def _extract_node(self, state: DocumentState) -> DocumentState:
        chunks = state["chunks"]
        if self.chunk_concurrency > 1 and len(chunks) > 1:
            with ThreadPoolExecutor(max_workers=min(self.chunk_concurrency, len(chunks))) as pool:
                outputs = list(pool.map(lambda item: self._extract_one(state, *item), enumerate(chunks)))
        else:
            outputs = [self._extract_one(state, i, chunk) for i, chunk in enumerate(chunks)]
        return {"chunk_outputs": outputs}

    def _consolidate_node(self, state: DocumentState) -> DocumentState:
        lines = [
            state["query"],
            "",
            "Here are the key points extracted from each section of the document:",
            "",
        ]
        for i, output in enumerate(state["chunk_outputs"]):
            lines.extend([f"Section {i + 1}:", output, ""])
        lines.append("Based on these extracted points, please provide a comprehensive analysis addressing my query.")

        messages = [
            ChatMessage(role="system", content=state["system_message"] + CONSOLIDATION_PREAMBLE),
            ChatMessage(role="user", content="\n".join(lines)),
        ]
        return {"result": self._call(self._complete, messages, state)}

    def _build_graph(self) -> CompiledStateGraph:
        graph = StateGraph(DocumentState)
        graph.add_node("estimate", self._estimate_node)
        graph.add_node("single", self._single_node)
        graph.add_node("chunk", self._chunk_node)
        graph.add_node("extract", self._extract_node)
        graph.add_node("consolidate", self._consolidate_node)
        graph.set_entry_point("estimate")
        graph.add_conditional_edges("estimate", self._route, {"single": "single", "chunk": "chunk"})
        graph.add_edge("single", END)
        graph.add_edge("chunk", "extract")
        graph.add_edge("extract", "consolidate")
        graph.add_edge("consolidate", END)
        return graph.compile()
