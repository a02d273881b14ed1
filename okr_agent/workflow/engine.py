"""Workflow continuation engine for the session -> objective -> key result -> task flow."""

from __future__ import annotations

from typing import Dict, Optional

from okr_agent.infrastructure.logging.logger import logger
from okr_agent.workflow.inspector import ResponseInspector, TextualResponseInspector
from okr_agent.workflow.state import CURRENT_STEP, WorkflowStage, WorkflowStateStore


class WorkflowContinuationEngine:
    """Advance per-conversation stage state from model responses.

    State lives in a ``WorkflowStateStore`` keyed by conversation id, separate
    from conversation histories. Stages only move forward; a response that
    matches no rule leaves both the state and the text untouched.
    """

    def __init__(
        self,
        inspector: Optional[ResponseInspector] = None,
        state_store: Optional[WorkflowStateStore] = None,
    ):
        self._inspector = inspector or TextualResponseInspector()
        self._states = state_store or WorkflowStateStore()

    def advance(self, conversation_id: Optional[str], response_text: str) -> str:
        if not conversation_id or not response_text:
            return response_text

        current = self.current_stage(conversation_id)
        detection = self._inspector.inspect(response_text, current)
        if detection is None:
            return response_text

        if detection.entity_id:
            self._states.set(conversation_id, detection.id_key, detection.entity_id)
        self._states.set(conversation_id, CURRENT_STEP, detection.stage.value)
        logger.info(
            "workflow.advance",
            extra={
                "extra": {
                    "conversation_id": conversation_id,
                    "from_stage": current.value,
                    "to_stage": detection.stage.value,
                    "entity_id": detection.entity_id,
                    "continuation_added": detection.continuation is not None,
                }
            },
        )
        if detection.continuation:
            return response_text + detection.continuation
        return response_text

    def current_stage(self, conversation_id: str) -> WorkflowStage:
        return WorkflowStage.parse(self._states.get(conversation_id, CURRENT_STEP))

    def track(self, conversation_id: str, key: str, value: str) -> None:
        self._states.set(conversation_id, key, value)

    def get(self, conversation_id: str, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._states.get(conversation_id, key, default)

    def state(self, conversation_id: str) -> Dict[str, str]:
        return self._states.snapshot(conversation_id)

    def reset(self, conversation_id: Optional[str]) -> None:
        if conversation_id:
            self._states.clear(conversation_id)
