"""Response inspection rules for the guided OKR creation flow.

The rules are plain substring checks on the model's wording plus one id
pattern per entity. They sit behind ``ResponseInspector`` so a structured
model-output contract can replace them without touching the engine.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple

from okr_agent.workflow.state import (
    KEY_RESULT_ID,
    OBJECTIVE_ID,
    OKR_SESSION_ID,
    WorkflowStage,
)

OBJECTIVE_CONTINUATION = (
    "\n\nNow that we've created the OKR session, let's create an objective for it. "
    "Based on the document analysis, I suggest the following objective:\n\n"
    "[Objective title and description based on the document content]\n\n"
    "Would you like me to create this objective for the OKR session? Or would you like to make any adjustments?"
)

KEY_RESULT_CONTINUATION = (
    "\n\nNow that we've created the objective, let's create a key result for it. "
    "Based on the document analysis, I suggest the following key result:\n\n"
    "[Key result title and description based on the document content]\n\n"
    "Would you like me to create this key result for the objective? Or would you like to make any adjustments?"
)

TASK_CONTINUATION = (
    "\n\nNow that we've created the key result, let's create a task for it. "
    "Based on the document analysis, I suggest the following task:\n\n"
    "[Task title and description based on the document content]\n\n"
    "Would you like me to create this task for the key result? Or would you like to make any adjustments?"
)

# Replies put the id after a capitalised label, e.g. "The OKR session has been
# created. Session ID: '3fa85f64-...'" or "Objective ID: 'abc-123'". A
# case-sensitive "session ... ID" never matches those, so the id patterns
# ignore case. The phrase checks in DEFAULT_RULES stay case-sensitive.
SESSION_ID_PATTERN = re.compile(r"""session(?:\s+with)?\s+ID:?\s*['"]?([0-9a-fA-F-]+)['"]?""", re.IGNORECASE)
OBJECTIVE_ID_PATTERN = re.compile(r"""objective(?:\s+with)?\s+ID:?\s*['"]?([0-9a-fA-F-]+)['"]?""", re.IGNORECASE)
KEY_RESULT_ID_PATTERN = re.compile(r"""key result(?:\s+with)?\s+ID:?\s*['"]?([0-9a-fA-F-]+)['"]?""", re.IGNORECASE)


def _contains_any(text: str, needles: Sequence[str]) -> bool:
    return any(n in text for n in needles)


@dataclass(frozen=True)
class Detection:
    """What a response means for the flow: the stage reached and what to store/append."""

    stage: WorkflowStage
    id_key: str
    entity_id: Optional[str]
    continuation: Optional[str]


@dataclass(frozen=True)
class TransitionRule:
    stage: WorkflowStage
    required_stage: Optional[WorkflowStage]
    subject_markers: Tuple[str, ...]
    completion_markers: Tuple[str, ...]
    id_key: str
    id_pattern: re.Pattern
    forward_markers: Tuple[str, ...]
    continuation: str

    def matches(self, text: str, current: WorkflowStage) -> bool:
        if self.required_stage is not None and current != self.required_stage:
            return False
        return _contains_any(text, self.subject_markers) and _contains_any(text, self.completion_markers)

    def detect(self, text: str) -> Detection:
        match = self.id_pattern.search(text)
        continuation = None if _contains_any(text, self.forward_markers) else self.continuation
        return Detection(
            stage=self.stage,
            id_key=self.id_key,
            entity_id=match.group(1) if match else None,
            continuation=continuation,
        )


class ResponseInspector(Protocol):
    def inspect(self, response_text: str, current: WorkflowStage) -> Optional[Detection]:
        ...


DEFAULT_RULES: Tuple[TransitionRule, ...] = (
    TransitionRule(
        stage=WorkflowStage.CREATED_SESSION,
        required_stage=None,
        subject_markers=("OKR session",),
        completion_markers=("created successfully", "has been created", "successfully created"),
        id_key=OKR_SESSION_ID,
        id_pattern=SESSION_ID_PATTERN,
        forward_markers=("objective", "Objective", "STEP 2", "Next, let's"),
        continuation=OBJECTIVE_CONTINUATION,
    ),
    TransitionRule(
        stage=WorkflowStage.CREATED_OBJECTIVE,
        required_stage=WorkflowStage.CREATED_SESSION,
        subject_markers=("objective", "Objective"),
        completion_markers=("created",),
        id_key=OBJECTIVE_ID,
        id_pattern=OBJECTIVE_ID_PATTERN,
        forward_markers=("key result", "Key Result", "STEP 3", "Next, let's"),
        continuation=KEY_RESULT_CONTINUATION,
    ),
    TransitionRule(
        stage=WorkflowStage.CREATED_KEY_RESULT,
        required_stage=WorkflowStage.CREATED_OBJECTIVE,
        subject_markers=("key result", "Key Result"),
        completion_markers=("created",),
        id_key=KEY_RESULT_ID,
        id_pattern=KEY_RESULT_ID_PATTERN,
        forward_markers=("task", "Task", "STEP 4", "Next, let's"),
        continuation=TASK_CONTINUATION,
    ),
)


class TextualResponseInspector:
    """First matching rule wins; rules are checked in declaration order."""

    def __init__(self, rules: Sequence[TransitionRule] = DEFAULT_RULES):
        self._rules = tuple(rules)

    def inspect(self, response_text: str, current: WorkflowStage) -> Optional[Detection]:
        for rule in self._rules:
            if rule.matches(response_text, current):
                return rule.detect(response_text)
        return None
