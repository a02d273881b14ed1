from okr_agent.workflow import Detection, WorkflowContinuationEngine, WorkflowStage
from okr_agent.workflow.inspector import (
    KEY_RESULT_CONTINUATION,
    OBJECTIVE_CONTINUATION,
    TASK_CONTINUATION,
)
from okr_agent.workflow.state import CURRENT_STEP, KEY_RESULT_ID, OBJECTIVE_ID, OKR_SESSION_ID

SESSION_ID = "3fa85f64-5717-4562-b3fc-2c963f66afa6"
SESSION_REPLY = f"The OKR session has been created successfully. Session ID: '{SESSION_ID}'"
OBJECTIVE_REPLY = "The objective 'Grow Revenue' was created. Objective ID: 'abc-123'"


def test_session_then_objective():
    engine = WorkflowContinuationEngine()

    out = engine.advance("c1", SESSION_REPLY)
    assert out == SESSION_REPLY + OBJECTIVE_CONTINUATION
    assert engine.current_stage("c1") is WorkflowStage.CREATED_SESSION
    assert engine.get("c1", OKR_SESSION_ID) == SESSION_ID

    out = engine.advance("c1", OBJECTIVE_REPLY)
    assert out == OBJECTIVE_REPLY + KEY_RESULT_CONTINUATION
    assert engine.current_stage("c1") is WorkflowStage.CREATED_OBJECTIVE
    assert engine.get("c1", OBJECTIVE_ID) == "abc-123"


def test_objective_reply_with_next_step_gets_no_duplicate_prompt():
    engine = WorkflowContinuationEngine()
    engine.advance("c1", f"The OKR session has been created. Session ID: '{SESSION_ID}'")
    assert engine.get("c1", OKR_SESSION_ID) == SESSION_ID

    reply = OBJECTIVE_REPLY + " Next, let's add a key result."
    assert engine.advance("c1", reply) == reply
    assert engine.current_stage("c1") is WorkflowStage.CREATED_OBJECTIVE
    assert engine.get("c1", OBJECTIVE_ID) == "abc-123"


def test_key_result_stage():
    engine = WorkflowContinuationEngine()
    engine.track("c1", CURRENT_STEP, WorkflowStage.CREATED_OBJECTIVE.value)

    reply = "The key result has been created. Key Result ID: 'b7e1-42'"
    assert engine.advance("c1", reply) == reply + TASK_CONTINUATION
    assert engine.state("c1") == {
        CURRENT_STEP: "CreatedKeyResult",
        KEY_RESULT_ID: "b7e1-42",
    }


def test_forward_looking_reply_is_not_extended():
    engine = WorkflowContinuationEngine()
    reply = "The OKR session has been created successfully. Session ID: 'aa-11'. Next, let's pick a goal."
    assert engine.advance("c1", reply) == reply
    assert engine.current_stage("c1") is WorkflowStage.CREATED_SESSION


def test_missing_id_still_advances():
    engine = WorkflowContinuationEngine()
    reply = "Your OKR session has been created."
    assert engine.advance("c1", reply) == reply + OBJECTIVE_CONTINUATION
    assert engine.state("c1") == {CURRENT_STEP: "CreatedSession"}


def test_out_of_order_and_unmatched_replies_change_nothing():
    engine = WorkflowContinuationEngine()
    assert engine.advance("c1", OBJECTIVE_REPLY) == OBJECTIVE_REPLY
    assert engine.advance("c1", "Here is a summary of your goals.") == "Here is a summary of your goals."
    assert engine.state("c1") == {}
    assert engine.current_stage("c1") is WorkflowStage.NONE


def test_empty_inputs_are_passthrough():
    engine = WorkflowContinuationEngine()
    assert engine.advance(None, SESSION_REPLY) == SESSION_REPLY
    assert engine.advance("", SESSION_REPLY) == SESSION_REPLY
    assert engine.advance("c1", "") == ""
    assert engine.current_stage("c1") is WorkflowStage.NONE


def test_reset_and_unknown_step():
    engine = WorkflowContinuationEngine()
    engine.advance("c1", SESSION_REPLY)
    engine.reset("c1")
    assert engine.state("c1") == {}

    engine.track("c1", CURRENT_STEP, "DocumentProcessed")
    assert engine.current_stage("c1") is WorkflowStage.NONE
    assert engine.advance("c1", SESSION_REPLY).endswith(OBJECTIVE_CONTINUATION)


def test_conversations_are_isolated():
    engine = WorkflowContinuationEngine()
    engine.advance("c1", SESSION_REPLY)
    assert engine.current_stage("c2") is WorkflowStage.NONE
    assert engine.advance("c2", OBJECTIVE_REPLY) == OBJECTIVE_REPLY


class FixedInspector:
    def __init__(self):
        self.seen = []

    def inspect(self, response_text, current):
        self.seen.append((response_text, current))
        return Detection(stage=WorkflowStage.CREATED_KEY_RESULT_TASK, id_key="TaskId", entity_id="t-1", continuation=None)


def test_custom_inspector():
    inspector = FixedInspector()
    engine = WorkflowContinuationEngine(inspector=inspector)
    assert engine.advance("c1", "anything") == "anything"
    assert inspector.seen == [("anything", WorkflowStage.NONE)]
    assert engine.current_stage("c1") is WorkflowStage.CREATED_KEY_RESULT_TASK
    assert engine.get("c1", "TaskId") == "t-1"
