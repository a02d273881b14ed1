"""引导式 OKR 创建流程（会话 -> 目标 -> 关键结果 -> 任务）的状态机。"""

from okr_agent.workflow.engine import WorkflowContinuationEngine
from okr_agent.workflow.inspector import Detection, ResponseInspector, TextualResponseInspector
from okr_agent.workflow.state import WorkflowStage, WorkflowStateStore

__all__ = [
    "Detection",
    "ResponseInspector",
    "TextualResponseInspector",
    "WorkflowContinuationEngine",
    "WorkflowStage",
    "WorkflowStateStore",
]
