"""OKR Agent 顶层包。

该包提供 OKR 管理系统中 AI 助手的会话编排核心，
包括会话历史与实体指代解析、对话线性化、长文档分块处理、
引导式创建流程续写，以及配置加载、Provider 适配与日志等能力。
"""

from okr_agent.agents.okr_assistant import ChatTurn, OkrAssistant
from okr_agent.domain.conversation import ConversationHistory
from okr_agent.domain.models import Message

__all__ = ["ChatTurn", "ConversationHistory", "Message", "OkrAssistant"]
