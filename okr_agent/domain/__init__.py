"""领域层模型与协议。

包含：
- models: Message / EntityReference 以及发给补全服务的 ChatMessage / ChatRequest / ChatResult。
- conversation: 会话历史 ConversationHistory 与 ConversationStore 抽象。
- exceptions: 业务异常类型定义。
"""
