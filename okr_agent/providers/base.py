"""Provider 抽象接口。

核心逻辑（文档管线、助手编排）只依赖一个补全函数 ``Completion``：
消息列表 -> 生成文本。ProviderClient 是具体厂商的适配协议，
通过 ``as_completion`` 转成补全函数注入核心。
"""

from typing import List, Optional, Protocol

from okr_agent.domain.models import ChatMessage, ChatRequest, ChatResult


class Completion(Protocol):
    """补全函数协议。

    timeout 为本次调用的超时（秒），由调用方逐次传入；None 表示沿用客户端默认超时。
    """

    def __call__(self, messages: List[ChatMessage], timeout: Optional[float] = None) -> str:
        ...


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - chat(req): 执行一次非流式补全调用，返回统一的 ChatResult。
    """

    name: str

    def chat(self, req: ChatRequest) -> ChatResult:
        ...


def as_completion(client: ProviderClient, model: str, temperature: float = 0.3) -> Completion:
    """把 ProviderClient 包装为核心使用的补全函数。"""

    def complete(messages: List[ChatMessage], timeout: Optional[float] = None) -> str:
        req = ChatRequest(
            provider=client.name,
            model=model,
            messages=list(messages),
            temperature=temperature,
            timeout=timeout,
        )
        return client.chat(req).text

    return complete
