"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口与补全函数类型 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供 OpenAI 兼容接口的具体实现 (openai_compatible)。
"""

from typing import Optional

from okr_agent.config.settings import settings
from okr_agent.providers.base import Completion, ProviderClient, as_completion
from okr_agent.providers.openai_compatible import OpenAICompatibleClient
from okr_agent.providers.registry import get_provider_config


def create_provider(name: Optional[str] = None, timeout: Optional[float] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = name or getattr(settings, "default_provider", "glm")
    return OpenAICompatibleClient(get_provider_config(provider_name), settings, timeout=timeout)


__all__ = ["Completion", "ProviderClient", "OpenAICompatibleClient", "as_completion", "create_provider"]
