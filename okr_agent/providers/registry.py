"""Provider 与模型配置。

本模块将"逻辑模型名"与"具体厂商模型名"解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "okr-chat"。
- provider_model：厂商实际提供的模型 ID，例如 "glm-4.6"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置。"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。

    api_key_setting / base_url_setting 是 Settings 上对应字段的名称。
    """

    name: str
    base_url: str
    api_key_setting: str
    base_url_setting: str
    models: Dict[str, ModelConfig]


GLM_CONFIG = ProviderConfig(
    name="glm",
    base_url="https://open.bigmodel.cn/api/paas/v4",
    api_key_setting="glm_api_key",
    base_url_setting="glm_base_url",
    models={
        "okr-chat": ModelConfig(
            logical_name="okr-chat",
            provider_model="glm-4.6",
            max_tokens=8192,
            default_temperature=0.3,
        ),
        # 长文档分块抽取，输出短
        "okr-extract": ModelConfig(
            logical_name="okr-extract",
            provider_model="glm-4.6",
            max_tokens=2048,
            default_temperature=0.2,
        ),
    },
)

KIMI_CONFIG = ProviderConfig(
    name="kimi",
    base_url="https://api.moonshot.cn/v1",
    api_key_setting="kimi_api_key",
    base_url_setting="kimi_base_url",
    models={
        "okr-chat": ModelConfig(
            logical_name="okr-chat",
            provider_model="kimi-k2-turbo-preview",
            max_tokens=8192,
            default_temperature=0.3,
        ),
        "okr-extract": ModelConfig(
            logical_name="okr-extract",
            provider_model="kimi-k2-turbo-preview",
            max_tokens=2048,
            default_temperature=0.2,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "glm": GLM_CONFIG,
    "kimi": KIMI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    try:
        return PROVIDER_REGISTRY[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown provider: {name!r}") from None
