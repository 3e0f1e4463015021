"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "assistant-chat"。
- provider_model：厂商实际提供的模型 ID，例如 "gemini-2.0-flash"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置，便于后续升级或切换。"""

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
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    models={
        "assistant-chat": ModelConfig(
            logical_name="assistant-chat",
            provider_model="gemini-2.0-flash",
            max_tokens=8192,
            default_temperature=0.7,
        ),
        "assistant-chat-pro": ModelConfig(
            logical_name="assistant-chat-pro",
            provider_model="gemini-2.5-pro",
            max_tokens=8192,
            default_temperature=0.7,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "gemini": GEMINI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
