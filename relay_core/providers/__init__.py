"""模型 Provider 集成层。

该包下的模块负责：
- 定义会话抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (gemini_client)。
"""

from typing import Dict, List, Optional, Type

from relay_core.config.settings import settings
from relay_core.domain.exceptions import ValidationError
from relay_core.providers.base import ModelSession, StreamResult
from relay_core.providers.gemini_client import GeminiChatSession
from relay_core.providers.registry import get_provider_config
from relay_core.tools.definitions import ToolDef


_SESSION_TYPES: Dict[str, Type[GeminiChatSession]] = {
    "gemini": GeminiChatSession,
}


def create_model_session(
    name: Optional[str] = None,
    *,
    system_instruction: Optional[str] = None,
    tools: Optional[List[ToolDef]] = None,
) -> ModelSession:
    """根据名称创建新的对话会话，默认取配置中的 provider。"""

    provider_name = name or getattr(settings, "default_provider", "gemini")
    try:
        config = get_provider_config(provider_name)
    except KeyError:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_name}") from None
    session_cls = _SESSION_TYPES[config.name]
    return session_cls(settings, system_instruction=system_instruction, tools=tools)


__all__ = ["ModelSession", "StreamResult", "GeminiChatSession", "create_model_session"]
