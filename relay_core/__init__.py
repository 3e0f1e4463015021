"""Relay Core 顶层包。

把生成式模型的流式回复同步到聊天平台上的一条消息，
包括配置加载、领域模型、模型 Provider 适配、聊天平台适配、
Web 搜索工具与 ResponseRelay 编排逻辑。
"""

from relay_core.agents.response_relay import ResponseRelay
from relay_core.domain.models import MessageRef, RelayState, StatusSignal

__all__ = ["ResponseRelay", "MessageRef", "RelayState", "StatusSignal"]
