"""对外 API 服务模块。

宿主应用（例如 webhook 接口）把聊天平台推送的事件交给 handle_event：
- message.new: 交给 AssistantAgent 生成回复。
- ai_indicator.stop: 分发给正在运行的 ResponseRelay。
"""

from typing import Any, Dict, Optional

from relay_core.agents.assistant_agent import AssistantAgent
from relay_core.agents.response_relay import STOP_EVENT
from relay_core.config.settings import settings
from relay_core.infrastructure.logging.logger import logger
from relay_core.tools.executor import ToolExecutor, default_tools
from relay_core.tools.web_search import TavilySearchTool
from relay_core.transport.stream_client import StreamChatClient


_client: Optional[StreamChatClient] = None
_agent: Optional[AssistantAgent] = None


def get_default_client() -> StreamChatClient:
    """获取默认的 StreamChatClient 实例（单例）。"""
    global _client
    if _client is None:
        _client = StreamChatClient.from_settings(settings)
    return _client


def get_default_agent() -> AssistantAgent:
    """获取默认的 AssistantAgent 实例（单例），与 get_default_client 共用同一个客户端。"""
    global _agent
    if _agent is None:
        search_tool = TavilySearchTool.from_settings(settings)
        _agent = AssistantAgent(
            chat_client=get_default_client(),
            tool_executor=ToolExecutor(default_tools(search_tool)),
        )
    return _agent


async def handle_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """处理一条平台事件。

    Args:
        event: 平台推送的事件 JSON，至少包含 type 字段

    Returns:
        {"type": ..., "handled": bool}，生成回复时附带 message_id

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    event_type = event.get("type")
    try:
        if event_type == "message.new":
            relay = await get_default_agent().handle_new_message(event)
            if relay is None:
                return {"type": event_type, "handled": False}
            return {"type": event_type, "handled": True, "message_id": relay.message.id}
        if event_type == STOP_EVENT:
            count = await get_default_client().dispatch(event)
            return {"type": event_type, "handled": count > 0}
        return {"type": event_type, "handled": False}
    except Exception as e:
        logger.error(f"Event handling failed: {e}", extra={"extra": {
            "event_type": event_type,
            "cid": event.get("cid"),
            "error": str(e),
        }})
        raise

