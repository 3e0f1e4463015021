"""聊天平台集成层。"""

from relay_core.transport.base import Channel, ChatClient, Event, EventDispatcher, EventHandler
from relay_core.transport.stream_client import StreamChannel, StreamChatClient, split_cid

__all__ = [
    "Channel",
    "ChatClient",
    "Event",
    "EventDispatcher",
    "EventHandler",
    "StreamChannel",
    "StreamChatClient",
    "split_cid",
]
