"""聊天平台抽象接口。

ResponseRelay 只依赖这里的协议：
- Channel.send_event: 广播 ai_indicator.* 状态事件（不落库）。
- ChatClient.partial_update_message: 按字段合并更新已存在的消息。
- ChatClient.on/off: 订阅外部事件（如 ai_indicator.stop）。
"""

from typing import Any, Awaitable, Callable, Dict, List, Protocol


Event = Dict[str, Any]
EventHandler = Callable[[Event], Awaitable[None]]


class Channel(Protocol):
    cid: str

    async def send_event(self, event: Event) -> None:
        ...


class ChatClient(Protocol):
    async def partial_update_message(self, message_id: str, update: Dict[str, Any]) -> None:
        ...

    def on(self, event_type: str, handler: EventHandler) -> None:
        ...

    def off(self, event_type: str, handler: EventHandler) -> None:
        ...


class EventDispatcher:
    """进程内的事件监听表。

    平台事件（webhook 推送）到达后调用 dispatch()，按注册顺序依次 await 对应的处理函数。
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[EventHandler]] = {}

    def on(self, event_type: str, handler: EventHandler) -> None:
        self._listeners.setdefault(event_type, []).append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._listeners[event_type]

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    async def dispatch(self, event: Event) -> int:
        """分发事件，返回被调用的处理函数数量。"""

        # 处理函数可能在回调中 off() 自己，先拷贝一份
        handlers = list(self._listeners.get(str(event.get("type") or ""), []))
        for handler in handlers:
            await handler(event)
        return len(handlers)
