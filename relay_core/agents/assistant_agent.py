"""频道助手：为每条新的用户消息创建占位回复并启动 ResponseRelay。"""

from typing import Any, Callable, Dict, List, Optional

from relay_core.agents.response_relay import ResponseRelay
from relay_core.domain.exceptions import TransportError
from relay_core.domain.models import MessageRef
from relay_core.infrastructure.logging.logger import logger
from relay_core.prompts import load_instructions
from relay_core.providers import create_model_session
from relay_core.providers.base import ModelSession
from relay_core.tools.definitions import default_tool_defs
from relay_core.tools.executor import ToolExecutor
from relay_core.transport.base import Event
from relay_core.transport.stream_client import StreamChatClient


SessionFactory = Callable[[], ModelSession]


def _default_session_factory() -> ModelSession:
    return create_model_session(tools=default_tool_defs())


class AssistantAgent:
    """按频道维护模型会话，按消息 ID 维护进行中的 ResponseRelay。"""

    def __init__(
        self,
        chat_client: StreamChatClient,
        session_factory: Optional[SessionFactory] = None,
        tool_executor: Optional[ToolExecutor] = None,
        instructions: Optional[str] = None,
    ):
        self._client = chat_client
        self._session_factory = session_factory or _default_session_factory
        self._tool_executor = tool_executor
        self._instructions = instructions if instructions is not None else load_instructions()
        self._sessions: Dict[str, ModelSession] = {}
        self._relays: Dict[str, ResponseRelay] = {}

    @property
    def active_message_ids(self) -> List[str]:
        return list(self._relays)

    def session_for(self, cid: str) -> ModelSession:
        session = self._sessions.get(cid)
        if session is None:
            session = self._session_factory()
            self._sessions[cid] = session
        return session

    async def handle_new_message(self, event: Event) -> Optional[ResponseRelay]:
        """处理 message.new 事件；机器人自己的消息和空消息直接忽略。"""

        message: Dict[str, Any] = event.get("message") or {}
        user = event.get("user") or message.get("user") or {}
        if user.get("id") == self._client.user_id or message.get("ai_generated"):
            return None
        text = (message.get("text") or "").strip()
        cid = event.get("cid") or message.get("cid")
        if not text or not cid:
            return None

        channel = self._client.channel(cid)
        reply = await channel.send_message({"text": "", "ai_generated": True})
        if not reply.get("id"):
            raise TransportError(code="MISSING_MESSAGE_ID", message="Stream Chat did not return a message id")
        target = MessageRef(id=reply["id"], cid=cid)

        relay = ResponseRelay(
            session=self.session_for(cid),
            chat_client=self._client,
            channel=channel,
            message=target,
            on_dispose=lambda: self._relays.pop(target.id, None),
            tool_executor=self._tool_executor,
        )
        self._relays[target.id] = relay
        logger.info(
            "Started relay",
            extra={"extra": {"cid": cid, "message_id": target.id, "user_id": user.get("id")}},
        )
        await relay.run(text, self._instructions)
        return relay
