"""回复中继核心模块。

把一次模型流式生成同步到聊天平台上的一条消息：转发用户输入、按节流间隔
局部更新消息正文、处理工具调用、广播 ai_indicator 状态，并保证只有一条
终止路径（完成、用户停止、出错）且清理是幂等的。
"""

from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4
import time
import logging

from relay_core.config.settings import settings
from relay_core.domain.models import MessageRef, RelayState, StatusSignal
from relay_core.infrastructure.logging.logger import logger
from relay_core.providers.base import ModelSession, StreamResult
from relay_core.tools.definitions import ToolCall, ToolResult
from relay_core.tools.executor import ToolExecutor, default_tools
from relay_core.transport.base import Channel, ChatClient, Event


STOP_EVENT = "ai_indicator.stop"
DEFAULT_ERROR_TEXT = "Error generating the message"


def build_prompt(user_message: str, instructions: str) -> str:
    return f"{instructions}\n\nUser message: {user_message}"


def format_tool_results(results: List[ToolResult]) -> str:
    """把工具结果拼成一段回传给模型的文本。"""

    return "\n\n".join(f"Function: {r.name}\nResult: {r.response}" for r in results)


class ResponseRelay:
    """驱动一次流式回复直到结束，并把进度镜像到聊天消息与状态事件。

    构造时注册 ai_indicator.stop 监听，dispose() 时注销。
    同一实例只应调用一次 run()。
    """

    def __init__(
        self,
        session: ModelSession,
        chat_client: ChatClient,
        channel: Channel,
        message: MessageRef,
        on_dispose: Callable[[], None],
        tool_executor: Optional[ToolExecutor] = None,
        update_interval: Optional[float] = None,
        max_tool_rounds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session = session
        self._chat_client = chat_client
        self._channel = channel
        self._message = message
        self._on_dispose = on_dispose
        self._tool_executor = tool_executor or ToolExecutor(default_tools())
        self._update_interval = update_interval if update_interval is not None else settings.update_interval
        self._max_tool_rounds = max_tool_rounds if max_tool_rounds is not None else settings.max_tool_rounds
        self._clock = clock
        self._state = RelayState()
        self._log_ctx: Dict[str, Any] = {
            "trace_id": f"rl-{uuid4().hex}",
            "provider": getattr(session, "name", "unknown"),
            "cid": message.cid,
            "message_id": message.id,
        }
        self._chat_client.on(STOP_EVENT, self._handle_stop_generating)

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def message(self) -> MessageRef:
        return self._message

    @property
    def terminated(self) -> bool:
        return self._state.terminated

    async def run(self, user_message: str, instructions: str) -> None:
        """执行完整的生成流程，任何异常都会转入错误处理，最终总是 dispose。"""

        start_time = time.time()
        try:
            prompt = build_prompt(user_message, instructions)
            await self._send_status(StatusSignal.GENERATING)
            self._log(logging.INFO, "Calling provider (stream)", prompt_chars=len(prompt))

            result = await self._session.send_prompt(prompt)
            await self._consume(result)

            tool_rounds = 0
            while not self._state.terminated and tool_rounds < self._max_tool_rounds:
                response = await result.final_response()
                if not response.tool_calls:
                    break
                tool_rounds += 1
                follow_up = await self._run_tool_calls(response.tool_calls, tool_rounds)
                if self._state.terminated or not follow_up:
                    break
                result = await self._session.send_prompt(follow_up)
                await self._consume(result)

            if self._state.terminated:
                self._log(logging.INFO, "Stopped before completion", chunk_count=self._state.chunk_count)
                return

            # 节流期间可能丢掉尾部内容，这里无条件再推一次完整文本
            await self._flush()
            await self._send_status(StatusSignal.CLEAR)
            self._log(
                logging.INFO,
                "Completed response",
                chunk_count=self._state.chunk_count,
                text_chars=len(self._state.accumulated_text),
                tool_rounds=tool_rounds,
                elapsed_seconds=round(time.time() - start_time, 2),
            )
        except Exception as exc:
            self._log(logging.ERROR, "Response generation failed", error=repr(exc))
            await self._handle_error(exc)
        finally:
            await self.dispose()

    async def dispose(self) -> None:
        if self._state.terminated:
            return
        self._state.terminated = True
        self._chat_client.off(STOP_EVENT, self._handle_stop_generating)
        self._log(logging.INFO, "Disposed relay")
        self._on_dispose()

    async def _consume(self, result: StreamResult) -> None:
        try:
            async for chunk in result:
                if self._state.terminated:
                    break
                text = chunk.text
                if not text:
                    continue
                self._state.accumulated_text += text
                self._state.chunk_count += 1
                now = self._clock()
                last = self._state.last_flush
                if last is None or now - last >= self._update_interval:
                    await self._flush(now)
        finally:
            # 读完的流已自行释放；中途停止或出错时要主动关闭底层连接
            await result.aclose()

    async def _run_tool_calls(self, tool_calls: List[ToolCall], round_num: int) -> str:
        await self._send_status(StatusSignal.EXTERNAL_SOURCES)
        self._log(
            logging.INFO,
            "Executing tool calls",
            round=round_num,
            call_count=len(tool_calls),
            tool_names=[call.name for call in tool_calls],
        )
        results = await self._tool_executor.execute_all(tool_calls)
        self._log(logging.INFO, "Tool calls finished", round=round_num, result_count=len(results))
        return format_tool_results(results)

    async def _flush(self, now: Optional[float] = None) -> None:
        self._state.last_flush = self._clock() if now is None else now
        await self._update_message({"text": self._state.accumulated_text})

    async def _send_status(self, signal: StatusSignal) -> None:
        if self._state.terminated:
            return
        await self._channel.send_event(signal.to_event(self._message))

    async def _update_message(self, fields: Dict[str, Any]) -> None:
        if self._state.terminated:
            return
        await self._chat_client.partial_update_message(self._message.id, {"set": fields})

    async def _handle_stop_generating(self, event: Event) -> None:
        if self._state.terminated or event.get("message_id") != self._message.id:
            return
        self._log(logging.INFO, "Stop generating requested", chunk_count=self._state.chunk_count)
        try:
            await self._send_status(StatusSignal.CLEAR)
        finally:
            await self.dispose()

    async def _handle_error(self, error: Exception) -> None:
        if self._state.terminated:
            return
        try:
            await self._send_status(StatusSignal.ERROR)
            await self._update_message(
                {
                    "text": str(error) or DEFAULT_ERROR_TEXT,
                    "message": repr(error),
                }
            )
        finally:
            await self.dispose()

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload = dict(self._log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
