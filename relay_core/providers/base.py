"""Provider 抽象接口。

ResponseRelay 不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ModelSession（如 GeminiChatSession），维护多轮对话历史。
- send_prompt(text) 打开一次流式生成，返回 StreamResult。
- StreamResult 是一次性的异步片段序列，耗尽后可以通过 final_response()
  拿到完整响应（包括工具调用请求）。中途放弃时调用 aclose() 释放连接。
"""

from typing import AsyncIterator, Protocol

from relay_core.domain.models import ChatResult, ChatStreamChunk


class StreamResult(Protocol):
    """一次流式生成的结果，不可重放。"""

    def __aiter__(self) -> AsyncIterator[ChatStreamChunk]:
        ...

    async def final_response(self) -> ChatResult:
        """流结束后返回完整响应。"""

        ...

    async def aclose(self) -> None:
        """释放底层连接，可重复调用。"""

        ...


class ModelSession(Protocol):
    """多轮对话会话协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - send_prompt(text): 追加一轮用户输入并开始流式生成。
    """

    name: str

    async def send_prompt(self, text: str) -> StreamResult:
        ...
