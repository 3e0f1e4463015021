"""统一的对话与回复中继数据模型。

本模块定义了 Provider 层与 ResponseRelay 之间共享的标准数据结构：

- ChatMessage / ChatRequest: 发给底层模型的一轮对话与完整请求。
- ChatStreamChunk / ChatResult: 流式增量与流结束后的完整响应。
- MessageRef: 聊天平台上被持续更新的目标消息。
- StatusSignal: 通过聊天频道广播的生成状态。
- RelayState: 单个 ResponseRelay 独占的可变状态。

所有 Provider 适配器都必须只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional, Any, Dict, List, TYPE_CHECKING

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from relay_core.tools.definitions import ToolCall, ToolDef


# 对话角色，对应 Gemini contents[].role
Role = Literal["user", "model"]


@dataclass
class ChatMessage:
    """一轮对话内容。

    - role: "user" 或 "model"。
    - content: 纯文本内容。
    - tool_calls: 模型在该轮发起的工具调用（仅 role="model" 时可能存在）。
    """

    role: Role
    content: str
    tool_calls: Optional[List["ToolCall"]] = None


@dataclass
class ChatRequest:
    """一次完整的模型请求。

    Provider 适配层负责把本结构转换成各家 API 的 JSON 请求体。
    """

    model: str  # 逻辑模型名，如 "assistant-chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    system_instruction: Optional[str] = None
    # 工具定义列表：由 Provider 转成对应的 function declaration
    tools: Optional[List["ToolDef"]] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatStreamChunk:
    """流式响应中的一个片段（fragment）。

    text 可能为空字符串，例如该片段只携带工具调用或 usage 信息。
    """

    text: str
    tool_calls: List["ToolCall"] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None


@dataclass
class ChatResult:
    """流结束后的完整响应。

    - text: 所有片段文本拼接后的结果。
    - tool_calls: 模型请求的工具调用，没有时为空列表。
    """

    provider: str
    model: str
    text: str
    tool_calls: List["ToolCall"] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[ChatUsage] = None


@dataclass(frozen=True)
class MessageRef:
    """聊天平台上的目标消息。cid 形如 "messaging:general"。"""

    id: str
    cid: str


class StatusSignal(str, Enum):
    """AI 生成状态，通过频道事件广播给客户端的状态指示器。"""

    GENERATING = "AI_STATE_GENERATING"
    EXTERNAL_SOURCES = "AI_STATE_EXTERNAL_SOURCES"
    ERROR = "AI_STATE_ERROR"
    CLEAR = "AI_STATE_CLEAR"

    def to_event(self, message: MessageRef) -> Dict[str, Any]:
        """转换成聊天平台的自定义事件。CLEAR 对应 ai_indicator.clear，其余为 update。"""

        if self is StatusSignal.CLEAR:
            return {"type": "ai_indicator.clear", "cid": message.cid, "message_id": message.id}
        return {
            "type": "ai_indicator.update",
            "ai_state": self.value,
            "cid": message.cid,
            "message_id": message.id,
        }


@dataclass
class RelayState:
    """ResponseRelay 的内部状态。

    accumulated_text 在终止前只追加；terminated 置为 True 后不再有任何修改。
    last_flush 为上次局部更新的单调时钟时间，None 表示尚未更新过。
    """

    accumulated_text: str = ""
    chunk_count: int = 0
    terminated: bool = False
    last_flush: Optional[float] = None
