"""工具数据结构定义。

这些 dataclass 描述了“工具调用”的 schema，既用于：
- 将可用工具列表暴露给模型（ToolDef / ToolParam）。
- 在 ResponseRelay 中处理模型触发的工具调用（ToolCall / ToolResult）。
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Optional


WEB_SEARCH = "web_search"


@dataclass
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any]


@dataclass
class ToolDef:
    """一个可供模型调用的工具定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam]


@dataclass
class ToolCall:
    """模型在流结束后给出的一次工具调用请求。"""

    name: str
    arguments: Dict[str, Any]
    id: Optional[str] = None


@dataclass
class ToolResult:
    """工具执行结果，response 为 JSON 字符串。"""

    name: str
    response: str


def web_search_def() -> ToolDef:
    return ToolDef(
        name=WEB_SEARCH,
        description=(
            "Search the web for current information. Use it for recent events, "
            "news or facts that may have changed after your training data."
        ),
        params={
            "query": ToolParam(
                name="query",
                description="The search query",
                required=True,
                schema={"type": "string"},
            )
        },
    )


def default_tool_defs() -> List[ToolDef]:
    return [web_search_def()]
