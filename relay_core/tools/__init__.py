"""工具层：工具定义、执行器与 Web 搜索实现。"""

from relay_core.tools.definitions import ToolCall, ToolDef, ToolParam, ToolResult, default_tool_defs
from relay_core.tools.executor import ToolExecutor, default_tools
from relay_core.tools.web_search import TavilySearchTool

__all__ = [
    "ToolCall",
    "ToolDef",
    "ToolParam",
    "ToolResult",
    "ToolExecutor",
    "TavilySearchTool",
    "default_tool_defs",
    "default_tools",
]
