from typing import Any, Awaitable, Callable, Dict, List, Optional

from relay_core.infrastructure.logging.logger import logger
from .definitions import WEB_SEARCH, ToolCall, ToolResult
from .web_search import TavilySearchTool, to_json


ToolFunc = Callable[[Dict[str, Any]], Awaitable[str]]
TOOL_FAILURE = {"error": "failed to call tool"}


class ToolExecutor:
    def __init__(self, tools: Dict[str, ToolFunc]):
        self._tools = tools

    async def execute(self, call: ToolCall) -> Optional[ToolResult]:
        """执行单个工具调用。未注册的工具返回 None，执行异常转换为错误 JSON。"""

        func = self._tools.get(call.name)
        if func is None:
            logger.warning(
                "Ignoring unregistered tool call",
                extra={"extra": {"tool_name": call.name}},
            )
            return None
        try:
            response = await func(call.arguments or {})
        except Exception as exc:  # noqa: BLE001 - 工具失败不能中断本次回复
            logger.error(
                "Tool execution failed",
                exc_info=True,
                extra={"extra": {"tool_name": call.name, "error": str(exc)}},
            )
            response = to_json(TOOL_FAILURE)
        return ToolResult(name=call.name, response=response)

    async def execute_all(self, calls: List[ToolCall]) -> List[ToolResult]:
        results: List[ToolResult] = []
        for call in calls:
            result = await self.execute(call)
            if result is not None:
                results.append(result)
        return results


def _make_web_search_tool(search_tool: TavilySearchTool) -> ToolFunc:
    async def _run(args: Dict[str, Any]) -> str:
        return await search_tool.search(str(args.get("query") or ""))

    return _run


def default_tools(search_tool: Optional[TavilySearchTool] = None) -> Dict[str, ToolFunc]:
    tool = search_tool or TavilySearchTool.from_settings()
    return {WEB_SEARCH: _make_web_search_tool(tool)}
