"""Tavily Web 搜索工具。

API Key 在构造时注入，不在调用时读取环境变量。所有分支都返回 JSON 字符串，
错误以 {"error": ...} 形式交还给模型，而不是抛出异常。
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from relay_core.config.settings import settings
from relay_core.infrastructure.logging.logger import logger


def to_json(data: Any) -> str:
    """与模型交换的 JSON 统一使用紧凑格式。"""

    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


class TavilySearchTool:
    """Tavily 搜索客户端。"""

    name = "tavily"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.tavily.com",
        timeout: float = 30.0,
        max_results: int = 5,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_results = max_results

    @classmethod
    def from_settings(cls, cfg=settings) -> "TavilySearchTool":
        return cls(
            api_key=getattr(cfg, "tavily_api_key", None),
            base_url=getattr(cfg, "tavily_base_url", "https://api.tavily.com"),
            timeout=cfg.http_timeout,
        )

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    async def search(self, query: str) -> str:
        if not self._api_key:
            return to_json({"error": "Web search is not available. API key not configured."})

        _log(logging.INFO, "Performing web search", query=query)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{self._base_url}/search",
                    json=self._build_payload(query),
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                )
                if resp.status_code < 200 or resp.status_code >= 300:
                    _log(logging.ERROR, "Web search failed", query=query, status=resp.status_code)
                    return to_json(
                        {
                            "error": f"Search failed with status: {resp.status_code}",
                            "details": resp.text,
                        }
                    )
                data = resp.json()
        except Exception as e:  # noqa: BLE001 - 搜索失败以 JSON 形式交给模型
            _log(logging.ERROR, "Web search raised", query=query, error=str(e))
            return to_json(
                {
                    "error": "An exception occurred during the search.",
                    "message": str(e) or type(e).__name__,
                }
            )

        _log(logging.INFO, "Web search succeeded", query=query)
        return to_json(data)

    def _build_payload(self, query: str) -> Dict[str, Any]:
        return {
            "query": query,
            "search_depth": "advanced",
            "max_results": self._max_results,
            "include_answer": True,
            "include_raw_content": False,
        }


def _log(level: int, message: str, **fields: Any) -> None:
    logger.log(level, message, extra={"extra": {"tool": "web_search", **fields}})
