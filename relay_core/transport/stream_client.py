"""Stream Chat 服务端 REST 适配器。

- URL: {base_url}/channels/{type}/{id}/event | /channels/{type}/{id}/message | /messages/{id}
- 认证: 查询参数 api_key + Authorization: <服务端 JWT>，stream-auth-type: jwt

服务端 JWT 由 api_secret 以 HS256 签发，payload 为 {"server": true}。
"""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx
import jwt

from relay_core.config.settings import settings
from relay_core.domain.exceptions import NetworkError, RateLimitError, TransportError, ValidationError
from relay_core.infrastructure.logging.logger import logger
from relay_core.transport.base import Event, EventDispatcher


def split_cid(cid: str) -> Tuple[str, str]:
    """"messaging:general" -> ("messaging", "general")。"""

    channel_type, sep, channel_id = (cid or "").partition(":")
    if not sep or not channel_type or not channel_id:
        raise ValidationError(code="INVALID_CID", message=f"Invalid channel cid: {cid!r}")
    return channel_type, channel_id


class StreamChatClient(EventDispatcher):
    """Stream Chat 客户端实现，同时作为 ai_indicator.stop 等外部事件的监听表。"""

    name = "stream"

    def __init__(
        self,
        api_key: Optional[str],
        api_secret: Optional[str],
        base_url: str = "https://chat.stream-io-api.com",
        user_id: str = "ai-bot",
        timeout: float = 30.0,
    ):
        super().__init__()
        self._api_key = api_key
        self._api_secret = api_secret
        self._base_url = base_url.rstrip("/")
        self.user_id = user_id
        self._timeout = timeout
        self._token: Optional[str] = None

    @classmethod
    def from_settings(cls, cfg=settings) -> "StreamChatClient":
        return cls(
            api_key=getattr(cfg, "stream_api_key", None),
            api_secret=getattr(cfg, "stream_api_secret", None),
            base_url=getattr(cfg, "stream_base_url", "https://chat.stream-io-api.com"),
            user_id=getattr(cfg, "bot_user_id", "ai-bot"),
            timeout=cfg.http_timeout,
        )

    def channel(self, cid: str) -> "StreamChannel":
        return StreamChannel(self, cid)

    # ---- REST 调用 ----

    async def partial_update_message(self, message_id: str, update: Dict[str, Any]) -> None:
        body = dict(update)
        body.setdefault("user_id", self.user_id)
        await self._request("PUT", f"/messages/{message_id}", body)

    async def send_event(self, cid: str, event: Event) -> None:
        channel_type, channel_id = split_cid(cid)
        await self._request(
            "POST",
            f"/channels/{channel_type}/{channel_id}/event",
            {"event": {**event, "user_id": self.user_id}},
        )

    async def send_message(self, cid: str, message: Dict[str, Any]) -> Dict[str, Any]:
        channel_type, channel_id = split_cid(cid)
        data = await self._request(
            "POST",
            f"/channels/{channel_type}/{channel_id}/message",
            {"message": {**message, "user_id": self.user_id}},
        )
        return data.get("message") or {}

    # ---- 辅助方法 ----

    def _server_token(self) -> str:
        if self._token is None:
            self._token = jwt.encode({"server": True}, self._api_secret, algorithm="HS256")
        return self._token

    async def _request(self, method: str, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self._api_key or not self._api_secret:
            raise ValidationError(code="MISSING_API_KEY", message="STREAM_API_KEY / STREAM_API_SECRET not set")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    params={"api_key": self._api_key},
                    json=body,
                    headers={
                        "Authorization": self._server_token(),
                        "stream-auth-type": "jwt",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Stream Chat rate limit", http_status=429)
        if resp.status_code >= 400:
            logger.log(
                logging.ERROR,
                "Stream Chat request failed",
                extra={"extra": {"method": method, "path": path, "status": resp.status_code}},
            )
            raise TransportError(code="STREAM_API_ERROR", message=resp.text, http_status=resp.status_code)
        if not resp.content:
            return {}
        return resp.json()


class StreamChannel:
    """绑定到单个 cid 的频道句柄。"""

    def __init__(self, client: StreamChatClient, cid: str):
        split_cid(cid)
        self._client = client
        self.cid = cid

    async def send_event(self, event: Event) -> None:
        await self._client.send_event(self.cid, event)

    async def send_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client.send_message(self.cid, message)
