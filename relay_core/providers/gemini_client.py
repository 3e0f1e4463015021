"""Gemini Provider 适配器。

使用 Generative Language REST API 的 SSE 流式端点：
- URL: {base_url}/models/{model}:streamGenerateContent?alt=sse
- 认证: x-goog-api-key: <api_key>

会话在本地维护 contents 历史：发送时追加用户轮次，流耗尽后追加模型轮次。
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from relay_core.config.settings import settings
from relay_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from relay_core.domain.models import (
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatStreamChunk,
    ChatUsage,
)
from relay_core.providers.registry import GEMINI_CONFIG, ModelConfig
from relay_core.tools.definitions import ToolCall, ToolDef


class GeminiStreamResult:
    """一次 streamGenerateContent 调用的结果。

    片段只能消费一次；final_response() 会先把剩余片段读完。
    """

    def __init__(self, session: "GeminiChatSession", client: httpx.AsyncClient, response, req: ChatRequest):
        self._session = session
        self._client = client
        self._response = response
        self._req = req
        self._pieces: List[str] = []
        self._tool_calls: List[ToolCall] = []
        self._finish_reason: Optional[str] = None
        self._usage: Optional[ChatUsage] = None
        self._done = False
        self._started = False
        self._closed = False
        self._chunks = self._iterate()

    def __aiter__(self) -> AsyncIterator[ChatStreamChunk]:
        return self._chunks

    async def final_response(self) -> ChatResult:
        if not self._done:
            async for _ in self._chunks:
                pass
        return ChatResult(
            provider=self._session.name,
            model=self._req.model,
            text="".join(self._pieces),
            tool_calls=list(self._tool_calls),
            finish_reason=self._finish_reason,
            usage=self._usage,
        )

    async def aclose(self) -> None:
        started = self._started
        await self._chunks.aclose()
        if not started:
            # 未开始迭代的生成器不会执行 finally
            await self._release()

    async def _release(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        await self._client.aclose()

    async def _iterate(self) -> AsyncIterator[ChatStreamChunk]:
        self._started = True
        try:
            async for line in self._response.aiter_lines():
                data = _parse_sse_line(line)
                if data is None:
                    continue
                chunk = self._session._parse_stream_chunk(data)
                if chunk.text:
                    self._pieces.append(chunk.text)
                self._tool_calls.extend(chunk.tool_calls)
                if chunk.finish_reason:
                    self._finish_reason = chunk.finish_reason
                if chunk.usage:
                    self._usage = chunk.usage
                yield chunk
            self._done = True
            self._session._record_model_turn("".join(self._pieces), self._tool_calls)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        finally:
            await self._release()


class GeminiChatSession:
    """Gemini 多轮对话会话。"""

    name = "gemini"

    def __init__(
        self,
        cfg=settings,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        tools: Optional[List[ToolDef]] = None,
        history: Optional[List[ChatMessage]] = None,
    ):
        self._settings = cfg
        self._model = model or getattr(cfg, "default_model", "assistant-chat")
        self._system_instruction = system_instruction
        self._tools = tools
        self._history: List[ChatMessage] = list(history or [])

    @property
    def history(self) -> List[ChatMessage]:
        return list(self._history)

    async def send_prompt(self, text: str) -> GeminiStreamResult:
        if not getattr(self._settings, "gemini_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="GEMINI_API_KEY not set")
        if self._model not in GEMINI_CONFIG.models:
            raise ValidationError(code="UNKNOWN_MODEL", message=f"Unknown model: {self._model}")
        model_cfg = GEMINI_CONFIG.models[self._model]
        user_turn = ChatMessage(role="user", content=text)
        req = ChatRequest(
            model=self._model,
            messages=self._history + [user_turn],
            system_instruction=self._system_instruction,
            tools=self._tools,
        )
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url

        client = httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False)
        try:
            request = client.build_request(
                "POST",
                f"{base}/models/{model_cfg.provider_model}:streamGenerateContent",
                params={"alt": "sse"},
                json=payload,
                headers={
                    "x-goog-api-key": self._settings.gemini_api_key,
                    "Content-Type": "application/json",
                },
            )
            resp = await client.send(request, stream=True)
        except httpx.RequestError as e:
            await client.aclose()
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

        if resp.status_code >= 400:
            body = await resp.aread()
            await resp.aclose()
            await client.aclose()
            if resp.status_code == 429:
                raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", http_status=429)
            raise ApiError(
                code="API_ERROR",
                message=_error_message(body) or f"Gemini request failed with status {resp.status_code}",
                http_status=resp.status_code,
            )

        self._history.append(user_turn)
        return GeminiStreamResult(self, client, resp, req)

    # ---- 辅助方法 ----

    def _record_model_turn(self, text: str, tool_calls: List[ToolCall]) -> None:
        # 工具调用以文本形式记入历史，后续轮次以纯文本回传结果
        parts = [text] if text else []
        for call in tool_calls:
            parts.append(f"Function call: {call.name} {json.dumps(call.arguments, ensure_ascii=False)}")
        if parts:
            self._history.append(ChatMessage(role="model", content="\n".join(parts), tool_calls=tool_calls or None))

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "contents": [
                {"role": m.role, "parts": [{"text": m.content}]}
                for m in req.messages
                if m.content
            ],
            "generationConfig": {
                "temperature": req.temperature if req.temperature is not None else model_cfg.default_temperature,
                "maxOutputTokens": req.max_tokens or model_cfg.max_tokens,
            },
        }
        if req.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": req.system_instruction}]}
        if req.tools:
            payload["tools"] = [
                {"functionDeclarations": [self._serialize_tool(tool) for tool in req.tools]}
            ]
        return payload

    def _parse_stream_chunk(self, data: Dict[str, Any]) -> ChatStreamChunk:
        texts: List[str] = []
        tool_calls: List[ToolCall] = []
        finish_reason = None
        candidates = data.get("candidates") or []
        if candidates:
            candidate = candidates[0]
            finish_reason = candidate.get("finishReason")
            for part in (candidate.get("content") or {}).get("parts") or []:
                if part.get("text"):
                    texts.append(part["text"])
                call = part.get("functionCall")
                if call:
                    tool_calls.append(
                        ToolCall(
                            name=call.get("name") or "",
                            arguments=self._parse_arguments(call.get("args")),
                            id=call.get("id"),
                        )
                    )
        usage = None
        usage_raw = data.get("usageMetadata") or {}
        if usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("promptTokenCount", 0),
                completion_tokens=usage_raw.get("candidatesTokenCount", 0),
                total_tokens=usage_raw.get("totalTokenCount", 0),
            )
        return ChatStreamChunk(
            text="".join(texts),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=usage,
            raw=data,
        )

    def _serialize_tool(self, tool: ToolDef) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in tool.params.items():
            schema = _to_gemini_schema(param.schema or {"type": "string"})
            if param.description:
                schema = {**schema, "description": param.description}
            properties[name] = schema
            if param.required:
                required.append(name)
        return {
            "name": tool.name,
            "description": tool.description,
            "parameters": {
                "type": "OBJECT",
                "properties": properties,
                "required": required,
            },
        }

    @staticmethod
    def _parse_arguments(raw: Any) -> Dict[str, Any]:
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, str):
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                return {"_raw": raw}
        return {}


def _to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Gemini 的 Schema.type 使用大写枚举值。"""

    converted: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            converted[key] = value.upper()
        elif key == "items" and isinstance(value, dict):
            converted[key] = _to_gemini_schema(value)
        elif key == "properties" and isinstance(value, dict):
            converted[key] = {k: _to_gemini_schema(v) for k, v in value.items()}
        else:
            converted[key] = value
    return converted


def _parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
    if not line:
        return None
    data_str = line[5:].strip() if line.startswith("data:") else line.strip()
    if not data_str or data_str == "[DONE]":
        return None
    try:
        data = json.loads(data_str)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _error_message(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace") if body else ""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(data, dict):
        error = data.get("error") or {}
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return text
