import httpx
import pytest

from relay_core.agents.response_relay import STOP_EVENT, ResponseRelay
from relay_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from relay_core.providers import create_model_session
from relay_core.providers.gemini_client import GeminiChatSession
from relay_core.domain.models import MessageRef
from relay_core.tools.definitions import default_tool_defs
from relay_core.tools.executor import ToolExecutor
from relay_core.transport.base import EventDispatcher


class SettingsStub:
    gemini_api_key = "g-0123456789"
    gemini_base_url = "https://generativelanguage.googleapis.com/v1beta"
    default_model = "assistant-chat"
    http_timeout = 1.0


class FakeResponse:
    def __init__(self, lines, status_code=200, body=b""):
        self.status_code = status_code
        self._lines = list(lines)
        self._body = body
        self.closed = False

    async def aiter_lines(self):
        for line in self._lines:
            yield line

    async def aread(self):
        return self._body

    async def aclose(self):
        self.closed = True


def make_client(captured, response=None, error=None):
    class Client:
        def __init__(self, *a, **kw):
            captured["closed"] = False

        def build_request(self, method, url, params=None, json=None, headers=None):
            captured["url"] = url
            captured["params"] = params
            captured["payload"] = json
            captured["headers"] = headers
            return object()

        async def send(self, request, stream=False):
            captured["stream"] = stream
            if error:
                raise error
            return response

        async def aclose(self):
            captured["closed"] = True

    return Client


STREAM_LINES = [
    'data: {"candidates": [{"content": {"role": "model", "parts": [{"text": "Sun"}]}}]}',
    "",
    'data: {"candidates": [{"content": {"role": "model", "parts": [{"text": "ny"}]}, "finishReason": "STOP"}],'
    ' "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 2, "totalTokenCount": 5}}',
]


@pytest.mark.asyncio
async def test_gemini_stream_and_final_response(monkeypatch):
    captured = {}
    response = FakeResponse(STREAM_LINES)
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, response))
    session = GeminiChatSession(SettingsStub(), system_instruction="be brief")

    result = await session.send_prompt("weather?")
    texts = [chunk.text async for chunk in result]
    final = await result.final_response()

    assert texts == ["Sun", "ny"]
    assert final.text == "Sunny"
    assert final.tool_calls == []
    assert final.usage.total_tokens == 5
    assert captured["url"].endswith("/models/gemini-2.0-flash:streamGenerateContent")
    assert captured["params"] == {"alt": "sse"}
    assert captured["headers"]["x-goog-api-key"] == "g-0123456789"
    assert captured["payload"]["contents"] == [{"role": "user", "parts": [{"text": "weather?"}]}]
    assert captured["payload"]["systemInstruction"] == {"parts": [{"text": "be brief"}]}
    assert response.closed and captured["closed"]
    assert [(m.role, m.content) for m in session.history] == [("user", "weather?"), ("model", "Sunny")]


@pytest.mark.asyncio
async def test_gemini_function_call_and_tools_payload(monkeypatch):
    captured = {}
    lines = [
        'data: {"candidates": [{"content": {"role": "model", "parts": '
        '[{"functionCall": {"name": "web_search", "args": {"query": "foo"}}}]}}]}',
    ]
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, FakeResponse(lines)))
    session = GeminiChatSession(SettingsStub(), tools=default_tool_defs())

    result = await session.send_prompt("news?")
    final = await result.final_response()

    assert [(c.name, c.arguments) for c in final.tool_calls] == [("web_search", {"query": "foo"})]
    decl = captured["payload"]["tools"][0]["functionDeclarations"][0]
    assert decl["name"] == "web_search"
    assert decl["parameters"]["type"] == "OBJECT"
    assert decl["parameters"]["properties"]["query"]["type"] == "STRING"
    assert decl["parameters"]["required"] == ["query"]
    assert session.history[-1].role == "model"
    assert "web_search" in session.history[-1].content


@pytest.mark.asyncio
async def test_gemini_history_carries_previous_turns(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, FakeResponse(STREAM_LINES)))
    session = GeminiChatSession(SettingsStub())
    first = await session.send_prompt("one")
    await first.final_response()

    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, FakeResponse(STREAM_LINES)))
    await session.send_prompt("two")

    roles = [c["role"] for c in captured["payload"]["contents"]]
    assert roles == ["user", "model", "user"]


@pytest.mark.asyncio
async def test_gemini_errors(monkeypatch):
    captured = {}
    body = b'{"error": {"code": 400, "message": "API key not valid"}}'
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, FakeResponse([], 400, body)))
    with pytest.raises(ApiError) as exc:
        await GeminiChatSession(SettingsStub()).send_prompt("hi")
    assert exc.value.message == "API key not valid"
    assert exc.value.http_status == 400

    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, FakeResponse([], 429)))
    with pytest.raises(RateLimitError):
        await GeminiChatSession(SettingsStub()).send_prompt("hi")

    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, error=httpx.ConnectError("down")))
    with pytest.raises(NetworkError):
        await GeminiChatSession(SettingsStub()).send_prompt("hi")


@pytest.mark.asyncio
async def test_gemini_requires_api_key():
    class NoKey(SettingsStub):
        gemini_api_key = None

    session = GeminiChatSession(NoKey())
    with pytest.raises(ValidationError):
        await session.send_prompt("hi")
    assert session.history == []


def test_create_model_session(monkeypatch):
    monkeypatch.setattr("relay_core.providers.settings", SettingsStub())
    assert isinstance(create_model_session("gemini"), GeminiChatSession)
    assert isinstance(create_model_session("Gemini"), GeminiChatSession)
    assert isinstance(create_model_session(), GeminiChatSession)
    with pytest.raises(ValidationError):
        create_model_session("kimi")


class StoppingChatClient(EventDispatcher):
    """第一次局部更新后就收到用户的停止请求。"""

    def __init__(self):
        super().__init__()
        self.updates = []

    async def partial_update_message(self, message_id, update):
        self.updates.append(update["set"]["text"])
        await self.dispatch({"type": STOP_EVENT, "message_id": message_id})


class NullChannel:
    cid = "messaging:general"

    async def send_event(self, event):
        pass


@pytest.mark.asyncio
async def test_gemini_stream_closed_when_relay_stops_mid_stream(monkeypatch):
    captured = {}
    response = FakeResponse(STREAM_LINES)
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, response))
    session = GeminiChatSession(SettingsStub())
    client = StoppingChatClient()
    relay = ResponseRelay(
        session=session,
        chat_client=client,
        channel=NullChannel(),
        message=MessageRef(id="m1", cid="messaging:general"),
        on_dispose=lambda: None,
        tool_executor=ToolExecutor({}),
        update_interval=1.0,
        clock=lambda: 0.0,
    )

    await relay.run("weather?", "be brief")

    assert client.updates == ["Sun"]
    assert relay.terminated
    assert response.closed and captured["closed"]
    # 被中断的回复不会写入历史
    assert [m.role for m in session.history] == ["user"]


@pytest.mark.asyncio
async def test_gemini_aclose_before_iteration_releases_connection(monkeypatch):
    captured = {}
    response = FakeResponse(STREAM_LINES)
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, response))

    result = await GeminiChatSession(SettingsStub()).send_prompt("hi")
    await result.aclose()
    await result.aclose()

    assert response.closed and captured["closed"]
