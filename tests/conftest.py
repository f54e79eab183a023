"""Shared test fixtures and socket fakes."""
import asyncio
import base64
import json
import os

import pytest
from starlette.websockets import WebSocketState

# Set test environment variables before importing the app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("PUBLIC_WSS_URL", "")

from call_bridge import CallBridgeSession
from tools import Tool, ToolError

_END = object()


class FakeTwilioWebSocket:
    """Stands in for the Starlette WebSocket Twilio connects with."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.sent = []
        self.closed = False
        self.send_error = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send_json(self, message):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)

    async def close(self, code: int = 1000, reason=None):
        self.closed = True
        self.client_state = WebSocketState.DISCONNECTED

    def feed(self, message):
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def hang_up(self):
        self._inbox.put_nowait(_END)

    def fail(self, exc):
        self._inbox.put_nowait(exc)

    async def iter_text(self):
        while True:
            message = await self._inbox.get()
            if message is _END:
                return
            if isinstance(message, Exception):
                raise message
            yield message

    def events(self, name):
        return [m for m in self.sent if m.get("event") == name]


class FakeOpenAIWebSocket:
    """Stands in for a websockets client connection to the Realtime API."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, text):
        self.sent.append(json.loads(text))

    async def close(self):
        self.closed = True

    def feed(self, event):
        self._inbox.put_nowait(json.dumps(event))

    def hang_up(self):
        self._inbox.put_nowait(_END)

    def fail(self, exc):
        self._inbox.put_nowait(exc)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._inbox.get()
        if message is _END:
            raise StopAsyncIteration
        if isinstance(message, Exception):
            raise message
        return message

    def types(self):
        return [m["type"] for m in self.sent]

    def of_type(self, name):
        return [m for m in self.sent if m["type"] == name]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ulaw_chunk(ms: int) -> str:
    """Base64 mu-law audio lasting ``ms`` milliseconds at 8 kHz."""
    return base64.b64encode(b"\xff" * (8 * ms)).decode()


@pytest.fixture
def tool_calls():
    return []


@pytest.fixture
def fake_registry(tool_calls):

    async def get_job_details(args, context):
        tool_calls.append(("get_job_details", args))
        return {"name": args["job_id"], "status": "Installed"}

    async def get_job_updates(args, context):
        tool_calls.append(("get_job_updates", args))
        if not args.get("job_id"):
            raise ToolError("Missing job_id", code="MISSING_JOB_ID")
        return [{"reference_doctype": "Permit", "content": "Approved"}]

    async def explode(args, context):
        raise RuntimeError("boom")

    return {
        "get_job_details": Tool(
            name="get_job_details",
            description="details",
            handler=get_job_details,
            narration="Tell the caller the job details in plain English.",
        ),
        "get_job_updates": Tool(
            name="get_job_updates",
            description="updates",
            handler=get_job_updates,
            narration="Tell the caller the job updates in plain English.",
        ),
        "explode": Tool(name="explode", description="always fails", handler=explode),
    }


@pytest.fixture
def twilio_ws():
    return FakeTwilioWebSocket()


@pytest.fixture
def openai_ws():
    return FakeOpenAIWebSocket()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_session(twilio_ws, fake_registry, clock):
    def _make(debounce_ms: int = 180):
        return CallBridgeSession(twilio_ws, fake_registry, debounce_ms=debounce_ms, clock=clock)
    return _make
