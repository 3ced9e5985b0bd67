"""Shared test fixtures for bmo-chatbot."""

import asyncio
import json

import httpx
import pytest

from bmo_chatbot.aggregator import CancelReason, ConversationObserver
from bmo_chatbot.core import Message
from bmo_chatbot.provider import ChatProvider
from bmo_chatbot.session import ChatSession
from bmo_chatbot.settings import Settings
from bmo_chatbot.store import FileNoteStore, HistoryStore

HISTORY_PATH = "history/messageHistory_BMO.json"


def sse_body(deltas: list[str], done: bool = True) -> str:
    """Render an OpenAI-style SSE stream carrying ``deltas``."""
    lines = [f"data: {json.dumps({'choices': [{'delta': {'content': d}}]})}\n\n" for d in deltas]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class BrokenStream(httpx.AsyncByteStream):
    """Response body that sends ``chunks`` and then drops the connection."""

    def __init__(self, *chunks: str):
        self.chunks = [c.encode("utf-8") for c in chunks]

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        raise httpx.ReadError("Connection reset by peer")



class FakeProvider(ChatProvider):
    """Scripted streaming provider.

    Yields ``chunks``, then optionally waits on ``hold`` and raises ``error``.
    """

    name = "fake"

    def __init__(self, chunks=(), error=None, hold=False):
        super().__init__(Settings(), None)
        self.chunks = list(chunks)
        self.error = error
        self.hold = asyncio.Event() if hold else None
        self.started = asyncio.Event()
        self.requests = []

    def is_configured(self):
        return True

    def known_models(self):
        return ["fake-model"]

    def streaming_enabled(self):
        return True

    async def complete(self, request):
        self.requests.append(request)
        return "".join(self.chunks)

    async def stream(self, request):
        self.requests.append(request)
        for chunk in self.chunks:
            yield chunk
        self.started.set()
        if self.hold is not None:
            await self.hold.wait()
        if self.error is not None:
            raise self.error

    async def list_models(self):
        return ["fake-model"]


class RecordingObserver(ConversationObserver):
    def __init__(self):
        self.events = []

    def on_request(self, anchor):
        self.events.append(("request", anchor.content))

    def on_delta(self, text, delta, autoscroll):
        self.events.append(("delta", text))

    def on_complete(self, text):
        self.events.append(("complete", text))

    def on_error(self, error, partial):
        self.events.append(("error", partial))

    def on_abort(self, partial, reason):
        self.events.append(("abort" if reason is CancelReason.STOPPED else "superseded", partial))

    def on_notice(self, text):
        self.events.append(("notice", text))

    def of(self, kind):
        return [data for event, data in self.events if event == kind]


@pytest.fixture
def settings():
    s = Settings()
    s.general.model = "gpt-4"
    s.openai.api_key = "sk-test"
    s.ollama.rest_api_url = ""
    return s


@pytest.fixture
def data_dir(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture
def vault(tmp_path):
    """A note vault with two profiles and a prompt file."""
    v = tmp_path / "vault"
    (v / "BMO" / "Profiles").mkdir(parents=True)
    (v / "BMO" / "Prompts").mkdir(parents=True)
    (v / "BMO" / "Profiles" / "BMO.md").write_text("---\nmodel: gpt-4\n---\nI am BMO.", encoding="utf-8")
    (v / "BMO" / "Profiles" / "Pirate.md").write_text("Arr.", encoding="utf-8")
    (v / "BMO" / "Prompts" / "Concise.md").write_text("---\ntags: [x]\n---\nBe concise.", encoding="utf-8")
    (v / "note.md").write_text("---\ntitle: Note\n---\nThe sky is green.", encoding="utf-8")
    return v


@pytest.fixture
def history_store(data_dir):
    return HistoryStore(FileNoteStore(data_dir), HISTORY_PATH)


@pytest.fixture
def read_history(data_dir):
    """Return the persisted history file as parsed JSON."""

    def read():
        return json.loads((data_dir / HISTORY_PATH).read_text(encoding="utf-8"))

    return read


@pytest.fixture
def make_session(settings, history_store, vault, tmp_path):
    """Build a ChatSession whose HTTP traffic goes to ``handler``."""

    def make(handler=None, provider=None, observer=None):
        def refuse(request):
            return httpx.Response(500, json={"error": {"message": "unexpected request"}})

        session = ChatSession(
            settings,
            history_store,
            notes=FileNoteStore(vault),
            client=mock_client(handler or refuse),
            observer=observer,
            settings_path=tmp_path / "data.json",
        )
        if provider is not None:
            session.router.route = lambda model: provider
        return session

    return make


@pytest.fixture
def sample_messages():
    return [
        Message.user("Hi"),
        Message.assistant("Hello! How can I help?"),
        Message.user("/model"),
        Message.assistant("Current model: gpt-4"),
        Message.user("Tell me a joke"),
        Message.assistant("Why did the chicken cross the road?"),
    ]
