"""FastAPI web server for bmo-chatbot."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import PurePosixPath

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel

from .aggregator import ConversationObserver, StreamResult
from .conversation import TurnNotFoundError
from .export import conversation_to_json, conversation_to_markdown
from .session import ChatSession, InvalidOperationError

logger = logging.getLogger(__name__)

# Session (created on first request)
_session: ChatSession | None = None


def _get_session() -> ChatSession:
    """Lazily create and cache the chat session."""
    global _session
    if _session is None:
        _session = ChatSession.from_config()
        logger.info("Loaded session for profile %s", _session.settings.profiles.profile)
    return _session


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _session is not None:
        await _session.aclose()


app = FastAPI(title="bmo-chatbot", version="0.1.0", lifespan=lifespan)


class SendBody(BaseModel):
    content: str
    active_note: str | None = None


class EditBody(BaseModel):
    content: str


class QueueObserver(ConversationObserver):
    """Forwards observer hooks to a queue as ``(event, data)`` pairs."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.notices: list[str] = []

    def on_request(self, anchor):
        self.queue.put_nowait(("request", {"anchor_id": anchor.id}))

    def on_delta(self, text, delta, autoscroll):
        self.queue.put_nowait(("delta", {"text": text, "delta": delta, "autoscroll": autoscroll}))

    def on_complete(self, text):
        self.queue.put_nowait(("complete", {"text": text}))

    def on_error(self, error, partial):
        self.queue.put_nowait(("error", {"error": str(error), "text": partial}))

    def on_abort(self, partial, reason):
        self.queue.put_nowait(("abort", {"text": partial, "reason": reason.value}))

    def on_notice(self, text):
        self.notices.append(text)
        self.queue.put_nowait(("notice", {"text": text}))


def _message_to_dict(msg) -> dict:
    """Convert a Message dataclass to a JSON-serializable dict."""
    return {"id": msg.id, "role": msg.role, "content": msg.content}


def _result_to_dict(result: StreamResult | None) -> dict | None:
    if result is None:
        return None
    return {
        "state": result.state.value,
        "text": result.text,
        "error": str(result.error) if result.error else None,
        "superseded": result.superseded,
        "message": _message_to_dict(result.message) if result.message else None,
    }


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def _prepare_send(session: ChatSession, body: SendBody) -> None:
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Message is empty")
    if body.active_note is not None:
        session.active_note = body.active_note


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/history")
async def get_history():
    """Return the current conversation."""
    session = _get_session()
    return {
        "profile": session.settings.profiles.profile,
        "dirty": session.conversation.dirty,
        "messages": [_message_to_dict(m) for m in session.conversation.messages],
    }


@app.delete("/api/history")
async def clear_history():
    """Clear the conversation thread."""
    await _get_session().clear()
    return {"cleared": True}


@app.post("/api/messages")
async def send_message(body: SendBody):
    """Send user input and wait for the full reply (or the command output)."""
    session = _get_session()
    _prepare_send(session, body)
    observer = QueueObserver()
    result = await session.send(body.content, observer)
    return {"result": _result_to_dict(result), "notices": observer.notices}


@app.post("/api/messages/stream")
async def stream_message(body: SendBody):
    """Send user input and stream the observer events as Server-Sent Events."""
    session = _get_session()
    _prepare_send(session, body)
    observer = QueueObserver()

    async def events():
        task = asyncio.ensure_future(session.send(body.content, observer))
        task.add_done_callback(lambda _: observer.queue.put_nowait(None))
        while True:
            item = await observer.queue.get()
            if item is None:
                break
            yield _sse(*item)
        result = await task
        yield _sse("result", {"result": _result_to_dict(result)})

    return StreamingResponse(events(), media_type="text/event-stream")


@app.post("/api/turns/{turn_id}/regenerate")
async def regenerate_turn(turn_id: str):
    """Replace the reply to a user turn."""
    session = _get_session()
    try:
        result = await session.regenerate(turn_id)
    except TurnNotFoundError:
        raise HTTPException(status_code=404, detail="Turn not found")
    except InvalidOperationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"result": _result_to_dict(result)}


@app.patch("/api/turns/{turn_id}")
async def edit_turn(turn_id: str, body: EditBody):
    """Edit a turn; editing a user turn regenerates its reply."""
    session = _get_session()
    try:
        result = await session.edit(turn_id, body.content)
        message = session.conversation.get(turn_id)
    except TurnNotFoundError:
        raise HTTPException(status_code=404, detail="Turn not found")
    return {"message": _message_to_dict(message), "result": _result_to_dict(result)}


@app.delete("/api/turns/{turn_id}")
async def delete_turn(turn_id: str):
    """Delete a turn and the reply following it."""
    try:
        removed = await _get_session().delete(turn_id)
    except TurnNotFoundError:
        raise HTTPException(status_code=404, detail="Turn not found")
    return {"removed": [_message_to_dict(m) for m in removed]}


@app.post("/api/stop")
async def stop_request():
    """Abort the in-flight request, keeping its partial reply."""
    return {"stopped": _get_session().stop()}


@app.get("/api/models")
async def get_models():
    """Return the routable models grouped by provider."""
    session = _get_session()
    return {
        "current": session.settings.general.model,
        "models": session.router.models(),
        "conflicts": session.router.conflicts,
    }


@app.post("/api/models/refresh")
async def refresh_models():
    """Re-fetch model lists from every configured provider."""
    session = _get_session()
    refreshed = await session.refresh_models()
    return {"refreshed": sorted(refreshed), "models": session.router.models()}


@app.get("/api/export")
async def export_history(format: str = Query("md", description="Export format: md or json")):
    """Export the conversation as Markdown or JSON."""
    session = _get_session()
    messages = session.conversation.messages
    name = "messageHistory_" + PurePosixPath(session.settings.profiles.profile).stem

    if format == "json":
        return Response(
            content=conversation_to_json(messages),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{name}.json"'},
        )
    elif format == "md":
        return Response(
            content=conversation_to_markdown(messages),
            media_type="text/markdown",
            headers={"Content-Disposition": f'attachment; filename="{name}.md"'},
        )
    raise HTTPException(status_code=400, detail=f"Unknown export format: {format}")
