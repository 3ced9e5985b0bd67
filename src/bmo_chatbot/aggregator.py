"""Stream aggregation, cancellation tokens and renderer hooks.

A request moves through ``IDLE -> REQUESTING -> STREAMING`` and ends in
``COMPLETED``, ``ABORTED`` or ``FAILED``. The aggregator accumulates deltas and
reports the full accumulated text on every delta, so renderers can re-render
idempotently. It never touches the conversation itself; the session decides
what to commit from the returned ``StreamResult``.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum

from .core import ChatRequest, Message
from .errors import AbortError, ChatError, ProviderRequestError
from .provider import ChatProvider

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class CancelReason(str, Enum):
    STOPPED = "stopped"  # user pressed stop; partial text is kept
    SUPERSEDED = "superseded"  # a newer request took the slot; nothing is kept


class CancelToken:
    """Cancellation handle for one request.

    The consuming task is bound to the token, so cancelling interrupts a
    pending network read as well as a running stream.
    """

    def __init__(self, generation: int):
        self.generation = generation
        self.reason: CancelReason | None = None
        self._task: asyncio.Future | None = None

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    @property
    def superseded(self) -> bool:
        return self.reason is CancelReason.SUPERSEDED

    def bind(self, task: asyncio.Future) -> None:
        self._task = task
        if self.cancelled:
            task.cancel()

    def cancel(self, reason: CancelReason = CancelReason.STOPPED) -> None:
        if self.reason is not None:
            return
        self.reason = reason
        if self._task is not None and not self._task.done():
            self._task.cancel()


class ConversationObserver:
    """Hooks a renderer implements to follow a request. All are optional."""

    def on_request(self, anchor: Message) -> None:
        pass

    def on_delta(self, text: str, delta: str, autoscroll: bool) -> None:
        pass

    def on_complete(self, text: str) -> None:
        pass

    def on_error(self, error: ChatError, partial: str) -> None:
        pass

    def on_abort(self, partial: str, reason: CancelReason) -> None:
        """A stopped request keeps ``partial``; a superseded one is about to be replaced."""

    def on_notice(self, text: str) -> None:
        pass


def notify(observer: ConversationObserver, hook: str, *args) -> None:
    """Call an observer hook; renderer failures are logged, never raised."""
    try:
        getattr(observer, hook)(*args)
    except Exception:
        logger.exception("Observer hook %s failed", hook)


@dataclass
class StreamResult:
    state: RequestState
    text: str = ""
    error: ChatError | None = None
    superseded: bool = False
    message: Message | None = None  # set once the reply is committed

    @property
    def should_commit(self) -> bool:
        if self.superseded:
            return False
        if self.state is RequestState.COMPLETED:
            return True
        return self.state in (RequestState.ABORTED, RequestState.FAILED) and bool(self.text)


class StreamAggregator:
    def __init__(self, provider: ChatProvider, observer: ConversationObserver, token: CancelToken):
        self.provider = provider
        self.observer = observer
        self.token = token
        self.state = RequestState.IDLE
        self.text = ""
        self.autoscroll = True

    def suspend_autoscroll(self) -> None:
        """Called by the renderer once the user scrolls by hand."""
        self.autoscroll = False

    async def run(self, request: ChatRequest, anchor: Message) -> StreamResult:
        self.state = RequestState.REQUESTING
        notify(self.observer, "on_request", anchor)
        logger.debug("Request %d to %s (%s)", self.token.generation, self.provider.name, request.model)

        task = asyncio.ensure_future(self._consume(request))
        self.token.bind(task)
        try:
            await task
        except asyncio.CancelledError:
            if not self.token.cancelled:
                task.cancel()
                raise
            return self._aborted()
        except ChatError as e:
            return self._failed(e)
        except Exception as e:
            logger.exception("Unexpected error from %s", self.provider.name)
            return self._failed(ProviderRequestError(self.provider.name, str(e) or type(e).__name__))

        if self.token.cancelled:
            return self._aborted()

        self.state = RequestState.COMPLETED
        notify(self.observer, "on_complete", self.text)
        return StreamResult(RequestState.COMPLETED, self.text)

    async def _consume(self, request: ChatRequest) -> None:
        if self.provider.streaming_enabled():
            async with aclosing(self.provider.stream(request)) as deltas:
                async for delta in deltas:
                    self._emit(delta)
        else:
            self._emit(await self.provider.complete(request))

    def _emit(self, delta: str) -> None:
        if self.token.cancelled:
            return
        if self.state is RequestState.REQUESTING:
            self.state = RequestState.STREAMING
        self.text += delta
        notify(self.observer, "on_delta", self.text, delta, self.autoscroll)

    def _aborted(self) -> StreamResult:
        self.state = RequestState.ABORTED
        superseded = self.token.superseded
        logger.info("Request %d %s after %d chars", self.token.generation, self.token.reason.value, len(self.text))
        notify(self.observer, "on_abort", self.text, self.token.reason)
        return StreamResult(RequestState.ABORTED, self.text, AbortError("Request aborted"), superseded=superseded)

    def _failed(self, error: ChatError) -> StreamResult:
        self.state = RequestState.FAILED
        logger.error("Request %d failed: %s", self.token.generation, error)
        notify(self.observer, "on_error", error, self.text)
        return StreamResult(RequestState.FAILED, self.text, error)
