"""Conversation: the ordered, persisted log of turns.

Turns are addressed by their stable ``Message.id`` rather than by position.
Every mutation runs under one ``asyncio.Lock`` and writes the full history to
the history store before returning, so the in-memory list and its JSON mirror
agree after each call.
"""

import asyncio
import logging

from .core import ASSISTANT, Message
from .errors import PersistenceError
from .store import HistoryStore

logger = logging.getLogger(__name__)


class TurnNotFoundError(KeyError):
    """No turn with the given id exists in the conversation."""


class Conversation:
    def __init__(self, store: HistoryStore):
        self.store = store
        self._turns: list[Message] = []
        self._lock = asyncio.Lock()
        self.dirty = False

    # ── Reads ────────────────────────────────────────────────────────

    @property
    def messages(self) -> list[Message]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __contains__(self, turn_id: str) -> bool:
        return any(m.id == turn_id for m in self._turns)

    def get(self, turn_id: str) -> Message:
        return self._turns[self._index(turn_id)]

    def reply_to(self, turn_id: str) -> Message | None:
        """Return the assistant turn directly following ``turn_id``, if any."""
        i = self._index(turn_id)
        if i + 1 < len(self._turns) and self._turns[i + 1].role == ASSISTANT:
            return self._turns[i + 1]
        return None

    def history_through(self, turn_id: str) -> list[Message]:
        """Return all turns up to and including ``turn_id``."""
        return self._turns[: self._index(turn_id) + 1]

    # ── Mutations ────────────────────────────────────────────────────

    def load(self) -> None:
        self._turns = self.store.load()
        self.dirty = False
        logger.info("Loaded %d turns from %s", len(self._turns), self.store.path)

    async def append(self, message: Message) -> Message:
        async with self._lock:
            self._turns.append(message)
            self._persist()
        return message

    async def insert_after(self, anchor_id: str, message: Message) -> Message:
        async with self._lock:
            i = self._index(anchor_id)
            self._turns.insert(i + 1, message)
            self._persist()
        return message

    async def delete(self, turn_id: str) -> list[Message]:
        """Remove a turn and the assistant turn right after it."""
        async with self._lock:
            i = self._index(turn_id)
            end = i + 2 if i + 1 < len(self._turns) and self._turns[i + 1].role == ASSISTANT else i + 1
            removed = self._turns[i:end]
            del self._turns[i:end]
            self._persist()
        return removed

    async def remove_reply(self, turn_id: str) -> Message | None:
        """Remove only the assistant reply following ``turn_id``."""
        async with self._lock:
            i = self._index(turn_id)
            reply = None
            if i + 1 < len(self._turns) and self._turns[i + 1].role == ASSISTANT:
                reply = self._turns.pop(i + 1)
            self._persist()
        return reply

    async def edit(self, turn_id: str, content: str) -> Message:
        async with self._lock:
            message = self._turns[self._index(turn_id)]
            message.content = content
            self._persist()
        return message

    async def clear(self) -> None:
        async with self._lock:
            self._turns.clear()
            self._persist()

    async def replace(self, messages: list[Message]) -> None:
        """Swap in a whole conversation, e.g. one loaded from a saved note."""
        async with self._lock:
            self._turns = list(messages)
            self._persist()

    # ── Private helpers ──────────────────────────────────────────────

    def _index(self, turn_id: str) -> int:
        for i, m in enumerate(self._turns):
            if m.id == turn_id:
                return i
        raise TurnNotFoundError(turn_id)

    def _persist(self) -> None:
        try:
            self.store.save(self._turns)
        except PersistenceError as e:
            # In-memory turns stay authoritative; the next write reconciles.
            self.dirty = True
            logger.error("%s", e)
            return
        self.dirty = False
