"""Chat session: owns one conversation and the request slot acting on it.

The session is the controller behind every renderer (HTTP API, terminal). It
routes the active model, assembles requests, runs the stream aggregator and
commits replies. One request may be in flight at a time: starting another
supersedes it and its output is discarded ("last request wins"), while
``stop()`` aborts it and keeps whatever text already arrived.
"""

import logging
from pathlib import Path

import httpx
from pydantic import ValidationError

from .aggregator import (
    CancelReason,
    CancelToken,
    ConversationObserver,
    RequestState,
    StreamAggregator,
    StreamResult,
    notify,
)
from .backends import get_providers, refresh_models
from .commands import CommandDispatcher
from .config import get_data_dir, get_settings_path, get_vault_path, history_file_name
from .conversation import Conversation
from .core import USER, ChatRequest, Message
from .errors import RoutingError
from .prompt import PromptBuilder, prepare_history, split_front_matter
from .router import ModelRouter
from .settings import DEFAULT_SYSTEM_ROLE, Settings, load_settings, save_settings
from .store import FileNoteStore, HistoryStore, NoteStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(10.0, read=300.0)


class InvalidOperationError(ValueError):
    """The requested mutation does not apply to the addressed turn."""


class ChatSession:
    def __init__(
        self,
        settings: Settings,
        history: HistoryStore,
        notes: NoteStore | None = None,
        client: httpx.AsyncClient | None = None,
        observer: ConversationObserver | None = None,
        settings_path: Path | None = None,
    ):
        self.settings = settings
        self.notes = notes
        self.settings_path = settings_path
        self.observer = observer or ConversationObserver()
        self.conversation = Conversation(history)

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        self.providers = get_providers(settings, self.client)
        self.router = ModelRouter(settings, self.providers)
        self.prompts = PromptBuilder(notes, settings)
        self.commands = CommandDispatcher(self)

        # Vault path of the note open in the host, for "reference current note".
        self.active_note: str | None = None

        self._generation = 0
        self._token: CancelToken | None = None
        self._anchor_id: str | None = None
        self._aggregator: StreamAggregator | None = None

    @classmethod
    def from_config(cls, **kwargs) -> "ChatSession":
        """Create a session from the environment/platform default paths."""
        settings_path = get_settings_path()
        settings = load_settings(settings_path)
        history = HistoryStore(FileNoteStore(get_data_dir()), history_file_name(settings.profiles.profile))
        session = cls(settings, history, notes=FileNoteStore(get_vault_path()), settings_path=settings_path, **kwargs)
        session.conversation.load()
        return session

    async def aclose(self) -> None:
        self._cancel(CancelReason.SUPERSEDED)
        if self._owns_client:
            await self.client.aclose()

    # ── Request slot ─────────────────────────────────────────────────

    @property
    def in_flight(self) -> bool:
        return self._token is not None

    def stop(self) -> bool:
        """Abort the in-flight request, keeping its partial reply."""
        if self._token is None:
            return False
        self._token.cancel(CancelReason.STOPPED)
        return True

    def suspend_autoscroll(self) -> None:
        if self._aggregator is not None:
            self._aggregator.suspend_autoscroll()

    def _cancel(self, reason: CancelReason) -> None:
        if self._token is not None:
            self._token.cancel(reason)

    def _begin_request(self) -> CancelToken:
        self._cancel(CancelReason.SUPERSEDED)
        self._generation += 1
        self._token = CancelToken(self._generation)
        return self._token

    def _end_request(self, token: CancelToken) -> None:
        if self._token is token:
            self._token = None
            self._anchor_id = None
            self._aggregator = None

    # ── Operations ───────────────────────────────────────────────────

    async def send(self, text: str, observer: ConversationObserver | None = None) -> StreamResult | None:
        """Handle user input: run a slash command or append it and fetch a reply."""
        observer = observer or self.observer
        if not text.strip():
            return None
        if text.lstrip().startswith("/"):
            reply = await self.commands.dispatch(text.strip())
            notify(observer, "on_notice", reply)
            return None

        message = await self.conversation.append(Message.user(text))
        return await self._fetch(message, observer)

    async def regenerate(self, turn_id: str, observer: ConversationObserver | None = None) -> StreamResult:
        """Replace the reply to a user turn with a fresh one."""
        message = self.conversation.get(turn_id)
        if message.role != USER:
            raise InvalidOperationError("Only user turns can be regenerated")
        await self.conversation.remove_reply(turn_id)
        return await self._fetch(message, observer or self.observer)

    async def edit(self, turn_id: str, content: str,
                   observer: ConversationObserver | None = None) -> StreamResult | None:
        """Change a turn's content; edited user turns get a new reply."""
        message = self.conversation.get(turn_id)
        if message.role == USER:
            if self._anchor_id == turn_id:
                self._cancel(CancelReason.SUPERSEDED)
            await self.conversation.edit(turn_id, content)
            await self.conversation.remove_reply(turn_id)
            return await self._fetch(message, observer or self.observer)
        await self.conversation.edit(turn_id, content)
        return None

    async def delete(self, turn_id: str) -> list[Message]:
        """Delete a turn together with the assistant reply following it."""
        if self._anchor_id == turn_id:
            self._cancel(CancelReason.SUPERSEDED)
        return await self.conversation.delete(turn_id)

    async def clear(self) -> None:
        self._cancel(CancelReason.SUPERSEDED)
        await self.conversation.clear()
        logger.info("Chat history cleared")

    async def replace_history(self, messages: list[Message]) -> None:
        self._cancel(CancelReason.SUPERSEDED)
        await self.conversation.replace(messages)
        logger.info("Chat history replaced with %d messages", len(messages))

    async def switch_profile(self, profile: str) -> None:
        """Switch to another profile and load the conversation stored for it."""
        self._cancel(CancelReason.SUPERSEDED)
        self.settings.profiles.profile = profile
        self.apply_profile()
        store = self.conversation.store
        self.conversation = Conversation(HistoryStore(store.notes, history_file_name(profile)))
        self.conversation.load()
        self.save_settings()

    def apply_profile(self) -> bool:
        """Apply the current profile note to the settings.

        The note's front matter overrides the model and sampling settings and
        its body becomes the system role. Returns False when the note cannot be
        read; invalid front matter is logged and skipped.
        """
        profiles = self.settings.profiles
        path = f"{profiles.profile_folder_path.rstrip('/')}/{profiles.profile}"
        if self.notes is None or not self.notes.exists(path):
            logger.warning("Profile note %s not found", path)
            return False
        try:
            content = self.notes.read(path)
        except OSError as e:
            logger.warning("Failed to read profile note %s: %s", path, e)
            return False

        front_matter, body = split_front_matter(content)
        try:
            applied = self.settings.apply_front_matter(front_matter)
        except ValidationError as e:
            logger.warning("Ignoring invalid front matter in %s: %s", path, e)
        else:
            logger.debug("Profile %s set %s", profiles.profile, ", ".join(applied) or "nothing")
        self.settings.general.system_role = body or DEFAULT_SYSTEM_ROLE
        return True


    async def refresh_models(self) -> dict[str, list[str]]:
        refreshed = await refresh_models(self.providers)
        self.router.rebuild()
        self.save_settings()
        return refreshed

    def save_settings(self) -> None:
        if self.settings_path is None:
            return
        try:
            save_settings(self.settings, self.settings_path)
        except OSError as e:
            logger.error("Failed to save settings to %s: %s", self.settings_path, e)

    # ── Private helpers ──────────────────────────────────────────────

    def build_request(self, anchor_id: str) -> ChatRequest:
        general = self.settings.general
        return ChatRequest(
            model=general.model,
            system_prompt=self.prompts.build(self.active_note),
            messages=prepare_history(self.conversation.history_through(anchor_id)),
            max_tokens=general.max_tokens,
            temperature=general.temperature,
        )

    async def _fetch(self, anchor: Message, observer: ConversationObserver) -> StreamResult:
        token = self._begin_request()
        self._anchor_id = anchor.id
        try:
            try:
                provider = self.router.route(self.settings.general.model)
            except RoutingError as e:
                logger.warning("%s", e)
                notify(observer, "on_error", e, "")
                return StreamResult(RequestState.FAILED, error=e)

            self._aggregator = StreamAggregator(provider, observer, token)
            result = await self._aggregator.run(self.build_request(anchor.id), anchor)

            if result.should_commit and not token.superseded:
                result.message = await self._commit(anchor, result.text)
            return result
        finally:
            self._end_request(token)

    async def _commit(self, anchor: Message, text: str) -> Message | None:
        if anchor.id not in self.conversation:
            logger.warning("Turn %s was removed before its reply arrived; dropping reply", anchor.id)
            return None
        return await self.conversation.insert_after(anchor.id, Message.assistant(text))
