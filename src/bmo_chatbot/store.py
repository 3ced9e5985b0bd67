"""Note store contract and the JSON message history store built on it."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from .core import ROLES, Message
from .errors import PersistenceError

logger = logging.getLogger(__name__)


class NoteStore(ABC):
    """Minimal file access the chat core needs from its host.

    Paths are vault-relative, ``/``-separated strings.
    """

    @abstractmethod
    def read(self, path: str) -> str:
        ...

    @abstractmethod
    def write(self, path: str, text: str) -> None:
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def mkdir(self, path: str) -> None:
        ...

    def list_files(self, folder: str) -> list[str]:
        """Return paths of the files directly inside ``folder``."""
        return []


class FileNoteStore(NoteStore):
    """Note store over a directory on the local filesystem."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        return self.root.joinpath(*PurePosixPath(path).parts)

    def read(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    def write(self, path: str, text: str) -> None:
        self._resolve(path).write_text(text, encoding="utf-8")

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def mkdir(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def list_files(self, folder: str) -> list[str]:
        directory = self._resolve(folder)
        if not directory.is_dir():
            return []
        prefix = folder.rstrip("/")
        return [f"{prefix}/{p.name}" for p in sorted(directory.iterdir()) if p.is_file()]


class HistoryStore:
    """Reads and writes a conversation as a pretty-printed JSON array."""

    def __init__(self, notes: NoteStore, path: str):
        self.notes = notes
        self.path = path

    def load(self) -> list[Message]:
        """Return the persisted turns, or an empty list if none are readable."""
        if not self.notes.exists(self.path):
            return []

        try:
            data = json.loads(self.notes.read(self.path))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to read message history %s: %s", self.path, e)
            return []

        if not isinstance(data, list):
            logger.warning("Message history %s is not a JSON array, ignoring", self.path)
            return []

        messages = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            role = entry.get("role")
            content = entry.get("content")
            if role not in ROLES or not isinstance(content, str):
                logger.debug("Skipping malformed history entry: %r", entry)
                continue
            messages.append(Message(role=role, content=content))
        return messages

    def save(self, messages: list[Message]) -> None:
        payload = json.dumps([m.to_dict() for m in messages], indent=4, ensure_ascii=False)
        parent = str(PurePosixPath(self.path).parent)
        try:
            if parent not in ("", ".") and not self.notes.exists(parent):
                self.notes.mkdir(parent)
            self.notes.write(self.path, payload)
        except OSError as e:
            raise PersistenceError(f"Error writing message history {self.path}: {e}") from e
