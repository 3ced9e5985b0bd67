"""Core data models for bmo-chatbot."""

import uuid
from dataclasses import dataclass, field
from typing import Optional

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"

ROLES = (SYSTEM, USER, ASSISTANT)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Message:
    """A single turn in a conversation.

    ``id`` is an in-memory handle used to address the turn; it is not part of
    the persisted ``{role, content}`` form.
    """

    role: str  # "system" | "user" | "assistant"
    content: str
    id: str = field(default_factory=_new_id, compare=False)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=ASSISTANT, content=content)

    @property
    def is_command(self) -> bool:
        """True for slash-command input, e.g. ``/clear``."""
        return self.role == USER and self.content.startswith("/")

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatRequest:
    """Everything a provider adapter needs to issue one completion call."""

    model: str
    system_prompt: str
    messages: list[Message]
    max_tokens: Optional[int] = None
    temperature: float = 1.0

    def message_dicts(self) -> list[dict]:
        return [m.to_dict() for m in self.messages]
