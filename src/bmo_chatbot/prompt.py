"""System prompt assembly and the history filters applied before every request."""

import logging
import re

import yaml

from .core import ASSISTANT, USER, Message
from .settings import Settings
from .store import NoteStore

logger = logging.getLogger(__name__)

# Only a block opening on the note's first line counts; later "---" lines are rules.
_FRONT_MATTER = re.compile(r"\A\s*---[ \t]*\r?\n(.*?)^---[ \t]*\r?$\n?", re.DOTALL | re.MULTILINE)


def split_front_matter(text: str) -> tuple[dict, str]:
    """Split a note into its YAML front matter and the stripped body.

    Malformed YAML is logged and treated as empty front matter.
    """
    match = _FRONT_MATTER.match(text)
    if match is None:
        return {}, text.strip()
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        logger.warning("Ignoring invalid front matter: %s", e)
        data = {}
    if not isinstance(data, dict):
        data = {}
    return data, text[match.end():].strip()


def strip_front_matter(text: str) -> str:
    """Remove a leading YAML front matter block and surrounding whitespace."""
    return split_front_matter(text)[1]


def filter_message_history(messages: list[Message]) -> list[Message]:
    """Drop slash-command turns together with the assistant reply after each."""
    skip = set()
    for i, message in enumerate(messages):
        if message.is_command:
            skip.add(i)
            if i + 1 < len(messages) and messages[i + 1].role == ASSISTANT:
                skip.add(i + 1)
    return [m for i, m in enumerate(messages) if i not in skip]


def remove_consecutive_user_roles(messages: list[Message]) -> list[Message]:
    """Keep turns up to the first of two consecutive user turns.

    ``[user A, user B]`` -> ``[user A]``
    """
    result = []
    previous_was_user = False
    for message in messages:
        if message.role == USER:
            if previous_was_user:
                break
            previous_was_user = True
        else:
            previous_was_user = False
        result.append(message)
    return result


def prepare_history(messages: list[Message]) -> list[Message]:
    return remove_consecutive_user_roles(filter_message_history(messages))


class PromptBuilder:
    """Builds the system prompt from settings and notes.

    The result is the reference note (when enabled), then ``system_role``, then
    the configured prompt file.
    """

    def __init__(self, notes: NoteStore | None, settings: Settings):
        self.notes = notes
        self.settings = settings

    def reference_note(self, active_note: str | None) -> str:
        if not self.settings.general.enable_reference_current_note or not active_note:
            return ""
        if not active_note.endswith(".md"):
            return ""
        content = self._read(active_note)
        if content is None:
            return ""
        return "Reference Note:\n\n" + strip_front_matter(content) + "\n\n"

    def prompt_file(self) -> str:
        prompts = self.settings.prompts
        name = prompts.prompt.strip()
        if not name:
            return ""
        if not name.endswith(".md"):
            name += ".md"
        content = self._read(f"{prompts.prompt_folder_path.rstrip('/')}/{name}")
        return strip_front_matter(content) if content else ""

    def build(self, active_note: str | None = None) -> str:
        system_prompt = self.reference_note(active_note) + self.settings.general.system_role
        prompt = self.prompt_file()
        if prompt:
            system_prompt += "\n\n" + prompt
        return system_prompt

    def _read(self, path: str) -> str | None:
        if self.notes is None:
            return None
        try:
            return self.notes.read(path)
        except OSError as e:
            logger.warning("Error reading file %s: %s", path, e)
            return None
