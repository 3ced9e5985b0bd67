"""Slash commands typed into the chat input.

Commands are never appended to the conversation. Each handler returns the
text shown to the user as a notice.
"""

import logging
from datetime import datetime
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Awaitable, Callable

from .errors import HistoryFormatError
from .export import conversation_to_markdown, conversation_to_note, markdown_to_conversation

if TYPE_CHECKING:
    from .session import ChatSession

logger = logging.getLogger(__name__)

HELP_TEXT = """\
General Commands
  /clear or /c - Clear chat history.
  /ref on | /ref off - Turn "reference current note" on or off.
  /maxtokens [VALUE] - Set max tokens (/maxtokens c to clear).
  /temp [VALUE] - Change temperature (0 to 2).

Profile Commands
  /profile - List profiles.
  /profile [PROFILE-NAME] or [VALUE] - Change profile.

Model Commands
  /model - List models.
  /model [MODEL-NAME] or [VALUE] - Change model.

Prompt Commands
  /prompt - List prompts.
  /prompt [PROMPT-NAME] or [VALUE] - Change prompt (/prompt c to clear).

Editor Commands
  /append - Append the conversation to the active note.

Chat History Commands
  /save - Save the conversation as a note.
  /load - List saved conversations.
  /load [FILE-NAME] or [VALUE] - Replace the conversation with a saved one.

Response Commands
  /stop or /s - Stop fetching response."""


Handler = Callable[["ChatSession", str], Awaitable[str]]


async def command_help(session: "ChatSession", args: str) -> str:
    return HELP_TEXT


async def command_model(session: "ChatSession", args: str) -> str:
    models = session.router.all_models()
    general = session.settings.general

    if not args:
        lines = [f"Current model: {general.model or '(none)'}"]
        for provider, names in session.router.models().items():
            lines.append("")
            lines.append(f"{provider}:")
            for name in names:
                lines.append(f"  {models.index(name) + 1}. {name}")
        return "\n".join(lines)

    if args.isdigit():
        index = int(args) - 1
        if not 0 <= index < len(models):
            return f"Model index {args} out of range."
        selected = models[index]
    elif args in models:
        selected = args
    else:
        return f"Model '{args}' not found."

    general.model = selected
    session.save_settings()
    logger.info("Model set to %s", selected)
    return f"Updated model to {selected}"


async def command_temperature(session: "ChatSession", args: str) -> str:
    general = session.settings.general
    if not args:
        return f"Current temperature: {general.temperature:.2f}"
    try:
        value = float(args)
    except ValueError:
        return "Invalid temperature. Use a number from 0 to 2."

    general.temperature = min(max(value, 0.0), 2.0)
    session.save_settings()
    return f"Temperature updated to {general.temperature:.2f}"


async def command_max_tokens(session: "ChatSession", args: str) -> str:
    general = session.settings.general
    if not args:
        return f"Current max tokens: {general.max_tokens if general.max_tokens is not None else '(default)'}"
    if args.lower() in ("c", "clear"):
        general.max_tokens = None
        session.save_settings()
        return "Max tokens cleared."
    if not args.isdigit():
        return "Invalid max tokens. Use a whole number of 0 or more."

    general.max_tokens = int(args)
    session.save_settings()
    return f"Max tokens updated to {general.max_tokens}"


async def command_reference(session: "ChatSession", args: str) -> str:
    general = session.settings.general
    value = args.lower()
    if value == "on":
        general.enable_reference_current_note = True
    elif value == "off":
        general.enable_reference_current_note = False
    else:
        state = "on" if general.enable_reference_current_note else "off"
        return f"Reference current note is {state}. Use /ref on or /ref off."
    session.save_settings()
    return f"Reference current note turned {value}."


async def command_profile(session: "ChatSession", args: str) -> str:
    profiles = session.settings.profiles
    names = _note_names(session, profiles.profile_folder_path)
    current = PurePosixPath(profiles.profile).stem

    if not args:
        lines = [f"Current profile: {current}"]
        lines.extend(f"  {i}. {name}" for i, name in enumerate(names, 1))
        return "\n".join(lines)

    args = _unquote(args)
    selected = _select(names, args)
    if selected is None:
        return f"Profile '{args}' not found."

    await session.switch_profile(selected + ".md")
    return f"Profile updated to {selected}"



async def command_prompt(session: "ChatSession", args: str) -> str:
    prompts = session.settings.prompts
    names = _note_names(session, prompts.prompt_folder_path)

    if not args:
        current = PurePosixPath(prompts.prompt).stem if prompts.prompt else "Empty"
        lines = [f"Current prompt: {current}"]
        lines.extend(f"  {i}. {name}" for i, name in enumerate(names, 1))
        return "\n".join(lines)

    args = _unquote(args)
    if args.lower() in ("c", "clear"):
        prompts.prompt = ""
        session.save_settings()
        return "Prompt cleared."

    selected = _select(names, args)
    if selected is None:
        return f"Prompt '{args}' not found."
    prompts.prompt = selected + ".md"
    session.save_settings()
    return f"Prompt updated to {selected}"


async def command_save(session: "ChatSession", args: str) -> str:
    """Write the conversation to a new note in the chat history folder."""
    settings = session.settings
    notes = session.notes
    if notes is None:
        return "No note vault configured."

    folder = settings.chat_history.chat_history_path.strip().rstrip("/") or "BMO/History"
    template_path = settings.chat_history.template_file_path.strip()
    path = f"{folder}/Chat History {datetime.now():%Y-%m-%d %H-%M-%S}.md"
    try:
        template = notes.read(template_path) if template_path and notes.exists(template_path) else ""
        text = conversation_to_note(
            session.conversation.messages,
            settings.general.model,
            template,
            chatbot_name=_chatbot_name(session),
        )
        if not notes.exists(folder):
            notes.mkdir(folder)
        notes.write(path, text)
    except OSError as e:

        logger.error("Failed to save conversation to %s: %s", path, e)
        return f"Failed to save conversation: {e}"
    logger.info("Saved conversation to %s", path)
    return f"Saved to '{path}'"


async def command_append(session: "ChatSession", args: str) -> str:
    """Append the conversation to the note open in the host."""
    notes = session.notes
    note = session.active_note
    if notes is None or not note or not note.endswith(".md") or not notes.exists(note):
        return "No active Markdown file detected."

    markdown = conversation_to_markdown(session.conversation.messages, chatbot_name=_chatbot_name(session))
    try:
        notes.write(note, notes.read(note) + "\n" + markdown)
    except OSError as e:
        logger.error("Failed to append conversation to %s: %s", note, e)
        return f"Failed to append conversation: {e}"
    return "Appended conversation."


async def command_load(session: "ChatSession", args: str) -> str:
    """Replace the conversation with one saved by /save."""
    folder = session.settings.chat_history.chat_history_path.strip().rstrip("/") or "BMO/History"
    names = _note_names(session, folder)

    if not args:
        lines = ["Chat History"]
        lines.extend(f"  {i}. {name}" for i, name in enumerate(names, 1))
        return "\n".join(lines)

    args = _unquote(args)
    selected = _select(names, args)
    if selected is None:
        return f"Chat history '{args}' not found."
    path = f"{folder}/{selected}.md"
    try:
        messages = markdown_to_conversation(session.notes.read(path))
    except OSError as e:
        logger.error("Failed to read %s: %s", path, e)
        return f"Failed to load chat history: {e}"
    except HistoryFormatError as e:
        return str(e)

    await session.replace_history(messages)
    return f"Switched to '{path}' chat history."


async def command_clear(session: "ChatSession", args: str) -> str:
    await session.clear()
    return "Chat history cleared."


async def command_stop(session: "ChatSession", args: str) -> str:
    if session.stop():
        return "Response stopped."
    return "No response in progress."


COMMANDS: dict[str, Handler] = {}

for _aliases, _handler in (
    (("/help", "/h", "/man", "/manual", "/commands"), command_help),
    (("/model", "/m", "/models"), command_model),
    (("/temperature", "/temp"), command_temperature),
    (("/maxtokens",), command_max_tokens),
    (("/reference", "/ref"), command_reference),
    (("/profile", "/p", "/prof", "/profiles"), command_profile),
    (("/prompt", "/prompts"), command_prompt),
    (("/save",), command_save),
    (("/append",), command_append),
    (("/load",), command_load),
    (("/clear", "/c"), command_clear),
    (("/stop", "/s"), command_stop),
):
    for _alias in _aliases:
        COMMANDS[_alias] = _handler


def _note_names(session: "ChatSession", folder: str) -> list[str]:
    notes = session.notes
    if notes is None:
        return []
    return sorted(PurePosixPath(p).stem for p in notes.list_files(folder) if p.endswith(".md"))


def _select(names: list[str], args: str) -> str | None:
    """Pick a name by its 1-based list number or, case-insensitively, by name."""
    if args.isdigit():
        index = int(args) - 1
        return names[index] if 0 <= index < len(names) else None
    return next((n for n in names if n.lower() == args.lower()), None)


def _unquote(args: str) -> str:
    if len(args) >= 2 and args[0] == args[-1] and args[0] in "\"'":
        return args[1:-1].strip()
    return args


def _chatbot_name(session: "ChatSession") -> str:
    return PurePosixPath(session.settings.profiles.profile).stem.upper() or "BMO"



class CommandDispatcher:
    def __init__(self, session: "ChatSession"):
        self.session = session

    async def dispatch(self, text: str) -> str:
        name, _, args = text.strip().partition(" ")
        handler = COMMANDS.get(name.lower())
        if handler is None:
            return f"Command not found: {name}. Type /help for a list of commands."
        logger.debug("Running command %s", name)
        return await handler(self.session, args.strip())
