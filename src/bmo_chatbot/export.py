"""Export a conversation to Markdown and JSON formats, and read saved notes back."""

import json
import re

from .core import USER, Message
from .errors import HistoryFormatError
from .prompt import filter_message_history, split_front_matter

HEADING = "###### "


def conversation_to_markdown(messages: list[Message], user_name: str = "YOU", chatbot_name: str = "BMO") -> str:
    """Export the conversation as Markdown, one headed block per turn.

    Slash commands and the replies to them are left out.
    """
    blocks = []
    for msg in filter_message_history(messages):
        name = user_name if msg.role == USER else chatbot_name
        blocks.append(f"{HEADING}{name}\n{msg.content}\n")
    return "\n".join(blocks)


def conversation_to_json(messages: list[Message]) -> str:
    """Export the conversation in the same ``{role, content}`` form it is stored in."""
    return json.dumps([msg.to_dict() for msg in messages], indent=4, ensure_ascii=False)


def conversation_to_note(messages: list[Message], model: str, template: str = "",
                         user_name: str = "YOU", chatbot_name: str = "BMO") -> str:
    """Render the conversation as a vault note recording ``model`` in its front matter.

    ``template`` goes first. When it has front matter without a ``model`` key,
    the key is added to it.
    """
    if template.lstrip().startswith("---"):
        if not re.search(r"^model:\s", template, re.MULTILINE):
            template = template.replace("---", f"---\nmodel: {model}", 1)
        header = template
    else:
        header = f"---\nmodel: {model}\n---\n" + template
    if not header.endswith("\n"):
        header += "\n"
    return header + conversation_to_markdown(messages, user_name, chatbot_name)


def markdown_to_conversation(text: str) -> list[Message]:
    """Parse a note written by ``conversation_to_note`` back into turns.

    Headings alternate user and assistant starting with the user, whatever
    names they carry. Text before the first heading is ignored.
    """
    _, body = split_front_matter(text)
    blocks: list[list[str]] = []
    for line in body.splitlines():
        if line.startswith(HEADING):
            blocks.append([])
        elif blocks:
            blocks[-1].append(line)

    if len(blocks) % 2:
        raise HistoryFormatError("Incorrect formatting: every user turn needs a reply heading")
    messages = []
    for i, lines in enumerate(blocks):
        content = "\n".join(lines).strip()
        messages.append(Message.user(content) if i % 2 == 0 else Message.assistant(content))
    return messages
