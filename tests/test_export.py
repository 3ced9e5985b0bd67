"""Tests for export functionality."""

import json

from bmo_chatbot.core import Message
from bmo_chatbot.export import conversation_to_json, conversation_to_markdown


class TestMarkdownExport:

    def test_blocks(self):
        messages = [Message.user("Hi"), Message.assistant("Hello")]
        assert conversation_to_markdown(messages) == "###### YOU\nHi\n\n###### BMO\nHello\n"

    def test_skips_commands(self, sample_messages):
        md = conversation_to_markdown(sample_messages)
        assert "/model" not in md
        assert "Current model" not in md
        assert "Tell me a joke" in md

    def test_custom_names(self):
        md = conversation_to_markdown([Message.user("Hi")], user_name="Finn", chatbot_name="Jake")
        assert md == "###### Finn\nHi\n"

    def test_empty(self):
        assert conversation_to_markdown([]) == ""


class TestJSONExport:

    def test_matches_history_format(self, sample_messages):
        data = json.loads(conversation_to_json(sample_messages))
        assert len(data) == 6
        assert data[2] == {"role": "user", "content": "/model"}

    def test_unicode_preserved(self):
        assert "¡Hola!" in conversation_to_json([Message.assistant("¡Hola!")])
