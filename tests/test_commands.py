"""Tests for slash commands."""

import json

import pytest

from conftest import FakeProvider, RecordingObserver


@pytest.fixture
def session(make_session):
    return make_session(provider=FakeProvider(["x"]))


async def _run(session, text):
    return await session.commands.dispatch(text)


class TestCommands:

    @pytest.mark.asyncio
    async def test_help_aliases(self, session):
        for alias in ("/help", "/h", "/man", "/manual", "/commands"):
            assert "/model" in await _run(session, alias)

    @pytest.mark.asyncio
    async def test_unknown(self, session):
        assert "Command not found: /bogus" in await _run(session, "/bogus")

    @pytest.mark.asyncio
    async def test_model_list(self, session):
        text = await _run(session, "/model")
        assert text.startswith("Current model: gpt-4")
        assert "1. gpt-3.5-turbo" in text
        assert "anthropic:" in text

    @pytest.mark.asyncio
    async def test_model_select_by_number(self, session, tmp_path):
        models = session.router.all_models()
        reply = await _run(session, "/m 1")
        assert reply == f"Updated model to {models[0]}"
        assert session.settings.general.model == models[0]
        saved = json.loads((tmp_path / "data.json").read_text(encoding="utf-8"))
        assert saved["general"]["model"] == models[0]

    @pytest.mark.asyncio
    async def test_model_select_by_name(self, session):
        assert await _run(session, "/models claude-2.1") == "Updated model to claude-2.1"

    @pytest.mark.asyncio
    async def test_model_invalid(self, session):
        assert "out of range" in await _run(session, "/model 999")
        assert "not found" in await _run(session, "/model nope")
        assert session.settings.general.model == "gpt-4"

    @pytest.mark.asyncio
    async def test_temperature_clamped(self, session):
        assert await _run(session, "/temp 3") == "Temperature updated to 2.00"
        assert session.settings.general.temperature == 2.0
        assert await _run(session, "/temperature -1") == "Temperature updated to 0.00"
        assert "Invalid" in await _run(session, "/temp warm")

    @pytest.mark.asyncio
    async def test_max_tokens(self, session):
        assert await _run(session, "/maxtokens 300") == "Max tokens updated to 300"
        assert session.settings.general.max_tokens == 300
        assert "Invalid" in await _run(session, "/maxtokens -5")
        assert await _run(session, "/maxtokens c") == "Max tokens cleared."
        assert session.settings.general.max_tokens is None

    @pytest.mark.asyncio
    async def test_reference(self, session):
        await _run(session, "/ref on")
        assert session.settings.general.enable_reference_current_note
        await _run(session, "/reference off")
        assert not session.settings.general.enable_reference_current_note
        assert "is off" in await _run(session, "/ref")

    @pytest.mark.asyncio
    async def test_profile_list(self, session):
        text = await _run(session, "/profile")
        assert text.splitlines() == ["Current profile: BMO", "  1. BMO", "  2. Pirate"]

    @pytest.mark.asyncio
    async def test_profile_switch(self, session):
        assert await _run(session, "/p pirate") == "Profile updated to Pirate"
        assert session.settings.profiles.profile == "Pirate.md"
        assert await _run(session, "/prof 1") == "Profile updated to BMO"
        assert "not found" in await _run(session, "/profiles Ghost")

    @pytest.mark.asyncio
    async def test_clear(self, session):
        await session.send("Hi")
        assert await _run(session, "/c") == "Chat history cleared."
        assert len(session.conversation) == 0

    @pytest.mark.asyncio
    async def test_send_routes_commands_to_notice(self, make_session):
        observer = RecordingObserver()
        session = make_session(provider=FakeProvider(["x"]), observer=observer)
        assert await session.send("/maxtokens 10") is None
        assert observer.of("notice") == ["Max tokens updated to 10"]


class TestPromptCommand:

    @pytest.mark.asyncio
    async def test_list(self, session):
        text = await _run(session, "/prompt")
        assert text.splitlines() == ["Current prompt: Empty", "  1. Concise"]

    @pytest.mark.asyncio
    async def test_select_and_clear(self, session, tmp_path):
        assert await _run(session, "/prompts concise") == "Prompt updated to Concise"
        assert session.settings.prompts.prompt == "Concise.md"
        assert session.prompts.build().endswith("\n\nBe concise.")
        saved = json.loads((tmp_path / "data.json").read_text(encoding="utf-8"))
        assert saved["prompts"]["prompt"] == "Concise.md"

        assert await _run(session, "/prompt c") == "Prompt cleared."
        assert session.settings.prompts.prompt == ""
        assert await _run(session, '/prompt "1"') == "Prompt updated to Concise"
        assert "not found" in await _run(session, "/prompt Ghost")


class TestChatHistoryNotes:

    @pytest.mark.asyncio
    async def test_save(self, session, vault):
        await session.send("Hi")
        reply = await _run(session, "/save")

        assert reply.startswith("Saved to 'BMO/History/Chat History ")
        [note] = (vault / "BMO" / "History").iterdir()
        assert note.read_text(encoding="utf-8") == "---\nmodel: gpt-4\n---\n###### YOU\nHi\n\n###### BMO\nx\n"

    @pytest.mark.asyncio
    async def test_save_uses_template(self, session, vault):
        (vault / "Template.md").write_text("---\ntags: [chat]\n---\n# Log\n", encoding="utf-8")
        session.settings.chat_history.template_file_path = "Template.md"
        await session.send("Hi")
        await _run(session, "/save")

        [note] = (vault / "BMO" / "History").iterdir()
        text = note.read_text(encoding="utf-8")
        assert text.startswith("---\nmodel: gpt-4\ntags: [chat]\n---\n# Log\n###### YOU\nHi\n")

    @pytest.mark.asyncio
    async def test_append(self, session, vault):
        await session.send("Hi")
        assert await _run(session, "/append") == "No active Markdown file detected."

        session.active_note = "note.md"
        assert await _run(session, "/append") == "Appended conversation."
        text = (vault / "note.md").read_text(encoding="utf-8")
        assert text == "---\ntitle: Note\n---\nThe sky is green.\n###### YOU\nHi\n\n###### BMO\nx\n"

    @pytest.mark.asyncio
    async def test_load(self, session, vault, read_history):
        history = vault / "BMO" / "History"
        history.mkdir(parents=True)
        (history / "Old chat.md").write_text(
            "---\nmodel: gpt-4\n---\n###### YOU\nWhat is 2+2?\n\n###### BMO\nIt is 4.\n\n---\n\nAnything else?\n",
            encoding="utf-8",
        )
        await session.send("Hi")

        assert (await _run(session, "/load")).splitlines() == ["Chat History", "  1. Old chat"]
        assert await _run(session, "/load 'old chat'") == "Switched to 'BMO/History/Old chat.md' chat history."
        assert [(m.role, m.content) for m in session.conversation.messages] == [
            ("user", "What is 2+2?"),
            ("assistant", "It is 4.\n\n---\n\nAnything else?"),
        ]
        assert read_history()[0] == {"role": "user", "content": "What is 2+2?"}

    @pytest.mark.asyncio
    async def test_load_rejects_unpaired_turns(self, session, vault):
        history = vault / "BMO" / "History"
        history.mkdir(parents=True)
        (history / "Broken.md").write_text("###### YOU\nHello?\n", encoding="utf-8")
        await session.send("Hi")

        assert "Incorrect formatting" in await _run(session, "/load 1")
        assert [m.content for m in session.conversation.messages] == ["Hi", "x"]
        assert "not found" in await _run(session, "/load 7")
