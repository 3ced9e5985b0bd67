"""Platform-aware path resolution for settings, history and notes."""

import os
import re
import sys
from pathlib import Path


def get_data_dir() -> Path:
    """Return the directory holding settings and chat history."""
    env = os.environ.get("BMO_DATA_DIR")
    if env:
        return Path(env)

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "bmo-chatbot"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "bmo-chatbot"
    else:  # Linux
        return Path.home() / ".config" / "bmo-chatbot"


def get_settings_path() -> Path:
    """Return the path to the settings JSON file."""
    env = os.environ.get("BMO_SETTINGS_PATH")
    if env:
        return Path(env)

    return get_data_dir() / "data.json"


def get_vault_path() -> Path:
    """Return the root directory notes and prompt files are read from."""
    env = os.environ.get("BMO_VAULT_PATH")
    if env:
        return Path(env)

    return Path.cwd()


def history_file_name(profile: str) -> str:
    """Return the history file name for a profile, relative to the data dir.

    ``BMO.md`` -> ``history/messageHistory_BMO.json``
    """
    stem = re.sub(r"\.[^/.]+$", "", profile) or "default"
    safe = "".join(c if c.isalnum() or c in "-_ " else "_" for c in stem)
    return f"history/messageHistory_{safe}.json"
