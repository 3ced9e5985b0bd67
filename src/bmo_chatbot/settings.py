"""Settings model and JSON persistence.

The settings file mirrors the plugin's data.json: a ``general`` section, one
connection block per provider and the profile/prompt metadata the chat core
reads. Appearance and UI toggles are ignored.

The plugin writes most numbers as strings (``"1.00"``, ``"2048"``) and uses
``""`` for "not set", so every section is a pydantic model: numeric strings
are coerced, blanks become ``None`` and anything else is rejected.
"""

import json
import logging
from functools import reduce
from pathlib import Path
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_ROLE = "You are a helpful assistant."
DEFAULT_TEMPERATURE = 1.0


def _blank_to_none(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value


def _blank_temperature(value: Any) -> Any:
    value = _blank_to_none(value)
    return DEFAULT_TEMPERATURE if value is None else value


def _number_to_str(value: Any) -> Any:
    value = _blank_to_none(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _split_stop(value: Any) -> Any:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


OptionalInt = Annotated[Optional[int], BeforeValidator(_blank_to_none)]
OptionalFloat = Annotated[Optional[float], BeforeValidator(_blank_to_none)]
Temperature = Annotated[float, BeforeValidator(_blank_temperature)]


class GeneralSettings(BaseModel):
    model: str = ""
    system_role: str = DEFAULT_SYSTEM_ROLE
    max_tokens: OptionalInt = None
    temperature: Temperature = DEFAULT_TEMPERATURE
    enable_reference_current_note: bool = False
    strict_model_routing: bool = False


class ProfileSettings(BaseModel):
    profile: str = "BMO.md"
    profile_folder_path: str = "BMO/Profiles"


class PromptSettings(BaseModel):
    prompt: str = ""
    prompt_folder_path: str = "BMO/Prompts"


class ChatHistorySettings(BaseModel):
    """Where /save writes conversation notes and /load reads them back."""

    chat_history_path: str = "BMO/History"
    template_file_path: str = ""


class OllamaParameters(BaseModel):
    """Model options forwarded to Ollama. ``None`` means "use server default"."""

    mirostat: OptionalInt = 0
    mirostat_eta: OptionalFloat = 0.1
    mirostat_tau: OptionalFloat = 5.0
    num_ctx: OptionalInt = 2048
    num_gqa: OptionalInt = None
    num_thread: OptionalInt = None
    repeat_last_n: OptionalInt = 64
    repeat_penalty: OptionalFloat = 1.1
    seed: OptionalInt = None
    stop: Annotated[list[str], BeforeValidator(_split_stop)] = Field(default_factory=list)
    tfs_z: OptionalFloat = 1.0
    top_k: OptionalInt = 40
    top_p: OptionalFloat = 0.9
    min_p: OptionalFloat = 0.0
    keep_alive: Annotated[Optional[str], BeforeValidator(_number_to_str)] = None


class OllamaConnection(BaseModel):
    rest_api_url: str = "http://localhost:11434"
    enable_stream: bool = True
    use_generate_endpoint: bool = False
    parameters: OllamaParameters = Field(default_factory=OllamaParameters)
    models: list[str] = Field(default_factory=list)


class RESTAPIURLConnection(BaseModel):
    api_key: str = ""
    rest_api_url: str = ""
    enable_stream: bool = False
    models: list[str] = Field(default_factory=list)


class AnthropicConnection(BaseModel):
    api_key: str = ""
    enable_stream: bool = False
    models: list[str] = Field(default_factory=list)


class GoogleGeminiConnection(BaseModel):
    api_key: str = ""
    models: list[str] = Field(default_factory=list)


class MistralConnection(BaseModel):
    api_key: str = ""
    enable_stream: bool = False
    models: list[str] = Field(default_factory=list)


class OpenAIConnection(BaseModel):
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    enable_stream: bool = True
    models: list[str] = Field(default_factory=list)


class OpenRouterConnection(BaseModel):
    api_key: str = ""
    enable_stream: bool = False
    models: list[str] = Field(default_factory=list)


class Settings(BaseModel):
    general: GeneralSettings = Field(default_factory=GeneralSettings)
    profiles: ProfileSettings = Field(default_factory=ProfileSettings)
    prompts: PromptSettings = Field(default_factory=PromptSettings)
    chat_history: ChatHistorySettings = Field(default_factory=ChatHistorySettings)
    ollama: OllamaConnection = Field(default_factory=OllamaConnection)
    rest_api_url: RESTAPIURLConnection = Field(default_factory=RESTAPIURLConnection)
    anthropic: AnthropicConnection = Field(default_factory=AnthropicConnection)
    google_gemini: GoogleGeminiConnection = Field(default_factory=GoogleGeminiConnection)
    mistral: MistralConnection = Field(default_factory=MistralConnection)
    openai: OpenAIConnection = Field(default_factory=OpenAIConnection)
    open_router: OpenRouterConnection = Field(default_factory=OpenRouterConnection)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Validate a data.json dict. Unknown keys are ignored; bad values raise ``ValidationError``."""
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump()

    def apply_front_matter(self, front_matter: dict) -> list[str]:
        """Override settings from a profile note's front matter.

        Keys are validated like data.json values before anything changes, so a
        bad value raises ``ValidationError`` and leaves the settings untouched.
        Unknown keys and empty values are skipped. Returns the keys applied.
        """
        updates: dict[str, dict] = {}
        applied = []
        for key, value in front_matter.items():
            target = FRONT_MATTER_KEYS.get(key)
            if target is None or value is None:
                continue
            section, name = target
            updates.setdefault(section, {})[name] = value
            applied.append(key)

        validated = {}
        for section, values in updates.items():
            current = self._section(section)
            validated[section] = type(current).model_validate({**current.model_dump(), **values})
        for section, values in updates.items():
            current = self._section(section)
            for name in values:
                setattr(current, name, getattr(validated[section], name))
        return applied

    def _section(self, path: str) -> BaseModel:
        return reduce(getattr, path.split("."), self)


# Profile note front matter keys and the setting each one overrides.
FRONT_MATTER_KEYS = {
    "model": ("general", "model"),
    "max_tokens": ("general", "max_tokens"),
    "temperature": ("general", "temperature"),
    "enable_reference_current_note": ("general", "enable_reference_current_note"),
    "prompt": ("prompts", "prompt"),
    **{f"ollama_{name}": ("ollama.parameters", name) for name in OllamaParameters.model_fields},
}


def load_settings(path: Path) -> Settings:
    """Load settings from ``path``; a missing, unreadable or invalid file yields defaults."""
    if not path.exists():
        logger.info("No settings file at %s, using defaults", path)
        return Settings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to read settings file %s: %s", path, e)
        return Settings()
    if not isinstance(data, dict):
        logger.warning("Settings file %s does not hold an object, using defaults", path)
        return Settings()
    try:
        return Settings.from_dict(data)
    except ValidationError as e:
        logger.warning("Invalid settings in %s, using defaults: %s", path, e)
        return Settings()


def save_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
