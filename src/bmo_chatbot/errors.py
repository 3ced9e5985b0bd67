"""Exception taxonomy for the chat core."""


class ChatError(Exception):
    """Base class for every error raised by bmo-chatbot."""


class RoutingError(ChatError):
    """The active model cannot be mapped to a provider."""

    def __init__(self, model: str, message: str):
        super().__init__(message)
        self.model = model


class ModelNotFoundError(RoutingError):
    def __init__(self, model: str):
        super().__init__(model, f"Model not found: {model!r}. Check your connections or refresh the model lists.")


class AmbiguousModelError(RoutingError):
    def __init__(self, model: str, providers: list[str]):
        super().__init__(model, f"Model {model!r} is listed by several providers: {', '.join(providers)}")
        self.providers = providers


class ProviderRequestError(ChatError):
    """Non-2xx response or transport failure from a provider."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.provider} error ({self.status_code}): {self.message}"
        return f"{self.provider} error: {self.message}"


class StreamParseError(ChatError):
    """A single stream chunk could not be decoded."""

    def __init__(self, line: str, reason: str):
        super().__init__(f"{reason}: {line[:200]!r}")
        self.line = line


class AbortError(ChatError):
    """The in-flight request was cancelled by the user."""


class PersistenceError(ChatError):
    """Writing conversation history to the note store failed."""


class HistoryFormatError(ChatError):
    """A saved conversation note does not pair user and assistant turns."""
