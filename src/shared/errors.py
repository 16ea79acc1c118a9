"""Error taxonomy for conversation orchestration.

Every error is raised by the layer that detects it and propagates unhandled
through ``send``/``continue_conversation``. Nothing here is retried.
"""

from typing import Optional


API_KEY_MISSING_MESSAGE = (
    "API key not configured. Please add your OpenRouter API key in Settings."
)


class OrchestrationError(Exception):
    """Base exception for orchestration failures."""

    code = "ORCHESTRATION_ERROR"


class NoClientConfiguredError(OrchestrationError):
    """Orchestrator used before a provider client was injected."""

    code = "NO_CLIENT_CONFIGURED"

    def __init__(self, modality: str = "provider") -> None:
        super().__init__(f"No {modality} client configured. Call set_client() first.")


class NotConfiguredError(OrchestrationError):
    """Provider credentials are missing."""

    code = "NOT_CONFIGURED"

    def __init__(self, message: str = API_KEY_MISSING_MESSAGE) -> None:
        super().__init__(message)


class ConversationNotFoundError(OrchestrationError):
    """Unknown conversation id and nothing to rehydrate it from."""

    code = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(
            f"Conversation {conversation_id} not found. Please start a new generation."
        )


class ProviderError(OrchestrationError):
    """Base exception for provider client failures."""

    code = "PROVIDER_ERROR"


class ProviderHttpError(ProviderError):
    """Provider answered with a non-success HTTP status."""

    code = "PROVIDER_HTTP_ERROR"

    def __init__(self, status_code: int, body: str, provider: str = "OpenRouter") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider} API error ({status_code}): {body}")


class EmptyCompletionError(ProviderError):
    """HTTP call succeeded but the provider returned no usable choice or image."""

    code = "EMPTY_COMPLETION"


class RequestCancelledError(ProviderError):
    """The in-flight provider request was cancelled by the caller."""

    code = "REQUEST_CANCELLED"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or "Provider request was cancelled")


class SvgExtractionError(OrchestrationError):
    """Completion contained no parseable SVG markup."""

    code = "SVG_EXTRACTION_ERROR"

    def __init__(self, message: str = "No valid SVG code found in response") -> None:
        super().__init__(message)


class NoModelConfiguredError(OrchestrationError):
    """No model was passed for a call and the orchestrator has no default."""

    code = "NO_MODEL_CONFIGURED"

    def __init__(self, modality: str = "provider") -> None:
        super().__init__(
            f"No {modality} model configured. Pass a model or set a default model."
        )
