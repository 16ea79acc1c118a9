"""Shared models, errors, settings and logging for the orchestration core."""

from shared.models import (
    ChatMessage,
    ConversationState,
    GenerationParams,
    MessageEnvelope,
    MessageType,
    Modality,
    RehydrationTurn,
    RequestOptions,
    TokenUsage,
    TurnResult,
)
from shared.errors import (
    ConversationNotFoundError,
    EmptyCompletionError,
    NoClientConfiguredError,
    NoModelConfiguredError,
    NotConfiguredError,
    OrchestrationError,
    ProviderHttpError,
    SvgExtractionError,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ChatMessage",
    "ConversationState",
    "GenerationParams",
    "MessageEnvelope",
    "MessageType",
    "Modality",
    "RehydrationTurn",
    "RequestOptions",
    "TokenUsage",
    "TurnResult",
    "ConversationNotFoundError",
    "EmptyCompletionError",
    "NoClientConfiguredError",
    "NoModelConfiguredError",
    "NotConfiguredError",
    "OrchestrationError",
    "ProviderHttpError",
    "SvgExtractionError",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
