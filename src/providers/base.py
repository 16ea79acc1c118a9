"""Provider client contracts.

A provider client wraps exactly one outbound HTTP call per operation. Clients
are stateless apart from their default model; the model used for a call is
always resolved per call and never stored back on the client.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from shared.models import (
    ChatMessage,
    ImageGenerationRequest,
    ImageGenerationResult,
    RequestOptions,
    TextCompletion,
    TokenUsage,
)


class TextClient(ABC):
    """
    Abstract base class for text completion providers.

    Implementations translate an ordered message array plus options into a
    single chat-completions request and parse the single response.
    """

    @abstractmethod
    def get_model(self) -> str:
        """Model used when a call does not name one."""

    @abstractmethod
    async def is_configured(self) -> bool:
        """True iff credentials are present. Never touches the network."""

    @abstractmethod
    async def create_completion(
        self,
        messages: list[ChatMessage],
        options: Optional[RequestOptions] = None
    ) -> TextCompletion:
        """
        Create a text completion.

        Args:
            messages: Full conversation, system message first
            options: Per-call model, temperature, token limit and cancel event

        Returns:
            Completion content with finish reason and usage if reported

        Raises:
            NotConfiguredError: If credentials are absent at call time
            ProviderHttpError: If the provider answers with a non-success status
            EmptyCompletionError: If the provider returns zero choices
        """


class ImageClient(ABC):
    """Abstract base class for image generation providers."""

    @abstractmethod
    async def is_configured(self) -> bool:
        """True iff credentials are present. Never touches the network."""

    @abstractmethod
    async def generate_images(self, request: ImageGenerationRequest) -> ImageGenerationResult:
        """
        Generate images from a conversation.

        Raises:
            NotConfiguredError: If credentials are absent at call time
            ProviderHttpError: If the provider answers with a non-success status
            EmptyCompletionError: If the provider returns zero usable images
        """


def _first_present(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def parse_usage(raw: Optional[dict[str, Any]]) -> Optional[TokenUsage]:
    """
    Convert a provider ``usage`` object to :class:`TokenUsage`.

    Native token counts win over normalized ones; the total is always the sum
    of prompt and completion. Returns ``None`` when the provider reported no
    usage at all so that callers can tell it apart from zero usage.
    """
    if not raw:
        return None

    prompt = _first_present(raw, "native_tokens_prompt", "prompt_tokens") or 0
    completion = _first_present(raw, "native_tokens_completion", "completion_tokens") or 0
    cost = _first_present(raw, "cost", "total_cost")

    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=prompt + completion,
        cost_usd=cost,
    )
