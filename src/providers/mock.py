"""Mock provider clients for running without network access."""

from typing import Any, Optional

from shared.errors import NotConfiguredError
from shared.models import (
    ChatMessage,
    GeneratedImage,
    ImageGenerationRequest,
    ImageGenerationResult,
    RequestOptions,
    TextCompletion,
    TokenUsage,
)
from providers.base import ImageClient, TextClient

MOCK_PNG_DATA_URL = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class MockTextClient(TextClient):
    """Mock text client that records calls and returns preset responses."""

    def __init__(self, model: str = "mock/text-model", configured: bool = True) -> None:
        self.model = model
        self.configured = configured
        self.call_history: list[dict[str, Any]] = []
        self._next_responses: list[TextCompletion] = []

    def set_next_response(self, response: TextCompletion) -> None:
        """Queue a response; queued responses are returned in order."""
        self._next_responses.append(response)

    def get_model(self) -> str:
        return self.model

    async def is_configured(self) -> bool:
        return self.configured

    async def create_completion(
        self,
        messages: list[ChatMessage],
        options: Optional[RequestOptions] = None
    ) -> TextCompletion:
        if not self.configured:
            raise NotConfiguredError()

        options = options or RequestOptions()
        self.call_history.append({
            "messages": [m.model_copy(deep=True) for m in messages],
            "model": options.model or self.model,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        })

        if self._next_responses:
            return self._next_responses.pop(0)

        return TextCompletion(
            content="This is a mock response.",
            finish_reason="stop",
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )


class MockImageClient(ImageClient):
    """Mock image client returning a 1x1 PNG unless a result is preset."""

    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.call_history: list[ImageGenerationRequest] = []
        self._next_results: list[ImageGenerationResult] = []

    def set_next_result(self, result: ImageGenerationResult) -> None:
        self._next_results.append(result)

    async def is_configured(self) -> bool:
        return self.configured

    async def generate_images(self, request: ImageGenerationRequest) -> ImageGenerationResult:
        if not self.configured:
            raise NotConfiguredError()

        # Snapshot messages; the conversation keeps growing after the call
        self.call_history.append(request.model_copy(
            update={"messages": [m.model_copy(deep=True) for m in request.messages]}
        ))

        if self._next_results:
            return self._next_results.pop(0)

        seed = request.seed if request.seed is not None else 0
        return ImageGenerationResult(
            images=[GeneratedImage(data=MOCK_PNG_DATA_URL, mime_type="image/png", seed=seed)],
            seed=seed,
        )
