"""OpenRouter provider clients.

OpenRouter exposes many vendors' models through one chat-completions
endpoint. Each client call performs exactly one POST and parses exactly one
response; there is no retry or fallback at this layer.
"""

import asyncio
import contextlib
import re
from typing import Any, Awaitable, Optional

import httpx

from shared.config import ProviderSettings
from shared.errors import (
    EmptyCompletionError,
    NotConfiguredError,
    ProviderHttpError,
    RequestCancelledError,
)
from shared.logging import get_logger
from shared.models import (
    ChatMessage,
    GeneratedImage,
    ImageGenerationRequest,
    ImageGenerationResult,
    RequestOptions,
    TextCompletion,
)
from providers.base import ImageClient, TextClient, parse_usage
from providers.credentials import CredentialStore

logger = get_logger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(image/[\w.+-]+);base64,")


async def _cancellable(
    request: Awaitable[httpx.Response],
    cancel_event: asyncio.Event
) -> httpx.Response:
    """Await ``request`` unless ``cancel_event`` fires first."""
    request_task = asyncio.ensure_future(request)
    cancel_task = asyncio.ensure_future(cancel_event.wait())

    try:
        done, _ = await asyncio.wait(
            {request_task, cancel_task},
            return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        request_task.cancel()
        raise
    finally:
        cancel_task.cancel()

    if request_task in done:
        return request_task.result()

    request_task.cancel()
    with contextlib.suppress(asyncio.CancelledError, httpx.HTTPError):
        await request_task
    raise RequestCancelledError()


class OpenRouterClientBase:
    """
    Transport shared by the OpenRouter clients.

    The API key is looked up on every call. The HTTP client is created
    lazily unless one is injected, in which case the caller owns it.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        settings: Optional[ProviderSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.credentials = credentials
        self.settings = settings or ProviderSettings()
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def completions_url(self) -> str:
        return f"{self.settings.base_url.rstrip('/')}/chat/completions"

    def _get_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": self.settings.referer,
            "X-Title": self.settings.app_title,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.settings.timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def is_configured(self) -> bool:
        return await self.credentials.has_api_key()

    async def _require_api_key(self) -> str:
        api_key = await self.credentials.get_api_key()
        if not api_key:
            raise NotConfiguredError()
        return api_key

    async def _post_chat(
        self,
        api_key: str,
        body: dict[str, Any],
        cancel_event: Optional[asyncio.Event] = None
    ) -> dict[str, Any]:
        """POST one chat-completions request and return the decoded body."""
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelledError()

        client = await self._get_client()
        request = client.post(
            self.completions_url,
            json=body,
            headers=self._get_headers(api_key)
        )

        if cancel_event is None:
            response = await request
        else:
            response = await _cancellable(request, cancel_event)

        if response.is_error:
            logger.error(
                "OpenRouter API error",
                status_code=response.status_code,
                body=response.text
            )
            raise ProviderHttpError(response.status_code, response.text)

        data = response.json()
        logger.debug(
            "OpenRouter response received",
            has_usage=bool(data.get("usage")),
            usage=data.get("usage")
        )
        return data


class OpenRouterTextClient(OpenRouterClientBase, TextClient):
    """Text completions via OpenRouter."""

    def __init__(
        self,
        credentials: CredentialStore,
        model: Optional[str] = None,
        settings: Optional[ProviderSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ) -> None:
        super().__init__(credentials, settings, http_client)
        self._default_model = model or self.settings.text_model

    def get_model(self) -> str:
        return self._default_model

    async def create_completion(
        self,
        messages: list[ChatMessage],
        options: Optional[RequestOptions] = None
    ) -> TextCompletion:
        """Create a completion; the model is ``options.model`` or the client default."""
        options = options or RequestOptions()
        # Resolved once; concurrent calls never observe each other's model
        model = options.model or self._default_model

        api_key = await self._require_api_key()

        body: dict[str, Any] = {
            "model": model,
            "messages": [m.to_api() for m in messages],
            "temperature": (
                options.temperature
                if options.temperature is not None
                else self.settings.temperature
            ),
            "max_tokens": options.max_tokens or self.settings.max_tokens,
            "usage": {"include": True},
        }
        if options.seed is not None:
            body["seed"] = options.seed

        logger.debug(
            "Calling OpenRouter text completion",
            model=model,
            message_count=len(messages)
        )

        data = await self._post_chat(api_key, body, options.cancel_event)

        choices = data.get("choices") or []
        if not choices:
            raise EmptyCompletionError("No completion choice returned from OpenRouter")

        choice = choices[0]
        message = choice.get("message") or {}

        return TextCompletion(
            content=message.get("content") or "",
            finish_reason=choice.get("finish_reason"),
            usage=parse_usage(data.get("usage")),
            id=data.get("id"),
        )


class OpenRouterDynamicTextClient(OpenRouterTextClient):
    """
    Text client whose default model can be changed after construction.

    Callers should pass the model per call in :class:`RequestOptions`;
    ``set_model`` only changes the fallback used by calls that name none.
    """

    def set_model(self, model: str) -> None:
        logger.warning("set_model() is deprecated. Pass model in RequestOptions instead.")
        self._default_model = model
        logger.debug("Default text model changed", model=model)


class OpenRouterImageClient(OpenRouterClientBase, ImageClient):
    """Image generation via OpenRouter's multimodal chat completions."""

    async def generate_images(self, request: ImageGenerationRequest) -> ImageGenerationResult:
        api_key = await self._require_api_key()

        body: dict[str, Any] = {
            "model": request.model,
            "messages": [m.to_api() for m in request.messages],
            "modalities": ["image", "text"],
            "image_config": {"aspect_ratio": request.aspect_ratio},
            "usage": {"include": True},
        }
        if request.seed is not None:
            body["seed"] = request.seed

        logger.debug(
            "Calling OpenRouter image generation",
            model=request.model,
            aspect_ratio=request.aspect_ratio,
            seed=request.seed,
            message_count=len(request.messages)
        )

        data = await self._post_chat(api_key, body, request.cancel_event)
        return self._parse_response(data, request.seed)

    def _parse_response(
        self,
        data: dict[str, Any],
        requested_seed: Optional[int]
    ) -> ImageGenerationResult:
        choices = data.get("choices") or []
        message = (choices[0].get("message") or {}) if choices else {}
        raw_images = message.get("images") or []

        if not raw_images:
            raise EmptyCompletionError("No images returned from API")

        seed = requested_seed if requested_seed is not None else 0
        images: list[GeneratedImage] = []

        for index, raw in enumerate(raw_images):
            url = (raw.get("image_url") or {}).get("url")
            if not url:
                logger.warning("Image missing URL", index=index)
                continue

            match = DATA_URL_PATTERN.match(url)
            if not match:
                logger.warning("Image is not a valid data URL", index=index)
                continue

            images.append(GeneratedImage(data=url, mime_type=match.group(1), seed=seed))

        if not images:
            raise EmptyCompletionError("Failed to parse images from API response")

        return ImageGenerationResult(
            images=images,
            seed=seed,
            usage=parse_usage(data.get("usage")),
        )
