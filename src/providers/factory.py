"""Factories that build provider clients from settings."""

from typing import Optional

import httpx

from shared.config import ProviderSettings
from shared.logging import get_logger
from providers.base import ImageClient, TextClient
from providers.credentials import CredentialStore, SettingsCredentialStore
from providers.mock import MockImageClient, MockTextClient
from providers.openrouter import OpenRouterDynamicTextClient, OpenRouterImageClient

logger = get_logger(__name__)

SUPPORTED_PROVIDERS = ("openrouter", "mock")


def _check_provider(settings: ProviderSettings) -> None:
    if settings.provider not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unsupported provider: {settings.provider}. "
            f"Supported: {list(SUPPORTED_PROVIDERS)}"
        )


def create_text_client(
    settings: ProviderSettings,
    credentials: Optional[CredentialStore] = None,
    model: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> TextClient:
    """
    Create a text client for the configured provider.

    Args:
        settings: Provider configuration
        credentials: Key source; defaults to reading ``settings.api_key``
        model: Default model; defaults to ``settings.text_model``
        http_client: Optional shared HTTP client

    Raises:
        ValueError: If the provider is not supported
    """
    _check_provider(settings)
    model = model or settings.text_model
    logger.info("Creating text client", provider=settings.provider, model=model)

    if settings.provider == "mock":
        return MockTextClient(model=model)

    return OpenRouterDynamicTextClient(
        credentials or SettingsCredentialStore(settings),
        model=model,
        settings=settings,
        http_client=http_client,
    )


def create_image_client(
    settings: ProviderSettings,
    credentials: Optional[CredentialStore] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> ImageClient:
    """Create an image client for the configured provider."""
    _check_provider(settings)
    logger.info("Creating image client", provider=settings.provider)

    if settings.provider == "mock":
        return MockImageClient()

    return OpenRouterImageClient(
        credentials or SettingsCredentialStore(settings),
        settings=settings,
        http_client=http_client,
    )
