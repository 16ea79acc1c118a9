"""Provider clients.

The only components in the core that perform outbound HTTP calls.
"""

from providers.base import ImageClient, TextClient, parse_usage
from providers.credentials import (
    CredentialStore,
    SettingsCredentialStore,
    StaticCredentialStore,
)
from providers.factory import create_image_client, create_text_client
from providers.mock import MockImageClient, MockTextClient
from providers.openrouter import (
    OpenRouterDynamicTextClient,
    OpenRouterImageClient,
    OpenRouterTextClient,
)

__all__ = [
    "ImageClient",
    "TextClient",
    "parse_usage",
    "CredentialStore",
    "SettingsCredentialStore",
    "StaticCredentialStore",
    "create_image_client",
    "create_text_client",
    "MockImageClient",
    "MockTextClient",
    "OpenRouterDynamicTextClient",
    "OpenRouterImageClient",
    "OpenRouterTextClient",
]
