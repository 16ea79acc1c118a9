"""Credential sources for provider clients.

Secret storage itself lives outside this core; clients only need an async
lookup that is consulted on every call so that a key added or removed at
runtime takes effect immediately.
"""

from abc import ABC, abstractmethod
from typing import Optional

from shared.config import ProviderSettings
from shared.logging import get_logger

logger = get_logger(__name__)


class CredentialStore(ABC):
    """Read access to the provider API key."""

    @abstractmethod
    async def get_api_key(self) -> Optional[str]:
        """Return the API key, or None if none is stored."""

    async def has_api_key(self) -> bool:
        return bool(await self.get_api_key())


class StaticCredentialStore(CredentialStore):
    """In-memory key holder; the key can be replaced or cleared at runtime."""

    def __init__(self, api_key: Optional[str] = None) -> None:
        self._api_key = api_key

    async def get_api_key(self) -> Optional[str]:
        return self._api_key

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key
        logger.info("API key stored")

    def clear_api_key(self) -> None:
        self._api_key = None
        logger.info("API key cleared")


class SettingsCredentialStore(CredentialStore):
    """Reads the key from provider settings on every lookup."""

    def __init__(self, settings: ProviderSettings) -> None:
        self.settings = settings

    async def get_api_key(self) -> Optional[str]:
        return self.settings.api_key or None
