"""Message Router.

Maps an inbound envelope's type to exactly one registered handler.
Handler failures are not caught here; they reach the caller of ``route``.
"""

import inspect
from typing import Any, Awaitable, Callable, Union

from shared.logging import get_logger
from shared.models import MessageEnvelope, MessageType

logger = get_logger(__name__)


# Handlers may be plain functions or coroutine functions
MessageHandler = Callable[[MessageEnvelope], Union[Awaitable[Any], Any]]


class MessageRouter:
    """
    Type-to-handler registry for inbound envelopes.

    Registering a type that already has a handler replaces it.
    """

    def __init__(self) -> None:
        self._handlers: dict[MessageType, MessageHandler] = {}

    def register(self, message_type: MessageType, handler: MessageHandler) -> None:
        """
        Register a handler for a message type.

        Args:
            message_type: Envelope type to handle
            handler: Function called with the envelope
        """
        if message_type in self._handlers:
            logger.debug("Replacing handler", message_type=message_type.value)
        self._handlers[message_type] = handler

    def unregister(self, message_type: MessageType) -> bool:
        """
        Unregister a handler.

        Returns:
            True if removed, False if not found
        """
        return self._handlers.pop(message_type, None) is not None

    async def route(self, envelope: MessageEnvelope) -> bool:
        """
        Route an envelope to its handler.

        Returns:
            True if a handler was found and executed, False otherwise
        """
        handler = self._handlers.get(envelope.type)
        if handler is None:
            logger.debug("No handler registered", message_type=envelope.type.value)
            return False

        result = handler(envelope)
        if inspect.isawaitable(result):
            await result
        return True

    def has_handler(self, message_type: MessageType) -> bool:
        return message_type in self._handlers

    def list_registered_types(self) -> list[MessageType]:
        return list(self._handlers)
