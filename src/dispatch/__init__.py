"""Message dispatch.

Routes inbound envelopes to the orchestrator operation they name.
"""

from dispatch.router import MessageHandler, MessageRouter
from dispatch.handlers import GenerationHandlers

__all__ = [
    "MessageHandler",
    "MessageRouter",
    "GenerationHandlers",
]
