"""Conversation orchestration.

Per-modality conversation state, the orchestrators that coordinate it with a
provider client, and SVG extraction.
"""

from orchestration.conversation import ConversationManager
from orchestration.modalities import (
    ImageModality,
    ModalityAdapter,
    SVGModality,
    TextModality,
)
from orchestration.orchestrator import (
    ImageOrchestrator,
    Orchestrator,
    SVGOrchestrator,
    TextOrchestrator,
)
from orchestration.svg import extract_svg

__all__ = [
    "ConversationManager",
    "ImageModality",
    "ModalityAdapter",
    "SVGModality",
    "TextModality",
    "ImageOrchestrator",
    "Orchestrator",
    "SVGOrchestrator",
    "TextOrchestrator",
    "extract_svg",
]
