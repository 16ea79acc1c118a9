"""Core data models for conversation orchestration.

This module defines the shared data structures passed between the provider
clients, the conversation managers, the orchestrators and the dispatcher.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Modality(str, Enum):
    """Content modality a conversation produces."""
    TEXT = "text"
    IMAGE = "image"
    SVG = "svg"


AspectRatio = Literal["1:1", "4:3", "3:4", "16:9", "9:16", "3:2", "2:3"]

# Generation target a prompt is rewritten for
EnhancePromptType = Literal["image", "svg"]

ASPECT_RATIO_DIMENSIONS: dict[str, tuple[int, int]] = {
    "1:1": (1024, 1024),
    "4:3": (1024, 768),
    "3:4": (768, 1024),
    "16:9": (1024, 576),
    "9:16": (576, 1024),
    "3:2": (1024, 683),
    "2:3": (683, 1024),
}


class MessageRole(str, Enum):
    """Chat message roles understood by chat-completions endpoints."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ImageUrl(BaseModel):
    """Inline image reference (usually a base64 data URL)."""
    url: str


class ContentPart(BaseModel):
    """One part of a multimodal message body."""
    type: Literal["text", "image_url"]
    text: Optional[str] = None
    image_url: Optional[ImageUrl] = None

    @classmethod
    def from_text(cls, text: str) -> "ContentPart":
        return cls(type="text", text=text)

    @classmethod
    def from_image(cls, url: str) -> "ContentPart":
        return cls(type="image_url", image_url=ImageUrl(url=url))


class GeneratedImageRef(BaseModel):
    """Reference to a generated image carried on an assistant message."""
    image_url: ImageUrl


class ChatMessage(BaseModel):
    """A single message in a conversation."""
    role: MessageRole
    content: Union[str, list[ContentPart]]
    images: Optional[list[GeneratedImageRef]] = None

    def to_api(self) -> dict[str, Any]:
        """Wire representation for the provider request body."""
        return self.model_dump(mode="json", exclude_none=True)


class GenerationParams(BaseModel):
    """Modality-specific generation parameters fixed for a conversation."""
    aspect_ratio: AspectRatio = "1:1"
    system_prompt: Optional[str] = None


class GeneratedImage(BaseModel):
    """A single generated image."""
    data: str = Field(..., description="Base64 data URL")
    mime_type: str = "image/png"
    seed: Optional[int] = None


class RehydrationTurn(BaseModel):
    """
    One completed turn supplied by the caller to rebuild a lost conversation.

    ``output`` is the assistant reply: text, SVG markup, or the list of
    generated images for the image modality.
    """
    prompt: str
    output: Union[str, list[GeneratedImage]]
    attachments: Optional[list[str]] = None
    reference_svg: Optional[str] = None


class ConversationState(BaseModel):
    """In-memory state of one conversation."""
    id: str
    modality: Modality
    messages: list[ChatMessage] = Field(default_factory=list)
    model: Optional[str] = None
    params: GenerationParams = Field(default_factory=GenerationParams)
    turn_number: int = Field(default=0, ge=0)
    last_seed: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TokenUsage(BaseModel):
    """Token counts and optional cost reported for one or more provider calls."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: Optional[float] = None

    def add(self, other: Optional["TokenUsage"]) -> "TokenUsage":
        """Return the sum of two usages. ``None`` adds nothing."""
        if other is None:
            return self

        cost = None
        if self.cost_usd is not None or other.cost_usd is not None:
            cost = (self.cost_usd or 0.0) + (other.cost_usd or 0.0)

        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost_usd=cost,
        )


class RequestOptions(BaseModel):
    """Per-call options threaded from the caller down to the provider request."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    seed: Optional[int] = None
    cancel_event: Optional[asyncio.Event] = Field(default=None, exclude=True)


class TextCompletion(BaseModel):
    """Response from a text completion call."""
    content: str
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None
    id: Optional[str] = None


class ImageGenerationRequest(BaseModel):
    """Request to generate images from a conversation."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    messages: list[ChatMessage]
    model: str
    aspect_ratio: AspectRatio = "1:1"
    seed: Optional[int] = None
    cancel_event: Optional[asyncio.Event] = Field(default=None, exclude=True)


class ImageGenerationResult(BaseModel):
    """Images produced by one generation call."""
    images: list[GeneratedImage]
    seed: int = 0
    usage: Optional[TokenUsage] = None


class TurnResult(BaseModel):
    """
    Outcome of one orchestrator ``send``/``continue_conversation`` call.

    ``content`` is the assistant text, the extracted SVG markup, or the
    image generation result, depending on the orchestrator.
    """
    content: Union[str, ImageGenerationResult]
    conversation_id: str
    turn_number: int
    usage: Optional[TokenUsage] = None
    is_complete: Optional[bool] = None


class MessageType(str, Enum):
    """Inbound and outbound envelope types."""
    AI_CONVERSATION_REQUEST = "AI_CONVERSATION_REQUEST"
    AI_CONVERSATION_RESPONSE = "AI_CONVERSATION_RESPONSE"
    AI_CONVERSATION_CLEAR = "AI_CONVERSATION_CLEAR"

    IMAGE_GENERATION_REQUEST = "IMAGE_GENERATION_REQUEST"
    IMAGE_GENERATION_RESPONSE = "IMAGE_GENERATION_RESPONSE"
    IMAGE_GENERATION_CONTINUE = "IMAGE_GENERATION_CONTINUE"
    IMAGE_GENERATION_CLEAR = "IMAGE_GENERATION_CLEAR"

    SVG_GENERATION_REQUEST = "SVG_GENERATION_REQUEST"
    SVG_GENERATION_RESPONSE = "SVG_GENERATION_RESPONSE"
    SVG_GENERATION_CONTINUE = "SVG_GENERATION_CONTINUE"
    SVG_GENERATION_CLEAR = "SVG_GENERATION_CLEAR"

    ENHANCE_PROMPT_REQUEST = "ENHANCE_PROMPT_REQUEST"
    ENHANCE_PROMPT_RESPONSE = "ENHANCE_PROMPT_RESPONSE"

    TOKEN_USAGE_UPDATE = "TOKEN_USAGE_UPDATE"
    RESET_TOKEN_USAGE = "RESET_TOKEN_USAGE"

    STATUS = "STATUS"
    ERROR = "ERROR"


class MessageEnvelope(BaseModel):
    """
    Wrapper around every message exchanged with the request-handling layer.

    Only ``type`` is needed to route; ``payload`` is operation-specific.
    """
    type: MessageType
    payload: dict[str, Any] = Field(default_factory=dict)
    source: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    correlation_id: Optional[str] = None


def create_envelope(
    message_type: MessageType,
    payload: Union[BaseModel, dict[str, Any], None] = None,
    source: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> MessageEnvelope:
    """Build an envelope, serialising pydantic payloads by alias."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)

    return MessageEnvelope(
        type=message_type,
        payload=payload or {},
        source=source,
        correlation_id=correlation_id,
    )
