"""Envelope payload models.

Payloads travel as camelCase JSON between the host and its UI; fields are
snake_case in Python and accept either spelling on input. Shared models are
mirrored here so that nested objects are camelCase on the wire as well.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.models import AspectRatio, EnhancePromptType, GeneratedImage, RehydrationTurn


class Payload(BaseModel):
    # from_attributes lets shared models validate straight into payload fields
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


class UsagePayload(Payload):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: Optional[float] = None


class ImagePayload(Payload):
    data: str
    seed: Optional[int] = None
    mime_type: str = "image/png"

    def to_generated_image(self) -> GeneratedImage:
        return GeneratedImage(data=self.data, mime_type=self.mime_type, seed=self.seed)


class TextHistoryTurn(Payload):
    prompt: str
    response: str

    def to_rehydration(self) -> RehydrationTurn:
        return RehydrationTurn(prompt=self.prompt, output=self.response)


class AIConversationRequestPayload(Payload):
    prompt: str
    conversation_id: Optional[str] = None
    attachments: list[str] = Field(default_factory=list)
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    history: Optional[list[TextHistoryTurn]] = None


class AIConversationResponsePayload(Payload):
    response: str
    conversation_id: str
    turn_number: int
    is_complete: bool = False
    usage: Optional[UsagePayload] = None


class ImageHistoryTurn(Payload):
    prompt: str
    images: list[ImagePayload] = Field(default_factory=list)
    reference_images: Optional[list[str]] = None
    reference_svg_text: Optional[str] = None

    def to_rehydration(self) -> RehydrationTurn:
        return RehydrationTurn(
            prompt=self.prompt,
            output=[image.to_generated_image() for image in self.images],
            attachments=self.reference_images,
            reference_svg=self.reference_svg_text,
        )


class ImageGenerationRequestPayload(Payload):
    prompt: str
    model: str
    aspect_ratio: AspectRatio = "1:1"
    reference_images: list[str] = Field(default_factory=list)
    reference_svg_text: Optional[str] = None
    conversation_id: Optional[str] = None
    seed: Optional[int] = None


class ImageGenerationContinuePayload(Payload):
    prompt: str
    conversation_id: str
    history: Optional[list[ImageHistoryTurn]] = None
    model: Optional[str] = None
    aspect_ratio: Optional[AspectRatio] = None
    reference_images: list[str] = Field(default_factory=list)
    reference_svg_text: Optional[str] = None


class ImageGenerationResponsePayload(Payload):
    conversation_id: str
    images: list[ImagePayload]
    seed: int
    turn_number: int
    usage: Optional[UsagePayload] = None


class SvgHistoryTurn(Payload):
    prompt: str
    svg_code: str
    turn_number: Optional[int] = None
    reference_image: Optional[str] = None
    reference_svg_text: Optional[str] = None

    def to_rehydration(self) -> RehydrationTurn:
        return RehydrationTurn(
            prompt=self.prompt,
            output=self.svg_code,
            attachments=[self.reference_image] if self.reference_image else None,
            reference_svg=self.reference_svg_text,
        )


class SvgGenerationRequestPayload(Payload):
    prompt: str
    model: str
    aspect_ratio: AspectRatio = "1:1"
    reference_image: Optional[str] = None
    reference_svg_text: Optional[str] = None
    conversation_id: Optional[str] = None


class SvgGenerationContinuePayload(Payload):
    prompt: str
    conversation_id: str
    history: Optional[list[SvgHistoryTurn]] = None
    model: Optional[str] = None
    aspect_ratio: Optional[AspectRatio] = None


class SvgGenerationResponsePayload(Payload):
    conversation_id: str
    svg_code: str
    turn_number: int
    usage: Optional[UsagePayload] = None


class ClearPayload(Payload):
    conversation_id: Optional[str] = None


class StatusPayload(Payload):
    message: str
    is_loading: bool = False


class ErrorPayload(Payload):
    message: str
    code: str


class TokenUsageUpdatePayload(Payload):
    totals: UsagePayload


class EnhancePromptRequestPayload(Payload):
    prompt: str
    type: EnhancePromptType


class EnhancePromptResponsePayload(Payload):
    enhanced_prompt: str
    original_prompt: str
    type: EnhancePromptType
    usage: Optional[UsagePayload] = None
