"""Modality adapters.

One conversation manager and one orchestrator serve all three modalities;
what differs between text, image and SVG conversations is captured here:
the system message template, how a user turn and an assistant turn are
written into the message array, and how the usable output is pulled out of
a raw provider result.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from shared.config import DEFAULT_TEXT_SYSTEM_PROMPT
from shared.models import (
    ASPECT_RATIO_DIMENSIONS,
    ChatMessage,
    ContentPart,
    ConversationState,
    GeneratedImage,
    GeneratedImageRef,
    GenerationParams,
    ImageGenerationResult,
    ImageUrl,
    MessageRole,
    Modality,
    TextCompletion,
)
from orchestration.svg import extract_svg

UserContent = Union[str, list[ContentPart]]

REFERENCE_SVG_HEADER = "\n\nReference SVG:\n"

SVG_SYSTEM_PROMPT = """You are an expert SVG artist. Generate clean, well-structured SVG code based on user descriptions.

Rules:
1. Output ONLY valid SVG code - no explanations unless asked
2. Use viewBox for scalability
3. Prefer semantic grouping with <g> elements
4. Use meaningful id attributes for key elements
5. Keep code clean and readable with proper indentation
6. For the requested aspect ratio, set appropriate viewBox dimensions
7. If a reference image is provided, use it as inspiration for style/composition

When user asks for refinements, output the complete updated SVG (not just changes)."""

IMAGE_SYSTEM_PROMPT = """You are an image generation assistant. Produce images that follow the user's description.

When the user asks for refinements, regenerate the whole image with the requested changes applied and keep everything else consistent with the previous result."""

GENERATED_IMAGES_TEXT = "Generated images"

ENHANCE_SYSTEM_PROMPTS: dict[str, str] = {
    "image": """You are an expert prompt engineer for AI image generation. Your task is to enhance the user's prompt to produce better, more detailed images.

Guidelines:
- Add specific visual details (lighting, composition, style, mood)
- Include artistic references when appropriate (art style, medium, artist influences)
- Specify technical aspects (camera angle, depth of field, color palette)
- Keep the core subject/intent intact
- Make it vivid and descriptive but not overly long

Return ONLY the enhanced prompt, no explanation or commentary.""",

    "svg": """You are an expert prompt engineer for AI SVG/vector graphic generation. Your task is to enhance the user's prompt to produce a single, clean vector graphic.

Guidelines:
- Request ONE single SVG output, not multiple variants or options
- Emphasize clean lines, simple shapes, and flat design principles
- Specify icon-appropriate details (solid fills, minimal gradients, clear silhouettes)
- Include scale considerations (works at small sizes like 16x16, 32x32)
- Mention style preferences (flat, outlined, filled, minimalist)
- Keep designs simple enough to work as scalable vectors

Return ONLY the enhanced prompt, no explanation or commentary.""",
}


class ModalityAdapter(ABC):
    """Capabilities a modality plugs into the generic conversation machinery."""

    modality: Modality
    id_prefix: str

    @abstractmethod
    def system_prompt(self, params: GenerationParams) -> str:
        """System prompt for a fresh or rehydrated conversation."""

    def build_system_message(self, params: GenerationParams) -> ChatMessage:
        return ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt(params))

    def build_user_content(
        self,
        prompt: str,
        attachments: Optional[list[str]] = None,
        reference_svg: Optional[str] = None
    ) -> UserContent:
        """Plain text without attachments, else text part then one image part each."""
        text = f"{prompt}{REFERENCE_SVG_HEADER}{reference_svg}" if reference_svg else prompt

        if not attachments:
            return text

        return [ContentPart.from_text(text)] + [
            ContentPart.from_image(url) for url in attachments
        ]

    def build_assistant_message(self, output: Any) -> ChatMessage:
        return ChatMessage(role=MessageRole.ASSISTANT, content=output)

    def after_assistant(self, state: ConversationState, output: Any) -> None:
        """Hook for state the assistant turn carries besides its message."""

    @abstractmethod
    def extract_output(self, raw: Any) -> Any:
        """Usable output from a raw provider result."""


class TextModality(ModalityAdapter):
    """Free-text chat."""

    modality = Modality.TEXT
    id_prefix = "text"

    def __init__(self, default_system_prompt: str = DEFAULT_TEXT_SYSTEM_PROMPT) -> None:
        self.default_system_prompt = default_system_prompt

    def system_prompt(self, params: GenerationParams) -> str:
        return params.system_prompt or self.default_system_prompt

    def extract_output(self, raw: TextCompletion) -> str:
        return raw.content


class SVGModality(ModalityAdapter):
    """SVG markup generated through text completions."""

    modality = Modality.SVG
    id_prefix = "svg"

    def system_prompt(self, params: GenerationParams) -> str:
        width, height = ASPECT_RATIO_DIMENSIONS[params.aspect_ratio]
        base = params.system_prompt or SVG_SYSTEM_PROMPT
        return (
            f"{base}\n\nFor this conversation, use viewBox=\"0 0 {width} {height}\" "
            f"for the {params.aspect_ratio} aspect ratio."
        )

    def extract_output(self, raw: TextCompletion) -> str:
        return extract_svg(raw.content)


def _images_of(output: Union[ImageGenerationResult, list[GeneratedImage]]) -> list[GeneratedImage]:
    if isinstance(output, ImageGenerationResult):
        return output.images
    return list(output)


class ImageModality(ModalityAdapter):
    """
    Image generation.

    Assistant turns carry references to the generated images instead of
    prose. Both a live :class:`ImageGenerationResult` and the image list of a
    rehydration turn are accepted and written identically.
    """

    modality = Modality.IMAGE
    id_prefix = "img"

    def system_prompt(self, params: GenerationParams) -> str:
        width, height = ASPECT_RATIO_DIMENSIONS[params.aspect_ratio]
        base = params.system_prompt or IMAGE_SYSTEM_PROMPT
        return (
            f"{base}\n\nGenerate images in the {params.aspect_ratio} aspect ratio "
            f"({width}x{height})."
        )

    def build_assistant_message(
        self,
        output: Union[ImageGenerationResult, list[GeneratedImage]]
    ) -> ChatMessage:
        return ChatMessage(
            role=MessageRole.ASSISTANT,
            content=[ContentPart.from_text(GENERATED_IMAGES_TEXT)],
            images=[
                GeneratedImageRef(image_url=ImageUrl(url=image.data))
                for image in _images_of(output)
            ],
        )

    def after_assistant(
        self,
        state: ConversationState,
        output: Union[ImageGenerationResult, list[GeneratedImage]]
    ) -> None:
        if isinstance(output, ImageGenerationResult):
            state.last_seed = output.seed
        elif output and output[0].seed is not None:
            state.last_seed = output[0].seed

    def extract_output(self, raw: ImageGenerationResult) -> ImageGenerationResult:
        return raw
