"""Envelope handlers for the generation orchestrators.

Each handler validates its payload, runs one orchestrator operation and
posts the outcome back as envelopes. This is where orchestration errors
become ERROR envelopes for the presentation layer; anything else propagates.
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from shared.errors import OrchestrationError
from shared.logging import correlation_scope, get_logger
from shared.models import (
    GenerationParams,
    ImageGenerationResult,
    MessageEnvelope,
    MessageType,
    RequestOptions,
    TokenUsage,
    TurnResult,
    create_envelope,
)
from orchestration.orchestrator import ImageOrchestrator, SVGOrchestrator, TextOrchestrator
from dispatch.payloads import (
    AIConversationRequestPayload,
    AIConversationResponsePayload,
    ClearPayload,
    EnhancePromptRequestPayload,
    EnhancePromptResponsePayload,
    ErrorPayload,
    ImageGenerationContinuePayload,
    ImageGenerationRequestPayload,
    ImageGenerationResponsePayload,
    StatusPayload,
    SvgGenerationContinuePayload,
    SvgGenerationRequestPayload,
    SvgGenerationResponsePayload,
    TokenUsageUpdatePayload,
)
from dispatch.router import MessageRouter

logger = get_logger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

PostMessage = Callable[[MessageEnvelope], Union[Awaitable[None], None]]

SOURCE = "extension.orchestration"


class GenerationHandlers:
    """
    Binds envelope types to orchestrator operations.

    Only the orchestrators passed in get handlers; ``register`` wires them
    onto a :class:`MessageRouter`.
    """

    def __init__(
        self,
        post_message: PostMessage,
        text: Optional[TextOrchestrator] = None,
        image: Optional[ImageOrchestrator] = None,
        svg: Optional[SVGOrchestrator] = None,
        enhance_model: Optional[str] = None
    ) -> None:
        """
        Args:
            post_message: Sink for outbound envelopes, sync or async
            text: Serves text conversations and prompt enhancement
            image: Serves image generation
            svg: Serves SVG generation
            enhance_model: Model for prompt enhancement; defaults to the text client's
        """
        self.post_message = post_message
        self.text = text
        self.image = image
        self.svg = svg
        self.enhance_model = enhance_model

    def register(self, router: MessageRouter) -> None:
        """Register a handler for every operation of the configured orchestrators."""
        if self.text is not None:
            router.register(MessageType.AI_CONVERSATION_REQUEST, self.handle_text_request)
            router.register(MessageType.AI_CONVERSATION_CLEAR, self.handle_text_clear)
            router.register(MessageType.ENHANCE_PROMPT_REQUEST, self.handle_enhance_request)

        if self.image is not None:
            router.register(MessageType.IMAGE_GENERATION_REQUEST, self.handle_image_request)
            router.register(MessageType.IMAGE_GENERATION_CONTINUE, self.handle_image_continue)
            router.register(MessageType.IMAGE_GENERATION_CLEAR, self.handle_image_clear)

        if self.svg is not None:
            router.register(MessageType.SVG_GENERATION_REQUEST, self.handle_svg_request)
            router.register(MessageType.SVG_GENERATION_CONTINUE, self.handle_svg_continue)
            router.register(MessageType.SVG_GENERATION_CLEAR, self.handle_svg_clear)

        router.register(MessageType.RESET_TOKEN_USAGE, self.handle_reset_usage)

    def _orchestrators(self) -> list[Any]:
        return [o for o in (self.text, self.image, self.svg) if o is not None]

    def session_usage(self) -> TokenUsage:
        """Usage summed over every configured orchestrator."""
        totals = TokenUsage()
        for orchestrator in self._orchestrators():
            totals = totals.add(orchestrator.usage_totals)
        return totals

    async def _post(
        self,
        message_type: MessageType,
        payload: Union[BaseModel, dict[str, Any], None],
        correlation_id: Optional[str]
    ) -> None:
        result = self.post_message(
            create_envelope(message_type, payload, SOURCE, correlation_id)
        )
        if inspect.isawaitable(result):
            await result

    async def _post_error(self, envelope: MessageEnvelope, message: str, code: str) -> None:
        await self._post(
            MessageType.ERROR,
            ErrorPayload(message=message, code=code),
            envelope.correlation_id
        )

    async def _run(
        self,
        envelope: MessageEnvelope,
        payload_model: type[PayloadT],
        status_message: str,
        operation: Callable[[PayloadT], Awaitable[tuple[MessageType, BaseModel]]]
    ) -> None:
        with correlation_scope(envelope.correlation_id):
            try:
                payload = payload_model.model_validate(envelope.payload)
            except ValidationError as e:
                logger.warning("Invalid payload", message_type=envelope.type.value, error=str(e))
                await self._post_error(envelope, f"Invalid payload: {e}", "INVALID_PAYLOAD")
                return

            await self._post(
                MessageType.STATUS,
                StatusPayload(message=status_message, is_loading=True),
                envelope.correlation_id
            )

            try:
                response_type, response = await operation(payload)
            except OrchestrationError as e:
                logger.error("Operation failed", message_type=envelope.type.value, error=str(e))
                await self._post_error(envelope, str(e), e.code)
                return
            except httpx.HTTPError as e:
                logger.error("Provider connection failed", message_type=envelope.type.value, error=str(e))
                await self._post_error(envelope, f"Provider request failed: {e}", "CONNECTION_ERROR")
                return

            await self._post(response_type, response, envelope.correlation_id)
            await self._post(
                MessageType.TOKEN_USAGE_UPDATE,
                TokenUsageUpdatePayload(totals=self.session_usage()),
                envelope.correlation_id
            )

    # Text

    @staticmethod
    def _text_response(result: TurnResult) -> tuple[MessageType, BaseModel]:
        return MessageType.AI_CONVERSATION_RESPONSE, AIConversationResponsePayload(
            response=result.content,
            conversation_id=result.conversation_id,
            turn_number=result.turn_number,
            is_complete=bool(result.is_complete),
            usage=result.usage,
        )

    async def handle_text_request(self, envelope: MessageEnvelope) -> None:
        async def operation(payload: AIConversationRequestPayload):
            options = RequestOptions(model=payload.model)

            if payload.conversation_id is None:
                conversation_id = self.text.start(payload.system_prompt, model=payload.model)
                result = await self.text.send(
                    conversation_id, payload.prompt, payload.attachments, options
                )
            else:
                history = [turn.to_rehydration() for turn in payload.history or []]
                result = await self.text.continue_conversation(
                    payload.conversation_id,
                    payload.prompt,
                    history=history,
                    model=payload.model,
                    params=GenerationParams(system_prompt=payload.system_prompt),
                    attachments=payload.attachments,
                    options=options,
                )
            return self._text_response(result)

        await self._run(envelope, AIConversationRequestPayload, "Thinking...", operation)

    def handle_text_clear(self, envelope: MessageEnvelope) -> None:
        self._clear(self.text, envelope)

    async def handle_enhance_request(self, envelope: MessageEnvelope) -> None:
        async def operation(payload: EnhancePromptRequestPayload):
            result = await self.text.enhance_prompt(
                payload.prompt, payload.type, model=self.enhance_model
            )
            return MessageType.ENHANCE_PROMPT_RESPONSE, EnhancePromptResponsePayload(
                enhanced_prompt=result.content,
                original_prompt=payload.prompt,
                type=payload.type,
                usage=result.usage,
            )

        await self._run(envelope, EnhancePromptRequestPayload, "Enhancing prompt...", operation)

    # Image

    @staticmethod
    def _image_response(result: TurnResult) -> tuple[MessageType, BaseModel]:
        generation: ImageGenerationResult = result.content
        return MessageType.IMAGE_GENERATION_RESPONSE, ImageGenerationResponsePayload(
            conversation_id=result.conversation_id,
            images=generation.images,
            seed=generation.seed,
            turn_number=result.turn_number,
            usage=result.usage,
        )

    async def handle_image_request(self, envelope: MessageEnvelope) -> None:
        async def operation(payload: ImageGenerationRequestPayload):
            result = await self.image.generate(
                payload.prompt,
                conversation_id=payload.conversation_id,
                model=payload.model,
                params=GenerationParams(aspect_ratio=payload.aspect_ratio),
                attachments=payload.reference_images,
                reference_svg=payload.reference_svg_text,
                options=RequestOptions(seed=payload.seed),
            )
            return self._image_response(result)

        await self._run(envelope, ImageGenerationRequestPayload, "Generating image...", operation)

    async def handle_image_continue(self, envelope: MessageEnvelope) -> None:
        async def operation(payload: ImageGenerationContinuePayload):
            params = (
                GenerationParams(aspect_ratio=payload.aspect_ratio)
                if payload.aspect_ratio else None
            )
            result = await self.image.continue_conversation(
                payload.conversation_id,
                payload.prompt,
                history=[turn.to_rehydration() for turn in payload.history or []],
                model=payload.model,
                params=params,
                attachments=payload.reference_images,
                reference_svg=payload.reference_svg_text,
            )
            return self._image_response(result)

        await self._run(envelope, ImageGenerationContinuePayload, "Refining image...", operation)

    def handle_image_clear(self, envelope: MessageEnvelope) -> None:
        self._clear(self.image, envelope)

    # SVG

    @staticmethod
    def _svg_response(result: TurnResult) -> tuple[MessageType, BaseModel]:
        return MessageType.SVG_GENERATION_RESPONSE, SvgGenerationResponsePayload(
            conversation_id=result.conversation_id,
            svg_code=result.content,
            turn_number=result.turn_number,
            usage=result.usage,
        )

    async def handle_svg_request(self, envelope: MessageEnvelope) -> None:
        async def operation(payload: SvgGenerationRequestPayload):
            result = await self.svg.generate(
                payload.prompt,
                conversation_id=payload.conversation_id,
                model=payload.model,
                params=GenerationParams(aspect_ratio=payload.aspect_ratio),
                attachments=[payload.reference_image] if payload.reference_image else None,
                reference_svg=payload.reference_svg_text,
            )
            return self._svg_response(result)

        await self._run(envelope, SvgGenerationRequestPayload, "Generating SVG...", operation)

    async def handle_svg_continue(self, envelope: MessageEnvelope) -> None:
        async def operation(payload: SvgGenerationContinuePayload):
            params = (
                GenerationParams(aspect_ratio=payload.aspect_ratio)
                if payload.aspect_ratio else None
            )
            result = await self.svg.continue_conversation(
                payload.conversation_id,
                payload.prompt,
                history=[turn.to_rehydration() for turn in payload.history or []],
                model=payload.model,
                params=params,
            )
            return self._svg_response(result)

        await self._run(envelope, SvgGenerationContinuePayload, "Refining SVG...", operation)

    def handle_svg_clear(self, envelope: MessageEnvelope) -> None:
        self._clear(self.svg, envelope)

    # Shared

    def _clear(self, orchestrator: Any, envelope: MessageEnvelope) -> None:
        payload = ClearPayload.model_validate(envelope.payload)
        if payload.conversation_id:
            orchestrator.clear_conversation(payload.conversation_id)
        else:
            orchestrator.clear_all()

    async def handle_reset_usage(self, envelope: MessageEnvelope) -> None:
        for orchestrator in self._orchestrators():
            orchestrator.reset_usage()
        logger.info("Session token usage reset")
        await self._post(
            MessageType.TOKEN_USAGE_UPDATE,
            TokenUsageUpdatePayload(totals=self.session_usage()),
            envelope.correlation_id
        )
