"""Orchestrators.

An orchestrator injects a provider client into a conversation manager and
exposes the operations callers invoke. Each ``send``/``continue_conversation``
call suspends exactly once, at the provider request.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

from shared.config import DEFAULT_TEXT_SYSTEM_PROMPT, ConversationSettings, ProviderSettings
from shared.errors import (
    ConversationNotFoundError,
    NoClientConfiguredError,
    NoModelConfiguredError,
    NotConfiguredError,
)
from shared.logging import get_logger
from shared.models import (
    ChatMessage,
    ConversationState,
    EnhancePromptType,
    GenerationParams,
    ImageGenerationRequest,
    ImageGenerationResult,
    MessageRole,
    RehydrationTurn,
    RequestOptions,
    TextCompletion,
    TokenUsage,
    TurnResult,
)
from providers.base import ImageClient, TextClient
from orchestration.conversation import ConversationManager
from orchestration.modalities import (
    ENHANCE_SYSTEM_PROMPTS,
    ImageModality,
    ModalityAdapter,
    SVGModality,
    TextModality,
)

logger = get_logger(__name__)

ClientT = TypeVar("ClientT", TextClient, ImageClient)

MAX_TURNS_MESSAGE = "Maximum conversation turns reached. Please start a new conversation."
MAX_SEED = 2 ** 31 - 1


class Orchestrator(ABC, Generic[ClientT]):
    """
    Coordinates a conversation manager with an injected provider client.

    The client may be swapped at any time with ``set_client``. Calls on the
    same conversation id are serialised by a per-id lock; calls on different
    ids run concurrently and share no mutable state besides the usage totals.

    A conversation cleared or replaced while its turn awaits the provider is
    left alone: the reply is still returned and its usage still counted, but
    nothing is written back.
    """

    client_label = "provider"

    def __init__(
        self,
        adapter: ModalityAdapter,
        max_turns: Optional[int] = None,
        default_model: Optional[str] = None
    ) -> None:
        self.adapter = adapter
        self.conversations = ConversationManager(adapter, max_turns=max_turns)
        self.default_model = default_model
        self.usage_totals = TokenUsage()

        self._client: Optional[ClientT] = None
        self._locks: dict[str, asyncio.Lock] = {}

    def set_client(self, client: ClientT) -> None:
        """Inject the provider client (dependency injection)."""
        self._client = client
        logger.debug(
            "Orchestrator client configured",
            modality=self.adapter.modality.value,
            client=type(client).__name__
        )

    def has_client(self) -> bool:
        return self._client is not None

    async def is_configured(self) -> bool:
        """True if a client is injected and it has credentials."""
        return self._client is not None and await self._client.is_configured()

    async def _ready_client(self) -> ClientT:
        if self._client is None:
            raise NoClientConfiguredError(self.client_label)

        client = self._client
        if not await client.is_configured():
            raise NotConfiguredError()
        return client

    def start(
        self,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        params: Optional[GenerationParams] = None
    ) -> str:
        """
        Start a new conversation.

        Args:
            system_prompt: Replaces the modality's default system prompt
            model: Model for the conversation; defaults to the orchestrator's
            params: Generation parameters

        Returns:
            The conversation id
        """
        params = params or GenerationParams()
        if system_prompt is not None:
            params = params.model_copy(update={"system_prompt": system_prompt})

        return self.conversations.create(model or self.default_model, params).id

    async def generate(
        self,
        prompt: str,
        conversation_id: Optional[str] = None,
        model: Optional[str] = None,
        params: Optional[GenerationParams] = None,
        attachments: Optional[list[str]] = None,
        reference_svg: Optional[str] = None,
        options: Optional[RequestOptions] = None
    ) -> TurnResult:
        """
        Run a turn in the conversation ``conversation_id`` if it is live,
        otherwise in a new conversation created with ``model``/``params``.
        """
        client = await self._ready_client()
        conversation = self.conversations.get_or_create(
            conversation_id, model or self.default_model, params
        )
        return await self._run_turn(
            client, conversation.id, prompt, attachments, reference_svg, options
        )

    async def send(
        self,
        conversation_id: str,
        prompt: str,
        attachments: Optional[list[str]] = None,
        options: Optional[RequestOptions] = None,
        reference_svg: Optional[str] = None
    ) -> TurnResult:
        """
        Send a message in an existing conversation and get the reply.

        Raises:
            NoClientConfiguredError: If ``set_client`` was never called
            NotConfiguredError: If the client has no credentials
            ConversationNotFoundError: If the conversation is unknown
            ProviderError: If the provider call fails
        """
        client = await self._ready_client()
        if not self.conversations.has(conversation_id):
            raise ConversationNotFoundError(conversation_id)

        return await self._run_turn(
            client, conversation_id, prompt, attachments, reference_svg, options
        )

    async def continue_conversation(
        self,
        conversation_id: str,
        prompt: str,
        history: Optional[list[RehydrationTurn]] = None,
        model: Optional[str] = None,
        params: Optional[GenerationParams] = None,
        attachments: Optional[list[str]] = None,
        options: Optional[RequestOptions] = None,
        reference_svg: Optional[str] = None
    ) -> TurnResult:
        """
        Continue a conversation, rebuilding it from ``history`` first if it
        is no longer in memory.

        Raises:
            ConversationNotFoundError: If the conversation is unknown and no
                rehydration material was supplied
        """
        client = await self._ready_client()

        conversation = self.conversations.get(conversation_id)
        if conversation is None and self._can_rehydrate(history, model, params):
            logger.info(
                "Rehydrating conversation from history",
                conversation_id=conversation_id,
                turns=len(history)
            )
            conversation = self.conversations.rehydrate(
                conversation_id, model or self.default_model, params, history
            )

        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        return await self._run_turn(
            client,
            conversation_id,
            prompt,
            attachments,
            reference_svg,
            self._continuation_options(conversation, options or RequestOptions())
        )

    def _can_rehydrate(
        self,
        history: Optional[list[RehydrationTurn]],
        model: Optional[str],
        params: Optional[GenerationParams]
    ) -> bool:
        return bool(history) and model is not None and params is not None

    def _continuation_options(
        self,
        conversation: ConversationState,
        options: RequestOptions
    ) -> RequestOptions:
        return options

    def _prepare_options(
        self,
        conversation: ConversationState,
        options: RequestOptions
    ) -> RequestOptions:
        """Pin the conversation's model on the per-call options."""
        if options.model is None and conversation.model:
            return options.model_copy(update={"model": conversation.model})
        return options

    def _is_complete(self, conversation: ConversationState) -> Optional[bool]:
        return None

    async def _run_turn(
        self,
        client: ClientT,
        conversation_id: str,
        prompt: str,
        attachments: Optional[list[str]],
        reference_svg: Optional[str],
        options: Optional[RequestOptions]
    ) -> TurnResult:
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())

        async with lock:
            conversation = self.conversations.get(conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(conversation_id)

            if self.conversations.is_at_max_turns(conversation_id):
                logger.info(
                    "Max turns reached",
                    conversation_id=conversation_id,
                    turn_number=conversation.turn_number
                )
                return TurnResult(
                    content=MAX_TURNS_MESSAGE,
                    conversation_id=conversation_id,
                    turn_number=conversation.turn_number,
                    is_complete=True,
                )

            options = self._prepare_options(conversation, options or RequestOptions())
            self.conversations.add_user_message(
                conversation_id, prompt, attachments, reference_svg
            )

            logger.debug(
                "Calling provider",
                conversation_id=conversation_id,
                modality=self.adapter.modality.value,
                model=options.model
            )

            try:
                raw = await self._call_provider(client, conversation, options)
                output = self.adapter.extract_output(raw)
            except (Exception, asyncio.CancelledError):
                self.conversations.discard_pending_user_message(conversation_id)
                raise

            self.usage_totals = self.usage_totals.add(raw.usage)

            if self.conversations.get(conversation_id) is not conversation:
                logger.info(
                    "Conversation cleared during provider call",
                    conversation_id=conversation_id
                )
                return TurnResult(
                    content=output,
                    conversation_id=conversation_id,
                    turn_number=conversation.turn_number + 1,
                    usage=raw.usage,
                    is_complete=self._is_complete(conversation),
                )

            self.conversations.add_assistant_message(conversation_id, output)

            logger.info(
                "Turn complete",
                conversation_id=conversation_id,
                modality=self.adapter.modality.value,
                turn_number=conversation.turn_number
            )

            return TurnResult(
                content=output,
                conversation_id=conversation_id,
                turn_number=conversation.turn_number,
                usage=raw.usage,
                is_complete=self._is_complete(conversation),
            )

    @abstractmethod
    async def _call_provider(
        self,
        client: ClientT,
        conversation: ConversationState,
        options: RequestOptions
    ) -> Any:
        """Perform the single provider call for a turn."""

    def clear_conversation(self, conversation_id: str) -> None:
        self.conversations.clear(conversation_id)
        self._locks.pop(conversation_id, None)

    def clear_all(self) -> None:
        self.conversations.clear_all()
        self._locks.clear()

    def get_conversation(self, conversation_id: str) -> Optional[ConversationState]:
        return self.conversations.get(conversation_id)

    def has_conversation(self, conversation_id: str) -> bool:
        return self.conversations.has(conversation_id)

    def get_turn_count(self, conversation_id: str) -> int:
        return self.conversations.get_turn_count(conversation_id)

    def reset_usage(self) -> None:
        self.usage_totals = TokenUsage()


class TextOrchestrator(Orchestrator[TextClient]):
    """Multi-turn free-text conversations with a turn ceiling."""

    client_label = "text"

    def __init__(
        self,
        max_turns: int = 10,
        system_prompt: str = DEFAULT_TEXT_SYSTEM_PROMPT,
        default_model: Optional[str] = None
    ) -> None:
        super().__init__(
            TextModality(system_prompt),
            max_turns=max_turns,
            default_model=default_model
        )

    @classmethod
    def from_settings(cls, settings: ConversationSettings) -> "TextOrchestrator":
        return cls(max_turns=settings.max_turns, system_prompt=settings.text_system_prompt)

    @property
    def max_turns(self) -> int:
        return self.conversations.max_turns

    def set_max_turns(self, max_turns: int) -> None:
        logger.info("Updating max turns", max_turns=max_turns)
        self.conversations.max_turns = max_turns

    def _can_rehydrate(
        self,
        history: Optional[list[RehydrationTurn]],
        model: Optional[str],
        params: Optional[GenerationParams]
    ) -> bool:
        return bool(history)

    def _is_complete(self, conversation: ConversationState) -> bool:
        return self.conversations.is_at_max_turns(conversation.id)

    async def _call_provider(
        self,
        client: TextClient,
        conversation: ConversationState,
        options: RequestOptions
    ) -> TextCompletion:
        return await client.create_completion(
            self.conversations.get_messages(conversation.id), options
        )

    async def send_single_message(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        options: Optional[RequestOptions] = None
    ) -> TextCompletion:
        """One-off query that keeps no conversation state."""
        client = await self._ready_client()
        messages = [
            ChatMessage(
                role=MessageRole.SYSTEM,
                content=system_prompt or self.adapter.default_system_prompt
            ),
            ChatMessage(role=MessageRole.USER, content=prompt),
        ]
        result = await client.create_completion(messages, options)
        self.usage_totals = self.usage_totals.add(result.usage)
        return result

    async def enhance_prompt(
        self,
        prompt: str,
        prompt_type: EnhancePromptType,
        model: Optional[str] = None
    ) -> TextCompletion:
        """
        Rewrite a generation prompt into a more detailed one.

        Args:
            prompt: Prompt as typed by the user
            prompt_type: Generation target the prompt is rewritten for
            model: Model for the rewrite; defaults to the client's model

        Returns:
            Completion whose content is the trimmed, enhanced prompt
        """
        logger.info("Enhancing prompt", prompt_type=prompt_type, model=model)

        result = await self.send_single_message(
            prompt,
            system_prompt=ENHANCE_SYSTEM_PROMPTS[prompt_type],
            options=RequestOptions(model=model),
        )
        return result.model_copy(update={"content": result.content.strip()})


class SVGOrchestrator(Orchestrator[TextClient]):
    """SVG generation through text completions."""

    client_label = "text"

    def __init__(self, default_model: Optional[str] = None) -> None:
        super().__init__(SVGModality(), default_model=default_model)

    @classmethod
    def from_settings(cls, settings: ProviderSettings) -> "SVGOrchestrator":
        return cls(default_model=settings.svg_model)

    async def _call_provider(
        self,
        client: TextClient,
        conversation: ConversationState,
        options: RequestOptions
    ) -> TextCompletion:
        return await client.create_completion(
            self.conversations.get_messages(conversation.id), options
        )


class ImageOrchestrator(Orchestrator[ImageClient]):
    """
    Image generation conversations.

    A new generation uses the requested seed or a fresh random one;
    continuing a conversation reuses its last seed for reproducibility.
    """

    client_label = "image generation"

    def __init__(self, default_model: Optional[str] = None) -> None:
        super().__init__(ImageModality(), default_model=default_model)

    @classmethod
    def from_settings(cls, settings: ProviderSettings) -> "ImageOrchestrator":
        return cls(default_model=settings.image_model)

    def _continuation_options(
        self,
        conversation: ConversationState,
        options: RequestOptions
    ) -> RequestOptions:
        if options.seed is None and conversation.last_seed is not None:
            return options.model_copy(update={"seed": conversation.last_seed})
        return options

    def _prepare_options(
        self,
        conversation: ConversationState,
        options: RequestOptions
    ) -> RequestOptions:
        options = super()._prepare_options(conversation, options)
        if options.seed is None:
            options = options.model_copy(update={"seed": random.randrange(MAX_SEED)})
        return options

    async def _call_provider(
        self,
        client: ImageClient,
        conversation: ConversationState,
        options: RequestOptions
    ) -> ImageGenerationResult:
        model = options.model or self.default_model
        if not model:
            raise NoModelConfiguredError(self.client_label)

        logger.debug(
            "Generating image",
            conversation_id=conversation.id,
            seed=options.seed
        )
        return await client.generate_images(ImageGenerationRequest(
            messages=self.conversations.get_messages(conversation.id),
            model=model,
            aspect_ratio=conversation.params.aspect_ratio,
            seed=options.seed,
            cancel_event=options.cancel_event,
        ))
