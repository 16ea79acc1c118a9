"""Tests for message routing and envelope handlers."""

import pytest
from unittest.mock import AsyncMock, Mock

from shared.models import (
    ImageGenerationResult,
    GeneratedImage,
    MessageEnvelope,
    MessageType,
    TextCompletion,
    TokenUsage,
    create_envelope,
)
from providers.mock import MockImageClient, MockTextClient


class TestMessageRouter:
    """Tests for MessageRouter."""

    @pytest.mark.asyncio
    async def test_route_to_sync_handler(self):
        """Test routing to a plain function."""
        from dispatch.router import MessageRouter

        router = MessageRouter()
        handler = Mock()
        router.register(MessageType.STATUS, handler)
        envelope = create_envelope(MessageType.STATUS, {"message": "hi"})

        assert await router.route(envelope) is True
        handler.assert_called_once_with(envelope)

    @pytest.mark.asyncio
    async def test_route_to_async_handler(self):
        """Test routing to a coroutine function."""
        from dispatch.router import MessageRouter

        router = MessageRouter()
        handler = AsyncMock()
        router.register(MessageType.SVG_GENERATION_REQUEST, handler)

        assert await router.route(create_envelope(MessageType.SVG_GENERATION_REQUEST)) is True
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unhandled_type_returns_false(self):
        """Test that an unregistered type is reported, not raised."""
        from dispatch.router import MessageRouter

        router = MessageRouter()

        assert await router.route(create_envelope(MessageType.ERROR)) is False

    @pytest.mark.asyncio
    async def test_register_replaces_handler(self):
        """Test that registering a type again replaces the handler."""
        from dispatch.router import MessageRouter

        router = MessageRouter()
        first, second = Mock(), Mock()
        router.register(MessageType.STATUS, first)
        router.register(MessageType.STATUS, second)

        await router.route(create_envelope(MessageType.STATUS))

        first.assert_not_called()
        second.assert_called_once()
        assert router.list_registered_types() == [MessageType.STATUS]

    @pytest.mark.asyncio
    async def test_unregister(self):
        """Test removing a handler."""
        from dispatch.router import MessageRouter

        router = MessageRouter()
        router.register(MessageType.STATUS, Mock())

        assert router.unregister(MessageType.STATUS) is True
        assert router.unregister(MessageType.STATUS) is False
        assert router.has_handler(MessageType.STATUS) is False
        assert await router.route(create_envelope(MessageType.STATUS)) is False

    @pytest.mark.asyncio
    async def test_handler_errors_propagate(self):
        """Test that handler exceptions reach the caller."""
        from dispatch.router import MessageRouter

        router = MessageRouter()
        router.register(MessageType.STATUS, AsyncMock(side_effect=RuntimeError("handler broke")))

        with pytest.raises(RuntimeError, match="handler broke"):
            await router.route(create_envelope(MessageType.STATUS))


def make_handlers(text_client=None, image_client=None, enhance_model=None):
    from dispatch.handlers import GenerationHandlers
    from dispatch.router import MessageRouter
    from orchestration.orchestrator import ImageOrchestrator, SVGOrchestrator, TextOrchestrator

    posted: list[MessageEnvelope] = []

    text = TextOrchestrator(default_model="text/model")
    svg = SVGOrchestrator(default_model="svg/model")
    image = ImageOrchestrator(default_model="img/model")

    text_client = text_client or MockTextClient()
    text.set_client(text_client)
    svg.set_client(text_client)
    image.set_client(image_client or MockImageClient())

    handlers = GenerationHandlers(
        posted.append, text=text, image=image, svg=svg, enhance_model=enhance_model
    )
    router = MessageRouter()
    handlers.register(router)
    return router, handlers, posted


def posted_types(posted):
    return [envelope.type for envelope in posted]


class TestGenerationHandlers:
    """Tests for GenerationHandlers."""

    def test_register_all_types(self):
        """Test that every operation type gets a handler."""
        router, _, _ = make_handlers()

        assert set(router.list_registered_types()) == {
            MessageType.AI_CONVERSATION_REQUEST,
            MessageType.AI_CONVERSATION_CLEAR,
            MessageType.ENHANCE_PROMPT_REQUEST,
            MessageType.IMAGE_GENERATION_REQUEST,
            MessageType.IMAGE_GENERATION_CONTINUE,
            MessageType.IMAGE_GENERATION_CLEAR,
            MessageType.SVG_GENERATION_REQUEST,
            MessageType.SVG_GENERATION_CONTINUE,
            MessageType.SVG_GENERATION_CLEAR,
            MessageType.RESET_TOKEN_USAGE,
        }

    def test_register_only_configured(self):
        """Test that missing orchestrators get no handlers."""
        from dispatch.handlers import GenerationHandlers
        from dispatch.router import MessageRouter
        from orchestration.orchestrator import SVGOrchestrator

        router = MessageRouter()
        GenerationHandlers(Mock(), svg=SVGOrchestrator()).register(router)

        assert router.has_handler(MessageType.SVG_GENERATION_REQUEST)
        assert not router.has_handler(MessageType.AI_CONVERSATION_REQUEST)
        assert not router.has_handler(MessageType.IMAGE_GENERATION_REQUEST)

    @pytest.mark.asyncio
    async def test_svg_request(self):
        """Test a new SVG generation end to end."""
        client = MockTextClient()
        client.set_next_response(TextCompletion(
            content='<svg viewBox="0 0 1 1"></svg>',
            usage=TokenUsage(prompt_tokens=3, completion_tokens=4, total_tokens=7),
        ))
        router, _, posted = make_handlers(text_client=client)

        await router.route(create_envelope(
            MessageType.SVG_GENERATION_REQUEST,
            {"prompt": "A dot", "model": "svg/other", "aspectRatio": "1:1"},
            correlation_id="req-1",
        ))

        assert posted_types(posted) == [
            MessageType.STATUS,
            MessageType.SVG_GENERATION_RESPONSE,
            MessageType.TOKEN_USAGE_UPDATE,
        ]
        response = posted[1].payload
        assert response["svgCode"] == '<svg viewBox="0 0 1 1"></svg>'
        assert response["turnNumber"] == 1
        assert response["conversationId"].startswith("svg-")
        assert posted[2].payload["totals"]["totalTokens"] == 7
        assert all(envelope.correlation_id == "req-1" for envelope in posted)
        assert client.call_history[0]["model"] == "svg/other"

    @pytest.mark.asyncio
    async def test_svg_continue_unknown_posts_error(self):
        """Test that orchestration errors become ERROR envelopes."""
        router, _, posted = make_handlers()

        handled = await router.route(create_envelope(
            MessageType.SVG_GENERATION_CONTINUE,
            {"prompt": "Bigger", "conversationId": "svg-gone"},
        ))

        assert handled is True
        assert posted_types(posted) == [MessageType.STATUS, MessageType.ERROR]
        assert posted[1].payload == {
            "message": "Conversation svg-gone not found. Please start a new generation.",
            "code": "CONVERSATION_NOT_FOUND",
        }

    @pytest.mark.asyncio
    async def test_svg_extraction_error_posted(self):
        """Test that a reply without SVG is reported as an error."""
        client = MockTextClient()
        client.set_next_response(TextCompletion(content="No drawing today."))
        router, handlers, posted = make_handlers(text_client=client)

        await router.route(create_envelope(
            MessageType.SVG_GENERATION_REQUEST,
            {"prompt": "A dot", "model": "svg/model"},
        ))

        assert posted[-1].type == MessageType.ERROR
        assert posted[-1].payload["code"] == "SVG_EXTRACTION_ERROR"
        assert handlers.svg.conversations.list_conversations()[0]["turn_number"] == 0

    @pytest.mark.asyncio
    async def test_invalid_payload(self):
        """Test that a malformed payload is rejected without a provider call."""
        client = MockTextClient()
        router, _, posted = make_handlers(text_client=client)

        await router.route(create_envelope(MessageType.SVG_GENERATION_REQUEST, {"model": "svg/model"}))

        assert posted_types(posted) == [MessageType.ERROR]
        assert posted[0].payload["code"] == "INVALID_PAYLOAD"
        assert client.call_history == []

    @pytest.mark.asyncio
    async def test_enhance_request(self):
        """Test prompt enhancement end to end."""
        from orchestration.modalities import ENHANCE_SYSTEM_PROMPTS

        client = MockTextClient()
        client.set_next_response(TextCompletion(
            content="  A minimalist flat arrow icon, solid fill, clear silhouette\n",
            usage=TokenUsage(prompt_tokens=30, completion_tokens=10, total_tokens=40),
        ))
        router, handlers, posted = make_handlers(text_client=client, enhance_model="enhance/model")

        await router.route(create_envelope(
            MessageType.ENHANCE_PROMPT_REQUEST,
            {"prompt": "arrow icon", "type": "svg"},
            correlation_id="enh-1",
        ))

        assert posted_types(posted) == [
            MessageType.STATUS,
            MessageType.ENHANCE_PROMPT_RESPONSE,
            MessageType.TOKEN_USAGE_UPDATE,
        ]
        assert posted[0].payload == {"message": "Enhancing prompt...", "isLoading": True}
        assert posted[1].payload == {
            "enhancedPrompt": "A minimalist flat arrow icon, solid fill, clear silhouette",
            "originalPrompt": "arrow icon",
            "type": "svg",
            "usage": {"promptTokens": 30, "completionTokens": 10, "totalTokens": 40},
        }
        assert posted[2].payload["totals"]["totalTokens"] == 40
        assert all(envelope.correlation_id == "enh-1" for envelope in posted)

        request = client.call_history[0]
        assert request["model"] == "enhance/model"
        assert request["messages"][0].content == ENHANCE_SYSTEM_PROMPTS["svg"]
        assert handlers.text.conversations.list_conversations() == []

    @pytest.mark.asyncio
    async def test_enhance_request_unknown_type(self):
        """Test that an unsupported enhancement target is rejected."""
        client = MockTextClient()
        router, _, posted = make_handlers(text_client=client)

        await router.route(create_envelope(
            MessageType.ENHANCE_PROMPT_REQUEST,
            {"prompt": "a song", "type": "audio"},
        ))

        assert posted_types(posted) == [MessageType.ERROR]
        assert posted[0].payload["code"] == "INVALID_PAYLOAD"
        assert client.call_history == []

    @pytest.mark.asyncio
    async def test_svg_continue_with_history(self):
        """Test that an SVG continuation rehydrates from history."""
        client = MockTextClient()
        client.set_next_response(TextCompletion(content="<svg><rect/></svg>"))
        router, _, posted = make_handlers(text_client=client)

        await router.route(create_envelope(
            MessageType.SVG_GENERATION_CONTINUE,
            {
                "prompt": "Add a square",
                "conversationId": "svg-restored",
                "model": "svg/model",
                "aspectRatio": "1:1",
                "history": [{"prompt": "A dot", "svgCode": "<svg></svg>", "turnNumber": 1}],
            },
        ))

        response = posted[1].payload
        assert response["conversationId"] == "svg-restored"
        assert response["turnNumber"] == 2
        assert response["svgCode"] == "<svg><rect/></svg>"

    @pytest.mark.asyncio
    async def test_image_request_and_continue(self):
        """Test image generation followed by a refinement."""
        router, _, posted = make_handlers()

        await router.route(create_envelope(
            MessageType.IMAGE_GENERATION_REQUEST,
            {"prompt": "A cat", "model": "img/model", "aspectRatio": "16:9", "seed": 42},
        ))
        first = posted[1].payload

        await router.route(create_envelope(
            MessageType.IMAGE_GENERATION_CONTINUE,
            {"prompt": "Orange", "conversationId": first["conversationId"]},
        ))
        second = posted[4].payload

        assert posted[1].type == MessageType.IMAGE_GENERATION_RESPONSE
        assert first["seed"] == 42
        assert first["images"][0]["mimeType"] == "image/png"
        assert posted[4].type == MessageType.IMAGE_GENERATION_RESPONSE
        assert second["seed"] == 42
        assert second["turnNumber"] == 2

    @pytest.mark.asyncio
    async def test_text_request_and_continue(self):
        """Test a new text conversation and a follow-up."""
        router, _, posted = make_handlers()

        await router.route(create_envelope(
            MessageType.AI_CONVERSATION_REQUEST,
            {"prompt": "Hello", "systemPrompt": "Be brief."},
        ))
        first = posted[1].payload

        await router.route(create_envelope(
            MessageType.AI_CONVERSATION_REQUEST,
            {"prompt": "Again", "conversationId": first["conversationId"]},
        ))
        second = posted[4].payload

        assert first["response"] == "This is a mock response."
        assert first["turnNumber"] == 1
        assert first["isComplete"] is False
        assert second["conversationId"] == first["conversationId"]
        assert second["turnNumber"] == 2

    @pytest.mark.asyncio
    async def test_not_configured_posted(self):
        """Test that missing credentials are reported with their message."""
        router, _, posted = make_handlers(text_client=MockTextClient(configured=False))

        await router.route(create_envelope(MessageType.AI_CONVERSATION_REQUEST, {"prompt": "Hello"}))

        assert posted[-1].payload == {
            "message": "API key not configured. Please add your OpenRouter API key in Settings.",
            "code": "NOT_CONFIGURED",
        }

    @pytest.mark.asyncio
    async def test_clear_handlers(self):
        """Test clearing one and all conversations."""
        router, handlers, _ = make_handlers()
        first = handlers.image.start()
        second = handlers.image.start()

        await router.route(create_envelope(MessageType.IMAGE_GENERATION_CLEAR, {"conversationId": first}))
        assert not handlers.image.has_conversation(first)
        assert handlers.image.has_conversation(second)

        await router.route(create_envelope(MessageType.IMAGE_GENERATION_CLEAR))
        assert not handlers.image.has_conversation(second)

    @pytest.mark.asyncio
    async def test_reset_usage(self):
        """Test that resetting usage zeroes every orchestrator."""
        image_client = MockImageClient()
        image_client.set_next_result(ImageGenerationResult(
            images=[GeneratedImage(data="data:image/png;base64,AAA")],
            usage=TokenUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2),
        ))
        router, handlers, posted = make_handlers(image_client=image_client)

        await router.route(create_envelope(MessageType.AI_CONVERSATION_REQUEST, {"prompt": "Hi"}))
        await router.route(create_envelope(
            MessageType.IMAGE_GENERATION_REQUEST, {"prompt": "A cat", "model": "img/model"}
        ))
        assert handlers.session_usage().total_tokens == 17

        await router.route(create_envelope(MessageType.RESET_TOKEN_USAGE))

        assert posted[-1].type == MessageType.TOKEN_USAGE_UPDATE
        assert posted[-1].payload["totals"]["totalTokens"] == 0
        assert handlers.session_usage() == TokenUsage()

    @pytest.mark.asyncio
    async def test_async_post_message(self):
        """Test that an async post_message callback is awaited."""
        from dispatch.handlers import GenerationHandlers
        from dispatch.router import MessageRouter
        from orchestration.orchestrator import TextOrchestrator

        post_message = AsyncMock()
        text = TextOrchestrator()
        text.set_client(MockTextClient())
        router = MessageRouter()
        GenerationHandlers(post_message, text=text).register(router)

        await router.route(create_envelope(MessageType.AI_CONVERSATION_REQUEST, {"prompt": "Hi"}))

        assert post_message.await_count == 3
