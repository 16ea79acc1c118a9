"""Tests for conversation state management."""

import pytest

from shared.errors import ConversationNotFoundError
from shared.models import (
    ContentPart,
    GeneratedImage,
    GenerationParams,
    ImageGenerationResult,
    MessageRole,
    Modality,
    RehydrationTurn,
)


def _text_manager(max_turns=None):
    from orchestration.conversation import ConversationManager
    from orchestration.modalities import TextModality

    return ConversationManager(TextModality("You are helpful."), max_turns=max_turns)


class TestConversationManager:
    """Tests for ConversationManager."""

    def test_create_conversation(self):
        """Test creating a new conversation."""
        manager = _text_manager()

        conversation = manager.create(model="test/model")

        assert conversation.id.startswith("text-")
        assert conversation.modality == Modality.TEXT
        assert conversation.model == "test/model"
        assert conversation.turn_number == 0
        assert len(conversation.messages) == 1
        assert conversation.messages[0].role == MessageRole.SYSTEM
        assert conversation.messages[0].content == "You are helpful."

    def test_ids_are_unique(self):
        """Test that conversations get distinct ids."""
        manager = _text_manager()

        ids = {manager.create().id for _ in range(50)}

        assert len(ids) == 50

    def test_system_prompt_override(self):
        """Test that params.system_prompt replaces the default prompt."""
        manager = _text_manager()

        conversation = manager.create(params=GenerationParams(system_prompt="Be terse."))

        assert conversation.messages[0].content == "Be terse."

    def test_add_messages(self):
        """Test adding user and assistant messages."""
        manager = _text_manager()
        conversation = manager.create()

        manager.add_user_message(conversation.id, "Hello")
        assert conversation.turn_number == 0

        manager.add_assistant_message(conversation.id, "Hi there!")

        messages = manager.get_messages(conversation.id)
        assert [m.role for m in messages] == [
            MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT
        ]
        assert messages[1].content == "Hello"
        assert messages[2].content == "Hi there!"
        assert conversation.turn_number == 1
        assert manager.get_turn_count(conversation.id) == 1

    def test_user_message_with_attachments(self):
        """Test that attachments become image parts after the text part."""
        manager = _text_manager()
        conversation = manager.create()

        message = manager.add_user_message(
            conversation.id,
            "Describe these",
            attachments=["data:image/png;base64,AAA", "data:image/png;base64,BBB"]
        )

        assert message.content == [
            ContentPart.from_text("Describe these"),
            ContentPart.from_image("data:image/png;base64,AAA"),
            ContentPart.from_image("data:image/png;base64,BBB"),
        ]

    def test_user_message_with_reference_svg(self):
        """Test that a reference SVG is appended to the prompt text."""
        manager = _text_manager()
        conversation = manager.create()

        message = manager.add_user_message(
            conversation.id, "Make it blue", reference_svg="<svg></svg>"
        )

        assert message.content == "Make it blue\n\nReference SVG:\n<svg></svg>"

    def test_unknown_conversation_raises(self):
        """Test that mutating an unknown conversation raises."""
        manager = _text_manager()

        with pytest.raises(ConversationNotFoundError, match="Please start a new generation"):
            manager.add_user_message("text-missing", "Hello")

        with pytest.raises(ConversationNotFoundError):
            manager.add_assistant_message("text-missing", "Hi")

    def test_get_or_create(self):
        """Test that get_or_create returns a live conversation as stored."""
        manager = _text_manager()
        existing = manager.create(model="a/model")

        same = manager.get_or_create(existing.id, model="b/model")
        fresh = manager.get_or_create("text-unknown", model="b/model")
        none_id = manager.get_or_create(None)

        assert same is existing
        assert same.model == "a/model"
        assert fresh.id != "text-unknown"
        assert fresh.model == "b/model"
        assert none_id.id not in (existing.id, fresh.id)

    def test_get_messages_returns_copy(self):
        """Test that the returned message list is a snapshot."""
        manager = _text_manager()
        conversation = manager.create()

        messages = manager.get_messages(conversation.id)
        messages.clear()

        assert len(manager.get_messages(conversation.id)) == 1

    def test_discard_pending_user_message(self):
        """Test dropping an unanswered user message."""
        manager = _text_manager()
        conversation = manager.create()
        manager.add_user_message(conversation.id, "Hello")

        assert manager.discard_pending_user_message(conversation.id) is True
        assert len(conversation.messages) == 1

        # System message is never discarded
        assert manager.discard_pending_user_message(conversation.id) is False
        assert len(conversation.messages) == 1

    def test_max_turns(self):
        """Test the turn ceiling."""
        manager = _text_manager(max_turns=2)
        conversation = manager.create()

        for i in range(2):
            assert manager.is_at_max_turns(conversation.id) is False
            manager.add_user_message(conversation.id, f"Message {i}")
            manager.add_assistant_message(conversation.id, f"Reply {i}")

        assert manager.is_at_max_turns(conversation.id) is True

    def test_no_max_turns(self):
        """Test that without a ceiling the conversation is never at max."""
        manager = _text_manager()
        conversation = manager.create()

        for i in range(20):
            manager.add_user_message(conversation.id, f"Message {i}")
            manager.add_assistant_message(conversation.id, f"Reply {i}")

        assert manager.is_at_max_turns(conversation.id) is False

    def test_unknown_conversation_queries(self):
        """Test read-only queries on unknown ids."""
        manager = _text_manager(max_turns=3)

        assert manager.get("text-missing") is None
        assert manager.has("text-missing") is False
        assert manager.get_turn_count("text-missing") == 0
        assert manager.is_at_max_turns("text-missing") is True

    def test_clear_is_idempotent(self):
        """Test that clearing twice and clearing unknown ids is harmless."""
        manager = _text_manager()
        conversation = manager.create()

        manager.clear(conversation.id)
        manager.clear(conversation.id)
        manager.clear("text-never-existed")

        assert manager.get(conversation.id) is None

    def test_clear_all(self):
        """Test removing every conversation."""
        manager = _text_manager()
        for _ in range(3):
            manager.create()

        manager.clear_all()

        assert manager.list_conversations() == []
        assert manager.get_stats()["total_conversations"] == 0

    def test_stats(self):
        """Test manager statistics and listing."""
        manager = _text_manager(max_turns=5)
        conversation = manager.create(model="test/model")

        stats = manager.get_stats()
        listing = manager.list_conversations()

        assert stats == {"modality": "text", "total_conversations": 1, "max_turns": 5}
        assert listing[0]["id"] == conversation.id
        assert listing[0]["message_count"] == 1


class TestRehydration:
    """Tests for rebuilding conversations from history."""

    def test_rehydrate_matches_incremental_build(self):
        """Test that rehydration yields the same messages as building live."""
        manager = _text_manager()
        params = GenerationParams(system_prompt="Custom")

        live = manager.create(model="test/model", params=params)
        manager.add_user_message(live.id, "First", attachments=["data:image/png;base64,AAA"])
        manager.add_assistant_message(live.id, "One")
        manager.add_user_message(live.id, "Second")
        manager.add_assistant_message(live.id, "Two")

        rebuilt = manager.rehydrate(
            "text-restored",
            "test/model",
            params,
            [
                RehydrationTurn(prompt="First", output="One", attachments=["data:image/png;base64,AAA"]),
                RehydrationTurn(prompt="Second", output="Two"),
            ]
        )

        assert rebuilt.id == "text-restored"
        assert rebuilt.turn_number == live.turn_number == 2
        assert rebuilt.messages == live.messages
        assert manager.has("text-restored")

    def test_rehydrate_overwrites_existing(self):
        """Test that rehydration replaces a conversation with the same id."""
        manager = _text_manager()
        manager.rehydrate("text-1", None, None, [RehydrationTurn(prompt="a", output="b")])

        rebuilt = manager.rehydrate("text-1", None, None, [])

        assert manager.get("text-1") is rebuilt
        assert rebuilt.turn_number == 0
        assert len(rebuilt.messages) == 1

    def test_rehydrate_image_conversation_restores_seed(self):
        """Test that image history rebuilds image references and last seed."""
        from orchestration.conversation import ConversationManager
        from orchestration.modalities import ImageModality

        manager = ConversationManager(ImageModality())
        image = GeneratedImage(data="data:image/png;base64,AAA", seed=1234)

        live = manager.create(model="img/model")
        manager.add_user_message(live.id, "A cat")
        manager.add_assistant_message(live.id, ImageGenerationResult(images=[image], seed=1234))

        rebuilt = manager.rehydrate(
            "img-restored", "img/model", None, [RehydrationTurn(prompt="A cat", output=[image])]
        )

        assert rebuilt.last_seed == live.last_seed == 1234
        assert rebuilt.messages == live.messages
        assert rebuilt.messages[-1].images[0].image_url.url == image.data

    def test_svg_system_message_carries_viewbox(self):
        """Test that the SVG system prompt names the aspect ratio's viewBox."""
        from orchestration.conversation import ConversationManager
        from orchestration.modalities import SVGModality

        manager = ConversationManager(SVGModality())

        conversation = manager.create(params=GenerationParams(aspect_ratio="16:9"))

        assert conversation.id.startswith("svg-")
        assert 'viewBox="0 0 1024 576"' in conversation.messages[0].content
        assert "16:9" in conversation.messages[0].content
