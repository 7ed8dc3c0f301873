"""Tests for companion.models."""

import pytest
from pydantic import ValidationError

from companion.models import (
    ChatMessage,
    ChatTurn,
    GalleryItem,
    Memory,
    QueueStatus,
    TextRequest,
)


class TestChatMessage:
    def test_required_fields(self) -> None:
        m = ChatMessage(role="user", content="hi")
        assert m.role == "user"
        assert m.content == "hi"
        assert m.id is None
        assert m.thought is None
        assert m.timestamp.tzinfo is not None

    def test_invalid_role_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ChatMessage(role="narrator", content="x")

    def test_serialise_roundtrip(self) -> None:
        m = ChatMessage(id=3, role="assistant", content="acha", thought="he's sweet")
        restored = ChatMessage.model_validate_json(m.model_dump_json())
        assert restored == m

    def test_thought_excluded_from_dump_when_none(self) -> None:
        m = ChatMessage(role="user", content="x")
        assert "thought" not in m.model_dump(exclude_none=True)


class TestMemory:
    def test_importance_defaults_to_low(self) -> None:
        assert Memory(content="x").importance == "low"

    def test_invalid_importance_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Memory(content="x", importance="critical")


class TestGalleryItem:
    def test_seed_required(self) -> None:
        with pytest.raises(ValidationError):
            GalleryItem(prompt="p", media_url="u")


class TestEphemeral:
    def test_queue_status(self) -> None:
        assert QueueStatus(busy=False, pending=0).model_dump() == {"busy": False, "pending": 0}

    def test_text_request_history_defaults_to_empty(self) -> None:
        assert TextRequest(prompt="p", system_prompt="s").history == []

    def test_chat_turn_defaults(self) -> None:
        turn = ChatTurn(
            user_message=ChatMessage(role="user", content="hi"),
            reply=ChatMessage(role="assistant", content="hey"),
            mood=80,
            tier="loving",
        )
        assert turn.memory is None
        assert turn.degraded is False

    def test_chat_turn_rejects_unknown_tier(self) -> None:
        with pytest.raises(ValidationError):
            ChatTurn(
                user_message=ChatMessage(role="user", content="hi"),
                reply=ChatMessage(role="assistant", content="hey"),
                mood=80,
                tier="ecstatic",
            )
