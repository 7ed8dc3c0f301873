"""Core domain models.

The mood engine, persona layer, gateway and store all operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

Tier = Literal["angry", "neutral", "happy", "loving"]

# Ascending order; used to check that tier tables never regress.
TIER_ORDER: tuple[Tier, ...] = ("angry", "neutral", "happy", "loving")

Role = Literal["user", "assistant"]

Capability = Literal["text", "image", "audio"]

Importance = Literal["low", "medium"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Stored records (append-only)
# ---------------------------------------------------------------------------

class ChatMessage(BaseModel):
    """One entry in the conversation log."""

    id: int | None = None  # assigned by the store
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    thought: str | None = None  # assistant messages only


class Memory(BaseModel):
    """A sampled excerpt of something the user said."""

    id: int | None = None
    content: str
    importance: Importance = "low"
    timestamp: datetime = Field(default_factory=utcnow)


class GalleryItem(BaseModel):
    """A generated image kept in the gallery."""

    id: int | None = None
    prompt: str
    media_url: str
    seed: int
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Ephemeral values
# ---------------------------------------------------------------------------

class InteractionEvent(BaseModel):
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    source_is_user: bool = True


class QueueStatus(BaseModel):
    busy: bool
    pending: int


class PromptBundle(BaseModel):
    """Everything the text capability needs for one request."""

    augmented_input: str
    system_prompt: str
    directives: str


class Reply(BaseModel):
    """A post-processed model reply."""

    text: str
    thought: str | None = None


class ChatTurn(BaseModel):
    """Outcome of one user message."""

    user_message: ChatMessage
    reply: ChatMessage
    mood: int
    tier: Tier
    memory: Memory | None = None
    degraded: bool = False  # True when the canned fallback replaced the model reply


# ---------------------------------------------------------------------------
# Gateway payloads and results
# ---------------------------------------------------------------------------

class TextRequest(BaseModel):
    prompt: str
    system_prompt: str
    history: list[dict[str, str]] = Field(default_factory=list)


class ImageRequest(BaseModel):
    prompt: str
    seed: int


class AudioRequest(BaseModel):
    text: str
    voice: str = "default"


class TextResult(BaseModel):
    text: str
    usage: dict[str, Any] | None = None


class ImageResult(BaseModel):
    url: str
    seed: int


class AudioResult(BaseModel):
    data: bytes
    content_type: str = "audio/mpeg"
