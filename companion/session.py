"""Companion session — runs one conversational exchange end-to-end.

Turn flow (send_message):
  1. Load recent history, then append the user's message to the store.
  2. Advance the mood engine and persist the new mood.
  3. Build the tier-shaped prompt.
  4. Queue the text call on the scheduler and wait for it.
  5. Post-process the reply (or fall back to the tier's canned line).
  6. Append the assistant message.
  7. Maybe sample a memory from the user's message.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from companion.gateway import Gateway, RemoteCallFailed
from companion.models import (
    AudioRequest,
    AudioResult,
    ChatMessage,
    ChatTurn,
    GalleryItem,
    ImageRequest,
    ImageResult,
    Memory,
    TextRequest,
    TextResult,
)
from companion.mood import DEFAULT_MOOD, DEFAULT_TIER_TABLE, MoodEngine, TierTable
from companion.persona import PersonaResponder, status_line
from companion.scheduler import QueueCleared, Scheduler
from companion.storage import Store

logger = logging.getLogger(__name__)

MOOD_KEY = "currentMood"
SHOW_THOUGHTS_KEY = "showThoughts"
HISTORY_LIMIT = 10
DEFAULT_IMAGE_SEED = 778822


def _now_ms() -> float:
    return time.time() * 1000


class Companion:
    """Owns the live session state and wires the collaborators together.

    Args:
        store:      Record store.
        gateway:    Remote model gateway.
        scheduler:  Single-flight queue every remote call goes through.
        responder:  Persona responder.
        engine:     Mood engine; use Companion.load() to re-hydrate it from the store.
        clock:      Wall clock in milliseconds.
        image_seed: Seed used for images when the caller passes none.
    """

    def __init__(
        self,
        *,
        store: Store,
        gateway: Gateway,
        scheduler: Scheduler | None = None,
        responder: PersonaResponder | None = None,
        engine: MoodEngine | None = None,
        clock: Callable[[], float] = _now_ms,
        image_seed: int = DEFAULT_IMAGE_SEED,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.scheduler = scheduler or Scheduler()
        self.responder = responder or PersonaResponder()
        self.engine = engine or MoodEngine()
        self.clock = clock
        self.image_seed = image_seed
        self.show_thoughts = False

    @classmethod
    def load(
        cls,
        *,
        store: Store,
        gateway: Gateway,
        table: TierTable = DEFAULT_TIER_TABLE,
        **kwargs: Any,
    ) -> Companion:
        """Create a session whose mood and preferences come from the store."""
        stored = store.get(MOOD_KEY)
        mood = DEFAULT_MOOD if stored is None else stored
        companion = cls(store=store, gateway=gateway, engine=MoodEngine(mood, table=table), **kwargs)
        companion.show_thoughts = bool(store.get(SHOW_THOUGHTS_KEY, False))
        logger.info("session loaded mood=%d tier=%s", companion.engine.mood, companion.engine.tier)
        return companion

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def send_message(self, text: str, want_thoughts: bool | None = None) -> ChatTurn:
        """Handle one user message and return the full turn."""
        if want_thoughts is None:
            want_thoughts = self.show_thoughts

        history = list(reversed(self.store.query_recent("messages", HISTORY_LIMIT)))

        user_message = ChatMessage(role="user", content=text)
        user_message = user_message.model_copy(
            update={"id": self.store.append("messages", user_message)}
        )

        mood = self.engine.record_interaction(text, self.clock())
        self.store.set(MOOD_KEY, mood)
        tier = self.engine.tier

        bundle = self.responder.build_prompt(tier, text, want_thoughts, mood)
        request = TextRequest(
            prompt=bundle.augmented_input,
            system_prompt=bundle.system_prompt,
            history=self.responder.conversation_context(history, text)[:-1],
        )

        degraded = False
        thought = None
        try:
            result = await self.scheduler.run(lambda: self.gateway("text", request))
        except (RemoteCallFailed, QueueCleared) as e:
            logger.warning("text reply degraded to fallback: %s", e)
            content = self.responder.fallback_reply(tier)
            degraded = True
        else:
            if not isinstance(result, TextResult):
                raise TypeError(f"text capability returned {type(result).__name__}")
            reply = self.responder.postprocess(result.text, tier)
            content = reply.text
            if want_thoughts:
                thought = reply.thought

        reply_message = ChatMessage(role="assistant", content=content, thought=thought)
        reply_message = reply_message.model_copy(
            update={"id": self.store.append("messages", reply_message)}
        )

        memory = None
        if self.responder.should_create_memory(text):
            memory = self.responder.build_memory(text)
            memory = memory.model_copy(update={"id": self.store.append("memories", memory)})
            logger.debug("memory created id=%s importance=%s", memory.id, memory.importance)

        return ChatTurn(
            user_message=user_message,
            reply=reply_message,
            mood=mood,
            tier=tier,
            memory=memory,
            degraded=degraded,
        )

    def greet(self) -> ChatMessage:
        """Store and return a local greeting for the current tier."""
        message = ChatMessage(role="assistant", content=self.responder.greeting(self.engine.tier))
        return message.model_copy(update={"id": self.store.append("messages", message)})

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def generate_image(self, prompt: str, seed: int | None = None) -> GalleryItem:
        """Queue an image call and keep the result in the gallery. Raises RemoteCallFailed."""
        request = ImageRequest(
            prompt=self.responder.image_prompt(prompt),
            seed=self.image_seed if seed is None else seed,
        )
        result = await self.scheduler.run(lambda: self.gateway("image", request))
        if not isinstance(result, ImageResult):
            raise TypeError(f"image capability returned {type(result).__name__}")
        item = GalleryItem(prompt=prompt, media_url=result.url, seed=result.seed)
        return item.model_copy(update={"id": self.store.append("gallery", item)})

    async def speak(self, text: str, voice: str = "default") -> AudioResult:
        """Queue a speech call. Raises RemoteCallFailed."""
        request = AudioRequest(text=text, voice=voice)
        result = await self.scheduler.run(lambda: self.gateway("audio", request))
        if not isinstance(result, AudioResult):
            raise TypeError(f"audio capability returned {type(result).__name__}")
        return result

    async def check_remote(self) -> bool:
        """Queue a reachability check against the backend. Raises QueueCleared."""
        online = await self.scheduler.run(self.gateway.check_status)
        logger.debug("remote status online=%s", online)
        return online

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def recent_messages(self, limit: int = 50, offset: int = 0) -> list[ChatMessage]:
        return self.store.query_recent("messages", limit, offset)

    def recent_memories(self, limit: int = 50) -> list[Memory]:
        return self.store.query_recent("memories", limit)

    def gallery(self, limit: int = 100) -> list[GalleryItem]:
        return self.store.query_recent("gallery", limit)

    def status(self) -> dict[str, Any]:
        elapsed = self.engine.elapsed_ms(self.clock())
        queue = self.scheduler.status()
        return {
            "mood": self.engine.mood,
            "tier": self.engine.tier,
            "status": status_line(self.responder.persona.name, self.engine.mood, elapsed),
            "show_thoughts": self.show_thoughts,
            "queue": queue.model_dump(),
        }

    def stats(self) -> dict[str, int]:
        counts = {table: self.store.count(table) for table in ("messages", "memories", "gallery")}
        counts["total"] = sum(counts.values())
        return counts

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_show_thoughts(self, enabled: bool) -> None:
        self.show_thoughts = enabled
        self.store.set(SHOW_THOUGHTS_KEY, enabled)

    def set_mood(self, value: float) -> int:
        mood = self.engine.set_mood(value)
        self.store.set(MOOD_KEY, mood)
        return mood

    def clear_chat(self) -> None:
        """Forget the conversation and start the persona over."""
        self.store.clear_table("messages")
        self.engine.reset(self.clock())
        self.store.set(MOOD_KEY, self.engine.mood)

    def hard_reset(self) -> None:
        """Delete every table and preference, and drop queued calls."""
        self.scheduler.clear()
        self.store.clear_all()
        self.engine.reset(self.clock())
        self.show_thoughts = False
        self.store.set(MOOD_KEY, self.engine.mood)
        logger.info("hard reset complete")
