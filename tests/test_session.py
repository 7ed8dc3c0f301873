"""Tests for companion.session — the end-to-end conversational turn."""

import asyncio

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from companion.gateway import HttpGateway, RemoteCallFailed
from companion.models import AudioResult, ImageResult, TextResult
from companion.mood import THREE_TIER, MoodEngine
from companion.persona import SHAFIYA, PersonaResponder
from companion.scheduler import Scheduler
from companion.session import MOOD_KEY, SHOW_THOUGHTS_KEY, Companion

TEN_MINUTES = 10 * 60 * 1000


class ScriptedRandom:
    def __init__(self, draws=()) -> None:
        self.draws = list(draws)

    def random(self) -> float:
        return self.draws.pop(0)

    def choice(self, seq):
        return seq[0]


class Clock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubGateway:
    """Records calls and answers every capability after a short pause."""

    def __init__(self, text: str = "acha", fail: bool = False) -> None:
        self.text = text
        self.fail = fail
        self.calls: list = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, capability, payload):
        self.calls.append((capability, payload))
        if self.fail:
            raise RemoteCallFailed("Model backend returned HTTP 503", status=503)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.005)
        self.in_flight -= 1
        if capability == "text":
            return TextResult(text=self.text)
        if capability == "image":
            return ImageResult(url="https://cdn.example.com/1.png", seed=payload.seed)
        return AudioResult(data=b"mp3-bytes")

    async def check_status(self) -> bool:
        self.calls.append(("status", None))
        return not self.fail


def _companion(store, gateway, *, draws=(), mood=100, clock=None, **kwargs) -> Companion:
    return Companion(
        store=store,
        gateway=gateway,
        scheduler=Scheduler(pre_delay=0, post_delay=0),
        responder=PersonaResponder(rng=ScriptedRandom(draws)),
        engine=MoodEngine(mood, **kwargs),
        clock=clock or Clock(),
    )


# ---------------------------------------------------------------------------
# send_message
# ---------------------------------------------------------------------------

class TestSendMessage:
    async def test_happy_path(self, store) -> None:
        gateway = StubGateway(text="((he's here)) I am happy.")
        companion = _companion(store, gateway)
        turn = await companion.send_message("hello")

        assert turn.degraded is False
        assert turn.mood == 100
        assert turn.tier == "loving"
        assert turn.user_message.content == "hello"
        assert turn.reply.role == "assistant"
        assert turn.reply.content == "main hoon happy 😊"
        assert turn.reply.thought is None
        assert [m.role for m in store.query_recent("messages", 10)] == ["assistant", "user"]
        assert store.get(MOOD_KEY) == 100

    async def test_thought_kept_when_requested(self, store) -> None:
        companion = _companion(store, StubGateway(text="((he's here)) hi"))
        turn = await companion.send_message("hello", want_thoughts=True)
        assert turn.reply.thought == "he's here"
        assert store.query_recent("messages", 1)[0].thought == "he's here"
        capability, request = companion.gateway.calls[0]
        assert "((thought)) message" in request.prompt

    async def test_show_thoughts_preference_is_default(self, store) -> None:
        companion = _companion(store, StubGateway(text="((psst)) hi"))
        companion.set_show_thoughts(True)
        turn = await companion.send_message("hello")
        assert turn.reply.thought == "psst"

    async def test_request_shape(self, store) -> None:
        gateway = StubGateway()
        companion = _companion(store, gateway)
        await companion.send_message("first")
        await companion.send_message("second")

        capability, request = gateway.calls[1]
        assert capability == "text"
        assert request.prompt.startswith("second\n\nRespond as Shafiya with current mood: 100 (loving)")
        assert request.system_prompt.startswith("You are Shafiya")
        assert request.history == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "acha"},
        ]

    async def test_mood_moves_with_text(self, store) -> None:
        companion = _companion(store, StubGateway())
        turn = await companion.send_message("busy, talk later")
        assert turn.mood == 70
        assert turn.tier == "loving"
        assert store.get(MOOD_KEY) == 70

    async def test_three_tier_session(self, store) -> None:
        companion = _companion(store, StubGateway(), table=THREE_TIER)
        turn = await companion.send_message("busy, talk later")
        assert turn.tier == "happy"

    async def test_silence_decays_mood(self, store) -> None:
        clock = Clock(0)
        companion = _companion(store, StubGateway(), clock=clock)
        await companion.send_message("hello")
        clock.now = TEN_MINUTES + 1
        turn = await companion.send_message("hello")
        assert turn.mood == 85

    async def test_remote_failure_degrades_to_fallback(self, store) -> None:
        companion = _companion(store, StubGateway(fail=True))
        turn = await companion.send_message("busy")
        assert turn.degraded is True
        assert turn.mood == 85
        assert turn.reply.content == "sorry jaan, kuch gadbad ho gaya"
        assert store.count("messages") == 2

    async def test_transport_error_degrades_to_fallback(self, store) -> None:
        gateway = HttpGateway(base_url="http://localhost:8080/v1")
        companion = _companion(store, gateway)
        mock_post = AsyncMock(side_effect=httpx.RemoteProtocolError("server disconnected"))
        with patch("httpx.AsyncClient.post", mock_post):
            turn = await companion.send_message("hello")
        assert turn.degraded is True
        assert turn.reply.content == "sorry jaan, kuch gadbad ho gaya"
        assert store.count("messages") == 2
        assert companion.scheduler.status().busy is False

    async def test_angry_fallback(self, store) -> None:
        companion = _companion(store, StubGateway(fail=True), mood=20)
        turn = await companion.send_message("stop")
        assert turn.mood == 10
        assert turn.tier == "angry"
        assert turn.reply.content == "tum ignore kar rahe ho mujhe 😤"

    async def test_calls_never_overlap(self, store) -> None:
        gateway = StubGateway()
        companion = _companion(store, gateway)
        turns = await asyncio.gather(*(companion.send_message(f"msg {i}") for i in range(4)))
        assert gateway.max_in_flight == 1
        assert len(turns) == 4
        assert store.count("messages") == 8


class TestMemories:
    async def test_long_message_may_become_memory(self, store) -> None:
        text = "we went to the old bazaar today and you bought me chai and samosas"
        companion = _companion(store, StubGateway(), draws=[0.9, 0.6])
        turn = await companion.send_message(text)
        assert turn.memory is not None
        assert turn.memory.id == 1
        assert turn.memory.content == text
        assert turn.memory.importance == "medium"
        assert companion.recent_memories()[0].content == text

    async def test_draw_below_threshold_skips_memory(self, store) -> None:
        text = "x" * 80
        companion = _companion(store, StubGateway(), draws=[0.3])
        turn = await companion.send_message(text)
        assert turn.memory is None
        assert store.count("memories") == 0

    async def test_short_message_never_samples(self, store) -> None:
        companion = _companion(store, StubGateway(), draws=[])
        turn = await companion.send_message("hi")
        assert turn.memory is None


# ---------------------------------------------------------------------------
# Loading and resets
# ---------------------------------------------------------------------------

class TestLoad:
    def test_defaults_to_full_mood(self, store) -> None:
        companion = Companion.load(store=store, gateway=StubGateway())
        assert companion.engine.mood == 100
        assert companion.show_thoughts is False

    def test_stored_zero_is_honoured(self, store) -> None:
        store.set(MOOD_KEY, 0)
        companion = Companion.load(store=store, gateway=StubGateway())
        assert companion.engine.mood == 0
        assert companion.engine.tier == "angry"

    def test_restores_preferences(self, store) -> None:
        store.set(MOOD_KEY, 60)
        store.set(SHOW_THOUGHTS_KEY, True)
        companion = Companion.load(store=store, gateway=StubGateway(), table=THREE_TIER)
        assert companion.engine.tier == "neutral"
        assert companion.show_thoughts is True

    async def test_mood_survives_restart(self, store) -> None:
        first = _companion(store, StubGateway())
        await first.send_message("busy")
        second = Companion.load(store=store, gateway=StubGateway())
        assert second.engine.mood == 85


class TestResets:
    async def test_clear_chat(self, store) -> None:
        companion = _companion(store, StubGateway(), draws=[0.9, 0.1])
        await companion.send_message("busy busy busy, talk to you much later, really tired now")
        assert companion.engine.mood < 100
        companion.clear_chat()
        assert store.count("messages") == 0
        assert store.count("memories") == 1
        assert companion.engine.mood == 100
        assert store.get(MOOD_KEY) == 100

    async def test_hard_reset(self, store) -> None:
        companion = _companion(store, StubGateway(), mood=40)
        await companion.send_message("hello")
        await companion.generate_image("beach")
        companion.set_show_thoughts(True)
        companion.hard_reset()
        assert companion.stats() == {"messages": 0, "memories": 0, "gallery": 0, "total": 0}
        assert companion.show_thoughts is False
        assert store.get(SHOW_THOUGHTS_KEY) is None
        assert store.get(MOOD_KEY) == 100
        assert companion.engine.interaction_count == 0

    def test_set_mood_clamps_and_persists(self, store) -> None:
        companion = _companion(store, StubGateway())
        assert companion.set_mood(140) == 100
        assert companion.set_mood(25) == 25
        assert store.get(MOOD_KEY) == 25
        assert companion.status()["tier"] == "angry"


# ---------------------------------------------------------------------------
# Media, greeting and reads
# ---------------------------------------------------------------------------

class TestMedia:
    async def test_generate_image(self, store) -> None:
        gateway = StubGateway()
        companion = _companion(store, gateway)
        item = await companion.generate_image("at the beach")
        assert item.id == 1
        assert item.prompt == "at the beach"
        assert item.media_url == "https://cdn.example.com/1.png"
        assert item.seed == 778822
        capability, request = gateway.calls[0]
        assert capability == "image"
        assert request.prompt.startswith("at the beach, portrait of")
        assert companion.gallery()[0].id == 1

    async def test_image_seed_override(self, store) -> None:
        companion = _companion(store, StubGateway())
        item = await companion.generate_image("x", seed=5)
        assert item.seed == 5

    async def test_image_failure_propagates(self, store) -> None:
        companion = _companion(store, StubGateway(fail=True))
        with pytest.raises(RemoteCallFailed):
            await companion.generate_image("x")
        assert store.count("gallery") == 0

    async def test_speak(self, store) -> None:
        companion = _companion(store, StubGateway())
        audio = await companion.speak("hello jaan")
        assert audio.data == b"mp3-bytes"


class TestCheckRemote:
    async def test_online(self, store) -> None:
        gateway = StubGateway()
        assert await _companion(store, gateway).check_remote() is True
        assert gateway.calls == [("status", None)]

    async def test_offline(self, store) -> None:
        assert await _companion(store, StubGateway(fail=True)).check_remote() is False

    async def test_waits_behind_queued_calls(self, store) -> None:
        gateway = StubGateway()
        companion = _companion(store, gateway)
        await asyncio.gather(companion.speak("first"), companion.check_remote())
        assert [c for c, _ in gateway.calls] == ["audio", "status"]

    async def test_http_gateway_through_scheduler(self, store) -> None:
        companion = _companion(store, HttpGateway(base_url="http://localhost:8080/v1"))
        mock_get = AsyncMock(return_value=MagicMock(status_code=200))
        with patch("httpx.AsyncClient.get", mock_get):
            assert await companion.check_remote() is True
        assert mock_get.call_args[0][0] == "http://localhost:8080/v1/models"


class TestReads:
    def test_greet(self, store) -> None:
        companion = _companion(store, StubGateway(), mood=10)
        message = companion.greet()
        assert message.id == 1
        assert message.content == SHAFIYA.tiers["angry"].greetings[0]

    def test_status(self, store) -> None:
        status = _companion(store, StubGateway()).status()
        assert status == {
            "mood": 100,
            "tier": "loving",
            "status": "Shafiya is... Online",
            "show_thoughts": False,
            "queue": {"busy": False, "pending": 0},
        }

    async def test_status_after_long_silence(self, store) -> None:
        clock = Clock(0)
        companion = _companion(store, StubGateway(), mood=20, clock=clock)
        await companion.send_message("hi")
        clock.now = TEN_MINUTES
        assert companion.status()["status"] == "Shafiya is... Feeling ignored"

    async def test_stats(self, store) -> None:
        companion = _companion(store, StubGateway())
        await companion.send_message("hello")
        assert companion.stats() == {"messages": 2, "memories": 0, "gallery": 0, "total": 2}
