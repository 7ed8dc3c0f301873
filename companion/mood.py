"""Mood engine — bounded mood, pure transitions, tier projection.

Mood is an integer in [0, 100]. Every change goes through `transition()`,
which is pure: the caller supplies the elapsed time since the previous
interaction, so nothing here reads a clock.

Transition steps, in order:

    1. time decay     ordered rule list, first matching rule applies
    2. text rules     every rule is evaluated; matching weights stack
    3. frequency      +5 on every tenth interaction
    4. clamp          into [0, 100]
    5. floor          below 30 the result drops once more, but never under 10

`tier_of()` maps a mood onto a named tier through a threshold table. Two
tables exist: "three-tier" (angry/neutral/happy) and "four-tier"
(angry/neutral/happy/loving, the default). A session picks one from
configuration and keeps it.

`MoodEngine` is the single owner of the live mood value.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, field_validator

from companion.models import TIER_ORDER, InteractionEvent, Tier

logger = logging.getLogger(__name__)

MOOD_MIN = 0
MOOD_MAX = 100
DEFAULT_MOOD = 100

ANGRY_THRESHOLD = 30
FLOOR_STEP = 5
FLOOR_MIN = 10

FREQUENCY_INTERVAL = 10
FREQUENCY_BONUS = 5

NEGATIVE_WEIGHT = -15
POSITIVE_WEIGHT = 8


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

class MoodRule(BaseModel):
    """A text trigger. `pattern` is a regex searched in the lowercased input."""

    model_config = ConfigDict(frozen=True)

    name: str
    pattern: str
    weight: int

    def matches(self, lowered: str) -> bool:
        return re.search(self.pattern, lowered) is not None


class DecayRule(BaseModel):
    """Penalty applied when more than `after_ms` passed since the last message."""

    model_config = ConfigDict(frozen=True)

    after_ms: int
    penalty: int


DEFAULT_RULES: tuple[MoodRule, ...] = (
    MoodRule(name="ignore", pattern=r"\bignor", weight=NEGATIVE_WEIGHT),
    MoodRule(name="busy", pattern=r"\bbusy\b", weight=NEGATIVE_WEIGHT),
    MoodRule(name="tired", pattern=r"\btired\b", weight=NEGATIVE_WEIGHT),
    MoodRule(name="later", pattern=r"\blater\b", weight=NEGATIVE_WEIGHT),
    MoodRule(name="no", pattern=r"\bno\b", weight=NEGATIVE_WEIGHT),
    MoodRule(name="not now", pattern=r"\bnot now\b", weight=NEGATIVE_WEIGHT),
    MoodRule(name="leave", pattern=r"\bleav", weight=NEGATIVE_WEIGHT),
    MoodRule(name="stop", pattern=r"\bstop", weight=NEGATIVE_WEIGHT),
    MoodRule(name="farewell", pattern=r"\b(?:bye|goodbye|gtg|g2g)\b", weight=NEGATIVE_WEIGHT),
    MoodRule(name="profanity", pattern=r"fuck|shit|damn", weight=NEGATIVE_WEIGHT),
    MoodRule(name="love", pattern=r"\blove", weight=POSITIVE_WEIGHT),
    MoodRule(name="miss", pattern=r"\bmiss", weight=POSITIVE_WEIGHT),
    MoodRule(name="want", pattern=r"\bwant", weight=POSITIVE_WEIGHT),
    MoodRule(name="good", pattern=r"\bgood\b", weight=POSITIVE_WEIGHT),
    MoodRule(name="nice", pattern=r"\bnice", weight=POSITIVE_WEIGHT),
    MoodRule(name="beautiful", pattern=r"\bbeautiful", weight=POSITIVE_WEIGHT),
    MoodRule(name="cute", pattern=r"\bcute", weight=POSITIVE_WEIGHT),
    MoodRule(name="sweet", pattern=r"\bsweet", weight=POSITIVE_WEIGHT),
    MoodRule(name="thanks", pattern=r"\b(?:thanks|thank you|appreciate)", weight=POSITIVE_WEIGHT),
    MoodRule(name="sorry", pattern=r"\b(?:sorry|apologi[sz]e)", weight=POSITIVE_WEIGHT),
)

# Longest silence first; only the first matching rule applies.
DEFAULT_DECAY: tuple[DecayRule, ...] = (
    DecayRule(after_ms=10 * 60 * 1000, penalty=-15),
    DecayRule(after_ms=5 * 60 * 1000, penalty=-5),
)


class TierTable(BaseModel):
    """Ascending (lower bound, tier) bands. The first band must start at 0."""

    model_config = ConfigDict(frozen=True)

    name: str
    bands: tuple[tuple[int, Tier], ...]

    @field_validator("bands")
    @classmethod
    def _check_bands(cls, bands: tuple[tuple[int, Tier], ...]) -> tuple[tuple[int, Tier], ...]:
        if not bands or bands[0][0] != MOOD_MIN:
            raise ValueError("first band must start at 0")
        floors = [floor for floor, _ in bands]
        if floors != sorted(set(floors)):
            raise ValueError("band floors must be strictly ascending")
        ranks = [TIER_ORDER.index(tier) for _, tier in bands]
        if ranks != sorted(set(ranks)):
            raise ValueError("tiers must ascend with mood")
        return bands

    @property
    def tiers(self) -> tuple[Tier, ...]:
        return tuple(tier for _, tier in self.bands)


THREE_TIER = TierTable(
    name="three-tier",
    bands=((0, "angry"), (30, "neutral"), (70, "happy")),
)
FOUR_TIER = TierTable(
    name="four-tier",
    bands=((0, "angry"), (30, "neutral"), (50, "happy"), (70, "loving")),
)

TIER_TABLES: dict[str, TierTable] = {t.name: t for t in (THREE_TIER, FOUR_TIER)}
DEFAULT_TIER_TABLE = FOUR_TIER


def get_tier_table(name: str) -> TierTable:
    try:
        return TIER_TABLES[name]
    except KeyError:
        raise ValueError(
            f"Unknown tier table {name!r} (expected one of {', '.join(TIER_TABLES)})"
        ) from None


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------

def clamp_mood(value: float) -> int:
    """Clamp any value into [0, 100]. Out-of-range input is never rejected."""
    return int(max(MOOD_MIN, min(MOOD_MAX, value)))


def decay_penalty(elapsed_ms: float, decay: Sequence[DecayRule] = DEFAULT_DECAY) -> int:
    for rule in decay:
        if elapsed_ms > rule.after_ms:
            return rule.penalty
    return 0


def matching_rules(text: str, rules: Sequence[MoodRule] = DEFAULT_RULES) -> list[MoodRule]:
    """Every rule that fires on `text`, in table order."""
    lowered = text.lower()
    return [rule for rule in rules if rule.matches(lowered)]


def text_delta(text: str, rules: Sequence[MoodRule] = DEFAULT_RULES) -> int:
    return sum(rule.weight for rule in matching_rules(text, rules))


def transition(
    current: int,
    elapsed_ms: float,
    input_text: str,
    interaction_count: int,
    *,
    rules: Sequence[MoodRule] = DEFAULT_RULES,
    decay: Sequence[DecayRule] = DEFAULT_DECAY,
) -> int:
    """Return the mood that follows `current` after one interaction."""
    delta = decay_penalty(elapsed_ms, decay)
    delta += text_delta(input_text, rules)
    if interaction_count and interaction_count % FREQUENCY_INTERVAL == 0:
        delta += FREQUENCY_BONUS

    mood = clamp_mood(clamp_mood(current) + delta)

    # Sticky but not bottomless: low moods sink one more step, never below 10.
    if mood < ANGRY_THRESHOLD:
        mood = max(FLOOR_MIN, mood - FLOOR_STEP)
    return mood


def tier_of(mood: int, table: TierTable = DEFAULT_TIER_TABLE) -> Tier:
    mood = clamp_mood(mood)
    current = table.bands[0][1]
    for floor, tier in table.bands:
        if mood >= floor:
            current = tier
    return current


# ---------------------------------------------------------------------------
# Owning context
# ---------------------------------------------------------------------------

class MoodEngine:
    """Holds the live mood. The only writer of mood in a running session.

    Args:
        mood:        Starting mood, clamped. Defaults to 100.
        table:       Tier threshold table, fixed for the engine's lifetime.
        rules:       Text rule table.
        decay:       Time decay rules.
    """

    def __init__(
        self,
        mood: int = DEFAULT_MOOD,
        *,
        table: TierTable = DEFAULT_TIER_TABLE,
        rules: Sequence[MoodRule] = DEFAULT_RULES,
        decay: Sequence[DecayRule] = DEFAULT_DECAY,
    ) -> None:
        self._mood = clamp_mood(mood)
        self._table = table
        self._rules = tuple(rules)
        self._decay = tuple(decay)
        self.interaction_count = 0
        self.last_interaction_ms: float | None = None

    @property
    def mood(self) -> int:
        return self._mood

    @property
    def table(self) -> TierTable:
        return self._table

    @property
    def tier(self) -> Tier:
        return tier_of(self._mood, self._table)

    def tier_of(self, mood: int) -> Tier:
        return tier_of(mood, self._table)

    def transition(self, current: int, elapsed_ms: float, input_text: str, interaction_count: int) -> int:
        """Pure transition using this engine's rule tables; does not touch state."""
        return transition(
            current, elapsed_ms, input_text, interaction_count,
            rules=self._rules, decay=self._decay,
        )

    def elapsed_ms(self, now_ms: float) -> float:
        if self.last_interaction_ms is None:
            return 0.0
        return max(0.0, now_ms - self.last_interaction_ms)

    def record_interaction(self, text: str, now_ms: float) -> int:
        """Advance the mood for one user message received at `now_ms`."""
        self.interaction_count += 1
        elapsed = self.elapsed_ms(now_ms)
        previous = self._mood
        self._mood = self.transition(previous, elapsed, text, self.interaction_count)
        self.last_interaction_ms = now_ms
        logger.debug(
            "mood %d -> %d (elapsed_ms=%d count=%d)",
            previous, self._mood, elapsed, self.interaction_count,
        )
        return self._mood

    def observe(self, event: InteractionEvent) -> int:
        """record_interaction() for an event; events not from the user leave mood alone."""
        if not event.source_is_user:
            return self._mood
        return self.record_interaction(event.text, event.timestamp.timestamp() * 1000)

    def set_mood(self, value: float) -> int:
        self._mood = clamp_mood(value)
        return self._mood

    def reset(self, now_ms: float | None = None) -> None:
        self._mood = DEFAULT_MOOD
        self.interaction_count = 0
        self.last_interaction_ms = now_ms
