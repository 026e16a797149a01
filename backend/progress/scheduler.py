"""Modified SM-2 scheduler for flashcard reviews.

Maps a card's current schedule plus the outcome of one review to the next
ease factor, interval and review date. Counters and difficulty belong to the
card store; this module only decides *when* the card comes back.

Key concepts:
- Ease factor: multiplier applied to the interval after a successful recall.
- Interval: whole days until the next review.
- Response quality: 0-5 score inferred from how fast the learner answered.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from backend.config import utcnow
from backend.progress.rounding import round_half_up

if TYPE_CHECKING:
    from backend.progress.card_store import CardScheduleState

# Bounds
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
MIN_INTERVAL = 1

GRADUATING_INTERVAL = 6  # first success after a reset jumps straight to 6 days
DEFAULT_RESPONSE_QUALITY = 3.0
LAPSE_EASE_PENALTY = 0.2

MAX_DIFFICULTY = 1.0
MIN_DIFFICULTY = 0.0
STREAK_FOR_EASIER = 3
EASIER_STEP = 0.1
HARDER_STEP = 0.2


@dataclass(frozen=True)
class ScheduleDecision:
    """The scheduling portion of a review outcome."""

    ease_factor: float
    interval: int  # days
    next_review: datetime


def response_quality(response_time_seconds: float | None) -> float:
    """Infer a 0-5 recall quality from the response time.

    Faster answers score higher; a missing or zero time falls back to 3.
    """
    if not response_time_seconds or response_time_seconds <= 0:
        return DEFAULT_RESPONSE_QUALITY
    return max(0.0, min(5.0, 5 - response_time_seconds / 5))


def schedule(
    state: CardScheduleState,
    is_correct: bool,
    response_time_seconds: float | None = 0,
    now: datetime | None = None,
) -> ScheduleDecision:
    """Compute the next ease factor, interval and review date for a card.

    Args:
        state: The card's schedule before this review.
        is_correct: Whether the learner recalled the card.
        response_time_seconds: Answer latency; only affects ease on success.
        now: Review time (defaults to utcnow).

    Returns:
        A ScheduleDecision. Never raises; the result is always in range.
    """
    now = now or utcnow()
    ease_factor = state.ease_factor
    interval = max(MIN_INTERVAL, state.interval)

    if is_correct:
        if interval == 1:
            interval = GRADUATING_INTERVAL
        else:
            interval = round_half_up(interval * ease_factor)

        quality = response_quality(response_time_seconds)
        ease_factor += 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
    else:
        # Lapse: full reset
        interval = MIN_INTERVAL
        ease_factor = max(MIN_EASE_FACTOR, ease_factor - LAPSE_EASE_PENALTY)

    ease_factor = max(MIN_EASE_FACTOR, min(MAX_EASE_FACTOR, ease_factor))
    interval = max(MIN_INTERVAL, interval)

    return ScheduleDecision(
        ease_factor=ease_factor,
        interval=interval,
        next_review=now + timedelta(days=interval),
    )


def adjust_difficulty(difficulty: float, consecutive_correct: int, is_correct: bool) -> float:
    """Return the card difficulty after a review.

    ``consecutive_correct`` is the streak *including* this review.
    """
    if is_correct:
        if consecutive_correct >= STREAK_FOR_EASIER:
            return max(MIN_DIFFICULTY, difficulty - EASIER_STEP)
        return difficulty
    return min(MAX_DIFFICULTY, difficulty + HARDER_STEP)
