"""Per-card review counters and spaced-repetition state for one study set.

The store works on a plain ``{card_id: CardScheduleState}`` mapping that the
caller loads from (and saves back to) the user record. States are immutable;
every review produces a new state through ``record_review``.
"""

from __future__ import annotations

import itertools
import logging
import math
from collections.abc import Iterator, Mapping, MutableMapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from backend.config import utcnow
from backend.progress.scheduler import (
    MAX_DIFFICULTY,
    MAX_EASE_FACTOR,
    MIN_DIFFICULTY,
    MIN_EASE_FACTOR,
    MIN_INTERVAL,
    adjust_difficulty,
    schedule,
)
from backend.progress.timestamps import parse_iso, to_iso

logger = logging.getLogger(__name__)

MASTERED_STREAK = 5
MASTERED_MAX_DIFFICULTY = 0.3


@dataclass(frozen=True)
class CardScheduleState:
    """Review history and schedule of a single card."""

    times_reviewed: int = 0
    times_correct: int = 0
    difficulty: float = 0.5  # 0 = easy, 1 = hard
    consecutive_correct: int = 0
    consecutive_incorrect: int = 0
    ease_factor: float = 2.5
    interval: int = 1  # days
    last_reviewed: datetime | None = None
    next_review: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> CardScheduleState:
        """Build a state from its stored camelCase form.

        Bad fields fall back to defaults; out-of-range difficulty, ease and
        interval are clamped to the ranges the scheduler keeps.
        """
        if not isinstance(data, Mapping):
            return cls()
        defaults = cls()
        return cls(
            times_reviewed=_as_int(data.get("timesReviewed"), defaults.times_reviewed),
            times_correct=_as_int(data.get("timesCorrect"), defaults.times_correct),
            difficulty=_clamp(
                _as_float(data.get("difficulty"), defaults.difficulty),
                MIN_DIFFICULTY,
                MAX_DIFFICULTY,
            ),
            consecutive_correct=_as_int(
                data.get("consecutiveCorrect"), defaults.consecutive_correct
            ),
            consecutive_incorrect=_as_int(
                data.get("consecutiveIncorrect"), defaults.consecutive_incorrect
            ),
            ease_factor=_clamp(
                _as_float(data.get("easeFactor"), defaults.ease_factor),
                MIN_EASE_FACTOR,
                MAX_EASE_FACTOR,
            ),
            interval=max(MIN_INTERVAL, _as_int(data.get("interval"), defaults.interval)),
            last_reviewed=parse_iso(data.get("lastReviewed")),
            next_review=parse_iso(data.get("nextReview")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the stored camelCase form."""
        return {
            "timesReviewed": self.times_reviewed,
            "timesCorrect": self.times_correct,
            "difficulty": self.difficulty,
            "lastReviewed": to_iso(self.last_reviewed) if self.last_reviewed else None,
            "nextReview": to_iso(self.next_review) if self.next_review else None,
            "consecutiveCorrect": self.consecutive_correct,
            "consecutiveIncorrect": self.consecutive_incorrect,
            "easeFactor": self.ease_factor,
            "interval": self.interval,
        }

    def is_due(self, now: datetime) -> bool:
        return self.next_review is None or self.next_review <= now


@dataclass
class StudySetCardSummary:
    """Aggregate card statistics for a study set."""

    total_cards: int = 0
    reviewed_cards: int = 0
    mastered_cards: int = 0
    average_difficulty: float = 0.0
    due_for_review: int = 0


def record_review(
    schedules: MutableMapping[str, CardScheduleState],
    card_id: str,
    is_correct: bool,
    response_time_seconds: float | None = 0,
    now: datetime | None = None,
) -> CardScheduleState:
    """Apply one review to a card and store the new state in ``schedules``.

    Args:
        schedules: The study set's card states, updated in place.
        card_id: The reviewed card.
        is_correct: Whether the learner recalled the card.
        response_time_seconds: Answer latency, forwarded to the scheduler.
        now: Review time (defaults to utcnow).

    Returns:
        The card's new CardScheduleState.
    """
    now = now or utcnow()
    current = schedules.get(card_id) or CardScheduleState()

    if is_correct:
        consecutive_correct = current.consecutive_correct + 1
        consecutive_incorrect = 0
        times_correct = current.times_correct + 1
    else:
        consecutive_correct = 0
        consecutive_incorrect = current.consecutive_incorrect + 1
        times_correct = current.times_correct

    decision = schedule(current, is_correct, response_time_seconds, now=now)

    updated = replace(
        current,
        times_reviewed=current.times_reviewed + 1,
        times_correct=times_correct,
        consecutive_correct=consecutive_correct,
        consecutive_incorrect=consecutive_incorrect,
        difficulty=adjust_difficulty(current.difficulty, consecutive_correct, is_correct),
        ease_factor=decision.ease_factor,
        interval=decision.interval,
        last_reviewed=now,
        next_review=decision.next_review,
    )
    schedules[card_id] = updated

    logger.debug(
        "Card %s reviewed (%s): interval=%d ease=%.2f difficulty=%.2f",
        card_id,
        "correct" if is_correct else "incorrect",
        updated.interval,
        updated.ease_factor,
        updated.difficulty,
    )
    return updated


def iter_cards_for_review(
    schedules: Mapping[str, CardScheduleState],
    now: datetime | None = None,
) -> Iterator[str]:
    """Yield ids of due cards, hardest first, then longest since last review.

    Never-reviewed cards sort as the oldest. The ordering is recomputed on
    every call, so a new iterator always reflects the current states.
    """
    now = now or utcnow()
    due = [(card_id, state) for card_id, state in schedules.items() if state.is_due(now)]
    due.sort(key=lambda item: (-item[1].difficulty, item[1].last_reviewed or datetime.min))
    for card_id, _ in due:
        yield card_id


def get_cards_for_review(
    schedules: Mapping[str, CardScheduleState],
    limit: int | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Return due card ids in review order, optionally capped at ``limit``."""
    cards = iter_cards_for_review(schedules, now=now)
    if limit:
        return list(itertools.islice(cards, limit))
    return list(cards)


def summarize_study_set(
    schedules: Mapping[str, CardScheduleState],
    now: datetime | None = None,
) -> StudySetCardSummary:
    """Summarize review progress across every card of a study set."""
    if not schedules:
        return StudySetCardSummary()

    now = now or utcnow()
    states = list(schedules.values())
    reviewed = [s for s in states if s.times_reviewed > 0]
    mastered = [
        s
        for s in states
        if s.consecutive_correct >= MASTERED_STREAK and s.difficulty < MASTERED_MAX_DIFFICULTY
    ]

    return StudySetCardSummary(
        total_cards=len(states),
        reviewed_cards=len(reviewed),
        mastered_cards=len(mastered),
        average_difficulty=(
            sum(s.difficulty for s in reviewed) / len(reviewed) if reviewed else 0.0
        ),
        due_for_review=sum(1 for s in states if s.is_due(now)),
    )


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return int(value)


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return float(value)


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
