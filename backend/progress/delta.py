"""Session delta computation for known/unknown flashcard progress.

A session only ever changes the classification of the cards it showed. The
delta records exactly those changes, so merging it into a freshly loaded
record leaves every other card alone even if the record moved on meanwhile.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class Classification(StrEnum):
    KNOWN = "known"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProgressDelta:
    """Add/remove operations for the known and unknown card sets."""

    known_add: tuple[str, ...] = ()
    known_remove: tuple[str, ...] = ()
    unknown_add: tuple[str, ...] = ()
    unknown_remove: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.known_add or self.known_remove or self.unknown_add or self.unknown_remove)

    def conflicting_ids(self) -> set[str]:
        """Ids both added and removed within the same category."""
        return (set(self.known_add) & set(self.known_remove)) | (
            set(self.unknown_add) & set(self.unknown_remove)
        )

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> ProgressDelta:
        return cls(
            known_add=tuple(data.get("knownAdd") or ()),
            known_remove=tuple(data.get("knownRemove") or ()),
            unknown_add=tuple(data.get("unknownAdd") or ()),
            unknown_remove=tuple(data.get("unknownRemove") or ()),
        )

    def to_wire(self) -> dict[str, list[str]]:
        return {
            "knownAdd": list(self.known_add),
            "knownRemove": list(self.known_remove),
            "unknownAdd": list(self.unknown_add),
            "unknownRemove": list(self.unknown_remove),
        }


def compute_delta(
    previous_known: Iterable[str],
    previous_unknown: Iterable[str],
    session_classification: Mapping[str, Classification | str],
) -> ProgressDelta:
    """Compute the minimal delta moving persisted sets to the session's outcome.

    Only ids present in ``session_classification`` are considered; the delta
    never mentions any other card.

    Args:
        previous_known: Persisted known card ids.
        previous_unknown: Persisted unknown card ids.
        session_classification: Final "known"/"unknown" answer per session card.

    Returns:
        A ProgressDelta listing ids in session order.
    """
    known = set(previous_known)
    unknown = set(previous_unknown)

    known_add: list[str] = []
    known_remove: list[str] = []
    unknown_add: list[str] = []
    unknown_remove: list[str] = []

    for card_id, classification in session_classification.items():
        was_known = card_id in known
        was_unknown = card_id in unknown
        is_now_known = classification == Classification.KNOWN
        is_now_unknown = classification == Classification.UNKNOWN

        if not was_known and is_now_known:
            known_add.append(card_id)
        if was_known and not is_now_known:
            known_remove.append(card_id)
        if not was_unknown and is_now_unknown:
            unknown_add.append(card_id)
        if was_unknown and not is_now_unknown:
            unknown_remove.append(card_id)

    return ProgressDelta(
        known_add=tuple(known_add),
        known_remove=tuple(known_remove),
        unknown_add=tuple(unknown_add),
        unknown_remove=tuple(unknown_remove),
    )


def classify_session(answers: Iterable[tuple[str, str | None]]) -> dict[str, Classification]:
    """Build a session classification from ``(card_id, user_answer)`` pairs.

    Cards without a known/unknown answer are left out so they keep whatever
    state they had. If a card appears twice the last answer wins.
    """
    classification: dict[str, Classification] = {}
    unclassified: list[str] = []
    for card_id, answer in answers:
        if answer in (Classification.KNOWN, Classification.UNKNOWN):
            classification[card_id] = Classification(answer)
        else:
            unclassified.append(card_id)

    if unclassified:
        logger.info("Leaving %d unanswered card(s) untouched: %s", len(unclassified), unclassified)
    return classification
