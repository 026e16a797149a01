"""Merge session deltas into persisted known/unknown card sets.

Two rules hold for every merge:

* known and unknown stay disjoint: adding a card to one set removes it from
  the other at the moment it is added;
* progress keyed by legacy random ids is discarded wholesale before anything
  else happens, because those ids can't be mapped back to card content.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from backend.config import utcnow
from backend.progress.card_store import CardScheduleState
from backend.progress.delta import Classification, ProgressDelta, compute_delta
from backend.progress.identifiers import find_legacy_ids, is_legacy_id
from backend.progress.records import FlashcardProgress
from backend.progress.timestamps import to_iso

logger = logging.getLogger(__name__)

LEGACY_PURGE_EVENT = "legacy_progress_discarded"


@dataclass
class ReconcileOutcome:
    """Result of merging one session into a study set's progress."""

    progress: FlashcardProgress
    delta: ProgressDelta
    legacy_purged: bool = False
    discarded_ids: list[str] = field(default_factory=list)


def apply_delta(
    known_cards: Iterable[str],
    unknown_cards: Iterable[str],
    delta: ProgressDelta,
) -> tuple[list[str], list[str]]:
    """Apply a delta to known/unknown sets without mutating the inputs.

    Order is fixed: knownAdd, knownRemove, unknownAdd, unknownRemove. Existing
    ids keep their position; added ids are appended.

    Returns:
        The new (known, unknown) lists.
    """
    conflicts = delta.conflicting_ids()
    if conflicts:
        logger.warning(
            "Delta adds and removes the same card within one set, applying in fixed order: %s",
            sorted(conflicts),
        )

    # dicts as insertion-ordered sets
    known = dict.fromkeys(known_cards)
    unknown = dict.fromkeys(unknown_cards)

    for card_id in delta.known_add:
        known[card_id] = None
        unknown.pop(card_id, None)
    for card_id in delta.known_remove:
        known.pop(card_id, None)
    for card_id in delta.unknown_add:
        unknown[card_id] = None
        known.pop(card_id, None)
    for card_id in delta.unknown_remove:
        unknown.pop(card_id, None)

    return list(known), list(unknown)


def purge_legacy_progress(
    progress: FlashcardProgress,
    study_set_id: str,
    detect_untagged: bool = True,
) -> tuple[FlashcardProgress, list[str]]:
    """Clear both card sets if any stored id belongs to the legacy scheme.

    Returns:
        The (possibly cleared) progress and the legacy ids that triggered it.
    """
    legacy_ids = find_legacy_ids(
        [*progress.known_cards, *progress.unknown_cards], detect_untagged=detect_untagged
    )
    if not legacy_ids:
        return progress, []

    logger.warning(
        "%s study_set=%s known=%d unknown=%d legacy_ids=%d sample=%s",
        LEGACY_PURGE_EVENT,
        study_set_id,
        len(progress.known_cards),
        len(progress.unknown_cards),
        len(legacy_ids),
        legacy_ids[:3],
    )
    return progress.model_copy(update={"known_cards": [], "unknown_cards": []}), legacy_ids


def drop_legacy_schedules(
    schedules: Mapping[str, CardScheduleState],
    detect_untagged: bool = True,
) -> dict[str, CardScheduleState]:
    """Return ``schedules`` without entries keyed by legacy ids."""
    return {
        card_id: state
        for card_id, state in schedules.items()
        if not is_legacy_id(card_id, detect_untagged)
    }


def reconcile(
    progress: FlashcardProgress,
    delta: ProgressDelta,
    study_set_id: str,
    now: datetime | None = None,
    detect_untagged: bool = True,
) -> ReconcileOutcome:
    """Merge a client-computed delta into a study set's stored progress.

    Legacy contamination is purged first, regardless of the delta's content.
    """
    progress, discarded = purge_legacy_progress(progress, study_set_id, detect_untagged)
    known, unknown = _repair_overlap(progress, study_set_id)
    return _merge(progress, known, unknown, delta, study_set_id, now, discarded)


def reconcile_classification(
    progress: FlashcardProgress,
    classification: Mapping[str, Classification | str],
    study_set_id: str,
    now: datetime | None = None,
    detect_untagged: bool = True,
) -> ReconcileOutcome:
    """Merge a raw session classification, computing the delta server-side.

    The delta is computed against the freshly loaded (and purged) sets, so it
    reflects what actually changes in storage.
    """
    progress, discarded = purge_legacy_progress(progress, study_set_id, detect_untagged)
    known, unknown = _repair_overlap(progress, study_set_id)
    delta = compute_delta(known, unknown, classification)
    return _merge(progress, known, unknown, delta, study_set_id, now, discarded)


def _merge(
    progress: FlashcardProgress,
    known: list[str],
    unknown: list[str],
    delta: ProgressDelta,
    study_set_id: str,
    now: datetime | None,
    discarded: list[str],
) -> ReconcileOutcome:
    new_known, new_unknown = apply_delta(known, unknown, delta)
    updated = progress.model_copy(
        update={
            "known_cards": new_known,
            "unknown_cards": new_unknown,
            "last_updated": to_iso(now or utcnow()),
        }
    )

    logger.info(
        "Reconciled study set %s: +%d/-%d known, +%d/-%d unknown (now %d known, %d unknown)",
        study_set_id,
        len(delta.known_add),
        len(delta.known_remove),
        len(delta.unknown_add),
        len(delta.unknown_remove),
        len(new_known),
        len(new_unknown),
    )
    return ReconcileOutcome(
        progress=updated,
        delta=delta,
        legacy_purged=bool(discarded),
        discarded_ids=discarded,
    )


def _repair_overlap(progress: FlashcardProgress, study_set_id: str) -> tuple[list[str], list[str]]:
    """Drop ids stored in both sets; such cards go back to unclassified."""
    overlap = set(progress.known_cards) & set(progress.unknown_cards)
    if not overlap:
        return list(progress.known_cards), list(progress.unknown_cards)

    logger.warning(
        "Study set %s stored %d card(s) as both known and unknown, resetting them",
        study_set_id,
        len(overlap),
    )
    return (
        [card_id for card_id in progress.known_cards if card_id not in overlap],
        [card_id for card_id in progress.unknown_cards if card_id not in overlap],
    )
