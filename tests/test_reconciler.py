"""Tests for merging session deltas into stored progress."""

import logging
import random
from datetime import datetime

from conftest import LEGACY_ID

from backend.progress.card_store import CardScheduleState
from backend.progress.delta import ProgressDelta, compute_delta
from backend.progress.identifiers import derive_card_id
from backend.progress.reconciler import (
    LEGACY_PURGE_EVENT,
    apply_delta,
    drop_legacy_schedules,
    purge_legacy_progress,
    reconcile,
    reconcile_classification,
)
from backend.progress.records import FlashcardProgress

NOW = datetime(2024, 5, 1, 12, 0, 0)
CARD_A = derive_card_id("hola", "hello")
CARD_B = derive_card_id("adios", "goodbye")
CARD_C = derive_card_id("gato", "cat")


class TestApplyDelta:
    def test_add_moves_between_sets(self) -> None:
        known, unknown = apply_delta(["A"], ["B"], ProgressDelta(known_add=("B",)))
        assert known == ["A", "B"]
        assert unknown == []

    def test_does_not_mutate_inputs(self) -> None:
        known_in, unknown_in = ["A"], ["B"]
        apply_delta(known_in, unknown_in, ProgressDelta(unknown_add=("A",), known_add=("B",)))
        assert known_in == ["A"]
        assert unknown_in == ["B"]

    def test_missing_removals_are_ignored(self) -> None:
        known, unknown = apply_delta(["A"], [], ProgressDelta(known_remove=("Z",)))
        assert known == ["A"]
        assert unknown == []

    def test_conflicting_delta_applies_in_fixed_order(self, caplog) -> None:
        delta = ProgressDelta(known_add=("A",), known_remove=("A",))
        with caplog.at_level(logging.WARNING):
            known, unknown = apply_delta([], [], delta)
        assert known == []
        assert unknown == []
        assert "same card" in caplog.text

    def test_round_trip_over_random_sessions(self) -> None:
        rng = random.Random(11)
        universe = [f"c{i}" for i in range(12)]
        for _ in range(200):
            ids = rng.sample(universe, 8)
            known, unknown = ids[:4], ids[4:6]
            session = {
                card_id: rng.choice(["known", "unknown"])
                for card_id in rng.sample(universe, rng.randint(0, 12))
            }
            delta = compute_delta(known, unknown, session)
            new_known, new_unknown = apply_delta(known, unknown, delta)

            assert not set(new_known) & set(new_unknown)
            for card_id, classification in session.items():
                if classification == "known":
                    assert card_id in new_known
                else:
                    assert card_id in new_unknown
            for card_id in set(universe) - set(session):
                assert (card_id in new_known) == (card_id in known)
                assert (card_id in new_unknown) == (card_id in unknown)

            # same session applied twice is a no-op
            again = compute_delta(new_known, new_unknown, session)
            assert again.is_empty
            assert apply_delta(new_known, new_unknown, delta) == (new_known, new_unknown)


class TestLegacyPurge:
    def test_purge_clears_both_sets(self, caplog) -> None:
        progress = FlashcardProgress(known_cards=[CARD_A, LEGACY_ID], unknown_cards=[CARD_B])
        with caplog.at_level(logging.WARNING):
            purged, legacy = purge_legacy_progress(progress, "spanish")
        assert purged.known_cards == []
        assert purged.unknown_cards == []
        assert legacy == [LEGACY_ID]
        assert LEGACY_PURGE_EVENT in caplog.text
        assert "spanish" in caplog.text

    def test_tagged_ids_are_kept(self) -> None:
        progress = FlashcardProgress(known_cards=[CARD_A], unknown_cards=[CARD_B])
        purged, legacy = purge_legacy_progress(progress, "spanish")
        assert purged is progress
        assert legacy == []

    def test_detection_can_be_switched_off(self) -> None:
        progress = FlashcardProgress(known_cards=[LEGACY_ID])
        purged, legacy = purge_legacy_progress(progress, "spanish", detect_untagged=False)
        assert purged.known_cards == [LEGACY_ID]
        assert legacy == []

    def test_reconcile_purges_before_applying(self) -> None:
        progress = FlashcardProgress(known_cards=[LEGACY_ID, CARD_A], unknown_cards=[CARD_B])
        outcome = reconcile(progress, ProgressDelta(known_add=(CARD_C,)), "spanish", now=NOW)
        assert outcome.legacy_purged
        assert outcome.discarded_ids == [LEGACY_ID]
        assert outcome.progress.known_cards == [CARD_C]
        assert outcome.progress.unknown_cards == []

    def test_drop_legacy_schedules(self) -> None:
        schedules = {LEGACY_ID: CardScheduleState(), CARD_A: CardScheduleState(interval=6)}
        assert drop_legacy_schedules(schedules) == {CARD_A: CardScheduleState(interval=6)}


class TestReconcile:
    def test_stamps_last_updated(self) -> None:
        outcome = reconcile(FlashcardProgress(), ProgressDelta(known_add=(CARD_A,)), "s", now=NOW)
        assert outcome.progress.last_updated == "2024-05-01T12:00:00.000Z"
        assert outcome.progress.known_cards == [CARD_A]
        assert not outcome.legacy_purged

    def test_unmentioned_cards_survive_concurrent_progress(self) -> None:
        # a second tab marked CARD_B known after this session loaded
        stored = FlashcardProgress(known_cards=[CARD_A, CARD_B])
        session_delta = compute_delta([CARD_A], [], {CARD_C: "unknown"})
        outcome = reconcile(stored, session_delta, "s", now=NOW)
        assert outcome.progress.known_cards == [CARD_A, CARD_B]
        assert outcome.progress.unknown_cards == [CARD_C]

    def test_does_not_mutate_stored_progress(self) -> None:
        stored = FlashcardProgress(known_cards=[CARD_A])
        reconcile(stored, ProgressDelta(unknown_add=(CARD_A,)), "s", now=NOW)
        assert stored.known_cards == [CARD_A]
        assert stored.unknown_cards == []

    def test_overlap_is_repaired(self, caplog) -> None:
        stored = FlashcardProgress(known_cards=[CARD_A, CARD_B], unknown_cards=[CARD_A])
        with caplog.at_level(logging.WARNING):
            outcome = reconcile(stored, ProgressDelta(), "s", now=NOW)
        assert outcome.progress.known_cards == [CARD_B]
        assert outcome.progress.unknown_cards == []
        assert "both known and unknown" in caplog.text

    def test_overlap_warned_once_per_reconcile(self, caplog) -> None:
        stored = FlashcardProgress(known_cards=[CARD_A], unknown_cards=[CARD_A])
        runs = [
            lambda: reconcile(stored, ProgressDelta(), "s", now=NOW),
            lambda: reconcile_classification(stored, {CARD_B: "known"}, "s", now=NOW),
        ]
        for run in runs:
            caplog.clear()
            with caplog.at_level(logging.WARNING):
                run()
            warnings = [r for r in caplog.records if "both known and unknown" in r.getMessage()]
            assert len(warnings) == 1


class TestReconcileClassification:
    def test_computes_delta_against_stored_sets(self) -> None:
        stored = FlashcardProgress(known_cards=[CARD_A, CARD_B], unknown_cards=[CARD_C])
        outcome = reconcile_classification(
            stored, {CARD_A: "unknown", CARD_C: "known"}, "s", now=NOW
        )
        assert outcome.delta.known_add == (CARD_C,)
        assert outcome.delta.known_remove == (CARD_A,)
        assert set(outcome.progress.known_cards) == {CARD_B, CARD_C}
        assert outcome.progress.unknown_cards == [CARD_A]

    def test_idempotent(self) -> None:
        stored = FlashcardProgress(known_cards=[CARD_A])
        classification = {CARD_A: "unknown", CARD_B: "known"}
        first = reconcile_classification(stored, classification, "s", now=NOW)
        second = reconcile_classification(first.progress, classification, "s", now=NOW)
        assert second.delta.is_empty
        assert second.progress.known_cards == first.progress.known_cards
        assert second.progress.unknown_cards == first.progress.unknown_cards

    def test_legacy_purge_then_classify(self) -> None:
        stored = FlashcardProgress(known_cards=[LEGACY_ID], unknown_cards=[CARD_A])
        outcome = reconcile_classification(stored, {CARD_B: "known"}, "s", now=NOW)
        assert outcome.legacy_purged
        assert outcome.progress.known_cards == [CARD_B]
        assert outcome.progress.unknown_cards == []
