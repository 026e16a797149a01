"""Load-compute-save cycles over the user repository.

Each public method loads one user record, computes on that in-memory copy with
the pure progress functions, and saves it back exactly once. Nothing is cached
between calls. Writes for the same user are serialized with a per-user lock,
and a save that loses an optimistic-version race re-runs the whole cycle.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from backend.config import settings, utcnow
from backend.progress.card_store import (
    CardScheduleState,
    StudySetCardSummary,
    get_cards_for_review,
    record_review,
    summarize_study_set,
)
from backend.progress.delta import Classification, ProgressDelta
from backend.progress.reconciler import (
    ReconcileOutcome,
    drop_legacy_schedules,
    reconcile,
    reconcile_classification,
)
from backend.progress.records import FlashcardProgress, UserRecord, UserStudySetStats
from backend.progress.stats import record_session
from backend.repositories.base import UserRepository, VersionConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UserNotFoundError(Exception):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


@dataclass
class SessionCompletion:
    """A finished study session as reported by the browser."""

    study_set_id: str
    score: int | float
    total_time: int | float = 0
    correct_answers: int = 0
    total_questions: int = 0
    delta: ProgressDelta | None = None
    classification: Mapping[str, Classification | str] | None = None

    @property
    def updates_flashcards(self) -> bool:
        return self.delta is not None or self.classification is not None


@dataclass
class CompletionResult:
    record: UserRecord
    stats: UserStudySetStats
    reconcile: ReconcileOutcome | None = None


class ProgressService:
    """Runs progress updates for users against a UserRepository."""

    def __init__(
        self,
        repository: UserRepository,
        retry_attempts: int = settings.write_retry_attempts,
        detect_legacy_ids: bool = settings.legacy_id_detection,
    ) -> None:
        self.repository = repository
        self.retry_attempts = max(1, retry_attempts)
        self.detect_legacy_ids = detect_legacy_ids
        # a lock lives only while some cycle for that user holds or awaits it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def load_user(self, user_id: str) -> UserRecord:
        stored = await self.repository.load(user_id)
        if stored is None:
            raise UserNotFoundError(user_id)
        return stored.record

    async def complete_session(
        self, user_id: str, completion: SessionCompletion
    ) -> CompletionResult:
        """Record a finished session and merge its flashcard outcome.

        Stats are always updated. Known/unknown sets are reconciled only when
        the completion carries a delta or a classification.

        Raises:
            UserNotFoundError: If the user doesn't exist.
            PersistenceError: If the record can't be loaded or saved; nothing
                is written in that case.
        """

        def mutate(record: UserRecord) -> tuple[UserStudySetStats, ReconcileOutcome | None]:
            now = utcnow()
            study_set_id = completion.study_set_id
            stats = record_session(
                record.study_set_stats(study_set_id),
                completion.score,
                completion.total_time,
                now=now,
                study_set_id=study_set_id,
            )
            record.put_study_set_stats(stats)

            if not completion.updates_flashcards:
                return stats, None

            entry = record.flashcards_for(study_set_id)
            if completion.classification is not None:
                outcome = reconcile_classification(
                    entry,
                    completion.classification,
                    study_set_id,
                    now=now,
                    detect_untagged=self.detect_legacy_ids,
                )
            else:
                outcome = reconcile(
                    entry,
                    completion.delta or ProgressDelta(),
                    study_set_id,
                    now=now,
                    detect_untagged=self.detect_legacy_ids,
                )
            record.flashcard_progress[study_set_id] = outcome.progress

            if outcome.legacy_purged:
                schedules = record.schedules_for(study_set_id)
                kept = drop_legacy_schedules(schedules, self.detect_legacy_ids)
                if len(kept) != len(schedules):
                    record.put_schedules(study_set_id, kept)
            return stats, outcome

        record, (stats, outcome) = await self._run_cycle(user_id, mutate)
        logger.info(
            "User %s completed a session of %s: score=%s sessions=%d average=%s",
            user_id,
            completion.study_set_id,
            completion.score,
            stats.total_sessions,
            stats.average_score,
        )
        return CompletionResult(record=record, stats=stats, reconcile=outcome)

    async def record_card_review(
        self,
        user_id: str,
        study_set_id: str,
        card_id: str,
        is_correct: bool,
        response_time_seconds: float | None = 0,
    ) -> CardScheduleState:
        """Apply one flashcard review to the card's schedule and persist it."""

        def mutate(record: UserRecord) -> CardScheduleState:
            schedules = record.schedules_for(study_set_id)
            state = record_review(schedules, card_id, is_correct, response_time_seconds)
            record.put_schedules(study_set_id, schedules)
            return state

        _, state = await self._run_cycle(user_id, mutate)
        return state

    async def cards_for_review(
        self,
        user_id: str,
        study_set_id: str,
        limit: int | None = None,
    ) -> list[str]:
        """Return due card ids for a study set in review order."""
        record = await self.load_user(user_id)
        return get_cards_for_review(record.schedules_for(study_set_id), limit=limit)

    async def flashcard_overview(
        self,
        user_id: str,
        study_set_id: str,
    ) -> tuple[FlashcardProgress, StudySetCardSummary]:
        record = await self.load_user(user_id)
        return (
            record.flashcards_for(study_set_id),
            summarize_study_set(record.schedules_for(study_set_id)),
        )

    async def _run_cycle(
        self,
        user_id: str,
        mutate: Callable[[UserRecord], T],
    ) -> tuple[UserRecord, T]:
        """Load the user, apply ``mutate`` to the record, save it back."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        async with lock:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=0.05, max=1),
                retry=retry_if_exception_type(VersionConflictError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    stored = await self.repository.load(user_id)
                    if stored is None:
                        raise UserNotFoundError(user_id)
                    result = mutate(stored.record)
                    await self.repository.save(
                        user_id, stored.record, expected_version=stored.version
                    )
        return stored.record, result
