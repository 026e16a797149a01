"""Pydantic models for the per-user progress document.

The users store keeps one JSON document per user with camelCase keys written
by the browser client. These models read that document, coerce malformed
progress fields to empty values, and keep every field they don't know about
(``passwordHash``, ``createdAt``, ...) so a load/save cycle round-trips.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from backend.progress.card_store import CardScheduleState

logger = logging.getLogger(__name__)

_DOCUMENT_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


def _number_or_zero(value: Any) -> int | float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


class FlashcardProgress(BaseModel):
    """Known/unknown classification of the cards of one study set."""

    model_config = _DOCUMENT_CONFIG

    known_cards: list[str] = Field(default_factory=list)
    unknown_cards: list[str] = Field(default_factory=list)
    last_updated: str | None = None

    @field_validator("known_cards", "unknown_cards", mode="before")
    @classmethod
    def _coerce_card_list(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            if value is not None:
                logger.debug("Coercing malformed card list %r to []", type(value).__name__)
            return []
        return [card_id for card_id in value if isinstance(card_id, str) and card_id]

    @field_validator("last_updated", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class UserStudySetStats(BaseModel):
    """Aggregate session results of a user for one study set."""

    model_config = _DOCUMENT_CONFIG

    id: str
    total_sessions: int = 0
    best_score: int | float = 0
    average_score: int | float = 0
    total_time_spent: int | float = 0
    last_attempt: str | None = None
    last_score: int | float | None = None
    stats: dict[str, Any] = Field(default_factory=dict)

    @field_validator("total_sessions", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return int(_number_or_zero(value))

    @field_validator("best_score", "average_score", "total_time_spent", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> int | float:
        return _number_or_zero(value)

    @field_validator("last_score", mode="before")
    @classmethod
    def _coerce_optional_number(cls, value: Any) -> int | float | None:
        return None if value is None else _number_or_zero(value)

    @field_validator("last_attempt", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("stats", mode="before")
    @classmethod
    def _coerce_stats(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}


class ProgressSummary(BaseModel):
    model_config = _DOCUMENT_CONFIG

    study_sets: list[UserStudySetStats] = Field(default_factory=list)

    @field_validator("study_sets", mode="before")
    @classmethod
    def _drop_malformed_entries(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [
            entry
            for entry in value
            if isinstance(entry, UserStudySetStats)
            or (isinstance(entry, dict) and isinstance(entry.get("id"), str))
        ]


class UserRecord(BaseModel):
    """One user's entry in the users store."""

    model_config = _DOCUMENT_CONFIG

    flashcard_progress: dict[str, FlashcardProgress] = Field(default_factory=dict)
    progress: ProgressSummary = Field(default_factory=ProgressSummary)
    card_schedules: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("flashcard_progress", mode="before")
    @classmethod
    def _coerce_flashcard_progress(cls, value: Any) -> dict[str, Any]:
        if not isinstance(value, dict):
            return {}
        return {
            study_set_id: entry if isinstance(entry, (dict, FlashcardProgress)) else {}
            for study_set_id, entry in value.items()
        }

    @field_validator("progress", mode="before")
    @classmethod
    def _coerce_progress(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, ProgressSummary)) else {}

    @field_validator("card_schedules", mode="before")
    @classmethod
    def _coerce_card_schedules(cls, value: Any) -> dict[str, Any]:
        if not isinstance(value, dict):
            return {}
        return {
            study_set_id: {
                card_id: state
                for card_id, state in cards.items()
                if isinstance(state, dict)
            }
            for study_set_id, cards in value.items()
            if isinstance(cards, dict)
        }

    @property
    def username(self) -> str | None:
        return (self.model_extra or {}).get("username")

    def flashcards_for(self, study_set_id: str) -> FlashcardProgress:
        """Return the study set's known/unknown entry (empty if absent)."""
        return self.flashcard_progress.get(study_set_id) or FlashcardProgress()

    def study_set_stats(self, study_set_id: str) -> UserStudySetStats | None:
        for entry in self.progress.study_sets:
            if entry.id == study_set_id:
                return entry
        return None

    def put_study_set_stats(self, stats: UserStudySetStats) -> None:
        """Replace the stats entry with the same id, or append a new one."""
        for index, entry in enumerate(self.progress.study_sets):
            if entry.id == stats.id:
                self.progress.study_sets[index] = stats
                return
        self.progress.study_sets.append(stats)

    def schedules_for(self, study_set_id: str) -> dict[str, CardScheduleState]:
        """Return the study set's card states keyed by card id."""
        return {
            card_id: CardScheduleState.from_dict(data)
            for card_id, data in self.card_schedules.get(study_set_id, {}).items()
        }

    def put_schedules(self, study_set_id: str, schedules: dict[str, CardScheduleState]) -> None:
        self.card_schedules[study_set_id] = {
            card_id: state.to_dict() for card_id, state in schedules.items()
        }

    def to_document(self) -> dict[str, Any]:
        """Return the stored camelCase document."""
        return self.model_dump(by_alias=True, mode="json")

    def public_view(self) -> dict[str, Any]:
        """Return the document without credentials, for API responses."""
        document = self.to_document()
        document.pop("passwordHash", None)
        return document
