"""Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire, matching what
the browser client sends and reads.
"""

from datetime import datetime
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from backend.progress.card_store import CardScheduleState, StudySetCardSummary
from backend.progress.delta import Classification, ProgressDelta, classify_session
from backend.progress.service import SessionCompletion

CardId = Annotated[str, StringConstraints(min_length=1, max_length=255)]
StudySetId = Annotated[str, StringConstraints(min_length=1, max_length=255)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _integral(value: float) -> int | float:
    return int(value) if value.is_integer() else value


# --- Session completion ---


class SessionStatsPayload(CamelModel):
    """Results of one finished session."""

    score: float = Field(ge=0, le=100, allow_inf_nan=False)
    total_time: float = Field(default=0, ge=0, allow_inf_nan=False)
    correct_answers: int = Field(default=0, ge=0)
    total_questions: int = Field(default=0, ge=0)

    @field_validator("score", "total_time", mode="after")
    @classmethod
    def _keep_whole_numbers(cls, value: float) -> int | float:
        return _integral(value)


class FlashcardUpdatesPayload(CamelModel):
    """Client-computed known/unknown delta."""

    known_add: list[CardId] = Field(default_factory=list)
    known_remove: list[CardId] = Field(default_factory=list)
    unknown_add: list[CardId] = Field(default_factory=list)
    unknown_remove: list[CardId] = Field(default_factory=list)

    def to_delta(self) -> ProgressDelta:
        return ProgressDelta.from_wire(self.model_dump(by_alias=True))


class SessionCompletionRequest(CamelModel):
    """Request sent when a study session ends."""

    study_set_id: StudySetId
    session_stats: SessionStatsPayload
    flashcard_updates: FlashcardUpdatesPayload | None = None
    # server computes the delta; null marks a card shown but not answered
    classifications: dict[CardId, Classification | None] | None = None

    @model_validator(mode="after")
    def _one_update_form(self) -> "SessionCompletionRequest":
        if self.flashcard_updates is not None and self.classifications is not None:
            raise ValueError("Send either flashcardUpdates or classifications, not both")
        return self

    def to_completion(self) -> SessionCompletion:
        return SessionCompletion(
            study_set_id=self.study_set_id,
            score=self.session_stats.score,
            total_time=self.session_stats.total_time,
            correct_answers=self.session_stats.correct_answers,
            total_questions=self.session_stats.total_questions,
            delta=self.flashcard_updates.to_delta() if self.flashcard_updates else None,
            classification=(
                classify_session(self.classifications.items())
                if self.classifications is not None
                else None
            ),
        )


class ProgressResponse(CamelModel):
    """Response after recording a session."""

    success: bool = True
    user: dict[str, Any]
    message: str = "Progress updated successfully"
    legacy_progress_discarded: bool = False
    applied_delta: dict[str, list[str]] | None = None


# --- Stats ---


class OverallStatsResponse(CamelModel):
    total_study_sets: int
    total_sessions: int
    average_score: int
    total_time_spent: float
    best_overall_score: float


class UserSummary(CamelModel):
    user_id: str
    username: str | None = None
    created_at: str | None = None
    progress: dict[str, Any]


class UserStatsResponse(CamelModel):
    """A user's progress with totals across study sets."""

    success: bool = True
    user: UserSummary
    overall_stats: OverallStatsResponse


# --- Flashcards ---


class CardReviewRequest(CamelModel):
    """One flashcard answer to schedule."""

    card_id: CardId
    is_correct: bool
    response_time: float = Field(default=0, ge=0, allow_inf_nan=False)  # seconds


class CardScheduleResponse(CamelModel):
    card_id: str
    times_reviewed: int
    times_correct: int
    difficulty: float
    consecutive_correct: int
    consecutive_incorrect: int
    ease_factor: float
    interval: int
    last_reviewed: datetime | None
    next_review: datetime | None

    @classmethod
    def from_state(cls, card_id: str, state: CardScheduleState) -> "CardScheduleResponse":
        return cls(
            card_id=card_id,
            times_reviewed=state.times_reviewed,
            times_correct=state.times_correct,
            difficulty=state.difficulty,
            consecutive_correct=state.consecutive_correct,
            consecutive_incorrect=state.consecutive_incorrect,
            ease_factor=state.ease_factor,
            interval=state.interval,
            last_reviewed=state.last_reviewed,
            next_review=state.next_review,
        )


class DueCardsResponse(CamelModel):
    study_set_id: str
    card_ids: list[str]
    count: int


class CardSummaryResponse(CamelModel):
    total_cards: int
    reviewed_cards: int
    mastered_cards: int
    average_difficulty: float
    due_for_review: int

    @classmethod
    def from_summary(cls, summary: StudySetCardSummary) -> "CardSummaryResponse":
        return cls(
            total_cards=summary.total_cards,
            reviewed_cards=summary.reviewed_cards,
            mastered_cards=summary.mastered_cards,
            average_difficulty=round(summary.average_difficulty, 3),
            due_for_review=summary.due_for_review,
        )


class FlashcardOverviewResponse(CamelModel):
    """Known/unknown cards and review summary for a study set."""

    study_set_id: str
    known_cards: list[str]
    unknown_cards: list[str]
    last_updated: str | None
    summary: CardSummaryResponse
