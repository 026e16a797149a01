"""API routes for flashcard reviews and spaced-repetition queues."""

import logging

from fastapi import APIRouter, Depends, Query

from backend.api.deps import current_user_id, get_progress_service, service_errors
from backend.api.schemas import (
    CardReviewRequest,
    CardScheduleResponse,
    CardSummaryResponse,
    DueCardsResponse,
    FlashcardOverviewResponse,
)
from backend.config import settings
from backend.progress.service import ProgressService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/flashcards", tags=["flashcards"])


@router.get("/{study_set_id}", response_model=FlashcardOverviewResponse)
async def flashcard_overview(
    study_set_id: str,
    user_id: str = Depends(current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> FlashcardOverviewResponse:
    """Get known/unknown cards and the review summary for a study set."""
    with service_errors(user_id):
        progress, summary = await service.flashcard_overview(user_id, study_set_id)

    return FlashcardOverviewResponse(
        study_set_id=study_set_id,
        known_cards=progress.known_cards,
        unknown_cards=progress.unknown_cards,
        last_updated=progress.last_updated,
        summary=CardSummaryResponse.from_summary(summary),
    )


@router.post("/{study_set_id}/review", response_model=CardScheduleResponse)
async def review_card(
    study_set_id: str,
    request: CardReviewRequest,
    user_id: str = Depends(current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> CardScheduleResponse:
    """Record one flashcard answer and return the card's new schedule."""
    with service_errors(user_id):
        state = await service.record_card_review(
            user_id,
            study_set_id,
            request.card_id,
            request.is_correct,
            request.response_time,
        )
    return CardScheduleResponse.from_state(request.card_id, state)


@router.get("/{study_set_id}/due", response_model=DueCardsResponse)
async def due_cards(
    study_set_id: str,
    limit: int = Query(default=settings.default_review_limit, ge=1, le=1000),
    user_id: str = Depends(current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> DueCardsResponse:
    """Get due card ids, hardest and most overdue first."""
    with service_errors(user_id):
        card_ids = await service.cards_for_review(user_id, study_set_id, limit=limit)
    return DueCardsResponse(study_set_id=study_set_id, card_ids=card_ids, count=len(card_ids))
