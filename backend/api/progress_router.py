"""API routes for session completion and user statistics."""

import logging

from fastapi import APIRouter, Depends

from backend.api.deps import current_user_id, get_progress_service, service_errors
from backend.api.schemas import (
    OverallStatsResponse,
    ProgressResponse,
    SessionCompletionRequest,
    UserStatsResponse,
    UserSummary,
)
from backend.progress.service import ProgressService
from backend.progress.stats import summarize_overall

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["progress"])


@router.post("/progress", response_model=ProgressResponse)
async def update_progress(
    request: SessionCompletionRequest,
    user_id: str = Depends(current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> ProgressResponse:
    """Record a completed session and merge its flashcard outcome."""
    with service_errors(user_id):
        result = await service.complete_session(user_id, request.to_completion())

    legacy_purged = bool(result.reconcile and result.reconcile.legacy_purged)
    return ProgressResponse(
        user=result.record.public_view(),
        message=(
            "Progress updated; old flashcard progress was reset"
            if legacy_purged
            else "Progress updated successfully"
        ),
        legacy_progress_discarded=legacy_purged,
        applied_delta=result.reconcile.delta.to_wire() if result.reconcile else None,
    )


@router.get("/stats", response_model=UserStatsResponse)
async def get_user_stats(
    user_id: str = Depends(current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> UserStatsResponse:
    """Get a user's progress and totals across study sets."""
    with service_errors(user_id):
        record = await service.load_user(user_id)

    extra = record.model_extra or {}
    overall = summarize_overall(record.progress.study_sets)
    return UserStatsResponse(
        user=UserSummary(
            user_id=extra.get("id") or user_id,
            username=record.username,
            created_at=extra.get("createdAt"),
            progress=record.progress.model_dump(by_alias=True, mode="json"),
        ),
        overall_stats=OverallStatsResponse(
            total_study_sets=overall.total_study_sets,
            total_sessions=overall.total_sessions,
            average_score=overall.average_score,
            total_time_spent=overall.total_time_spent,
            best_overall_score=overall.best_overall_score,
        ),
    )
