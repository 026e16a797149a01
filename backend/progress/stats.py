"""Per-study-set session statistics and the overall summary built from them."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from backend.config import utcnow
from backend.progress.records import UserStudySetStats
from backend.progress.rounding import round_half_up
from backend.progress.timestamps import to_iso


@dataclass
class OverallStats:
    """Totals across all of a user's study sets."""

    total_study_sets: int = 0
    total_sessions: int = 0
    average_score: int = 0
    total_time_spent: int | float = 0
    best_overall_score: int | float = 0


def new_study_set_stats(study_set_id: str) -> UserStudySetStats:
    return UserStudySetStats(id=study_set_id)


def record_session(
    stats: UserStudySetStats | None,
    score: int | float,
    time_spent: int | float,
    now: datetime | None = None,
    study_set_id: str | None = None,
) -> UserStudySetStats:
    """Fold one completed session into a study set's stats.

    The average is updated incrementally from the previous average and
    session count, so it never needs the full session history.

    Args:
        stats: Current stats for the study set, or None for its first session.
        score: Session score (validated by the caller).
        time_spent: Session duration.
        now: Completion time (defaults to utcnow).
        study_set_id: Id for the new record when ``stats`` is None.

    Returns:
        A new UserStudySetStats; ``stats`` is left unchanged.

    Raises:
        ValueError: If ``stats`` is None and no ``study_set_id`` is given.
    """
    if stats is None:
        if not study_set_id:
            raise ValueError("study_set_id is required to start new stats")
        stats = new_study_set_stats(study_set_id)

    now = now or utcnow()
    sessions = stats.total_sessions + 1
    average = round_half_up((stats.average_score * stats.total_sessions + score) / sessions)
    best = max(stats.best_score, score)
    total_time = stats.total_time_spent + (time_spent or 0)

    return stats.model_copy(
        update={
            "total_sessions": sessions,
            "best_score": best,
            "average_score": average,
            "total_time_spent": total_time,
            "last_score": score,
            "last_attempt": to_iso(now),
            # mirror kept for clients that read the nested object
            "stats": {
                "totalSessions": sessions,
                "averageScore": average,
                "bestScore": best,
                "totalTimeSpent": total_time,
            },
        }
    )


def summarize_overall(study_sets: Sequence[UserStudySetStats]) -> OverallStats:
    """Summarize a user's progress across study sets."""
    if not study_sets:
        return OverallStats()

    return OverallStats(
        total_study_sets=len(study_sets),
        total_sessions=sum(s.total_sessions for s in study_sets),
        average_score=round_half_up(sum(s.average_score for s in study_sets) / len(study_sets)),
        total_time_spent=sum(s.total_time_spent for s in study_sets),
        best_overall_score=max(0, *(s.best_score for s in study_sets)),
    )
