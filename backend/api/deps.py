"""Shared FastAPI dependencies: cookie session lookup and the progress service."""

import contextlib
import json
import logging
from collections.abc import Iterator
from functools import lru_cache
from urllib.parse import unquote

from fastapi import HTTPException, Request

from backend.config import settings
from backend.database import get_user_repository
from backend.progress.service import ProgressService, UserNotFoundError
from backend.repositories.base import PersistenceError

logger = logging.getLogger(__name__)


def current_user_id(request: Request) -> str:
    """Return the user id from the session cookie, or fail with 401."""
    raw = request.cookies.get(settings.session_cookie_name)
    if not raw:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        session_data = json.loads(unquote(raw))
    except json.JSONDecodeError:
        raise HTTPException(status_code=401, detail="Invalid session") from None

    user_id = session_data.get("userId") if isinstance(session_data, dict) else None
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=401, detail="Invalid session")
    return user_id


@lru_cache
def get_progress_service() -> ProgressService:
    """Return the process-wide service so per-user write locks are shared."""
    return ProgressService(get_user_repository())


@contextlib.contextmanager
def service_errors(user_id: str) -> Iterator[None]:
    """Translate progress service errors into HTTP responses."""
    try:
        yield
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found") from None
    except PersistenceError as e:
        logger.error("Progress storage failed for user %s: %s", user_id, e)
        raise HTTPException(
            status_code=503,
            detail={"error": "Progress could not be saved", "retryable": True},
        ) from e
