"""Whole-document ``users.json`` repository.

The file maps user id to user record, exactly as the browser app's server
routes wrote it. Every save rewrites the full document through a temporary
file and ``os.replace`` so readers never see a half-written file.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from backend.progress.records import UserRecord
from backend.repositories.base import PersistenceError, StoredUser, UserRepository

logger = logging.getLogger(__name__)


def read_users_file(path: Path) -> dict[str, Any]:
    """Read the users document; a missing file is an empty store.

    Raises:
        PersistenceError: If the file exists but can't be read or parsed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise PersistenceError(f"Failed to read {path}") from e

    try:
        data = json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as e:
        raise PersistenceError(f"{path} is not valid JSON") from e
    if not isinstance(data, dict):
        raise PersistenceError(f"{path} must contain a JSON object keyed by user id")
    return data


def write_users_file(path: Path, users: dict[str, Any]) -> None:
    """Atomically replace the users document."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(users, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise PersistenceError(f"Failed to write {path}") from e


class JsonFileUserRepository(UserRepository):
    """Reads and writes user records in a single JSON file.

    There is no version on disk; ``expected_version`` is accepted and ignored,
    and writers are serialized with a lock held across each read-modify-write
    of the file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def load(self, user_id: str) -> StoredUser | None:
        users = await asyncio.to_thread(read_users_file, self.path)
        data = users.get(user_id)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise PersistenceError(f"Record for user {user_id} is not an object")
        try:
            return StoredUser(record=UserRecord.model_validate(data))
        except ValidationError as e:
            raise PersistenceError(f"Record for user {user_id} is unreadable") from e

    async def save(
        self,
        user_id: str,
        record: UserRecord,
        expected_version: int | None = None,
    ) -> int:
        async with self._lock:
            users = await asyncio.to_thread(read_users_file, self.path)
            users[user_id] = record.to_document()
            await asyncio.to_thread(write_users_file, self.path, users)
        logger.debug("Saved user %s to %s", user_id, self.path)
        return 0

    async def list_user_ids(self) -> list[str]:
        users = await asyncio.to_thread(read_users_file, self.path)
        return sorted(users)
