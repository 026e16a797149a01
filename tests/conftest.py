import json
import os
import tempfile
from pathlib import Path
from typing import Any

import pytest

# Point the app at throwaway storage before backend.config is imported.
_TEST_DIR = Path(tempfile.mkdtemp(prefix="fiszki-tests-"))
os.environ.setdefault("FISZKI_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR / 'test.db'}")
os.environ.setdefault("FISZKI_USERS_JSON_PATH", str(_TEST_DIR / "users.json"))

LEGACY_ID = "lxyz12abk3j4h5g6f7"  # Date.now().toString(36) + Math.random().toString(36)


def make_user(**overrides: Any) -> dict[str, Any]:
    """Return a users.json record as the browser app writes it."""
    user: dict[str, Any] = {
        "id": "u1",
        "username": "ania",
        "passwordHash": "5e884898da28047151d0e56f8dc62927",
        "createdAt": "2024-01-10T09:00:00.000Z",
        "progress": {"studySets": []},
        "flashcardProgress": {},
    }
    user.update(overrides)
    return user


@pytest.fixture
def users_file(tmp_path: Path) -> Path:
    path = tmp_path / "private" / "users.json"
    path.parent.mkdir()
    path.write_text(json.dumps({"u1": make_user()}), encoding="utf-8")
    return path
