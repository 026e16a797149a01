from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they compare cleanly with timestamps parsed from the users file.
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Fiszki"
    database_url: str = f"sqlite+aiosqlite:///{PROJECT_ROOT / 'data' / 'fiszki.db'}"
    storage_backend: Literal["sql", "json"] = "sql"
    users_json_path: Path = PROJECT_ROOT / "private" / "users.json"
    session_cookie_name: str = "fiszki_session"
    legacy_id_detection: bool = True  # turn off once no untagged ids remain on disk
    default_review_limit: int = 20
    write_retry_attempts: int = 3
    cors_origins: list[str] = ["http://localhost:3000"]
    debug: bool = False

    model_config = {"env_prefix": "FISZKI_", "env_file": ".env"}


settings = Settings()
