"""
Persistence port for user progress documents.

The progress core never touches files or connections directly; it loads a
user's record, computes on an in-memory copy, and saves it back through this
interface in one call.

Implementations:
    - SqlUserRepository: one row per user in the SQLAlchemy database.
    - JsonFileUserRepository: the whole-document ``users.json`` file.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from backend.progress.records import UserRecord


class PersistenceError(Exception):
    """Loading or saving the users store failed."""


class VersionConflictError(PersistenceError):
    """The record changed between load and save."""

    def __init__(self, user_id: str, expected_version: int | None) -> None:
        super().__init__(f"User {user_id} changed since version {expected_version}")
        self.user_id = user_id
        self.expected_version = expected_version


@dataclass
class StoredUser:
    """A loaded record and the version it was loaded at."""

    record: UserRecord
    version: int | None = None


class UserRepository(ABC):
    """Port for loading and saving per-user progress documents."""

    @abstractmethod
    async def load(self, user_id: str) -> StoredUser | None:
        """
        Load a user's record.

        Returns:
            The record with its version, or None if the user doesn't exist.

        Raises:
            PersistenceError: If the store can't be read.
        """

    @abstractmethod
    async def save(
        self,
        user_id: str,
        record: UserRecord,
        expected_version: int | None = None,
    ) -> int:
        """
        Replace a user's record.

        Args:
            user_id: The user to write.
            record: The full record; it replaces whatever is stored.
            expected_version: Version returned by ``load``; None skips the check.

        Returns:
            The new version.

        Raises:
            VersionConflictError: If the stored version moved on.
            PersistenceError: If the store can't be written.
        """

    @abstractmethod
    async def list_user_ids(self) -> list[str]:
        """Return every stored user id."""
