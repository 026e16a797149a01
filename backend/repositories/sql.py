"""SQLAlchemy-backed user repository with optimistic versioning."""

import logging

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.config import utcnow
from backend.models.user import UserDocument
from backend.progress.records import UserRecord
from backend.repositories.base import (
    PersistenceError,
    StoredUser,
    UserRepository,
    VersionConflictError,
)

logger = logging.getLogger(__name__)


class SqlUserRepository(UserRepository):
    """Stores each user document as a JSON column guarded by a version counter."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def load(self, user_id: str) -> StoredUser | None:
        try:
            async with self.session_factory() as session:
                row = await session.get(UserDocument, user_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load user {user_id}") from e

        if row is None:
            return None
        try:
            record = UserRecord.model_validate(row.document or {})
        except ValidationError as e:
            raise PersistenceError(f"Stored document for user {user_id} is unreadable") from e
        return StoredUser(record=record, version=row.version)

    async def save(
        self,
        user_id: str,
        record: UserRecord,
        expected_version: int | None = None,
    ) -> int:
        document = record.to_document()
        try:
            async with self.session_factory() as session:
                if expected_version is None:
                    new_version = await self._upsert(session, user_id, document)
                else:
                    result = await session.execute(
                        update(UserDocument)
                        .where(
                            UserDocument.user_id == user_id,
                            UserDocument.version == expected_version,
                        )
                        .values(
                            document=document,
                            version=expected_version + 1,
                            updated_at=utcnow(),
                        )
                    )
                    if result.rowcount == 0:
                        await session.rollback()
                        raise VersionConflictError(user_id, expected_version)
                    new_version = expected_version + 1
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save user {user_id}") from e

        logger.debug("Saved user %s at version %d", user_id, new_version)
        return new_version

    async def _upsert(self, session: AsyncSession, user_id: str, document: dict) -> int:
        row = await session.get(UserDocument, user_id)
        if row is None:
            session.add(UserDocument(user_id=user_id, document=document, version=1))
            return 1
        row.document = document
        row.version += 1
        return row.version

    async def list_user_ids(self) -> list[str]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(UserDocument.user_id).order_by(UserDocument.user_id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to list users") from e
