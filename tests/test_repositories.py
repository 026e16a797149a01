"""Tests for the JSON file and SQL user repositories."""

import json
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import make_user

from backend.models import Base
from backend.progress.records import UserRecord
from backend.repositories.base import PersistenceError, VersionConflictError
from backend.repositories.json_file import (
    JsonFileUserRepository,
    read_users_file,
    write_users_file,
)
from backend.repositories.sql import SqlUserRepository


@asynccontextmanager
async def sql_repository(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'repo.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield SqlUserRepository(
            async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        )
    finally:
        await engine.dispose()


class TestUsersFile:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert read_users_file(tmp_path / "nope.json") == {}

    def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "users.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            read_users_file(path)

    def test_non_object_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "users.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(PersistenceError):
            read_users_file(path)

    def test_write_leaves_no_temp_files(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "users.json"
        write_users_file(path, {"u1": make_user()})
        assert json.loads(path.read_text(encoding="utf-8"))["u1"]["username"] == "ania"
        assert [p.name for p in path.parent.iterdir()] == ["users.json"]


class TestJsonFileUserRepository:
    @pytest.mark.asyncio
    async def test_load_missing_user(self, users_file: Path) -> None:
        assert await JsonFileUserRepository(users_file).load("ghost") is None

    @pytest.mark.asyncio
    async def test_save_keeps_other_users(self, users_file: Path) -> None:
        repo = JsonFileUserRepository(users_file)
        record = UserRecord.model_validate(make_user(id="u2", username="bartek"))
        await repo.save("u2", record)

        assert await repo.list_user_ids() == ["u1", "u2"]
        stored = await repo.load("u1")
        assert stored.record.username == "ania"
        assert stored.version is None

    @pytest.mark.asyncio
    async def test_round_trip_preserves_extras(self, users_file: Path) -> None:
        repo = JsonFileUserRepository(users_file)
        stored = await repo.load("u1")
        await repo.save("u1", stored.record)
        raw = json.loads(users_file.read_text(encoding="utf-8"))
        assert raw["u1"]["passwordHash"] == make_user()["passwordHash"]

    @pytest.mark.asyncio
    async def test_non_object_record_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "users.json"
        path.write_text(json.dumps({"u1": "broken"}), encoding="utf-8")
        with pytest.raises(PersistenceError):
            await JsonFileUserRepository(path).load("u1")


class TestSqlUserRepository:
    @pytest.mark.asyncio
    async def test_insert_and_load(self, tmp_path: Path) -> None:
        async with sql_repository(tmp_path) as repo:
            assert await repo.load("u1") is None
            version = await repo.save("u1", UserRecord.model_validate(make_user()))
            assert version == 1

            stored = await repo.load("u1")
            assert stored.version == 1
            assert stored.record.username == "ania"
            assert await repo.list_user_ids() == ["u1"]

    @pytest.mark.asyncio
    async def test_versioned_save_increments(self, tmp_path: Path) -> None:
        async with sql_repository(tmp_path) as repo:
            await repo.save("u1", UserRecord.model_validate(make_user()))
            stored = await repo.load("u1")
            assert await repo.save("u1", stored.record, expected_version=stored.version) == 2

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, tmp_path: Path) -> None:
        async with sql_repository(tmp_path) as repo:
            await repo.save("u1", UserRecord.model_validate(make_user()))
            first = await repo.load("u1")
            second = await repo.load("u1")

            await repo.save("u1", first.record, expected_version=first.version)
            with pytest.raises(VersionConflictError):
                await repo.save("u1", second.record, expected_version=second.version)

            assert (await repo.load("u1")).version == 2

    @pytest.mark.asyncio
    async def test_upsert_without_version(self, tmp_path: Path) -> None:
        async with sql_repository(tmp_path) as repo:
            await repo.save("u1", UserRecord.model_validate(make_user()))
            version = await repo.save("u1", UserRecord.model_validate(make_user(theme="dark")))
            assert version == 2
            stored = await repo.load("u1")
            assert stored.record.to_document()["theme"] == "dark"
