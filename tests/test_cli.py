"""Tests for CLI commands (non-interactive paths)."""

import json
import sys
from pathlib import Path

import pytest

from conftest import LEGACY_ID, make_user

from backend.config import settings
from backend.progress.identifiers import derive_card_id
from backend.repositories.json_file import JsonFileUserRepository
from fiszki.__main__ import main


def run_cli(monkeypatch: pytest.MonkeyPatch, *args: str) -> None:
    monkeypatch.setattr(sys, "argv", ["fiszki", *args])
    main()


def test_card_id(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    run_cli(monkeypatch, "card-id", "Hola", "Hello")
    assert capsys.readouterr().out.strip() == derive_card_id("hola", "hello")


def test_no_command_prints_help(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    run_cli(monkeypatch)
    assert "usage: fiszki" in capsys.readouterr().out


class TestMigrate:
    def _write(self, path: Path, users: dict) -> None:
        path.write_text(json.dumps(users), encoding="utf-8")

    def test_repairs_file_and_keeps_backup(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
    ) -> None:
        path = tmp_path / "users.json"
        self._write(path, {"u1": make_user(progress={"studySets": [{"id": "spanish"}]})})

        run_cli(monkeypatch, "migrate", str(path))

        users = json.loads(path.read_text(encoding="utf-8"))
        assert users["u1"]["flashcardProgress"]["spanish"]["knownCards"] == []
        assert (tmp_path / "users.json.backup").exists()
        assert "Validation passed" in capsys.readouterr().out

    def test_no_changes_removes_backup(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
    ) -> None:
        path = tmp_path / "users.json"
        self._write(path, {"u1": make_user()})

        run_cli(monkeypatch, "migrate", str(path))

        assert not (tmp_path / "users.json.backup").exists()
        assert "No changes needed" in capsys.readouterr().out

    def test_dry_run_writes_nothing(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
    ) -> None:
        path = tmp_path / "users.json"
        original = {"u1": make_user(progress={"studySets": [{"id": "spanish"}]})}
        self._write(path, original)

        run_cli(monkeypatch, "migrate", str(path), "--dry-run")

        assert json.loads(path.read_text(encoding="utf-8")) == original
        assert "1 of 1 users would change" in capsys.readouterr().out

    def test_purge_legacy(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        path = tmp_path / "users.json"
        card = derive_card_id("gato", "cat")
        self._write(
            path,
            {
                "u1": make_user(
                    flashcardProgress={
                        "s": {
                            "knownCards": [LEGACY_ID, card],
                            "unknownCards": [],
                            "lastUpdated": "2024-01-01T00:00:00.000Z",
                        }
                    }
                )
            },
        )

        run_cli(monkeypatch, "migrate", str(path), "--purge-legacy")

        users = json.loads(path.read_text(encoding="utf-8"))
        assert users["u1"]["flashcardProgress"]["s"]["knownCards"] == []

    def test_validate_fails_on_bad_structure(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
    ) -> None:
        path = tmp_path / "users.json"
        self._write(path, {"u1": make_user(flashcardProgress=None)})

        with pytest.raises(SystemExit) as excinfo:
            run_cli(monkeypatch, "migrate", str(path), "--validate")
        assert excinfo.value.code == 1
        assert "missing flashcardProgress object" in capsys.readouterr().out

    def test_missing_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "migrate", str(tmp_path / "nope.json"))

    def test_corrupt_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        path = tmp_path / "users.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(SystemExit):
            run_cli(monkeypatch, "migrate", str(path))
        assert path.read_text(encoding="utf-8") == "{"

    def test_validate_reports_corrupt_file(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
    ) -> None:
        path = tmp_path / "users.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(SystemExit) as excinfo:
            run_cli(monkeypatch, "migrate", str(path), "--validate")
        assert excinfo.value.code == 1
        assert "not valid JSON" in capsys.readouterr().out


def test_study_set_id(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    run_cli(monkeypatch, "study-set-id", "Spanish Verbs (Part 1).csv")
    assert capsys.readouterr().out.strip() == "spanish-verbs-part-1"


def test_users_lists_ids(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], users_file: Path
) -> None:
    users_file.write_text(
        json.dumps({"u1": make_user(), "u2": make_user(id="u2")}), encoding="utf-8"
    )
    monkeypatch.setattr(settings, "storage_backend", "json")
    monkeypatch.setattr(
        "fiszki.__main__.get_user_repository", lambda: JsonFileUserRepository(users_file)
    )

    run_cli(monkeypatch, "users")

    out = capsys.readouterr().out
    assert "2 user(s)" in out
    assert "  u1" in out
    assert "  u2" in out
