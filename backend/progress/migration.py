"""Repair the flashcard progress structure of a raw users document.

Works on the plain ``{user_id: user_dict}`` mapping rather than on
``UserRecord`` so that everything else in the file is written back exactly as
it was read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from backend.config import utcnow
from backend.progress.identifiers import find_legacy_ids
from backend.progress.reconciler import LEGACY_PURGE_EVENT
from backend.progress.timestamps import to_iso

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    total_users: int = 0
    users_modified: int = 0
    study_sets_processed: int = 0
    study_sets_modified: int = 0
    legacy_sets_purged: int = 0
    changes: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.users_modified > 0


def _study_set_ids(user: dict[str, Any]) -> list[str]:
    progress = user.get("progress")
    if not isinstance(progress, dict) or not isinstance(progress.get("studySets"), list):
        return []
    return [
        entry["id"]
        for entry in progress["studySets"]
        if isinstance(entry, dict) and isinstance(entry.get("id"), str)
    ]


def _repair_entry(entry: dict[str, Any], stamp: str) -> list[str]:
    fixes = []
    for key in ("knownCards", "unknownCards"):
        if not isinstance(entry.get(key), list):
            entry[key] = []
            fixes.append(f"fixed {key}")
    if not entry.get("lastUpdated"):
        entry["lastUpdated"] = stamp
        fixes.append("added lastUpdated")
    return fixes


def migrate_users(
    users: dict[str, Any],
    now: datetime | None = None,
    purge_legacy: bool = False,
    detect_untagged: bool = True,
) -> MigrationReport:
    """Ensure every user has well-formed ``flashcardProgress`` entries.

    Each study set listed in ``progress.studySets`` gets an entry with list
    ``knownCards``/``unknownCards`` and a ``lastUpdated`` stamp. With
    ``purge_legacy`` the legacy-id discard policy is applied to every entry.
    ``users`` is modified in place.
    """
    stamp = to_iso(now or utcnow())
    report = MigrationReport()

    for user_id, user in users.items():
        report.total_users += 1
        if not isinstance(user, dict):
            report.changes.append(f"{user_id}: skipped, record is not an object")
            continue

        user_changes: list[str] = []
        if not isinstance(user.get("flashcardProgress"), dict):
            user["flashcardProgress"] = {}
            user_changes.append("added flashcardProgress")
        flashcard_progress = user["flashcardProgress"]

        for study_set_id in _study_set_ids(user):
            report.study_sets_processed += 1
            entry = flashcard_progress.get(study_set_id)
            if not isinstance(entry, dict):
                flashcard_progress[study_set_id] = {
                    "knownCards": [],
                    "unknownCards": [],
                    "lastUpdated": stamp,
                }
                fixes = ["created entry"]
            else:
                fixes = _repair_entry(entry, stamp)
            if fixes:
                report.study_sets_modified += 1
                user_changes.extend(f"{study_set_id}: {fix}" for fix in fixes)

        if purge_legacy:
            for study_set_id, entry in flashcard_progress.items():
                if not isinstance(entry, dict):
                    continue
                ids = [
                    card_id
                    for key in ("knownCards", "unknownCards")
                    if isinstance(entry.get(key), list)
                    for card_id in entry[key]
                ]
                legacy = find_legacy_ids(ids, detect_untagged=detect_untagged)
                if not legacy:
                    continue
                logger.warning(
                    "%s user=%s study_set=%s legacy_ids=%d",
                    LEGACY_PURGE_EVENT,
                    user_id,
                    study_set_id,
                    len(legacy),
                )
                entry["knownCards"] = []
                entry["unknownCards"] = []
                entry["lastUpdated"] = stamp
                report.legacy_sets_purged += 1
                user_changes.append(f"{study_set_id}: discarded legacy progress")

        if user_changes:
            report.users_modified += 1
            report.changes.extend(f"{user_id}: {change}" for change in user_changes)

    return report


def validate_users(users: dict[str, Any]) -> list[str]:
    """Return a description of every structural problem found."""
    problems = []
    for user_id, user in users.items():
        if not isinstance(user, dict) or not isinstance(user.get("flashcardProgress"), dict):
            problems.append(f"User {user_id} missing flashcardProgress object")
            continue
        for study_set_id in _study_set_ids(user):
            entry = user["flashcardProgress"].get(study_set_id)
            if not isinstance(entry, dict):
                problems.append(
                    f"User {user_id}, study set {study_set_id} missing flashcardProgress"
                )
                continue
            for key in ("knownCards", "unknownCards"):
                if not isinstance(entry.get(key), list):
                    problems.append(
                        f"User {user_id}, study set {study_set_id} {key} is not an array"
                    )
    return problems
