"""Operator CLI for Fiszki progress data.

Usage:
    python -m fiszki migrate private/users.json             Repair flashcardProgress entries
    python -m fiszki migrate users.json --validate          Only check the structure
    python -m fiszki migrate users.json --purge-legacy      Also discard legacy-id progress
    python -m fiszki import-users private/users.json        Copy users.json into the database
    python -m fiszki users                                  List stored user ids
    python -m fiszki stats USER_ID                          Show a user's statistics
    python -m fiszki due USER_ID STUDY_SET_ID               List cards due for review
    python -m fiszki card-id "question" "answer"            Print a card's content id
    python -m fiszki study-set-id "Spanish Verbs.csv"       Print a study set id
"""

import argparse
import asyncio
import copy
import logging
import shutil
from pathlib import Path

from backend.config import settings
from backend.database import async_session, create_tables, get_user_repository
from backend.progress.identifiers import derive_card_id, study_set_id_from_filename
from backend.progress.migration import migrate_users, validate_users
from backend.progress.records import UserRecord
from backend.progress.service import ProgressService, UserNotFoundError
from backend.progress.stats import summarize_overall
from backend.repositories.base import PersistenceError
from backend.repositories.json_file import read_users_file, write_users_file
from backend.repositories.sql import SqlUserRepository

logger = logging.getLogger(__name__)


def _users_path(args: argparse.Namespace) -> Path:
    return Path(args.users_json) if args.users_json else settings.users_json_path


def _validate(path: Path) -> bool:
    try:
        users = read_users_file(path)
    except PersistenceError as e:
        print(f"  {e}")
        return False
    problems = validate_users(users)
    for problem in problems:
        print(f"  {problem}")
    if problems:
        print(f"  Validation failed: {len(problems)} problem(s)")
        return False
    print("  Validation passed: all users have a valid flashcardProgress structure")
    return True


def cmd_migrate(args: argparse.Namespace) -> None:
    """Repair flashcardProgress entries in a users.json file."""
    path = _users_path(args)
    if not path.exists():
        print(f"  users file not found: {path}")
        raise SystemExit(1)

    if args.validate:
        if not _validate(path):
            raise SystemExit(1)
        return

    try:
        users = read_users_file(path)
    except PersistenceError as e:
        print(f"  {e}")
        raise SystemExit(1) from None

    if args.dry_run:
        report = migrate_users(
            copy.deepcopy(users),
            purge_legacy=args.purge_legacy,
            detect_untagged=settings.legacy_id_detection,
        )
        print("  Dry run, nothing written:")
        for change in report.changes:
            print(f"    {change}")
        print(f"  {report.users_modified} of {report.total_users} users would change")
        return

    backup = path.with_name(path.name + ".backup")
    shutil.copyfile(path, backup)
    try:
        report = migrate_users(
            users,
            purge_legacy=args.purge_legacy,
            detect_untagged=settings.legacy_id_detection,
        )
        write_users_file(path, users)
    except (PersistenceError, OSError):
        logger.exception("Migration failed, restoring %s", backup)
        shutil.copyfile(backup, path)
        raise SystemExit(1) from None

    for change in report.changes:
        print(f"    {change}")
    print("\n  Migration summary")
    print(f"  {'Users processed:':<24} {report.total_users}")
    print(f"  {'Users modified:':<24} {report.users_modified}")
    print(f"  {'Study sets processed:':<24} {report.study_sets_processed}")
    print(f"  {'Study sets modified:':<24} {report.study_sets_modified}")
    print(f"  {'Legacy sets purged:':<24} {report.legacy_sets_purged}")

    if report.changed:
        print(f"  Backup kept at {backup}")
    else:
        backup.unlink()
        print("  No changes needed, backup removed")

    if not _validate(path):
        raise SystemExit(1)


async def cmd_import_users(args: argparse.Namespace) -> None:
    """Copy every user from a users.json file into the SQL store."""
    users = read_users_file(_users_path(args))
    await create_tables()
    repository = SqlUserRepository(async_session)

    imported = 0
    for user_id, document in users.items():
        if not isinstance(document, dict):
            logger.warning("Skipping user %s: record is not an object", user_id)
            continue
        await repository.save(user_id, UserRecord.model_validate(document))
        imported += 1
    print(f"  Imported {imported} user(s) into {settings.database_url}")


async def cmd_users(args: argparse.Namespace) -> None:
    """List the ids of every stored user."""
    if settings.storage_backend == "sql":
        await create_tables()
    user_ids = await get_user_repository().list_user_ids()
    print(f"  {len(user_ids)} user(s)")
    for user_id in user_ids:
        print(f"    {user_id}")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show a user's statistics."""
    if settings.storage_backend == "sql":
        await create_tables()
    service = ProgressService(get_user_repository())
    try:
        record = await service.load_user(args.user_id)
    except UserNotFoundError:
        print(f"  User {args.user_id} not found")
        raise SystemExit(1) from None

    overall = summarize_overall(record.progress.study_sets)
    print(f"\n  Statistics for {record.username or args.user_id}")
    print(f"  {'Study sets:':<20} {overall.total_study_sets}")
    print(f"  {'Sessions:':<20} {overall.total_sessions}")
    print(f"  {'Average score:':<20} {overall.average_score}")
    print(f"  {'Best score:':<20} {overall.best_overall_score}")
    print(f"  {'Time spent:':<20} {overall.total_time_spent}")
    for entry in record.progress.study_sets:
        flashcards = record.flashcards_for(entry.id)
        print(
            f"    {entry.id:<30} sessions={entry.total_sessions} "
            f"best={entry.best_score} avg={entry.average_score} "
            f"known={len(flashcards.known_cards)} unknown={len(flashcards.unknown_cards)}"
        )
    print()


async def cmd_due(args: argparse.Namespace) -> None:
    """List cards due for review in a study set."""
    if settings.storage_backend == "sql":
        await create_tables()
    service = ProgressService(get_user_repository())
    try:
        card_ids = await service.cards_for_review(args.user_id, args.study_set_id, limit=args.limit)
    except UserNotFoundError:
        print(f"  User {args.user_id} not found")
        raise SystemExit(1) from None

    print(f"  {len(card_ids)} card(s) due in {args.study_set_id}")
    for card_id in card_ids:
        print(f"    {card_id}")


def cmd_card_id(args: argparse.Namespace) -> None:
    """Print the content-derived id of a card (sync, no storage needed)."""
    print(derive_card_id(args.question, args.answer))


def cmd_study_set_id(args: argparse.Namespace) -> None:
    """Print the study-set id a CSV file name maps to."""
    print(study_set_id_from_filename(args.filename))


def main() -> None:
    """Entry point for the Fiszki CLI."""
    parser = argparse.ArgumentParser(
        prog="fiszki",
        description="Fiszki flashcard progress tools",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Repair flashcardProgress entries")
    migrate_parser.add_argument("users_json", nargs="?", help="Path to users.json")
    migrate_parser.add_argument("-d", "--dry-run", action="store_true", help="Show changes only")
    migrate_parser.add_argument("--validate", action="store_true", help="Only validate")
    migrate_parser.add_argument(
        "--purge-legacy", action="store_true", help="Discard progress keyed by legacy card ids"
    )

    # import-users
    import_parser = subparsers.add_parser("import-users", help="Copy users.json into the database")
    import_parser.add_argument("users_json", nargs="?", help="Path to users.json")

    # users
    subparsers.add_parser("users", help="List stored user ids")

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show a user's statistics")
    stats_parser.add_argument("user_id")

    # due
    due_parser = subparsers.add_parser("due", help="List cards due for review")
    due_parser.add_argument("user_id")
    due_parser.add_argument("study_set_id")
    due_parser.add_argument("--limit", type=int, default=settings.default_review_limit)

    # card-id
    card_id_parser = subparsers.add_parser("card-id", help="Print a card's content-derived id")
    card_id_parser.add_argument("question")
    card_id_parser.add_argument("answer")

    # study-set-id
    study_set_parser = subparsers.add_parser(
        "study-set-id", help="Print the study-set id for a CSV file name"
    )
    study_set_parser.add_argument("filename")

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if not args.command:
        parser.print_help()
        return

    # migrate, card-id and study-set-id are synchronous, the rest are async.
    if args.command == "migrate":
        cmd_migrate(args)
        return
    if args.command == "card-id":
        cmd_card_id(args)
        return
    if args.command == "study-set-id":
        cmd_study_set_id(args)
        return

    cmd_map = {
        "import-users": cmd_import_users,
        "users": cmd_users,
        "stats": cmd_stats,
        "due": cmd_due,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
