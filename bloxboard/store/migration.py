from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..entries import ENTRY_COLUMNS, ScoreEntry, entry_identity, row_identity
from ..errors import MigrationError
from .types import EntryNormalizer, MigrationState

if TYPE_CHECKING:
    from ._store import SqliteScoreStore

logger = logging.getLogger(__name__)

# Persisted in leaderboard_meta. Changing the key or either value makes every
# already-migrated database import its legacy file again.
LEGACY_MIGRATION_STATE_KEY = "legacy-json-migration-complete"
MIGRATION_INCOMPLETE_FLAG = "0"
MIGRATION_COMPLETE_FLAG = "1"

# One identity string (~11 short fields) is held per existing row during the
# dedup scan. Past this cap the one-off cost is worth telling operators about.
MIGRATION_MEMORY_ADVISORY_THRESHOLD = 10_000
BYTES_PER_IDENTITY_ESTIMATE = 150


def estimate_migration_memory_mb(entry_count: int) -> float:
    return round(entry_count * BYTES_PER_IDENTITY_ESTIMATE / 1024 / 1024, 1)


def read_migration_state(conn: sqlite3.Connection) -> MigrationState:
    row = conn.execute(
        "SELECT meta_value FROM leaderboard_meta WHERE meta_key = ?",
        (LEGACY_MIGRATION_STATE_KEY,),
    ).fetchone()
    if row is not None and str(row["meta_value"]).strip() == MIGRATION_COMPLETE_FLAG:
        return "complete"
    return "incomplete"


def _mark_migration_complete(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        INSERT INTO leaderboard_meta(meta_key, meta_value)
        VALUES (?, ?)
        ON CONFLICT(meta_key) DO UPDATE SET meta_value = excluded.meta_value
        """,
        (LEGACY_MIGRATION_STATE_KEY, MIGRATION_COMPLETE_FLAG),
    )


def load_legacy_entries(legacy_path: Path, normalize: EntryNormalizer) -> list[ScoreEntry]:
    try:
        parsed: Any = json.loads(legacy_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MigrationError(
            f"Failed to read legacy leaderboard file {legacy_path}: {exc}"
        ) from exc
    raw_entries = parsed.get("entries") if isinstance(parsed, dict) else None
    if not isinstance(raw_entries, list):
        raw_entries = []

    entries: list[ScoreEntry] = []
    skipped = 0
    for raw in raw_entries:
        try:
            entries.append(normalize(raw, allow_created_at=True))
        except Exception:  # one bad entry never blocks the rest of the import
            skipped += 1
    if skipped:
        logger.debug("skipped %d invalid legacy leaderboard entries", skipped)
    return entries


def _log_memory_advisory(retention_cap: int) -> None:
    if retention_cap <= MIGRATION_MEMORY_ADVISORY_THRESHOLD:
        return
    logger.info(
        "retention cap is %d; the one-time legacy migration holds an identity string for "
        "every existing row in memory (~%.1f MB at %d bytes/entry). This is informational "
        "only and the migration proceeds. Lower the retention setting before rerunning the "
        "migration, or run it on a machine with enough memory, if that is a concern.",
        retention_cap,
        estimate_migration_memory_mb(retention_cap),
        BYTES_PER_IDENTITY_ESTIMATE,
    )


def dedupe_entries(entries: list[ScoreEntry], seen: set[str]) -> list[ScoreEntry]:
    """Drop entries whose identity is in ``seen`` or repeats earlier in the batch."""
    fresh: list[ScoreEntry] = []
    for entry in entries:
        identity = entry_identity(entry)
        if identity in seen:
            continue
        seen.add(identity)
        fresh.append(entry)
    return fresh


def migrate_from_legacy_json(
    store: SqliteScoreStore,
    legacy_path: Path | str,
    normalize: EntryNormalizer,
) -> int:
    """Import the legacy JSON leaderboard once, returning the number of rows inserted.

    A missing legacy file returns 0 and leaves the persisted flag incomplete so a
    later call can still import it. The inserts, the retention trim and the flag
    update commit together; on failure everything rolls back, the instance cache
    stays incomplete and the next call retries, with the identity check keeping
    already-committed rows from being duplicated.
    """
    if store._migration_complete:
        return 0
    if store.migration_state() == "complete":
        store._migration_complete = True
        return 0

    path = Path(legacy_path).expanduser()
    if not path.exists():
        logger.debug("legacy leaderboard file %s not found; migration deferred", path)
        return 0

    entries = load_legacy_entries(path, normalize)
    _log_memory_advisory(store.retention_cap)

    conn = store.conn
    try:
        # Take the write lock before checking the flag and scanning, so a second
        # process migrating the same file waits here and then sees our commit.
        conn.execute("BEGIN IMMEDIATE")
        if read_migration_state(conn) == "complete":
            conn.rollback()
            store._migration_complete = True
            return 0
        seen = {
            row_identity(row)
            for row in conn.execute(f"SELECT {', '.join(ENTRY_COLUMNS)} FROM leaderboard_scores")
        }
        to_insert = dedupe_entries(entries, seen)
        for entry in to_insert:
            store.insert(entry)
        store.trim()
        _mark_migration_complete(conn)
        conn.commit()
    except Exception as exc:
        if conn.in_transaction:
            conn.rollback()
        raise MigrationError(
            "Legacy JSON to SQLite leaderboard migration failed and was rolled back; "
            f"it will be retried on the next call. Original error: {exc}"
        ) from exc

    store._migration_complete = True
    logger.info(
        "migrated %d legacy leaderboard entries into %s", len(to_insert), store.storage_location()
    )
    return len(to_insert)
