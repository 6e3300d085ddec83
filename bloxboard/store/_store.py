from __future__ import annotations

from pathlib import Path
from typing import Any

from .. import db
from ..entries import ENTRY_COLUMNS, ScoreEntry, normalize_entry
from ..errors import ConfigurationError
from . import migration as store_migration
from .types import EntryNormalizer, MigrationState

DEFAULT_RETENTION_CAP = 100

_COLUMN_LIST = ", ".join(ENTRY_COLUMNS)
_PARAM_LIST = ", ".join(f":{column}" for column in ENTRY_COLUMNS)


class SqliteScoreStore:
    STORAGE_KIND = "sqlite"

    def __init__(
        self,
        db_path: Path | str = db.DEFAULT_DB_PATH,
        *,
        retention_cap: int = DEFAULT_RETENTION_CAP,
        create_parent: bool = False,
        check_same_thread: bool = True,
    ):
        if isinstance(retention_cap, bool) or not isinstance(retention_cap, int):
            raise ConfigurationError(
                f"retention_cap must be a positive integer, got {retention_cap!r}"
            )
        if retention_cap < 1:
            raise ConfigurationError(f"retention_cap must be at least 1, got {retention_cap}")
        self.db_path = db.resolve_db_path(db_path)
        self.retention_cap = retention_cap
        self.conn = db.connect(
            self.db_path, create_parent=create_parent, check_same_thread=check_same_thread
        )
        db.initialize_schema(self.conn)
        self.journal_mode = db.configure_journal_mode(self.conn, db_label=str(self.db_path))
        # Per-instance so independent stores (tests, multiple files) never share it.
        self._migration_complete = self.migration_state() == "complete"

    def storage_kind(self) -> str:
        return self.STORAGE_KIND

    def storage_location(self) -> str:
        return str(self.db_path)

    def close(self) -> None:
        self.conn.close()

    def insert(self, entry: ScoreEntry) -> None:
        self.conn.execute(
            f"INSERT INTO leaderboard_scores ({_COLUMN_LIST}) VALUES ({_PARAM_LIST})",
            entry.to_params(),
        )

    def trim(self, cap: int | None = None) -> int:
        """Delete every row ranked past ``cap`` by (created_at DESC, id DESC)."""
        cur = self.conn.execute(
            """
            WITH ranked AS (
                SELECT id, ROW_NUMBER() OVER (ORDER BY created_at DESC, id DESC) AS rank
                FROM leaderboard_scores
            )
            DELETE FROM leaderboard_scores
            WHERE id IN (SELECT id FROM ranked WHERE rank > ?)
            """,
            (self.retention_cap if cap is None else cap,),
        )
        return max(cur.rowcount, 0)

    def write_entry(self, entry: ScoreEntry) -> None:
        try:
            self.insert(entry)
            self.trim()
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def read_recent(self, limit: int) -> list[ScoreEntry]:
        if limit <= 0:
            return []
        rows = self.conn.execute(
            f"""
            SELECT {_COLUMN_LIST}
            FROM leaderboard_scores
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (int(limit),),
        ).fetchall()
        return [ScoreEntry.from_row(row) for row in rows]

    def count(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM leaderboard_scores").fetchone()[0])

    def migration_state(self) -> MigrationState:
        return store_migration.read_migration_state(self.conn)

    def migrate_from_legacy_json(
        self, legacy_path: Path | str, normalize: EntryNormalizer = normalize_entry
    ) -> int:
        return store_migration.migrate_from_legacy_json(self, legacy_path, normalize)

    def stats(self) -> dict[str, Any]:
        size_bytes = 0
        if isinstance(self.db_path, Path) and self.db_path.exists():
            size_bytes = self.db_path.stat().st_size
        return {
            "kind": self.storage_kind(),
            "path": self.storage_location(),
            "size_bytes": size_bytes,
            "entries": self.count(),
            "retention_cap": self.retention_cap,
            "journal_mode": self.journal_mode,
            "migration": self.migration_state(),
        }
