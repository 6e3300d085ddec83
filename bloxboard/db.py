from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from .errors import ConfigurationError, OpenFailure

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".bloxboard" / "leaderboard.sqlite"
MEMORY_DB = ":memory:"

REQUESTED_JOURNAL_MODE = "wal"
WAL_DOCS_URL = "https://sqlite.org/wal.html"


def resolve_db_path(db_path: Path | str | None) -> Path | str:
    if db_path is None or not str(db_path).strip():
        raise ConfigurationError(
            "A non-empty database path is required to open the leaderboard store."
        )
    if str(db_path) == MEMORY_DB:
        return MEMORY_DB
    return Path(db_path).expanduser()


def _open_failure(path: Path | str, exc: Exception) -> OpenFailure:
    return OpenFailure(
        f'Failed to open SQLite database at "{path}": {exc}. '
        "This usually means the parent directory does not exist, the process lacks "
        "read/write permission on the file or directory, or the filesystem is read-only. "
        "Create the directory and make sure the process can create and modify "
        "the database file."
    )


def connect(
    db_path: Path | str, *, create_parent: bool = False, check_same_thread: bool = True
) -> sqlite3.Connection:
    path = resolve_db_path(db_path)
    if create_parent and isinstance(path, Path):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise _open_failure(path, exc) from exc
    try:
        conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    except sqlite3.Error as exc:
        raise _open_failure(path, exc) from exc
    try:
        # connect() is lazy about the file; touch it so open errors surface here.
        conn.execute("SELECT 1 FROM sqlite_master LIMIT 1").fetchone()
    except sqlite3.Error as exc:
        conn.close()
        raise _open_failure(path, exc) from exc
    conn.row_factory = sqlite3.Row
    return conn


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS leaderboard_scores (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            player_name TEXT NOT NULL,
            time_ms INTEGER NOT NULL,
            attempts INTEGER NOT NULL,
            difficulty_id TEXT NOT NULL,
            difficulty_label TEXT NOT NULL,
            emoji_set_id TEXT NOT NULL,
            emoji_set_label TEXT NOT NULL,
            score_multiplier REAL NOT NULL,
            score_value INTEGER NOT NULL,
            is_auto_demo INTEGER NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS leaderboard_scores_recent_idx
            ON leaderboard_scores(created_at DESC, id DESC);

        CREATE TABLE IF NOT EXISTS leaderboard_meta (
            meta_key TEXT PRIMARY KEY,
            meta_value TEXT NOT NULL
        );
        """
    )
    conn.commit()


def _wal_warning(context: str) -> str:
    return "\n".join(
        [
            context,
            "Verify write permissions for the database file and its parent directory "
            "so WAL mode can be enabled.",
            "Confirm the filesystem supports WAL (read-only and some network mounts do not) "
            "and that the SQLite library Python links against was built with WAL support.",
            f"See the SQLite WAL documentation: {WAL_DOCS_URL}",
        ]
    )


def configure_journal_mode(conn: sqlite3.Connection, *, db_label: str) -> str | None:
    """Switch to write-ahead logging, warning once if the switch does not stick.

    SQLite answers ``PRAGMA journal_mode`` with the mode actually in effect, which
    can silently stay ``delete`` (or ``memory``) on unsupported setups. The store
    stays correct under the rollback journal, so this never raises.
    """
    try:
        row = conn.execute(f"PRAGMA journal_mode = {REQUESTED_JOURNAL_MODE}").fetchone()
    except sqlite3.Error as exc:
        logger.warning(
            _wal_warning(
                f"Unable to enable SQLite WAL mode for database '{db_label}'. "
                "The leaderboard falls back to the default rollback journal, which is safe "
                f"but may be slower for writes. Details: {type(exc).__name__}: {exc}"
            ),
            extra={"requested_mode": REQUESTED_JOURNAL_MODE, "achieved_mode": None},
        )
        return None
    achieved = str(row[0]).lower() if row and row[0] is not None else None
    if achieved != REQUESTED_JOURNAL_MODE:
        logger.warning(
            _wal_warning(
                f"SQLite WAL mode was requested for database '{db_label}' but the resulting "
                f"journal mode is '{achieved or 'unknown'}'. The leaderboard still works, but "
                "saving scores may be slower or block concurrent reads."
            ),
            extra={"requested_mode": REQUESTED_JOURNAL_MODE, "achieved_mode": achieved},
        )
    return achieved

