from __future__ import annotations

from ._store import DEFAULT_RETENTION_CAP, SqliteScoreStore
from .factory import STORE_DRIVERS, available_drivers, create_store
from .migration import (
    LEGACY_MIGRATION_STATE_KEY,
    MIGRATION_COMPLETE_FLAG,
    MIGRATION_INCOMPLETE_FLAG,
    migrate_from_legacy_json,
)
from .types import EntryNormalizer, MigrationState, ScoreStore

__all__ = [
    "DEFAULT_RETENTION_CAP",
    "EntryNormalizer",
    "LEGACY_MIGRATION_STATE_KEY",
    "MIGRATION_COMPLETE_FLAG",
    "MIGRATION_INCOMPLETE_FLAG",
    "MigrationState",
    "STORE_DRIVERS",
    "ScoreStore",
    "SqliteScoreStore",
    "available_drivers",
    "create_store",
    "migrate_from_legacy_json",
]
