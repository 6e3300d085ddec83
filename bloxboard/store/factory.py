from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from ..errors import ConfigurationError
from ._store import DEFAULT_RETENTION_CAP, SqliteScoreStore
from .types import ScoreStore

DEFAULT_DRIVER = "sqlite"

StoreConstructor = Callable[..., ScoreStore]

STORE_DRIVERS: dict[str, StoreConstructor] = {
    "sqlite": SqliteScoreStore,
}


def available_drivers() -> list[str]:
    return sorted(STORE_DRIVERS)


def create_store(
    driver: str = DEFAULT_DRIVER,
    *,
    db_path: Path | str,
    retention_cap: int = DEFAULT_RETENTION_CAP,
    create_parent: bool = False,
) -> ScoreStore:
    key = (driver or DEFAULT_DRIVER).strip().lower()
    constructor = STORE_DRIVERS.get(key)
    if constructor is None:
        raise ConfigurationError(
            f"Unsupported leaderboard storage driver: {driver!r} "
            f"(available: {', '.join(available_drivers())})"
        )
    return constructor(db_path, retention_cap=retention_cap, create_parent=create_parent)
