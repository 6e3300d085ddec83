from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Protocol

from ..entries import ScoreEntry

MigrationState = Literal["incomplete", "complete"]


class EntryNormalizer(Protocol):
    def __call__(self, payload: Any, *, allow_created_at: bool = ...) -> ScoreEntry: ...


class ScoreStore(Protocol):
    """What the HTTP facade and the CLI need from a storage backend."""

    def storage_kind(self) -> str: ...

    def storage_location(self) -> str: ...

    def read_recent(self, limit: int) -> list[ScoreEntry]: ...

    def write_entry(self, entry: ScoreEntry) -> None: ...

    def migrate_from_legacy_json(
        self, legacy_path: Path | str, normalize: EntryNormalizer = ...
    ) -> int: ...

    def stats(self) -> dict[str, Any]: ...

    def close(self) -> None: ...
