from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from bloxboard.entries import ScoreEntry
from bloxboard.store import SqliteScoreStore

_ENV_VARS = (
    "BLOXBOARD_DB_DRIVER",
    "BLOXBOARD_DB",
    "BLOXBOARD_LEGACY_PATH",
    "BLOXBOARD_RETENTION",
    "BLOXBOARD_HOST",
    "BLOXBOARD_PORT",
    "BLOXBOARD_SERVER_LOGS",
)


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BLOXBOARD_CONFIG", str(tmp_path / "config" / "config.json"))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_payload() -> Callable[..., dict[str, Any]]:
    def _make(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "playerName": "Ada",
            "timeMs": 42_000,
            "attempts": 18,
            "difficultyId": "normal",
            "difficultyLabel": "Normal",
            "emojiSetId": "animals",
            "emojiSetLabel": "Animals",
            "scoreMultiplier": 1.5,
            "scoreValue": 900,
            "isAutoDemo": False,
            "createdAt": "2024-05-01T10:00:00.000Z",
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def make_entry() -> Callable[..., ScoreEntry]:
    def _make(**overrides: Any) -> ScoreEntry:
        values: dict[str, Any] = {
            "player_name": "Ada",
            "time_ms": 42_000,
            "attempts": 18,
            "difficulty_id": "normal",
            "difficulty_label": "Normal",
            "emoji_set_id": "animals",
            "emoji_set_label": "Animals",
            "score_multiplier": 1.5,
            "score_value": 900,
            "is_auto_demo": False,
            "created_at": "2024-05-01T10:00:00.000Z",
        }
        values.update(overrides)
        return ScoreEntry(**values)

    return _make


@pytest.fixture
def open_store(tmp_path: Path) -> Iterator[Callable[..., SqliteScoreStore]]:
    opened: list[SqliteScoreStore] = []

    def _open(name: str = "leaderboard.sqlite", **kwargs: Any) -> SqliteScoreStore:
        store = SqliteScoreStore(tmp_path / name, **kwargs)
        opened.append(store)
        return store

    yield _open
    for store in opened:
        store.close()


@pytest.fixture
def write_legacy(tmp_path: Path) -> Callable[..., Path]:
    def _write(
        entries: Any, *, name: str = "leaderboard.data.json", raw: str | None = None
    ) -> Path:
        path = tmp_path / name
        if raw is not None:
            path.write_text(raw, encoding="utf-8")
        else:
            path.write_text(json.dumps({"entries": entries}), encoding="utf-8")
        return path

    return _write
