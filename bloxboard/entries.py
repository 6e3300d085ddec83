from __future__ import annotations

import datetime as dt
import logging
import math
import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .errors import EntryValidationError

logger = logging.getLogger(__name__)

DEFAULT_EMOJI_SET_LABEL = "Unknown Pack"

# Keep in sync with _identity_fields; BYTES_PER_IDENTITY_ESTIMATE in
# store.migration assumes roughly this many short fields.
IDENTITY_FIELD_COUNT = 11

# SQLite INTEGER columns hold signed 64-bit values; larger ints fail at bind time.
SQLITE_INT_MIN = -(2**63)
SQLITE_INT_MAX = 2**63 - 1

# Storage column order; row_identity relies on it.
ENTRY_COLUMNS = (
    "player_name",
    "time_ms",
    "attempts",
    "difficulty_id",
    "difficulty_label",
    "emoji_set_id",
    "emoji_set_label",
    "score_multiplier",
    "score_value",
    "is_auto_demo",
    "created_at",
)


@dataclass(frozen=True)
class ScoreEntry:
    player_name: str
    time_ms: int
    attempts: int
    difficulty_id: str
    difficulty_label: str
    emoji_set_id: str
    emoji_set_label: str
    score_multiplier: float
    score_value: int
    is_auto_demo: bool
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row | Sequence[Any]) -> ScoreEntry:
        values = [row[column] for column in ENTRY_COLUMNS] if _is_named_row(row) else list(row)
        return cls(
            player_name=str(values[0]),
            time_ms=int(values[1]),
            attempts=int(values[2]),
            difficulty_id=str(values[3]),
            difficulty_label=str(values[4]),
            emoji_set_id=str(values[5]),
            emoji_set_label=str(values[6]),
            score_multiplier=float(values[7]),
            score_value=int(values[8]),
            is_auto_demo=int(values[9]) == 1,
            created_at=str(values[10]),
        )

    def to_params(self) -> dict[str, Any]:
        return {
            "player_name": self.player_name,
            "time_ms": self.time_ms,
            "attempts": self.attempts,
            "difficulty_id": self.difficulty_id,
            "difficulty_label": self.difficulty_label,
            "emoji_set_id": self.emoji_set_id,
            "emoji_set_label": self.emoji_set_label,
            "score_multiplier": self.score_multiplier,
            "score_value": self.score_value,
            "is_auto_demo": 1 if self.is_auto_demo else 0,
            "created_at": self.created_at,
        }

    def to_payload(self) -> dict[str, Any]:
        return {
            "playerName": self.player_name,
            "timeMs": self.time_ms,
            "attempts": self.attempts,
            "difficultyId": self.difficulty_id,
            "difficultyLabel": self.difficulty_label,
            "emojiSetId": self.emoji_set_id,
            "emojiSetLabel": self.emoji_set_label,
            "scoreMultiplier": self.score_multiplier,
            "scoreValue": self.score_value,
            "isAutoDemo": self.is_auto_demo,
            "createdAt": self.created_at,
        }


def _is_named_row(row: Any) -> bool:
    return isinstance(row, sqlite3.Row) or isinstance(row, Mapping)


def _identity_fields(
    player_name: Any,
    time_ms: Any,
    attempts: Any,
    difficulty_id: Any,
    difficulty_label: Any,
    emoji_set_id: Any,
    emoji_set_label: Any,
    score_multiplier: Any,
    score_value: Any,
    is_auto_demo: Any,
    created_at: Any,
) -> list[str]:
    return [
        str(player_name),
        str(int(time_ms)),
        str(int(attempts)),
        str(difficulty_id),
        str(difficulty_label),
        str(emoji_set_id),
        str(emoji_set_label),
        repr(float(score_multiplier)),
        str(int(score_value)),
        "true" if bool(is_auto_demo) else "false",
        str(created_at),
    ]


def _join_identity(fields: list[str]) -> str:
    if len(fields) != IDENTITY_FIELD_COUNT:
        raise RuntimeError(
            f"identity field count mismatch: expected {IDENTITY_FIELD_COUNT}, got {len(fields)}"
        )
    return "|".join(fields)


def entry_identity(entry: ScoreEntry) -> str:
    """Canonical dedup key built from every semantic field of ``entry``.

    Only used transiently while deduplicating a legacy import. Two entries that
    differ in any field, ``created_at`` included, get different keys.
    """
    return _join_identity(
        _identity_fields(
            entry.player_name,
            entry.time_ms,
            entry.attempts,
            entry.difficulty_id,
            entry.difficulty_label,
            entry.emoji_set_id,
            entry.emoji_set_label,
            entry.score_multiplier,
            entry.score_value,
            entry.is_auto_demo,
            entry.created_at,
        )
    )


def row_identity(row: Sequence[Any]) -> str:
    """Same key as :func:`entry_identity` for a result tuple in ENTRY_COLUMNS order."""
    return _join_identity(_identity_fields(*row))


def now_iso() -> str:
    return (
        dt.datetime.now(dt.UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed.astimezone(dt.UTC)


def _fits_integer_column(value: int) -> bool:
    return SQLITE_INT_MIN <= value <= SQLITE_INT_MAX


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return _fits_integer_column(value)
    return isinstance(value, float) and math.isfinite(value)


def _round_half_up(value: float) -> int:
    if isinstance(value, int):
        return value
    return int(math.floor(value + 0.5))


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _non_negative_int(value: Any, *, field: str) -> int | None:
    if not _is_number(value):
        return None
    if value < 0:
        logger.warning(
            "score payload field %s is negative (%s); clamping to 0. "
            "Check the client payload for data quality issues.",
            field,
            value,
        )
    rounded = max(0, _round_half_up(value))
    return rounded if _fits_integer_column(rounded) else None


def normalize_entry(payload: Any, *, allow_created_at: bool = False) -> ScoreEntry:
    """Validate an arbitrary score payload and return a well-formed entry.

    Raises EntryValidationError listing every missing or invalid field. The
    payload's ``createdAt`` is honoured only when ``allow_created_at`` is set
    (legacy imports); live submissions are stamped with the current time.
    """
    if not isinstance(payload, Mapping):
        raise EntryValidationError(message="Invalid score payload: expected a JSON object.")

    player_name = _clean_text(payload.get("playerName"))
    difficulty_id = _clean_text(payload.get("difficultyId"))
    difficulty_label = _clean_text(payload.get("difficultyLabel"))
    emoji_set_id = _clean_text(payload.get("emojiSetId"))
    emoji_set_label = _clean_text(payload.get("emojiSetLabel")) or DEFAULT_EMOJI_SET_LABEL
    time_ms = _non_negative_int(payload.get("timeMs"), field="timeMs")
    attempts = _non_negative_int(payload.get("attempts"), field="attempts")
    is_auto_demo = payload.get("isAutoDemo") is True

    raw_multiplier = payload.get("scoreMultiplier")
    score_multiplier = max(0.0, float(raw_multiplier)) if _is_number(raw_multiplier) else 1.0
    raw_score = payload.get("scoreValue")
    score_value: int | None = 0
    if _is_number(raw_score):
        score_value = max(0, _round_half_up(raw_score))
    elif isinstance(raw_score, int) and not isinstance(raw_score, bool):
        score_value = None
    if score_value is not None and not _fits_integer_column(score_value):
        score_value = None

    invalid: list[str] = []
    if not player_name:
        invalid.append("playerName")
    if not difficulty_id:
        invalid.append("difficultyId")
    if not difficulty_label:
        invalid.append("difficultyLabel")
    if not emoji_set_id:
        invalid.append("emojiSetId")
    if time_ms is None:
        invalid.append("timeMs")
    if attempts is None:
        invalid.append("attempts")
    if score_value is None:
        invalid.append("scoreValue")

    created_at = now_iso()
    raw_created_at = payload.get("createdAt")
    if allow_created_at and isinstance(raw_created_at, str) and raw_created_at.strip():
        created_at = raw_created_at.strip()
        if parse_iso8601(created_at) is None:
            invalid.append("createdAt")

    if invalid or time_ms is None or attempts is None or score_value is None:
        raise EntryValidationError(invalid)

    return ScoreEntry(
        player_name=player_name,
        time_ms=time_ms,
        attempts=attempts,
        difficulty_id=difficulty_id,
        difficulty_label=difficulty_label,
        emoji_set_id=emoji_set_id,
        emoji_set_label=emoji_set_label,
        score_multiplier=score_multiplier,
        score_value=score_value,
        is_auto_demo=is_auto_demo,
        created_at=created_at,
    )
