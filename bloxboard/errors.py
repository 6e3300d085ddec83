from __future__ import annotations

from typing import Literal

ErrorKind = Literal[
    "configuration",
    "open",
    "migration",
    "validation",
    "parse",
    "payload_too_large",
    "storage",
    "network",
    "internal",
]


class LeaderboardError(Exception):
    """Base error carrying an explicit kind so callers never match on messages."""

    kind: ErrorKind = "internal"

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class ConfigurationError(LeaderboardError, ValueError):
    kind: ErrorKind = "configuration"


class OpenFailure(LeaderboardError):
    kind: ErrorKind = "open"


class MigrationError(LeaderboardError):
    kind: ErrorKind = "migration"


class EntryValidationError(LeaderboardError, ValueError):
    kind: ErrorKind = "validation"

    def __init__(self, invalid_fields: list[str] | None = None, message: str | None = None) -> None:
        self.invalid_fields = list(invalid_fields or [])
        if message is None:
            fields = ", ".join(self.invalid_fields)
            message = f"Invalid score payload: missing or invalid {fields}."
        super().__init__(message)


class PayloadError(LeaderboardError):
    kind: ErrorKind = "parse"
