from __future__ import annotations

import json

import typer
from rich import print
from rich.markup import escape

from ..entries import normalize_entry
from ..errors import MigrationError


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / 1024 / 1024:.1f} MB"


def init_db_cmd(*, store_from_path, db_path: str | None) -> None:
    """Create the SQLite database (no-op if it already exists)."""

    store = store_from_path(db_path)
    try:
        print(f"Initialized leaderboard database at {escape(store.storage_location())}")
    finally:
        store.close()


def stats_cmd(*, store_from_path, db_path: str | None) -> None:
    store = store_from_path(db_path)
    try:
        stats = store.stats()
    finally:
        store.close()

    print("[bold]Leaderboard store[/bold]")
    print(f"- Driver: {stats['kind']}")
    print(f"- Path: {escape(str(stats['path']))}")
    print(f"- Size: {_format_bytes(int(stats['size_bytes']))}")
    print(f"- Entries: {stats['entries']} (retention cap {stats['retention_cap']})")
    print(f"- Journal mode: {stats['journal_mode'] or 'unknown'}")
    print(f"- Legacy migration: {stats['migration']}")


def recent_cmd(*, store_from_path, db_path: str | None, limit: int, as_json: bool) -> None:
    store = store_from_path(db_path)
    try:
        entries = store.read_recent(limit)
    finally:
        store.close()

    if as_json:
        typer.echo(json.dumps({"entries": [e.to_payload() for e in entries]}, ensure_ascii=False))
        return
    if not entries:
        print("[yellow]No scores stored yet[/yellow]")
        return
    for entry in entries:
        demo = " [dim](demo)[/dim]" if entry.is_auto_demo else ""
        print(
            f"- {entry.created_at}  [bold]{escape(entry.player_name)}[/bold]{demo}  "
            f"score {entry.score_value}  ({entry.time_ms / 1000:.1f}s, "
            f"{entry.attempts} attempts, {escape(entry.difficulty_label)}, "
            f"{escape(entry.emoji_set_label)})"
        )


def migrate_cmd(*, store_from_path, db_path: str | None, legacy_path: str) -> None:
    """Import the legacy JSON leaderboard file once."""

    store = store_from_path(db_path)
    try:
        already_complete = store.stats()["migration"] == "complete"
        migrated = store.migrate_from_legacy_json(legacy_path, normalize_entry)
        state = store.stats()["migration"]
    except MigrationError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from None
    finally:
        store.close()

    if migrated:
        print(f"[green]✓ Migrated {migrated} legacy scores[/green]")
    elif already_complete:
        print("Legacy migration already complete; nothing to import")
    elif state == "complete":
        print("Legacy file held no new scores; migration marked complete")
    else:
        print(f"[yellow]Legacy file not found: {escape(legacy_path)}[/yellow]")
