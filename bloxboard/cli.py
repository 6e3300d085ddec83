from __future__ import annotations

import logging
from dataclasses import replace

import typer
from rich import print
from rich.markup import escape

from . import __version__
from .commands.store_cmds import init_db_cmd, migrate_cmd, recent_cmd, stats_cmd
from .config import load_config
from .errors import ConfigurationError, OpenFailure
from .server import run_server
from .store import ScoreStore, create_store

app = typer.Typer(help="bloxboard: MEMORYBLOX leaderboard store")
db_app = typer.Typer(help="Database maintenance")
app.add_typer(db_app, name="db")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _store(db_path: str | None) -> ScoreStore:
    cfg = load_config()
    try:
        return create_store(
            cfg.db_driver,
            db_path=db_path or cfg.resolved_db_path,
            retention_cap=cfg.retention,
            create_parent=True,
        )
    except (ConfigurationError, OpenFailure) as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from None


@app.command()
def version() -> None:
    """Print the installed version."""

    print(__version__)


@app.command()
def serve(
    host: str = typer.Option(None, help="Interface to bind (default from config)"),
    port: int = typer.Option(None, help="Port to listen on (default from config)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    legacy_path: str = typer.Option(None, help="Legacy JSON leaderboard file to import once"),
    retention: int = typer.Option(None, help="Number of most recent games to keep"),
) -> None:
    """Run the local leaderboard HTTP API."""

    cfg = load_config()
    overrides = {
        "host": host,
        "port": port,
        "db_path": db_path,
        "legacy_path": legacy_path,
        "retention": retention,
    }
    cfg = replace(cfg, **{key: value for key, value in overrides.items() if value is not None})
    try:
        run_server(cfg)
    except (ConfigurationError, OpenFailure) as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from None


@app.command()
def migrate(
    legacy_path: str = typer.Option(None, help="Legacy JSON leaderboard file"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Import scores from the legacy JSON file (runs once per database)."""

    cfg = load_config()
    migrate_cmd(
        store_from_path=_store,
        db_path=db_path,
        legacy_path=legacy_path or str(cfg.resolved_legacy_path),
    )


@app.command()
def recent(
    limit: int = typer.Option(10, help="Number of scores to show"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON"),
) -> None:
    """Show the most recently recorded scores."""

    recent_cmd(store_from_path=_store, db_path=db_path, limit=limit, as_json=as_json)


@db_app.command("init")
def init_db(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Create the SQLite database (no-op if it already exists)."""

    init_db_cmd(store_from_path=_store, db_path=db_path)


@db_app.command("stats")
def stats(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show database location, size and migration state."""

    stats_cmd(store_from_path=_store, db_path=db_path)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
