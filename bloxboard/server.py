from __future__ import annotations

import logging
import os
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from .config import BloxboardConfig
from .entries import normalize_entry
from .errors import MigrationError
from .server_http import (
    classify_error,
    read_json_body,
    send_error_response,
    send_json_response,
)
from .store import ScoreStore, create_store

logger = logging.getLogger(__name__)

LEADERBOARD_PATH = "/leaderboard"


class LeaderboardServer(HTTPServer):
    """Single-threaded on purpose: the store assumes one writer per process."""

    def __init__(
        self,
        server_address: tuple[str, int],
        store: ScoreStore,
        config: BloxboardConfig,
    ) -> None:
        super().__init__(server_address, LeaderboardHandler)
        self.store = store
        self.config = config


class LeaderboardHandler(BaseHTTPRequestHandler):
    server: LeaderboardServer

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        if os.environ.get("BLOXBOARD_SERVER_LOGS") == "1":
            super().log_message(format, *args)

    def _read_limit(self, query: str) -> int:
        default = self.server.config.default_read_limit
        raw = parse_qs(query).get("limit", [str(default)])[0]
        try:
            limit = int(raw.strip())
        except ValueError:
            return default
        return limit if limit > 0 else default

    def _handle_error(self, exc: Exception) -> None:
        kind = classify_error(exc)
        if kind == "network":
            logger.info("client connection dropped: %s", exc)
            return
        if kind in {"storage", "internal"}:
            logger.exception("leaderboard request failed (%s)", kind)
            send_error_response(self, kind, "Leaderboard storage is unavailable.")
            return
        send_error_response(self, kind, str(exc))

    def do_OPTIONS(self) -> None:  # noqa: N802
        send_json_response(self, {"ok": True})

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if parsed.path != LEADERBOARD_PATH:
            send_json_response(self, {"error": "Not found."}, status=404)
            return
        try:
            entries = self.server.store.read_recent(self._read_limit(parsed.query))
            send_json_response(self, {"entries": [entry.to_payload() for entry in entries]})
        except Exception as exc:
            self._handle_error(exc)

    def do_POST(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if parsed.path != LEADERBOARD_PATH:
            send_json_response(self, {"error": "Not found."}, status=404)
            return
        try:
            payload = read_json_body(self, max_bytes=self.server.config.max_request_body_bytes)
            entry = normalize_entry(payload)
            self.server.store.write_entry(entry)
            send_json_response(self, {"ok": True, "entry": entry.to_payload()}, status=201)
        except Exception as exc:
            self._handle_error(exc)

    def _method_not_allowed(self) -> None:
        if urlparse(self.path).path != LEADERBOARD_PATH:
            send_json_response(self, {"error": "Not found."}, status=404)
            return
        send_json_response(self, {"error": "Method not allowed."}, status=405)

    do_PUT = _method_not_allowed  # noqa: N815
    do_PATCH = _method_not_allowed  # noqa: N815
    do_DELETE = _method_not_allowed  # noqa: N815


def migrate_on_startup(store: ScoreStore, config: BloxboardConfig) -> int:
    """Run the one-time legacy import; failures are logged and never stop the server."""
    try:
        migrated = store.migrate_from_legacy_json(config.resolved_legacy_path, normalize_entry)
    except MigrationError as exc:
        logger.warning("Legacy score migration skipped: %s", exc)
        return 0
    except Exception:
        logger.exception("Legacy score migration failed unexpectedly; serving existing scores.")
        return 0
    if migrated > 0:
        logger.info("Migrated %d legacy scores into %s.", migrated, store.storage_kind())
    return migrated


def open_store(config: BloxboardConfig, *, create_parent: bool = True) -> ScoreStore:
    return create_store(
        config.db_driver,
        db_path=config.resolved_db_path,
        retention_cap=config.retention,
        create_parent=create_parent,
    )


def build_server(store: ScoreStore, config: BloxboardConfig) -> LeaderboardServer:
    return LeaderboardServer((config.host, config.port), store, config)


def run_server(config: BloxboardConfig) -> None:
    store = open_store(config)
    try:
        migrate_on_startup(store, config)
        server = build_server(store, config)
        host, port = server.server_address[:2]
        logger.info("Local leaderboard API running at http://%s:%s%s", host, port, LEADERBOARD_PATH)
        logger.info("Storage driver: %s", store.storage_kind())
        logger.info("Storage location: %s", store.storage_location())
        logger.info("Retention policy: keeping last %d games.", config.retention)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("shutting down leaderboard API")
        finally:
            server.server_close()
    finally:
        store.close()
