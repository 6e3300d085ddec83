from __future__ import annotations

import http.client
import json
import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from bloxboard.config import BloxboardConfig
from bloxboard.server import (
    LEADERBOARD_PATH,
    LeaderboardServer,
    build_server,
    migrate_on_startup,
    open_store as open_configured_store,
)
from bloxboard.store import SqliteScoreStore


@pytest.fixture
def server_store(open_store) -> SqliteScoreStore:
    return open_store(retention_cap=3, check_same_thread=False)


@pytest.fixture
def running_server(server_store: SqliteScoreStore) -> Iterator[LeaderboardServer]:
    config = BloxboardConfig(host="127.0.0.1", port=0, default_read_limit=2)
    server = build_server(server_store, config)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def _request(
    server: LeaderboardServer,
    method: str,
    path: str,
    body: Any = None,
) -> tuple[int, dict[str, str], dict[str, Any]]:
    host, port = server.server_address[:2]
    conn = http.client.HTTPConnection(host, port, timeout=5)
    try:
        headers = {}
        encoded = None
        if body is not None:
            encoded = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        conn.request(method, path, body=encoded, headers=headers)
        resp = conn.getresponse()
        payload = json.loads(resp.read().decode("utf-8"))
        return resp.status, dict(resp.getheaders()), payload
    finally:
        conn.close()


def test_get_leaderboard_starts_empty(running_server) -> None:
    status, headers, payload = _request(running_server, "GET", LEADERBOARD_PATH)

    assert status == 200
    assert payload == {"entries": []}
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert headers["Cache-Control"] == "no-store"


def test_post_stores_entry_with_server_timestamp(running_server, make_payload) -> None:
    status, _, payload = _request(
        running_server, "POST", LEADERBOARD_PATH, make_payload(playerName="  Grace ")
    )

    assert status == 201
    assert payload["ok"] is True
    assert payload["entry"]["playerName"] == "Grace"
    assert payload["entry"]["createdAt"] != "2024-05-01T10:00:00.000Z"

    _, _, listing = _request(running_server, "GET", LEADERBOARD_PATH)
    assert [e["playerName"] for e in listing["entries"]] == ["Grace"]


def test_get_honours_limit_and_falls_back_to_default(
    running_server, server_store, make_entry
) -> None:
    for second in range(3):
        server_store.write_entry(make_entry(created_at=f"2024-05-01T10:00:0{second}.000Z"))

    _, _, one = _request(running_server, "GET", f"{LEADERBOARD_PATH}?limit=1")
    _, _, bad = _request(running_server, "GET", f"{LEADERBOARD_PATH}?limit=lots")
    _, _, negative = _request(running_server, "GET", f"{LEADERBOARD_PATH}?limit=-4")

    assert len(one["entries"]) == 1
    assert len(bad["entries"]) == 2
    assert len(negative["entries"]) == 2


def test_post_invalid_payload_is_validation_error(running_server, make_payload) -> None:
    status, _, payload = _request(
        running_server, "POST", LEADERBOARD_PATH, make_payload(playerName="", attempts="x")
    )

    assert status == 400
    assert payload["kind"] == "validation"
    assert "playerName, attempts" in payload["error"]


def test_post_malformed_json_is_parse_error(running_server) -> None:
    status, _, payload = _request(running_server, "POST", LEADERBOARD_PATH, b"{nope")

    assert status == 400
    assert payload["kind"] == "parse"


def test_storage_failure_returns_generic_500(running_server, server_store, caplog) -> None:
    server_store.close()

    with caplog.at_level(logging.ERROR, logger="bloxboard.server"):
        status, _, payload = _request(running_server, "GET", LEADERBOARD_PATH)

    assert status == 500
    assert payload == {"error": "Leaderboard storage is unavailable.", "kind": "storage"}


def test_options_preflight(running_server) -> None:
    status, headers, payload = _request(running_server, "OPTIONS", LEADERBOARD_PATH)

    assert status == 200
    assert payload == {"ok": True}
    assert headers["Access-Control-Allow-Methods"] == "GET,POST,OPTIONS"


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_unknown_path_is_not_found(running_server, method: str) -> None:
    status, _, payload = _request(running_server, method, "/scores")

    assert status == 404
    assert payload == {"error": "Not found."}


@pytest.mark.parametrize("method", ["PUT", "PATCH", "DELETE"])
def test_other_methods_are_not_allowed(running_server, method: str) -> None:
    status, _, payload = _request(running_server, method, LEADERBOARD_PATH)

    assert status == 405
    assert payload == {"error": "Method not allowed."}


def test_migrate_on_startup_imports_legacy_scores(
    open_store, make_payload, write_legacy
) -> None:
    legacy = write_legacy([make_payload()])
    store = open_store()

    assert migrate_on_startup(store, BloxboardConfig(legacy_path=str(legacy))) == 1
    assert store.count() == 1


def test_migrate_on_startup_logs_and_continues_on_failure(
    open_store, write_legacy, caplog
) -> None:
    legacy = write_legacy(None, raw="{broken")
    store = open_store()

    with caplog.at_level(logging.WARNING, logger="bloxboard.server"):
        migrated = migrate_on_startup(store, BloxboardConfig(legacy_path=str(legacy)))

    assert migrated == 0
    assert any("Legacy score migration skipped" in r.getMessage() for r in caplog.records)
    assert store.migration_state() == "incomplete"


def test_open_store_creates_parent_directory(tmp_path: Path) -> None:
    db_path = tmp_path / "data" / "scores.sqlite"
    store = open_configured_store(BloxboardConfig(db_path=str(db_path), retention=5))
    try:
        assert store.storage_location() == str(db_path)
        assert store.stats()["retention_cap"] == 5
    finally:
        store.close()


def test_migrate_on_startup_survives_unexpected_errors(open_store, caplog, monkeypatch) -> None:
    store = open_store()

    def _explode(*args: Any, **kwargs: Any) -> int:
        raise OverflowError("int too large to convert to float")

    monkeypatch.setattr(store, "migrate_from_legacy_json", _explode)

    with caplog.at_level(logging.ERROR, logger="bloxboard.server"):
        migrated = migrate_on_startup(store, BloxboardConfig())

    assert migrated == 0
    assert any("failed unexpectedly" in r.getMessage() for r in caplog.records)
    assert store.read_recent(5) == []
