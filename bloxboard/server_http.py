from __future__ import annotations

import json
import sqlite3
from http.server import BaseHTTPRequestHandler
from typing import Any

from .errors import ErrorKind, LeaderboardError, PayloadError

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type,x-api-key",
}

STATUS_BY_KIND: dict[ErrorKind, int] = {
    "validation": 400,
    "parse": 400,
    "payload_too_large": 413,
    "configuration": 500,
    "open": 500,
    "migration": 500,
    "storage": 500,
    "network": 500,
    "internal": 500,
}


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, LeaderboardError):
        return exc.kind
    if isinstance(exc, sqlite3.Error):
        return "storage"
    if isinstance(exc, ConnectionError | TimeoutError):
        return "network"
    return "internal"


def send_json_response(
    handler: BaseHTTPRequestHandler,
    payload: dict,
    status: int = 200,
) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    for key, value in CORS_HEADERS.items():
        handler.send_header(key, value)
    handler.send_header("Cache-Control", "no-store")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def send_error_response(handler: BaseHTTPRequestHandler, kind: ErrorKind, message: str) -> None:
    send_json_response(handler, {"error": message, "kind": kind}, status=STATUS_BY_KIND[kind])


def read_json_body(handler: BaseHTTPRequestHandler, *, max_bytes: int) -> dict[str, Any]:
    """Read a JSON object body, raising PayloadError for anything unusable."""
    try:
        length = int(handler.headers.get("Content-Length", "0") or 0)
    except ValueError as exc:
        raise PayloadError("Invalid Content-Length header.") from exc
    if length > max_bytes:
        raise PayloadError(
            f"Request body exceeds the {max_bytes} byte limit. "
            "Leaderboard score payloads must be compact JSON objects.",
            kind="payload_too_large",
        )
    raw = handler.rfile.read(length).decode("utf-8", errors="replace") if length > 0 else ""
    if not raw.strip():
        raise PayloadError("Request body is empty. Expected JSON leaderboard score payload.")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PayloadError(f"Request body is not valid JSON: {exc.msg}.") from exc
    if not isinstance(payload, dict):
        raise PayloadError("Request body must be a JSON object.")
    return payload
