import json
from pathlib import Path

import pytest

from bloxboard.config import (
    DEFAULT_PORT,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
)


def test_read_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_read_config_file_rejects_non_object(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2]")
    with pytest.raises(ValueError, match="config must be an object"):
        read_config_file(config_path)


def test_read_config_file_missing_or_blank_is_empty(tmp_path: Path) -> None:
    assert read_config_file(tmp_path / "absent.json") == {}
    blank = tmp_path / "blank.json"
    blank.write_text("  \n")
    assert read_config_file(blank) == {}


def test_get_config_path_honours_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    target = tmp_path / "custom.json"
    monkeypatch.setenv("BLOXBOARD_CONFIG", str(target))
    assert get_config_path() == target


def test_load_config_defaults() -> None:
    cfg = load_config()

    assert cfg.db_driver == "sqlite"
    assert cfg.retention == 100
    assert cfg.port == DEFAULT_PORT
    assert cfg.default_read_limit == 10
    assert cfg.resolved_db_path == Path("~/.bloxboard/leaderboard.sqlite").expanduser()
    assert cfg.resolved_legacy_path.name == "leaderboard.data.json"


def test_load_config_reads_file(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "db_path": str(tmp_path / "scores.sqlite"),
                "retention": "50",
                "port": 9000,
                "unknown_key": "ignored",
            }
        )
    )

    cfg = load_config(config_path)

    assert cfg.resolved_db_path == tmp_path / "scores.sqlite"
    assert cfg.retention == 50
    assert cfg.port == 9000
    assert not hasattr(cfg, "unknown_key")


def test_env_overrides_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"retention": 50, "host": "0.0.0.0"}))
    monkeypatch.setenv("BLOXBOARD_RETENTION", "7")
    monkeypatch.setenv("BLOXBOARD_HOST", "127.0.0.1")
    monkeypatch.setenv("BLOXBOARD_DB", str(tmp_path / "env.sqlite"))

    cfg = load_config(config_path)

    assert cfg.retention == 7
    assert cfg.host == "127.0.0.1"
    assert cfg.resolved_db_path == tmp_path / "env.sqlite"
    assert get_env_overrides() == {
        "db_path": str(tmp_path / "env.sqlite"),
        "retention": "7",
        "host": "127.0.0.1",
    }


@pytest.mark.parametrize(
    ("env_var", "value", "field", "expected"),
    [
        ("BLOXBOARD_RETENTION", "0", "retention", 100),
        ("BLOXBOARD_RETENTION", "many", "retention", 100),
        ("BLOXBOARD_PORT", "70000", "port", DEFAULT_PORT),
        ("BLOXBOARD_PORT", "http", "port", DEFAULT_PORT),
    ],
)
def test_invalid_env_values_warn_and_keep_defaults(
    monkeypatch: pytest.MonkeyPatch, env_var: str, value: str, field: str, expected: int
) -> None:
    monkeypatch.setenv(env_var, value)

    with pytest.warns(RuntimeWarning):
        cfg = load_config()

    assert getattr(cfg, field) == expected


def test_invalid_config_json_warns(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{oops")

    with pytest.warns(RuntimeWarning, match="invalid config json"):
        cfg = load_config(config_path)

    assert cfg.retention == 100


def test_non_object_config_warns(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text('["retention", 5]')

    with pytest.warns(RuntimeWarning, match="config must be an object"):
        cfg = load_config(config_path)

    assert cfg.retention == 100


def test_every_env_override_is_applied(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BLOXBOARD_DB_DRIVER", "SQLite")
    monkeypatch.setenv("BLOXBOARD_LEGACY_PATH", str(tmp_path / "old.json"))
    monkeypatch.setenv("BLOXBOARD_PORT", "9100")

    cfg = load_config()

    assert cfg.db_driver == "SQLite"
    assert cfg.resolved_legacy_path == tmp_path / "old.json"
    assert cfg.port == 9100
