"""Tests for :mod:`syncboard.config`."""

from __future__ import annotations

from pathlib import Path

from syncboard.config import get_runtime_env, load_config, load_runtime_env, override_runtime_env


def test_defaults() -> None:
    config = load_config({})

    assert config.database.url == "sqlite:///./syncboard.db"
    assert config.database.playlist_limit == 100
    assert config.progress_cache.enabled is False
    assert config.progress_cache.key_prefix == "progress:"
    assert config.telemetry.enabled is False
    assert config.workers.correlation_interval_s == 15.0
    assert config.workers.progress_interval_s == 1.0
    assert config.features.allow_retry is False
    assert config.network.user == "SoulseekUser"
    assert config.client.base_url == "http://localhost:3124"
    assert config.api_base_path == ""


def test_values_are_bounded_and_normalised() -> None:
    config = load_config(
        {
            "DATABASE_URL": "postgresql://db/engine",
            "SYNCBOARD_CORRELATION_INTERVAL_S": "0",
            "SYNCBOARD_PROGRESS_INTERVAL_S": "not-a-number",
            "SYNCBOARD_API_BASE_PATH": "/api/",
            "SYNCBOARD_ALLOW_RETRY": "yes",
            "SYNCBOARD_REDIS_URL": "redis://cache:6379/0",
        }
    )

    assert config.database.url == "postgresql://db/engine"
    assert config.workers.correlation_interval_s == 1.0
    assert config.workers.progress_interval_s == 1.0
    assert config.api_base_path == "/api"
    assert config.features.allow_retry is True
    assert config.progress_cache.enabled is True


def test_explicit_database_url_wins() -> None:
    config = load_config({"DATABASE_URL": "sqlite:///a.db", "SYNCBOARD_DATABASE_URL": "sqlite:///b.db"})

    assert config.database.url == "sqlite:///b.db"


def test_env_file_is_overridden_by_environment(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("SYNCBOARD_LOG_LEVEL=DEBUG\n# comment\nSYNCBOARD_NETWORK_USER='dj'\n")

    env = load_runtime_env(env_file=env_file, base_env={"SYNCBOARD_LOG_LEVEL": "WARNING"})

    assert env["SYNCBOARD_LOG_LEVEL"] == "WARNING"
    assert env["SYNCBOARD_NETWORK_USER"] == "dj"


def test_override_runtime_env() -> None:
    override_runtime_env({"SYNCBOARD_NETWORK_NODE": "Test Node"})
    try:
        assert get_runtime_env()["SYNCBOARD_NETWORK_NODE"] == "Test Node"
        assert load_config().network.node == "Test Node"
    finally:
        override_runtime_env(None)


def test_log_file_setting() -> None:
    assert load_config({"SYNCBOARD_LOG_FILE": "  "}).logging.file is None
    config = load_config({"SYNCBOARD_LOG_FILE": "/var/log/syncboard.log", "SYNCBOARD_LOG_LEVEL": "debug"})

    assert config.logging.file == "/var/log/syncboard.log"
    assert config.logging.level == "debug"
