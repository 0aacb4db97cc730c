"""Application configuration utilities for syncboard."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

DEFAULT_DATABASE_URL = "sqlite:///./syncboard.db"
DEFAULT_PROGRESS_KEY_PREFIX = "progress:"
DEFAULT_TELEMETRY_SERVICE = "sync-engine"
DEFAULT_CLIENT_BASE_URL = "http://localhost:3124"

_RUNTIME_ENV_CACHE: dict[str, str] | None = None


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def load_runtime_env(
    *,
    env_file: str | os.PathLike[str] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Load runtime environment values applying .env before explicit environment."""

    env: dict[str, str] = {}
    source = dict(base_env or os.environ)

    path = Path(env_file) if env_file is not None else Path(".env")
    if path.exists() and path.is_file():
        env.update(_load_env_file(path))

    env.update({key: str(value) for key, value in source.items() if value is not None})
    return env


def get_runtime_env() -> Mapping[str, str]:
    """Return the cached runtime environment mapping."""

    global _RUNTIME_ENV_CACHE
    if _RUNTIME_ENV_CACHE is None:
        _RUNTIME_ENV_CACHE = load_runtime_env()
    return _RUNTIME_ENV_CACHE


def override_runtime_env(runtime_env: Mapping[str, str] | None) -> None:
    """Override the cached runtime environment (primarily for testing)."""

    global _RUNTIME_ENV_CACHE
    if runtime_env is None:
        _RUNTIME_ENV_CACHE = None
    else:
        _RUNTIME_ENV_CACHE = dict(runtime_env)


def _env_value(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    return str(value)


def _optional_text(env: Mapping[str, Any], key: str) -> str | None:
    value = _env_value(env, key)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(slots=True)
class LoggingConfig:
    level: str
    file: str | None = None


@dataclass(slots=True)
class DatabaseConfig:
    url: str
    playlist_limit: int


@dataclass(slots=True)
class ProgressCacheConfig:
    url: str | None
    key_prefix: str
    scan_count: int

    @property
    def enabled(self) -> bool:
        return bool(self.url)


@dataclass(slots=True)
class TelemetryConfig:
    url: str | None
    service: str
    timeout_ms: int
    log_limit: int

    @property
    def enabled(self) -> bool:
        return bool(self.url)


@dataclass(slots=True, frozen=True)
class WorkerConfig:
    correlation_interval_s: float
    progress_interval_s: float
    telemetry_interval_s: float
    disabled: bool


@dataclass(slots=True)
class HealthConfig:
    db_timeout_ms: int
    cache_timeout_ms: int


@dataclass(slots=True, frozen=True)
class NetworkConfig:
    user: str
    node: str


@dataclass(slots=True, frozen=True)
class FeatureFlags:
    allow_retry: bool


@dataclass(slots=True, frozen=True)
class ClientConfig:
    base_url: str
    poll_interval_s: float
    timeout_ms: int


@dataclass(slots=True)
class AppConfig:
    logging: LoggingConfig
    database: DatabaseConfig
    progress_cache: ProgressCacheConfig
    telemetry: TelemetryConfig
    workers: WorkerConfig
    health: HealthConfig
    network: NetworkConfig
    features: FeatureFlags
    client: ClientConfig
    api_base_path: str


def _as_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bounded_int(
    value: Any,
    *,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    resolved = _coerce_int(value, default=default)
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _bounded_float(
    value: Any,
    *,
    default: float,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    try:
        resolved = float(value)
    except (TypeError, ValueError):
        resolved = default
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _normalise_base_path(value: str | None) -> str:
    if not value:
        return ""
    stripped = value.strip().strip("/")
    if not stripped:
        return ""
    return f"/{stripped}"


def _resolve_database_url(env: Mapping[str, Any]) -> str:
    for key in ("SYNCBOARD_DATABASE_URL", "DATABASE_URL"):
        candidate = _optional_text(env, key)
        if candidate:
            return candidate
    return DEFAULT_DATABASE_URL


def load_config(runtime_env: Mapping[str, Any] | None = None) -> AppConfig:
    """Build the application configuration from the runtime environment."""

    env = runtime_env if runtime_env is not None else get_runtime_env()

    database = DatabaseConfig(
        url=_resolve_database_url(env),
        playlist_limit=_bounded_int(
            _env_value(env, "SYNCBOARD_PLAYLIST_LIMIT"), default=100, minimum=1, maximum=5000
        ),
    )
    progress_cache = ProgressCacheConfig(
        url=_optional_text(env, "SYNCBOARD_REDIS_URL"),
        key_prefix=_env_value(env, "SYNCBOARD_PROGRESS_KEY_PREFIX") or DEFAULT_PROGRESS_KEY_PREFIX,
        scan_count=_bounded_int(
            _env_value(env, "SYNCBOARD_PROGRESS_SCAN_COUNT"), default=500, minimum=10
        ),
    )
    telemetry = TelemetryConfig(
        url=_optional_text(env, "SYNCBOARD_TELEMETRY_URL"),
        service=_optional_text(env, "SYNCBOARD_TELEMETRY_SERVICE") or DEFAULT_TELEMETRY_SERVICE,
        timeout_ms=_bounded_int(
            _env_value(env, "SYNCBOARD_TELEMETRY_TIMEOUT_MS"), default=1500, minimum=100
        ),
        log_limit=_bounded_int(
            _env_value(env, "SYNCBOARD_TELEMETRY_LOG_LIMIT"), default=200, minimum=1, maximum=2000
        ),
    )
    workers = WorkerConfig(
        correlation_interval_s=_bounded_float(
            _env_value(env, "SYNCBOARD_CORRELATION_INTERVAL_S"),
            default=15.0,
            minimum=1.0,
            maximum=300.0,
        ),
        progress_interval_s=_bounded_float(
            _env_value(env, "SYNCBOARD_PROGRESS_INTERVAL_S"),
            default=1.0,
            minimum=0.25,
            maximum=30.0,
        ),
        telemetry_interval_s=_bounded_float(
            _env_value(env, "SYNCBOARD_TELEMETRY_INTERVAL_S"),
            default=10.0,
            minimum=1.0,
            maximum=600.0,
        ),
        disabled=_as_bool(_env_value(env, "SYNCBOARD_DISABLE_WORKERS"), default=False),
    )
    health = HealthConfig(
        db_timeout_ms=_bounded_int(
            _env_value(env, "SYNCBOARD_HEALTH_DB_TIMEOUT_MS"), default=2000, minimum=100
        ),
        cache_timeout_ms=_bounded_int(
            _env_value(env, "SYNCBOARD_HEALTH_CACHE_TIMEOUT_MS"), default=1000, minimum=100
        ),
    )
    network = NetworkConfig(
        user=_optional_text(env, "SYNCBOARD_NETWORK_USER") or "SoulseekUser",
        node=_optional_text(env, "SYNCBOARD_NETWORK_NODE") or "Redis Bridge",
    )
    features = FeatureFlags(
        allow_retry=_as_bool(_env_value(env, "SYNCBOARD_ALLOW_RETRY"), default=False),
    )
    client = ClientConfig(
        base_url=_optional_text(env, "SYNCBOARD_CLIENT_BASE_URL") or DEFAULT_CLIENT_BASE_URL,
        poll_interval_s=_bounded_float(
            _env_value(env, "SYNCBOARD_CLIENT_POLL_INTERVAL_S"),
            default=3.0,
            minimum=0.5,
            maximum=60.0,
        ),
        timeout_ms=_bounded_int(
            _env_value(env, "SYNCBOARD_CLIENT_TIMEOUT_MS"), default=5000, minimum=100
        ),
    )

    return AppConfig(
        logging=LoggingConfig(
            level=_env_value(env, "SYNCBOARD_LOG_LEVEL") or "INFO",
            file=_optional_text(env, "SYNCBOARD_LOG_FILE"),
        ),
        database=database,
        progress_cache=progress_cache,
        telemetry=telemetry,
        workers=workers,
        health=health,
        network=network,
        features=features,
        client=client,
        api_base_path=_normalise_base_path(_env_value(env, "SYNCBOARD_API_BASE_PATH")),
    )


__all__ = [
    "AppConfig",
    "ClientConfig",
    "DatabaseConfig",
    "FeatureFlags",
    "HealthConfig",
    "LoggingConfig",
    "NetworkConfig",
    "ProgressCacheConfig",
    "TelemetryConfig",
    "WorkerConfig",
    "get_runtime_env",
    "load_config",
    "load_runtime_env",
    "override_runtime_env",
]
