"""Runtime configuration for tickrun hosts and control clients."""

from dataclasses import dataclass
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class RuntimeConfig:
    tick_interval_ms: int
    max_calls_per_tick: int | None
    control_enabled: bool
    control_host: str
    control_port: int
    ping_interval_s: float
    ping_timeout_s: float
    log_level: str
    log_file: str | None


@dataclass(frozen=True)
class ClientConfig:
    url: str
    reconnect_interval_s: float
    max_retries: int
    request_timeout_s: float
    auto_reconnect: bool


def get_runtime_config() -> RuntimeConfig:
    """Load host runtime config from environment variables."""
    max_calls = _env_int("TICKRUN_MAX_CALLS_PER_TICK", 0)
    log_file = os.getenv("TICKRUN_LOG_FILE")
    return RuntimeConfig(
        tick_interval_ms=max(1, _env_int("TICKRUN_TICK_INTERVAL_MS", 20)),
        max_calls_per_tick=max_calls if max_calls > 0 else None,
        control_enabled=_env_bool("TICKRUN_CONTROL_ENABLED", True),
        control_host=os.getenv("TICKRUN_CONTROL_HOST", "localhost"),
        control_port=_env_int("TICKRUN_CONTROL_PORT", 9101),
        ping_interval_s=_env_float("TICKRUN_PING_INTERVAL_S", 20.0),
        ping_timeout_s=_env_float("TICKRUN_PING_TIMEOUT_S", 20.0),
        log_level=os.getenv("TICKRUN_LOG_LEVEL", "INFO").upper(),
        log_file=log_file if log_file else None,
    )


def get_client_config() -> ClientConfig:
    """Load control client config from environment variables."""
    return ClientConfig(
        url=os.getenv("TICKRUN_CONTROL_URL", "ws://localhost:9101"),
        reconnect_interval_s=_env_float("TICKRUN_RECONNECT_INTERVAL_S", 0.5),
        max_retries=max(0, _env_int("TICKRUN_MAX_RETRIES", 2)),
        request_timeout_s=max(1.0, _env_float("TICKRUN_REQUEST_TIMEOUT_S", 10.0)),
        auto_reconnect=_env_bool("TICKRUN_AUTO_RECONNECT", True),
    )
