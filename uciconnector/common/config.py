# uciconnector/common/config.py
#
# Typed connector settings: frozen dataclass, tolerant converters and a
# JSON/YAML file loader.

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import yaml

from uciconnector.core.constants import (
    CHANNEL_MODE_AUTO,
    CHANNEL_MODES,
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_MAX_BUFFER_BYTES,
    DEFAULT_MOVE_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_READ_CHUNK_SIZE,
    DEFAULT_RESPONSE_DELAY,
    DEFAULT_SHUTDOWN_TIMEOUT,
    DEFAULT_STARTUP_CHECK_DELAY,
    POLL_STRATEGIES,
    POLL_STRATEGY_DEADLINE,
)
from uciconnector.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_SECTION = "connector"


# =============================================================================
# Helper Functions
# =============================================================================


def safe_int(value: Any, default: int) -> int:
    """Convert to int. None, bool and unconvertible values give default.

    Note:
        bool is an int subclass but is rejected so that True never becomes 1.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def safe_float(value: Any, default: float) -> float:
    """Convert to float. None, bool and unconvertible values give default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def safe_str(value: Any, default: str) -> str:
    """Non-empty str or default. None is never turned into "None"."""
    if not isinstance(value, str) or not value:
        return default
    return value


def safe_choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    """Case-insensitive pick from choices, default if unrecognized."""
    text = safe_str(value, default).lower()
    if text not in choices:
        logger.warning("Unknown config value %r, using %r", value, default)
        return default
    return text


def normalize_path(value: Any) -> str | None:
    """None for None, non-str, empty or whitespace-only values; the path unchanged otherwise."""
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def _non_negative(value: float, default: float) -> float:
    return value if value >= 0 else default


# =============================================================================
# Dataclass
# =============================================================================


@dataclass(frozen=True)
class ConnectorConfig:
    """Engine connector settings (connector section).

    Thread-safety: Immutable (frozen=True)

    Attributes:
        engine_path: Default engine executable used when connect() gets no path
        response_delay: Wait before the single drain (fixed_delay strategy)
        move_timeout: Deadline for a move request (deadline strategy)
        poll_interval: Sleep between non-blocking reads (deadline strategy)
        poll_strategy: "deadline" or "fixed_delay"
        read_chunk_size: Maximum bytes per read call
        max_buffer_bytes: Response buffer size that triggers compaction
        shutdown_timeout: Wait for the engine to exit after quit
        kill_timeout: Wait after kill before giving up on the reap
        startup_check_delay: Liveness check delay after spawn (0 disables)
        channel_mode: "auto", "posix" or "threaded"
    """

    engine_path: str | None = None
    response_delay: float = DEFAULT_RESPONSE_DELAY
    move_timeout: float = DEFAULT_MOVE_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_strategy: str = POLL_STRATEGY_DEADLINE
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE
    max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    startup_check_delay: float = DEFAULT_STARTUP_CHECK_DELAY
    channel_mode: str = CHANNEL_MODE_AUTO

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ConnectorConfig":
        """Build from a dict. Missing keys use defaults, bad values fall back to defaults."""
        chunk = safe_int(d.get("read_chunk_size"), DEFAULT_READ_CHUNK_SIZE)
        max_buffer = safe_int(d.get("max_buffer_bytes"), DEFAULT_MAX_BUFFER_BYTES)
        return cls(
            engine_path=normalize_path(d.get("engine_path")),
            response_delay=_non_negative(
                safe_float(d.get("response_delay"), DEFAULT_RESPONSE_DELAY), DEFAULT_RESPONSE_DELAY
            ),
            move_timeout=_non_negative(
                safe_float(d.get("move_timeout"), DEFAULT_MOVE_TIMEOUT), DEFAULT_MOVE_TIMEOUT
            ),
            poll_interval=_non_negative(
                safe_float(d.get("poll_interval"), DEFAULT_POLL_INTERVAL), DEFAULT_POLL_INTERVAL
            ),
            poll_strategy=safe_choice(d.get("poll_strategy"), POLL_STRATEGIES, POLL_STRATEGY_DEADLINE),
            read_chunk_size=chunk if chunk > 0 else DEFAULT_READ_CHUNK_SIZE,
            max_buffer_bytes=max_buffer if max_buffer > 0 else DEFAULT_MAX_BUFFER_BYTES,
            shutdown_timeout=_non_negative(
                safe_float(d.get("shutdown_timeout"), DEFAULT_SHUTDOWN_TIMEOUT), DEFAULT_SHUTDOWN_TIMEOUT
            ),
            kill_timeout=_non_negative(
                safe_float(d.get("kill_timeout"), DEFAULT_KILL_TIMEOUT), DEFAULT_KILL_TIMEOUT
            ),
            startup_check_delay=_non_negative(
                safe_float(d.get("startup_check_delay"), DEFAULT_STARTUP_CHECK_DELAY),
                DEFAULT_STARTUP_CHECK_DELAY,
            ),
            channel_mode=safe_choice(d.get("channel_mode"), CHANNEL_MODES, CHANNEL_MODE_AUTO),
        )


# =============================================================================
# File loading
# =============================================================================


def _read_yaml(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        context: dict[str, Any] = {"path": path}
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            context["line"] = mark.line + 1  # 0-indexed -> 1-indexed
            context["column"] = mark.column + 1
        raise ConfigError(f"YAML syntax error in {path}: {e}", context=context) from e


def _read_json(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(
            f"JSON syntax error in {path}: {e}",
            context={"path": path, "line": e.lineno, "column": e.colno},
        ) from e


def load_config(path: str | os.PathLike[str]) -> ConnectorConfig:
    """Load the connector section from a .json, .yaml or .yml file.

    A file without a "connector" section is read as the section itself.
    An empty YAML file gives the defaults.

    Raises:
        ConfigError: File missing/unreadable, syntax error, or not a mapping.
    """
    path = os.fspath(path)
    ext = os.path.splitext(path)[1].lower()
    try:
        data = _read_yaml(path) if ext in (".yaml", ".yml") else _read_json(path)
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}", context={"path": path}) from e

    if data is None:
        return ConnectorConfig()
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config {path} must contain a mapping, got {type(data).__name__}",
            context={"path": path},
        )
    section = data.get(CONFIG_SECTION, data)
    if not isinstance(section, dict):
        raise ConfigError(f"Config section {CONFIG_SECTION!r} is not a mapping", context={"path": path})
    logger.debug("Loaded connector config from %s", path)
    return ConnectorConfig.from_dict(section)
