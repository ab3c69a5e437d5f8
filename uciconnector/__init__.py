"""uciconnector - drive an external UCI engine process over pipes."""

from uciconnector.common.config import ConnectorConfig, load_config
from uciconnector.core.errors import (
    ChannelClosedError,
    ChannelError,
    ChannelWriteError,
    ConfigError,
    ConnectorError,
    EngineExitedError,
    ExecError,
    SessionStateError,
    ShutdownError,
    SpawnError,
)
from uciconnector.core.models import ChildProcess, LifecycleState, MoveResult, MoveStatus, SessionState
from uciconnector.core.launcher import ProcessLauncher
from uciconnector.core.lifecycle import SessionLifecycle
from uciconnector.core.session import EngineSession

__version__ = "0.1.0"

__all__ = [
    # Config
    "ConnectorConfig",
    "load_config",
    # Session
    "EngineSession",
    "ProcessLauncher",
    "SessionLifecycle",
    # Models
    "ChildProcess",
    "LifecycleState",
    "MoveResult",
    "MoveStatus",
    "SessionState",
    # Errors
    "ConnectorError",
    "SpawnError",
    "ExecError",
    "ChannelError",
    "ChannelWriteError",
    "ChannelClosedError",
    "EngineExitedError",
    "SessionStateError",
    "ShutdownError",
    "ConfigError",
]
