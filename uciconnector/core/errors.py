"""
uciconnector exception hierarchy.

Provides a base exception class with user-facing messages and debug context,
plus specialized subclasses for the spawn, channel, session and shutdown
failure domains.

Per-request outcomes (no move found, timeout) are not exceptions; they are
reported through MoveResult.
"""

from typing import Any, Dict, Optional


class ConnectorError(Exception):
    """Base exception for engine connector errors.

    Attributes:
        user_message: Safe, user-facing error message.
        context: Dictionary of debug information.
    """

    def __init__(
        self,
        message: str,
        *,
        user_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.user_message = user_message or message
        self.context = context or {}


class SpawnError(ConnectorError):
    """Pipe allocation or child process creation failed."""

    pass


class ExecError(SpawnError):
    """The child was created but the engine image could not be started."""

    pass


class ChannelError(ConnectorError):
    """Byte transport errors on the engine pipes."""

    pass


class ChannelWriteError(ChannelError):
    """Writing a command to the engine's stdin failed."""

    pass


class ChannelClosedError(ChannelError):
    """Operation on a channel whose endpoints were already closed."""

    pass


class EngineExitedError(ConnectorError):
    """The engine process is no longer running."""

    pass


class SessionStateError(ConnectorError):
    """Operation not allowed in the current session state."""

    pass


class ShutdownError(ConnectorError):
    """Closing descriptors or reaping the engine process failed."""

    pass


class ConfigError(ConnectorError):
    """Configuration load/parse errors."""

    pass
