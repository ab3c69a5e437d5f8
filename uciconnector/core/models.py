"""Data models for engine connector sessions.

ChildProcess is the handle returned by ProcessLauncher; MoveResult is the
value returned for every move request, including the non-fatal outcomes.
"""

import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from uciconnector.core.errors import SessionStateError

if TYPE_CHECKING:
    from uciconnector.core.channel import ProcessChannel


class LifecycleState(Enum):
    """Lifecycle of the engine child process."""

    SPAWNING = "spawning"
    RUNNING = "running"
    EXITED = "exited"


class SessionState(Enum):
    """EngineSession state machine."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CLOSED = "closed"


class MoveStatus(Enum):
    """Outcome of a single move request."""

    FOUND = "found"
    NO_MOVE_FOUND = "no_move_found"
    TIMEOUT = "timeout"


@dataclass
class MoveResult:
    """Result of EngineSession.request_move().

    Attributes:
        status: Outcome of the request
        move: 4-character move token (e.g., "e2e4") when status is FOUND
        elapsed: Seconds spent waiting for the response
        raw: Engine output inspected for this request (decoded, lossy)
    """

    status: MoveStatus
    move: Optional[str] = None
    elapsed: float = 0.0
    raw: str = ""

    @property
    def is_valid(self) -> bool:
        """True if a move was extracted."""
        return self.status is MoveStatus.FOUND and self.move is not None

    def __str__(self) -> str:
        return self.move if self.is_valid else self.status.value


@dataclass(eq=False)
class ChildProcess:
    """Handle for a spawned engine process.

    The owning session holds both channel endpoints exclusively for the
    lifetime of the process. Only ProcessLauncher marks the child RUNNING and
    only SessionLifecycle marks it EXITED.
    """

    pid: int
    channel: "ProcessChannel"
    process: subprocess.Popen = field(repr=False)
    state: LifecycleState = LifecycleState.SPAWNING
    returncode: Optional[int] = None

    def mark_running(self) -> None:
        if self.state is not LifecycleState.SPAWNING:
            raise SessionStateError(
                f"Cannot mark process {self.pid} running from {self.state.value}",
                context={"pid": self.pid, "state": self.state.value},
            )
        self.state = LifecycleState.RUNNING

    def mark_exited(self, returncode: Optional[int]) -> None:
        if self.state is LifecycleState.EXITED:
            raise SessionStateError(
                f"Process {self.pid} already exited",
                context={"pid": self.pid, "returncode": self.returncode},
            )
        self.state = LifecycleState.EXITED
        self.returncode = returncode

    def is_alive(self) -> bool:
        """Check if the engine process is still running.

        Note:
            Popen.poll() reaps the child if it has exited, so a dead engine
            never lingers as a zombie between checks.
        """
        if self.state is not LifecycleState.RUNNING:
            return False
        return self.process.poll() is None

    @property
    def exit_code(self) -> Optional[int]:
        """Exit status if the process has terminated, else None."""
        if self.returncode is not None:
            return self.returncode
        return self.process.poll()
