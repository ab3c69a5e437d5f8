"""UCI engine session.

Usage:
    with EngineSession(config).connect("/usr/bin/stockfish") as session:
        result = session.request_move(["e2e4", "e7e5"])
        if result.is_valid:
            print(result.move)

State machine:
    DISCONNECTED --connect()--> CONNECTED --close()--> CLOSED

A session is single-owner: do not call request_move() from several threads.
"""

import logging
import time
from typing import Optional, Sequence

from uciconnector.common.config import ConnectorConfig
from uciconnector.core.constants import POLL_STRATEGY_FIXED_DELAY
from uciconnector.core.errors import (
    ChannelWriteError,
    EngineExitedError,
    ExecError,
    SessionStateError,
    ShutdownError,
)
from uciconnector.core.launcher import ProcessLauncher
from uciconnector.core.lifecycle import SessionLifecycle
from uciconnector.core.models import ChildProcess, MoveResult, MoveStatus, SessionState
from uciconnector.core.protocol import format_position_command
from uciconnector.core.response_buffer import ResponseBuffer

logger = logging.getLogger(__name__)


class EngineSession:
    """Protocol client for one engine process.

    Args:
        config: Connector settings (defaults if None)
        launcher: Process launcher (built from config if None)
        lifecycle: Shutdown handler (built from config if None)
    """

    def __init__(
        self,
        config: Optional[ConnectorConfig] = None,
        launcher: Optional[ProcessLauncher] = None,
        lifecycle: Optional[SessionLifecycle] = None,
    ):
        self.config = config or ConnectorConfig()
        self.launcher = launcher or ProcessLauncher(self.config)
        self.lifecycle = lifecycle or SessionLifecycle(
            shutdown_timeout=self.config.shutdown_timeout,
            kill_timeout=self.config.kill_timeout,
        )
        self.state = SessionState.DISCONNECTED
        self.child: Optional[ChildProcess] = None
        self.buffer = ResponseBuffer(max_bytes=self.config.max_buffer_bytes)
        # Set when a request ended without a move; its answer may still arrive
        self._unanswered = False

    def __enter__(self) -> "EngineSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.state is not SessionState.CONNECTED:
            return
        if exc_type is None:
            self.close()
            return
        # Leaving on an exception: a shutdown failure must not replace it
        try:
            self.close()
        except ShutdownError as e:
            logger.error(f"Engine shutdown failed while handling {exc_type.__name__}: {e}")

    def __repr__(self) -> str:
        return f"EngineSession(state={self.state.value}, pid={self.pid})"

    @property
    def pid(self) -> Optional[int]:
        return self.child.pid if self.child else None

    def is_alive(self) -> bool:
        """Check if the engine process is running."""
        return self.state is SessionState.CONNECTED and self.child is not None and self.child.is_alive()

    def connect(self, executable_path: Optional[str] = None) -> "EngineSession":
        """Start the engine. Falls back to config.engine_path if no path is given.

        Raises:
            SessionStateError: Already connected or closed.
            ExecError: No path given, or the executable could not be started.
            SpawnError: Pipe or process creation failed.
        """
        if self.state is not SessionState.DISCONNECTED:
            raise SessionStateError(
                f"connect() not allowed in state {self.state.value}",
                context={"state": self.state.value, "pid": self.pid},
            )
        path = executable_path or self.config.engine_path
        if not path:
            raise ExecError("Engine path is empty", user_message="No engine configured")
        self.child = self.launcher.connect(path)
        self.state = SessionState.CONNECTED
        return self

    def request_move(self, move_history: Sequence[str], timeout: Optional[float] = None) -> MoveResult:
        """Ask the engine for the best move after move_history from the start position.

        Args:
            move_history: Move tokens played so far, e.g. ["e2e4", "e7e5"]
            timeout: Deadline in seconds (deadline strategy only, defaults to
                config.move_timeout)

        Returns:
            MoveResult with status FOUND, NO_MOVE_FOUND or TIMEOUT. An engine
            that exited after writing its answer still yields FOUND.

        Raises:
            SessionStateError: Session is not connected.
            EngineExitedError: The engine process is not running and left no answer.
            ValueError: A move token is empty or contains whitespace.
        """
        if self.state is not SessionState.CONNECTED:
            raise SessionStateError(
                f"request_move() not allowed in state {self.state.value}",
                context={"state": self.state.value},
            )
        child = self.child
        command = format_position_command(move_history)
        start = time.monotonic()

        if self._unanswered:
            # A late answer to the previous request must not be taken for this one
            self._drain(child)
            skipped = self.buffer.skip_pending()
            if skipped:
                logger.debug(f"Skipped {skipped} bytes of output from the unanswered request")
            self._unanswered = False

        if not child.is_alive():
            return self._answer_from_exited(child, start)

        try:
            child.channel.write(command)
        except ChannelWriteError as e:
            if child.is_alive():
                raise
            return self._answer_from_exited(child, start, cause=e)

        if self.config.poll_strategy == POLL_STRATEGY_FIXED_DELAY:
            return self._wait_fixed_delay(child, start)
        return self._wait_until_deadline(child, start, self.config.move_timeout if timeout is None else timeout)

    def close(self) -> bool:
        """Shut the engine down and reap it.

        Returns:
            True if the engine exited gracefully (also when never connected),
            False if it had to be killed.

        Raises:
            SessionStateError: close() was already called.
            ShutdownError: Releasing pipes or reaping failed (after best-effort release).
        """
        if self.state is SessionState.DISCONNECTED:
            logger.debug("close() on a session that was never connected")
            return True
        if self.state is SessionState.CLOSED:
            raise SessionStateError("Session already closed", context={"pid": self.pid})
        self.state = SessionState.CLOSED
        return self.lifecycle.shutdown(self.child)

    def _answer_from_exited(
        self, child: ChildProcess, start: float, cause: Optional[Exception] = None
    ) -> MoveResult:
        """Return a bestmove the engine wrote before exiting, else raise EngineExitedError.

        Output of a dead engine is finite: read until EOF, waiting at most
        response_delay in case something else still holds the pipe open.
        """
        deadline = time.monotonic() + self.config.response_delay
        self._drain(child)
        while not child.channel.at_eof and time.monotonic() < deadline:
            time.sleep(self.config.poll_interval)
            self._drain(child)
        move = self.buffer.take_best_move()
        code = child.exit_code
        if move is not None:
            logger.info(f"Engine (pid {child.pid}) exited with code {code} after answering {move}")
            return self._result(MoveStatus.FOUND, start, self.buffer.last_answer, move)
        logger.error(f"Engine (pid {child.pid}) is not running, exit code {code}")
        raise EngineExitedError(
            f"Engine exited with code {code}",
            user_message="Engine stopped unexpectedly",
            context={"pid": child.pid, "returncode": code},
        ) from cause

    def _drain(self, child: ChildProcess) -> int:
        """Move all currently available output into the buffer."""
        total = 0
        while True:
            chunk = child.channel.read_available(self.config.read_chunk_size)
            if not chunk:
                return total
            self.buffer.append(chunk)
            total += len(chunk)

    def _result(self, status: MoveStatus, start: float, raw: bytes, move: Optional[str] = None) -> MoveResult:
        self._unanswered = status is not MoveStatus.FOUND
        return MoveResult(
            status=status,
            move=move,
            elapsed=time.monotonic() - start,
            raw=raw.decode("utf-8", errors="replace"),
        )

    def _wait_fixed_delay(self, child: ChildProcess, start: float) -> MoveResult:
        """Sleep once, drain once, search once."""
        time.sleep(self.config.response_delay)
        self._drain(child)
        move = self.buffer.take_best_move()
        if move is None:
            logger.debug(f"No bestmove after {self.config.response_delay}s")
            return self._result(MoveStatus.NO_MOVE_FOUND, start, self.buffer.pending())
        logger.debug(f"Engine answered {move}")
        return self._result(MoveStatus.FOUND, start, self.buffer.last_answer, move)

    def _wait_until_deadline(self, child: ChildProcess, start: float, timeout: float) -> MoveResult:
        """Poll until a bestmove arrives, the output ends, or the deadline passes."""
        deadline = start + timeout
        while True:
            self._drain(child)
            move = self.buffer.take_best_move()
            if move is not None:
                logger.debug(f"Engine answered {move} after {time.monotonic() - start:.3f}s")
                return self._result(MoveStatus.FOUND, start, self.buffer.last_answer, move)
            if child.channel.at_eof:
                logger.warning(f"Engine (pid {child.pid}) closed its output without a bestmove")
                return self._result(MoveStatus.NO_MOVE_FOUND, start, self.buffer.pending())
            now = time.monotonic()
            if now >= deadline:
                logger.warning(f"No bestmove within {timeout}s")
                return self._result(MoveStatus.TIMEOUT, start, self.buffer.pending())
            time.sleep(min(self.config.poll_interval, deadline - now))
