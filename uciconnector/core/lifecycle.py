"""Orderly engine shutdown.

Shutdown sequence (order matters):
1. Send "quit" (best-effort, the engine may already be gone)
2. Close both channel endpoints -> engine sees EOF on stdin
3. Wait for the process to exit and collect its status (no zombie)
4. Kill and wait again if it ignored quit/EOF
5. Join the channel's reader thread, if it has one
6. Mark the child EXITED (last step)

Every step is attempted even if an earlier one failed; failures are logged
and reported together as ShutdownError at the end.
"""

import logging
import subprocess
from typing import List, Optional, Tuple

from uciconnector.core.constants import DEFAULT_KILL_TIMEOUT, DEFAULT_SHUTDOWN_TIMEOUT
from uciconnector.core.errors import ChannelError, SessionStateError, ShutdownError
from uciconnector.core.models import ChildProcess, LifecycleState
from uciconnector.core.protocol import format_quit_command

logger = logging.getLogger(__name__)


class SessionLifecycle:
    """Terminates engine processes deterministically.

    Args:
        shutdown_timeout: Seconds to wait for a graceful exit after quit
        kill_timeout: Seconds to wait for the exit after kill
    """

    def __init__(
        self,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ):
        self.shutdown_timeout = shutdown_timeout
        self.kill_timeout = kill_timeout

    def shutdown(self, child: ChildProcess) -> bool:
        """Shut the engine down and reap it.

        Returns:
            True if the engine exited by itself, False if it had to be killed.

        Raises:
            SessionStateError: The child was already shut down.
            ShutdownError: Closing a pipe or reaping the process failed. All
                release steps have been attempted when this is raised.
        """
        if child.state is LifecycleState.EXITED:
            raise SessionStateError(
                f"Engine process {child.pid} already shut down",
                context={"pid": child.pid, "returncode": child.returncode},
            )
        logger.info(f"Shutting down engine (pid {child.pid})")
        failures: List[str] = []

        self._send_quit(child)

        try:
            child.channel.close()
        except ShutdownError as e:
            failures.append(str(e))

        graceful, returncode, reap_error = self._reap(child.process)
        if reap_error:
            failures.append(reap_error)
        elif not child.channel.join_reader(self.kill_timeout):
            logger.warning(f"Output reader of engine (pid {child.pid}) still running after exit")

        child.mark_exited(returncode)

        if failures:
            raise ShutdownError(
                f"Engine shutdown incomplete (pid {child.pid})",
                context={"pid": child.pid, "returncode": returncode, "failures": failures},
            )
        return graceful

    def _send_quit(self, child: ChildProcess) -> None:
        try:
            child.channel.write(format_quit_command())
        except ChannelError as e:
            logger.debug(f"Shutdown: quit not delivered: {e}")

    def _reap(self, process: subprocess.Popen) -> Tuple[bool, Optional[int], Optional[str]]:
        """Wait for the process, killing it if needed.

        Returns:
            (graceful, returncode, error message or None)
        """
        try:
            code = process.wait(timeout=self.shutdown_timeout)
            logger.info(f"Engine exited with code {code}")
            return True, code, None
        except subprocess.TimeoutExpired:
            logger.warning(f"Engine shutdown timeout after {self.shutdown_timeout}s, killing")

        try:
            process.kill()
        except OSError as e:
            logger.debug(f"Shutdown: OSError during kill: {e}")

        try:
            code = process.wait(timeout=self.kill_timeout)
            logger.info(f"Engine killed: exit_code={code}")
            return False, code, None
        except subprocess.TimeoutExpired:
            logger.error("Engine did not respond to kill - process may be orphaned")
            return False, None, f"process did not exit within {self.kill_timeout}s after kill"
