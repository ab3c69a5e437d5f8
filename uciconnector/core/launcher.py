"""Engine process launcher.

Spawns the engine with its standard streams wired to a fresh ProcessChannel:

    command pipe:  parent writes  -> child stdin
    response pipe: child stdout + stderr -> parent reads

On POSIX the pipes are allocated here and handed to the child; the parent
keeps only the command write end and the response read end. Exec failures
(missing file, permission denied, bad format) are reported synchronously by
subprocess through its internal error pipe and raised as ExecError.
"""

import errno
import logging
import os
import subprocess
import time
from typing import Optional

from uciconnector.common.config import ConnectorConfig
from uciconnector.common.platform import supports_nonblocking_pipes
from uciconnector.core.channel import PosixPipeChannel, ProcessChannel, ThreadedPipeChannel
from uciconnector.core.constants import CHANNEL_MODE_AUTO, CHANNEL_MODE_POSIX, CHANNEL_MODE_THREADED
from uciconnector.core.errors import ExecError, ShutdownError, SpawnError
from uciconnector.core.models import ChildProcess

logger = logging.getLogger(__name__)

# errno values meaning the image could not be started (as opposed to fork failure)
_EXEC_ERRNOS = frozenset({errno.ENOENT, errno.EACCES, errno.ENOEXEC, errno.ENOTDIR, errno.EISDIR, errno.ELOOP})


def _close_fds(*fds: int) -> None:
    for fd in fds:
        try:
            os.close(fd)
        except OSError as e:
            logger.debug(f"Closing fd {fd} during cleanup failed: {e}")


def _spawn_failure(path: str, e: OSError) -> SpawnError:
    if e.errno in _EXEC_ERRNOS:
        return ExecError(
            f"Cannot execute engine {path}: {e}",
            user_message=f"Engine could not be started: {path}",
            context={"path": path, "errno": e.errno},
        )
    return SpawnError(
        f"Failed to create engine process for {path}: {e}",
        user_message="Engine process could not be created",
        context={"path": path, "errno": e.errno},
    )


class ProcessLauncher:
    """Starts engine processes and hands back ChildProcess handles.

    Args:
        config: Connector settings (channel_mode, read_chunk_size,
            startup_check_delay are used here)
    """

    def __init__(self, config: Optional[ConnectorConfig] = None):
        self.config = config or ConnectorConfig()

    def channel_mode(self) -> str:
        """Resolve "auto" to the implementation for this platform."""
        mode = self.config.channel_mode
        if mode == CHANNEL_MODE_AUTO:
            return CHANNEL_MODE_POSIX if supports_nonblocking_pipes() else CHANNEL_MODE_THREADED
        return mode

    def connect(self, executable_path: str) -> ChildProcess:
        """Spawn the engine at executable_path (no arguments, inherited environment).

        Returns:
            ChildProcess in RUNNING state, owning a fresh channel.

        Raises:
            ExecError: The executable could not be started.
            SpawnError: Pipe or process creation failed.
        """
        path = os.fspath(executable_path) if executable_path else ""
        if not path.strip():
            raise ExecError("Engine path is empty", user_message="No engine configured")

        mode = self.channel_mode()
        logger.info(f"Starting engine: {path} ({mode} channel)")
        if mode == CHANNEL_MODE_POSIX:
            child = self._spawn_posix(path)
        else:
            child = self._spawn_threaded(path)
        child.mark_running()
        logger.debug(f"Engine started with pid {child.pid}")

        if self.config.startup_check_delay > 0:
            self._check_startup(child, path)
        return child

    def _spawn_posix(self, path: str) -> ChildProcess:
        try:
            cmd_r, cmd_w = os.pipe()
        except OSError as e:
            raise SpawnError(f"Failed to allocate command pipe: {e}", context={"errno": e.errno}) from e
        try:
            resp_r, resp_w = os.pipe()
        except OSError as e:
            _close_fds(cmd_r, cmd_w)
            raise SpawnError(f"Failed to allocate response pipe: {e}", context={"errno": e.errno}) from e

        try:
            process = subprocess.Popen(
                [path],
                stdin=cmd_r,
                stdout=resp_w,
                stderr=resp_w,  # engines report errors on stderr; merge them
                close_fds=True,
            )
        except OSError as e:
            _close_fds(cmd_r, cmd_w, resp_r, resp_w)
            raise _spawn_failure(path, e) from e

        # Child ends belong to the child now
        _close_fds(cmd_r, resp_w)
        try:
            channel: ProcessChannel = PosixPipeChannel(write_fd=cmd_w, read_fd=resp_r)
        except OSError as e:
            _close_fds(cmd_w, resp_r)
            process.kill()
            process.wait()
            raise SpawnError(f"Failed to configure response pipe: {e}", context={"errno": e.errno}) from e
        return ChildProcess(pid=process.pid, channel=channel, process=process)

    def _spawn_threaded(self, path: str) -> ChildProcess:
        startupinfo = None
        if hasattr(subprocess, "STARTUPINFO"):
            startupinfo = subprocess.STARTUPINFO()
            startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW  # no console popup on win
        try:
            process = subprocess.Popen(
                [path],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                bufsize=0,
                startupinfo=startupinfo,
            )
        except OSError as e:
            raise _spawn_failure(path, e) from e
        channel = ThreadedPipeChannel(process.stdin, process.stdout, chunk_size=self.config.read_chunk_size)
        return ChildProcess(pid=process.pid, channel=channel, process=process)

    def _check_startup(self, child: ChildProcess, path: str) -> None:
        """Fail fast if the engine died right after starting."""
        time.sleep(self.config.startup_check_delay)
        code = child.process.poll()
        if code is None:
            return
        output = b""
        try:
            output = child.channel.read_available(self.config.read_chunk_size)
        except OSError as e:
            logger.debug(f"Reading startup output failed: {e}")
        try:
            child.channel.close()
        except ShutdownError as e:
            logger.warning(f"Cleanup after failed startup: {e}")
        logger.error(f"Engine {path} exited during startup with code {code}")
        raise ExecError(
            f"Engine {path} exited during startup with code {code}",
            user_message=f"Engine could not be started: {path}",
            context={"path": path, "returncode": code, "output": output.decode("utf-8", errors="replace")},
        )
