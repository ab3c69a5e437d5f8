"""Byte transport between the connector and an engine process.

ProcessChannel owns the two endpoints the parent keeps after spawning: the
write end of the command pipe (child stdin) and the read end of the response
pipe (child stdout/stderr).

Implementations:
    PosixPipeChannel: raw descriptors, read end in O_NONBLOCK mode.
    ThreadedPipeChannel: portable; a reader thread feeds a queue so that
        read_available() never blocks on platforms without non-blocking pipes.
"""

import errno
import logging
import os
import queue
import threading
from abc import ABC, abstractmethod
from typing import BinaryIO, List, Optional

from uciconnector.core.constants import DEFAULT_READ_CHUNK_SIZE
from uciconnector.core.errors import ChannelClosedError, ChannelWriteError, ShutdownError

logger = logging.getLogger(__name__)


class ProcessChannel(ABC):
    """Bidirectional byte transport over two unidirectional pipes."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write the full payload to the engine's stdin.

        Raises:
            ChannelClosedError: If the channel was closed.
            ChannelWriteError: If the write failed (e.g., broken pipe).
        """

    @abstractmethod
    def read_available(self, max_bytes: int = DEFAULT_READ_CHUNK_SIZE) -> bytes:
        """Return up to max_bytes of currently available output without waiting.

        Returns b"" if nothing is available yet or the stream reached EOF
        (check at_eof to tell the two apart).
        """

    @abstractmethod
    def close(self) -> None:
        """Close both endpoints. Each endpoint is closed at most once."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once close() has been called."""

    @property
    @abstractmethod
    def at_eof(self) -> bool:
        """True once the engine side of the response pipe was closed."""

    def join_reader(self, timeout: float) -> bool:
        """Wait for background readers to stop after close() and the reap.

        Returns:
            True if no reader is still running.
        """
        return True


class PosixPipeChannel(ProcessChannel):
    """Channel over raw pipe descriptors.

    Args:
        write_fd: Write end of the command pipe (parent -> child stdin)
        read_fd: Read end of the response pipe (child stdout -> parent)
    """

    def __init__(self, write_fd: int, read_fd: int):
        self._write_fd: Optional[int] = write_fd
        self._read_fd: Optional[int] = read_fd
        self._eof = False
        self._closed = False
        os.set_blocking(read_fd, False)

    @property
    def write_fd(self) -> Optional[int]:
        return self._write_fd

    @property
    def read_fd(self) -> Optional[int]:
        return self._read_fd

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def at_eof(self) -> bool:
        return self._eof

    def write(self, data: bytes) -> None:
        if self._write_fd is None:
            raise ChannelClosedError("Write on closed channel")
        view = memoryview(data)
        while view:
            try:
                written = os.write(self._write_fd, view)
            except InterruptedError:
                continue
            except OSError as e:
                raise ChannelWriteError(
                    f"Failed to write to engine: {e}",
                    user_message="Engine is not accepting commands",
                    context={"errno": e.errno, "fd": self._write_fd},
                ) from e
            view = view[written:]
        logger.debug(f"Sent {len(data)} bytes: {data!r}")

    def read_available(self, max_bytes: int = DEFAULT_READ_CHUNK_SIZE) -> bytes:
        if self._read_fd is None:
            raise ChannelClosedError("Read on closed channel")
        if self._eof:
            return b""
        try:
            chunk = os.read(self._read_fd, max_bytes)
        except BlockingIOError:
            return b""
        except InterruptedError:
            return b""
        if not chunk:
            logger.debug("Engine output reached EOF")
            self._eof = True
        return chunk

    def close(self) -> None:
        if self._closed:
            logger.debug("Channel already closed, ignoring close()")
            return
        self._closed = True
        failures: List[str] = []
        for name in ("_write_fd", "_read_fd"):
            fd = getattr(self, name)
            if fd is None:
                continue
            setattr(self, name, None)  # never close the same number twice
            try:
                os.close(fd)
            except OSError as e:
                if e.errno == errno.EBADF:
                    failures.append(f"{name} {fd} already closed")
                else:
                    failures.append(f"{name} {fd}: {e}")
        if failures:
            logger.error(f"Errors closing engine pipes: {failures}")
            raise ShutdownError("Failed to close engine pipes", context={"failures": failures})


class ThreadedPipeChannel(ProcessChannel):
    """Portable channel over subprocess pipe file objects.

    A daemon thread performs blocking reads on stdout and puts chunks into a
    queue; None in the queue marks EOF.

    Args:
        stdin: Unbuffered binary stdin pipe of the child (Popen bufsize=0)
        stdout: Unbuffered binary stdout pipe of the child
        chunk_size: Maximum bytes per blocking read
    """

    def __init__(self, stdin: BinaryIO, stdout: BinaryIO, chunk_size: int = DEFAULT_READ_CHUNK_SIZE):
        self._stdin: Optional[BinaryIO] = stdin
        self._stdout: Optional[BinaryIO] = stdout
        self._chunks: queue.Queue = queue.Queue()
        self._pending = b""
        self._eof = False
        self._closed = False
        self._reader_thread = threading.Thread(
            target=self._pipe_reader_thread,
            args=(stdout, chunk_size),
            daemon=True,
            name="engine-stdout-reader",
        )
        self._reader_thread.start()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def at_eof(self) -> bool:
        return self._eof and not self._pending

    def _pipe_reader_thread(self, pipe: BinaryIO, chunk_size: int) -> None:
        """Move engine output into the queue (blocking I/O isolated here)."""
        while True:
            try:
                chunk = pipe.read(chunk_size)
            except (OSError, ValueError):
                break  # pipe closed under us
            if not chunk:
                break
            self._chunks.put(chunk)
        self._chunks.put(None)
        logger.debug("Pipe reader finished")

    def write(self, data: bytes) -> None:
        if self._stdin is None:
            raise ChannelClosedError("Write on closed channel")
        view = memoryview(data)
        while view:
            try:
                written = self._stdin.write(view)
            except (BrokenPipeError, OSError, ValueError) as e:
                raise ChannelWriteError(
                    f"Failed to write to engine: {e}",
                    user_message="Engine is not accepting commands",
                    context={"errno": getattr(e, "errno", None)},
                ) from e
            view = view[written or 0:]
        logger.debug(f"Sent {len(data)} bytes: {data!r}")

    def read_available(self, max_bytes: int = DEFAULT_READ_CHUNK_SIZE) -> bytes:
        if self._closed:
            raise ChannelClosedError("Read on closed channel")
        while len(self._pending) < max_bytes and not self._eof:
            try:
                chunk = self._chunks.get_nowait()
            except queue.Empty:
                break
            if chunk is None:
                logger.debug("Engine output reached EOF")
                self._eof = True
                break
            self._pending += chunk
        data, self._pending = self._pending[:max_bytes], self._pending[max_bytes:]
        return data

    def close(self) -> None:
        if self._closed:
            logger.debug("Channel already closed, ignoring close()")
            return
        self._closed = True
        failures: List[str] = []
        for name in ("_stdin", "_stdout"):
            pipe = getattr(self, name)
            if pipe is None:
                continue
            setattr(self, name, None)
            try:
                pipe.close()
            except BrokenPipeError:
                logger.debug(f"Pipe {name} already broken")
            except OSError as e:
                failures.append(f"{name}: {e}")
        # Reader exits on EOF once the child is gone; join_reader() waits for it
        if failures:
            logger.error(f"Errors closing engine pipes: {failures}")
            raise ShutdownError("Failed to close engine pipes", context={"failures": failures})

    def join_reader(self, timeout: float) -> bool:
        thread = self._reader_thread
        if thread.is_alive():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.debug(f"Thread {thread.name} did not stop within {timeout}s timeout")
                return False
        return True
