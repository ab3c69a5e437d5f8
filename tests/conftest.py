"""
Pytest configuration and shared fixtures for uciconnector tests.

This module provides:
- Stub engine factories (real executables written into tmp_path)
- Open-descriptor counting for leak assertions
- Fake channel/process fixtures for tests without a subprocess
"""

import os
import shlex
import stat
import sys
import textwrap
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from unittest.mock import MagicMock

import pytest

from tests.fakes import FakeChannel
from uciconnector.common.config import ConnectorConfig
from uciconnector.core.models import ChildProcess


# ---------------------------------------------------------------------------
# Platform markers
# ---------------------------------------------------------------------------

PROC_FD_DIR = Path("/proc/self/fd")

posix_only = pytest.mark.skipif(os.name != "posix", reason="requires POSIX pipes and shebang executables")
needs_proc_fd = pytest.mark.skipif(not PROC_FD_DIR.is_dir(), reason="requires /proc/self/fd")


def count_open_fds() -> int:
    """Number of descriptors open in this process (Linux)."""
    return len(os.listdir(PROC_FD_DIR))


# ---------------------------------------------------------------------------
# Stub engines
# ---------------------------------------------------------------------------

# Replies to successive "go" commands: (delay seconds, text). The last entry
# is reused once the list runs out.
UCI_STUB_TEMPLATE = """\
import sys
import time

LOG_PATH = {log_path!r}
REPLIES = {replies!r}
BANNER = {banner!r}

if BANNER:
    sys.stdout.write(BANNER)
    sys.stdout.flush()

gos = 0
while True:
    line = sys.stdin.readline()
    if not line:
        break
    if LOG_PATH:
        with open(LOG_PATH, "a", encoding="utf-8", newline="") as f:
            f.write(line)
    cmd = line.strip()
    if cmd == "go":
        delay, text = REPLIES[min(gos, len(REPLIES) - 1)]
        gos += 1
        time.sleep(delay)
        sys.stdout.write(text)
        sys.stdout.flush()
    elif cmd == "quit":
        break
"""


def write_stub_engine(directory: Path, name: str, body: str) -> str:
    """Write a Python stub engine plus an executable launcher script.

    The launcher is a /bin/sh script that execs the current interpreter, so
    the engine pid is the pid of the spawned process.
    """
    script = directory / f"{name}.py"
    script.write_text(textwrap.dedent(body), encoding="utf-8")
    launcher = directory / name
    launcher.write_text(
        f"#!/bin/sh\nexec {shlex.quote(sys.executable)} -u {shlex.quote(str(script))}\n",
        encoding="utf-8",
    )
    launcher.chmod(launcher.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(launcher)


@pytest.fixture
def make_engine(tmp_path):
    """Factory fixture: write an arbitrary stub engine and return its path."""

    def _make_engine(body: str, name: str = "engine") -> str:
        return write_stub_engine(tmp_path, name, body)

    return _make_engine


@pytest.fixture
def make_uci_engine(tmp_path):
    """Factory fixture: stub engine answering each "go" with a scripted reply."""

    def _make_uci_engine(
        replies: Sequence[Tuple[float, str]] = ((0.0, "bestmove e2e4\n"),),
        *,
        log_path: Optional[Path] = None,
        banner: str = "",
        name: str = "uci_engine",
    ) -> str:
        body = UCI_STUB_TEMPLATE.format(
            log_path=str(log_path) if log_path else "",
            replies=[tuple(r) for r in replies],
            banner=banner,
        )
        return write_stub_engine(tmp_path, name, body)

    return _make_uci_engine


@pytest.fixture
def silent_engine(make_engine):
    """Engine that never writes anything and exits on stdin EOF."""
    return make_engine(
        """\
        import sys
        sys.stdin.read()
        """,
        name="silent_engine",
    )


@pytest.fixture
def immediate_engine(make_engine):
    """Engine that writes a bestmove right away and then only waits for EOF."""
    return make_engine(
        """\
        import sys
        sys.stdout.write("bestmove e2e4\\n")
        sys.stdout.flush()
        sys.stdin.read()
        """,
        name="immediate_engine",
    )


@pytest.fixture
def answer_then_exit_engine(make_engine):
    """Engine that writes a bestmove and exits without reading anything."""
    return make_engine(
        """\
        import sys
        sys.stdout.write("info depth 1\\nbestmove e2e4\\n")
        sys.stdout.flush()
        """,
        name="answer_then_exit_engine",
    )


@pytest.fixture
def stubborn_engine(make_engine):
    """Engine that ignores quit and EOF; only kill stops it."""
    return make_engine(
        """\
        import signal
        import time
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        while True:
            time.sleep(1)
        """,
        name="stubborn_engine",
    )


@pytest.fixture
def crashing_engine(make_engine):
    """Engine that exits with status 3 immediately."""
    return make_engine(
        """\
        import sys
        sys.stderr.write("engine: missing network file\\n")
        sys.exit(3)
        """,
        name="crashing_engine",
    )


@pytest.fixture
def fast_config():
    """Config with short timeouts for real-process tests."""
    return ConnectorConfig(
        response_delay=0.5,
        move_timeout=3.0,
        poll_interval=0.005,
        shutdown_timeout=3.0,
        kill_timeout=2.0,
    )


# ---------------------------------------------------------------------------
# Fakes for subprocess-free tests
# ---------------------------------------------------------------------------


def make_mock_process(pid: int = 4242, returncode: int = 0) -> MagicMock:
    """Popen stand-in that is running until wait() is called."""
    proc = MagicMock()
    proc.pid = pid
    proc.poll.return_value = None
    proc.wait.return_value = returncode
    return proc


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def fake_child(fake_channel):
    """Running ChildProcess over a FakeChannel and a mocked Popen."""
    proc = make_mock_process()
    child = ChildProcess(pid=proc.pid, channel=fake_channel, process=proc)
    child.mark_running()
    return child


@pytest.fixture
def fake_launcher(fake_child):
    """Launcher mock whose connect() returns fake_child."""
    launcher = MagicMock()
    launcher.connect.return_value = fake_child
    return launcher


def written_text(channel: FakeChannel) -> List[str]:
    """Decoded payloads written to a FakeChannel."""
    return [w.decode("utf-8") for w in channel.writes]
