# uciconnector/common/platform.py
"""Platform capability checks.

Used to pick a ProcessChannel implementation: raw non-blocking pipes on
POSIX systems, a reader thread elsewhere.

Usage:
    from uciconnector.common.platform import supports_nonblocking_pipes

    if supports_nonblocking_pipes():
        # PosixPipeChannel
"""
import os


def supports_nonblocking_pipes() -> bool:
    """True where pipe descriptors can be switched to O_NONBLOCK.

    os.set_blocking() on pipes is only available on POSIX (and Windows
    from Python 3.12, where the threaded channel is still preferred).
    """
    return os.name == "posix"
