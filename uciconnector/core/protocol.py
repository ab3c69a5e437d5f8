"""UCI subset used by the connector.

Only the "request a move" exchange is supported:
    -> position startpos moves <m1> <m2> ...
    -> go
    <- ... bestmove <4 chars> ...
    -> quit
"""

import re
from typing import Optional, Sequence, Tuple

from uciconnector.core.constants import (
    BESTMOVE_MARKER,
    GO_COMMAND,
    MOVE_LENGTH,
    POSITION_PREFIX,
    QUIT_COMMAND,
)

# Tokens are joined with spaces into a single line, so they must not contain
# whitespace or control characters.
_INVALID_TOKEN_CHARS = re.compile(r"[\s\x00-\x1f\x7f]")


def validate_move_token(token: str) -> str:
    """Check a move token before it is put on the wire.

    Raises:
        ValueError: If the token is empty, not a str, or contains
            whitespace/control characters.
    """
    if not isinstance(token, str):
        raise ValueError(f"Move token must be str, got {type(token).__name__}")
    if not token:
        raise ValueError("Empty move token")
    if _INVALID_TOKEN_CHARS.search(token):
        raise ValueError(f"Invalid characters in move token {token!r}")
    return token


def format_position_command(move_history: Sequence[str]) -> bytes:
    """Build the position + go command for a move history.

    The history is joined verbatim; an empty history still emits the
    trailing space after "moves".
    """
    history = " ".join(validate_move_token(m) for m in move_history)
    return (POSITION_PREFIX + history + "\n" + GO_COMMAND).encode("utf-8")


def format_quit_command() -> bytes:
    return QUIT_COMMAND.encode("ascii")


def find_best_move(data: bytes, start: int = 0) -> Optional[Tuple[str, int]]:
    """Search for the first complete "bestmove <token>" at or after start.

    Args:
        data: Accumulated engine output
        start: Offset to begin searching from

    Returns:
        (move, end_offset) where end_offset points just past the token, or
        None if no marker is present or fewer than MOVE_LENGTH bytes follow it.
    """
    pos = data.find(BESTMOVE_MARKER, start)
    if pos < 0:
        return None
    begin = pos + len(BESTMOVE_MARKER)
    end = begin + MOVE_LENGTH
    if len(data) < end:
        return None
    move = data[begin:end].decode("ascii", errors="replace")
    return move, end
