"""Accumulator for engine output.

Output is appended in arrival order. A read cursor marks the start of the
region that belongs to the current request; searches never look behind it,
so a bestmove token from an earlier request cannot be matched again.
"""

import logging
from typing import Optional, Tuple

from uciconnector.core.constants import BESTMOVE_MARKER, DEFAULT_MAX_BUFFER_BYTES, MOVE_LENGTH
from uciconnector.core.protocol import find_best_move

logger = logging.getLogger(__name__)

# A complete token needs this many bytes from the start of its marker
_TOKEN_LENGTH = len(BESTMOVE_MARKER) + MOVE_LENGTH


class ResponseBuffer:
    """Byte buffer with a read cursor and a bounded size.

    Once the buffer grows past max_bytes it is compacted: consumed bytes
    (before the cursor) are dropped, and so are unconsumed bytes a failed
    search already ruled out. Bytes that could still begin a bestmove token
    are never dropped, so the size stays within max_bytes plus one burst of
    unsearched output.
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BUFFER_BYTES) -> None:
        self._data = bytearray()
        self._cursor = 0
        # Bytes before this offset hold no token start
        self._scanned = 0
        self._max_bytes = max_bytes
        self._total_received = 0
        self._discarded = 0
        self.last_answer = b""

    def __len__(self) -> int:
        return len(self._data)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def total_received(self) -> int:
        """Bytes appended over the whole session, including compacted ones."""
        return self._total_received

    @property
    def discarded(self) -> int:
        """Unconsumed bytes dropped by compaction over the whole session."""
        return self._discarded

    def append(self, chunk: bytes) -> None:
        if not chunk:
            return
        self._data += chunk
        self._total_received += len(chunk)
        if len(self._data) > self._max_bytes and self._scanned > 0:
            self._compact()

    def pending(self) -> bytes:
        """Bytes after the cursor (not yet consumed)."""
        return bytes(self._data[self._cursor :])

    def skip_pending(self) -> int:
        """Move the cursor to the end, discarding unconsumed output.

        Returns:
            Number of bytes skipped.
        """
        skipped = len(self._data) - self._cursor
        self._cursor = self._scanned = len(self._data)
        return skipped

    def take_best_move(self) -> Optional[str]:
        """Extract the first complete bestmove token after the cursor.

        On success the cursor advances past the token and last_answer holds
        the consumed region (output that led up to the answer).
        """
        found: Optional[Tuple[str, int]] = find_best_move(self._data, self._cursor)
        if found is None:
            self._scanned = max(self._cursor, len(self._data) - _TOKEN_LENGTH + 1)
            return None
        move, end = found
        self.last_answer = bytes(self._data[self._cursor : end])
        self._cursor = self._scanned = end
        return move

    def _compact(self) -> None:
        dropped = self._scanned
        unconsumed = dropped - self._cursor
        del self._data[:dropped]
        self._cursor = self._scanned = 0
        self._discarded += unconsumed
        if unconsumed:
            logger.debug(f"Response buffer compacted, dropped {dropped} bytes ({unconsumed} without an answer)")
        else:
            logger.debug(f"Response buffer compacted, dropped {dropped} consumed bytes")
