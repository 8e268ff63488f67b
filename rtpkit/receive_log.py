"""Tracks received RTP sequence numbers to find gaps for NACK generation."""

from __future__ import annotations

import threading

from .errors import InvalidSizeError

_MASK = 0xFFFF
_HALF = 1 << 15


class ReceiveLog:
    """A ring of received flags over the most recent ``size`` sequence numbers."""

    def __init__(self, size: int) -> None:
        allowed = [1 << i for i in range(6, 16)]
        if size not in allowed:
            raise InvalidSizeError(
                f"invalid buffer size: {size} is not a valid size, allowed sizes: {allowed}"
            )
        self._size = size
        self._received = [False] * size
        self._end = 0
        self._started = False
        self._last_consecutive = 0
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return self._size

    def last_consecutive(self) -> int:
        """The highest sequence number up to which every packet was received."""
        with self._lock:
            return self._last_consecutive

    def add(self, seq: int) -> None:
        """Record ``seq`` as received."""
        seq &= _MASK
        with self._lock:
            if not self._started:
                self._set(seq)
                self._end = seq
                self._started = True
                self._last_consecutive = seq
                return

            diff = (seq - self._end) & _MASK
            if diff == 0:
                return
            if diff < _HALF:
                # Forward jump: clear slots between end and seq, they may hold old flags.
                for step in range(1, min(diff, self._size + 1)):
                    self._clear((self._end + step) & _MASK)
                self._end = seq
                if (self._last_consecutive + 1) & _MASK == seq:
                    self._last_consecutive = seq
                elif (seq - self._last_consecutive) & _MASK > self._size:
                    self._last_consecutive = (seq - self._size) & _MASK
                    self._fix_last_consecutive()
            elif (self._last_consecutive + 1) & _MASK == seq:
                self._last_consecutive = seq
                self._fix_last_consecutive()

            self._set(seq)

    def get(self, seq: int) -> bool:
        """Return whether ``seq`` is within the window and was received."""
        seq &= _MASK
        with self._lock:
            diff = (self._end - seq) & _MASK
            if diff >= _HALF or diff >= self._size:
                return False
            return self._is_set(seq)

    def missing_seq_numbers(self, skip_last_n: int) -> list[int]:
        """Sequence numbers missing after the last consecutive one.

        The newest ``skip_last_n`` sequence numbers are left out of the check.
        """
        with self._lock:
            until = (self._end - skip_last_n) & _MASK
            count = (until - self._last_consecutive) & _MASK
            if count >= _HALF:
                return []
            candidates = ((self._last_consecutive + step) & _MASK for step in range(1, count + 1))
            return [seq for seq in candidates if not self._is_set(seq)]

    def _set(self, seq: int) -> None:
        self._received[seq % self._size] = True

    def _clear(self, seq: int) -> None:
        self._received[seq % self._size] = False

    def _is_set(self, seq: int) -> bool:
        return self._received[seq % self._size]

    def _fix_last_consecutive(self) -> None:
        stop = (self._end + 1) & _MASK
        seq = (self._last_consecutive + 1) & _MASK
        while seq != stop and self._is_set(seq):
            seq = (seq + 1) & _MASK
        self._last_consecutive = (seq - 1) & _MASK