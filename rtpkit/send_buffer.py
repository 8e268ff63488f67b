"""Ring buffer of recently sent packets for answering NACKs."""

from __future__ import annotations

import threading
from typing import Optional

from .errors import InvalidSizeError, PacketReleasedError
from .packet import RetainablePacket

_MASK = 0xFFFF
_HALF = 1 << 15


class SendBuffer:
    """Keeps the last ``size`` sent packets indexed by sequence number."""

    def __init__(self, size: int) -> None:
        allowed = [1 << i for i in range(16)]
        if size not in allowed:
            raise InvalidSizeError(
                f"invalid buffer size: {size} is not a valid size, allowed sizes: {allowed}"
            )
        self._size = size
        self._packets: list[Optional[RetainablePacket]] = [None] * size
        self._last_added = 0
        self._started = False
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return self._size

    def _replace(self, index: int, packet: Optional[RetainablePacket]) -> None:
        previous = self._packets[index]
        if previous is not None:
            previous.release()
        self._packets[index] = packet

    def add(self, packet: RetainablePacket) -> None:
        """Store a packet, releasing whatever it displaces."""
        seq = packet.header.sequence_number & _MASK
        with self._lock:
            if not self._started:
                self._packets[seq % self._size] = packet
                self._last_added = seq
                self._started = True
                return

            diff = (seq - self._last_added) & _MASK
            if diff == 0:
                return
            if diff < _HALF:
                for step in range(1, min(diff, self._size + 1)):
                    self._replace(((self._last_added + step) & _MASK) % self._size, None)

            self._replace(seq % self._size, packet)
            self._last_added = seq

    def get(self, seq: int) -> Optional[RetainablePacket]:
        """Return the retained packet for ``seq``, or None.

        The caller must release the returned packet.
        """
        seq &= _MASK
        with self._lock:
            diff = (self._last_added - seq) & _MASK
            if diff >= _HALF or diff >= self._size:
                return None
            pkt = self._packets[seq % self._size]
            if pkt is None:
                return None
            header = pkt.header
            if header is None or header.sequence_number != seq:
                return None
            try:
                pkt.retain()
            except PacketReleasedError:
                return None
            return pkt