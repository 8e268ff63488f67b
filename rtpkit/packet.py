"""Reference-counted RTP packets kept for retransmission."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from .errors import PacketReleasedError
from .rtp import Header

MAX_PAYLOAD_LEN = 1460


class RetainablePacket:
    """An RTP header and payload shared by several holders.

    A new packet has a retain count of one. When the count drops to zero the
    release callback runs and the header and payload are dropped.
    """

    def __init__(
        self,
        header: Header,
        payload: Optional[bytes],
        on_release: Optional[Callable[[Header, Optional[bytes]], None]] = None,
    ) -> None:
        self._header: Optional[Header] = header
        self._payload = payload
        self._on_release = on_release
        self._count = 1
        self._lock = threading.Lock()

    @property
    def header(self) -> Optional[Header]:
        return self._header

    @property
    def payload(self) -> Optional[bytes]:
        return self._payload

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def retain(self) -> None:
        """Increase the retain count."""
        with self._lock:
            if self._count == 0:
                raise PacketReleasedError("could not retain packet, already released")
            self._count += 1

    def release(self) -> None:
        """Decrease the retain count, dropping the contents at zero."""
        with self._lock:
            self._count -= 1
            if self._count == 0:
                if self._on_release is not None:
                    self._on_release(self._header, self._payload)
                self._header = None
                self._payload = None


class PacketManager:
    """Creates packets holding private copies of header and payload."""

    def new_packet(self, header: Header, payload: Optional[bytes]) -> RetainablePacket:
        if payload is not None and len(payload) > MAX_PAYLOAD_LEN:
            raise ValueError(
                f"payload of {len(payload)} bytes exceeds the maximum of {MAX_PAYLOAD_LEN}"
            )
        copied = bytes(payload) if payload is not None else None
        return RetainablePacket(header.clone(), copied)


class NoOpPacketFactory:
    """Creates packets that reference the given header and payload without copying."""

    def new_packet(self, header: Header, payload: Optional[bytes]) -> RetainablePacket:
        return RetainablePacket(header, payload)