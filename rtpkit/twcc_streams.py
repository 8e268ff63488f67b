"""Stamping transport-wide sequence numbers and collecting feedback for them."""

from __future__ import annotations

import random
import threading
import time
from typing import Callable, Optional

from .rtp import Header, TransportCCExtension
from .streaminfo import StreamInfo
from .twcc import Recorder, TransportLayerCC

TRANSPORT_CC_URI = "http://www.ietf.org/id/draft-holmer-rmcat-transport-wide-cc-extensions-01"

RTPWriter = Callable[[Header, Optional[bytes]], object]


def transport_cc_extension_id(info: StreamInfo) -> int:
    """The negotiated header extension id for transport-wide sequence numbers, or 0."""
    return next(
        (ext.id & 0xFF for ext in info.rtp_header_extensions if ext.uri == TRANSPORT_CC_URI),
        0,
    )


class HeaderExtensionStamper:
    """Adds an increasing transport-wide sequence number to every outgoing packet.

    One counter is shared by all streams bound to the same stamper.
    """

    def __init__(self) -> None:
        self._next = 0
        self._lock = threading.Lock()

    def _next_sequence_number(self) -> int:
        with self._lock:
            current = self._next
            self._next = (current + 1) & 0xFFFFFFFF
        return current & 0xFFFF

    def bind_local_stream(self, info: StreamInfo, writer: RTPWriter) -> RTPWriter:
        """Return a writer stamping each header, or ``writer`` if the stream lacks the extension."""
        ext_id = transport_cc_extension_id(info)
        if ext_id == 0:  # 0 is not a valid extension id
            return writer

        def write(header: Header, payload: Optional[bytes]) -> object:
            extension = TransportCCExtension(self._next_sequence_number()).marshal()
            header.set_extension(ext_id, extension)
            return writer(header, payload)

        return write


class FeedbackCollector:
    """Records arrivals of incoming packets and builds transport-wide feedback."""

    def __init__(self, sender_ssrc: Optional[int] = None) -> None:
        self.recorder = Recorder(random.getrandbits(32) if sender_ssrc is None else sender_ssrc)
        self._extension_ids: dict[int, int] = {}
        self._lock = threading.Lock()
        self._start = time.monotonic()

    def bind_remote_stream(self, info: StreamInfo) -> bool:
        """Start watching a remote stream; returns False if it lacks the extension."""
        ext_id = transport_cc_extension_id(info)
        if ext_id == 0:
            return False
        with self._lock:
            self._extension_ids[info.ssrc] = ext_id
        return True

    def receive(self, ssrc: int, header: Header, arrival_time: Optional[int] = None) -> bool:
        """Record a received packet; returns whether it carried a transport-wide number.

        ``arrival_time`` is in microseconds; by default the time elapsed since
        the collector was created is used.
        """
        with self._lock:
            ext_id = self._extension_ids.get(ssrc)
        if ext_id is None:
            return False
        payload = header.get_extension(ext_id)
        if payload is None:
            return False
        extension = TransportCCExtension.unmarshal(payload)
        if arrival_time is None:
            arrival_time = int((time.monotonic() - self._start) * 1_000_000)
        with self._lock:
            self.recorder.record(ssrc, extension.transport_sequence, arrival_time)
        return True

    def build_feedback(self) -> list[TransportLayerCC]:
        """Feedback packets covering everything received since the last call."""
        with self._lock:
            return self.recorder.build_feedback_packet()