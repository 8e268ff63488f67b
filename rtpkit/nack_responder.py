"""Answering NACK feedback by resending buffered RTP packets."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .nack_generator import TransportLayerNack
from .packet import NoOpPacketFactory, PacketManager
from .rtp import Header
from .send_buffer import SendBuffer
from .streaminfo import StreamInfo, stream_supports_nack

RTPWriter = Callable[[Header, Optional[bytes]], object]

log = logging.getLogger("nack_responder")


@dataclass
class _LocalStream:
    send_buffer: SendBuffer
    writer: RTPWriter


class NackResponder:
    """Buffers sent packets per stream and resends those a NACK asks for.

    ``size`` must be a power of two up to 32768. With ``copy`` False the
    buffered packets reference the caller's header and payload directly, which
    is only safe when these are not reused after being written.
    """

    def __init__(self, size: int = 1024, copy: bool = True) -> None:
        SendBuffer(size)  # validates the size up front
        self.size = size
        self._factory = PacketManager() if copy else NoOpPacketFactory()
        self._streams: dict[int, _LocalStream] = {}
        self._lock = threading.Lock()

    def bind_local_stream(self, info: StreamInfo, writer: RTPWriter) -> RTPWriter:
        """Return a writer that buffers each packet before passing it on."""
        if not stream_supports_nack(info):
            return writer
        send_buffer = SendBuffer(self.size)
        with self._lock:
            self._streams[info.ssrc] = _LocalStream(send_buffer, writer)

        def write(header: Header, payload: Optional[bytes]) -> object:
            send_buffer.add(self._factory.new_packet(header, payload))
            return writer(header, payload)

        return write

    def unbind_local_stream(self, info: StreamInfo) -> None:
        """Forget a local stream and its buffered packets."""
        with self._lock:
            self._streams.pop(info.ssrc, None)

    def handle_nack(self, nack: TransportLayerNack) -> list[int]:
        """Resend the requested packets still buffered; returns the resent sequence numbers."""
        with self._lock:
            stream = self._streams.get(nack.media_ssrc)
        if stream is None:
            return []

        resent = []
        for pair in nack.nacks:
            for seq in pair.packet_list():
                packet = stream.send_buffer.get(seq)
                if packet is None:
                    continue
                try:
                    stream.writer(packet.header, packet.payload)
                except Exception as exc:  # a failed resend must not stop the others
                    log.warning("failed resending nacked packet: %s", exc)
                else:
                    resent.append(seq)
                finally:
                    packet.release()
        return resent