"""Generation of transport-layer NACK feedback for received RTP streams."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .receive_log import ReceiveLog
from .streaminfo import StreamInfo, stream_supports_nack

_MASK = 0xFFFF


@dataclass(frozen=True)
class NackPair:
    """A lost packet id plus a bitmap of the 16 sequence numbers that follow it."""

    packet_id: int
    lost_packets: int = 0

    def packet_list(self) -> list[int]:
        """All sequence numbers this pair reports as lost."""
        following = (
            (self.packet_id + bit + 1) & _MASK
            for bit in range(16)
            if self.lost_packets & (1 << bit)
        )
        return [self.packet_id, *following]


@dataclass
class TransportLayerNack:
    """An RTCP generic NACK feedback message."""

    sender_ssrc: int = 0
    media_ssrc: int = 0
    nacks: list[NackPair] = field(default_factory=list)


def nack_pairs_from_sequence_numbers(sequence_numbers: Iterable[int]) -> list[NackPair]:
    """Pack an ordered run of missing sequence numbers into NACK pairs."""
    pairs: list[NackPair] = []
    packet_id: Optional[int] = None
    bitmap = 0
    for seq in sequence_numbers:
        seq &= _MASK
        if packet_id is None:
            packet_id = seq
            continue
        offset = (seq - packet_id) & _MASK
        if offset > 16:
            pairs.append(NackPair(packet_id, bitmap))
            packet_id, bitmap = seq, 0
            continue
        bitmap |= 1 << (offset - 1)
    if packet_id is not None:
        pairs.append(NackPair(packet_id, bitmap))
    return pairs


class NackGenerator:
    """Tracks received sequence numbers per stream and builds NACK messages.

    ``size`` must be a power of two from 64 to 32768. The newest
    ``skip_last_n`` sequence numbers are not reported, giving late packets a
    chance to arrive.
    """

    def __init__(
        self,
        size: int = 512,
        skip_last_n: int = 0,
        sender_ssrc: Optional[int] = None,
    ) -> None:
        ReceiveLog(size)  # validates the size up front
        self.size = size
        self.skip_last_n = skip_last_n
        self.sender_ssrc = (
            random.getrandbits(32) if sender_ssrc is None else sender_ssrc
        )
        self._logs: dict[int, ReceiveLog] = {}
        self._lock = threading.Lock()

    def bind_remote_stream(self, info: StreamInfo) -> bool:
        """Start tracking a remote stream; returns False if it does not use NACK."""
        if not stream_supports_nack(info):
            return False
        with self._lock:
            self._logs[info.ssrc] = ReceiveLog(self.size)
        return True

    def unbind_remote_stream(self, info: StreamInfo) -> None:
        """Stop tracking a remote stream."""
        with self._lock:
            self._logs.pop(info.ssrc, None)

    def record(self, ssrc: int, sequence_number: int) -> None:
        """Note that a packet of a tracked stream was received."""
        with self._lock:
            log = self._logs.get(ssrc)
        if log is not None:
            log.add(sequence_number)

    def build_nacks(self) -> list[TransportLayerNack]:
        """One NACK message for every tracked stream that has missing packets."""
        with self._lock:
            logs = list(self._logs.items())
        messages = []
        for ssrc, log in logs:
            missing = log.missing_seq_numbers(self.skip_last_n)
            if not missing:
                continue
            messages.append(
                TransportLayerNack(
                    sender_ssrc=self.sender_ssrc,
                    media_ssrc=ssrc,
                    nacks=nack_pairs_from_sequence_numbers(missing),
                )
            )
        return messages