"""Transport-wide congestion control feedback reports.

Implements the receiver side of the transport-wide congestion control RTP
extension: arrival times of packets carrying a transport-wide sequence number
are recorded and turned into RTCP transport-layer feedback packets.
"""

from __future__ import annotations

import bisect
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Union

FORMAT_TCC = 15
TYPE_TRANSPORT_SPECIFIC_FEEDBACK = 205
DELTA_SCALE_FACTOR = 250

MAX_RUN_LENGTH_CAP = 0x1FFF  # 13 bits
MAX_ONE_BIT_CAP = 14
MAX_TWO_BIT_CAP = 7

_INT16_MIN = -(1 << 15)
_INT16_MAX = (1 << 15) - 1
_U16 = 0xFFFF
_U32 = 0xFFFFFFFF


class PacketStatus(IntEnum):
    """Status symbol of one sequence number in a feedback report."""

    NOT_RECEIVED = 0
    SMALL_DELTA = 1
    LARGE_DELTA = 2


class SymbolSize(IntEnum):
    """Width of the symbols in a status vector chunk."""

    ONE_BIT = 0
    TWO_BIT = 1


def _trunc_div(value: int, divisor: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(value) // divisor
    return quotient if value >= 0 else -quotient


@dataclass
class RunLengthChunk:
    """A run of identical status symbols."""

    packet_status_symbol: int
    run_length: int

    def marshal(self) -> bytes:
        """Encode the chunk as two bytes."""
        if not 0 <= self.packet_status_symbol <= 3:
            raise ValueError(f"invalid packet status symbol {self.packet_status_symbol}")
        if not 0 <= self.run_length <= MAX_RUN_LENGTH_CAP:
            raise ValueError(f"run length {self.run_length} does not fit into 13 bits")
        return ((self.packet_status_symbol << 13) | self.run_length).to_bytes(2, "big")


@dataclass
class StatusVectorChunk:
    """A list of one- or two-bit status symbols."""

    symbol_size: int
    symbol_list: list[int] = field(default_factory=list)

    def marshal(self) -> bytes:
        """Encode the chunk as two bytes; unused symbol slots are zero."""
        if self.symbol_size not in (SymbolSize.ONE_BIT, SymbolSize.TWO_BIT):
            raise ValueError(f"invalid symbol size {self.symbol_size}")
        bits = 1 if self.symbol_size == SymbolSize.ONE_BIT else 2
        if len(self.symbol_list) > 14 // bits:
            raise ValueError(f"too many symbols for a {bits}-bit status vector chunk")
        value = 0x8000 | (self.symbol_size << 14)
        for position, symbol in enumerate(self.symbol_list, start=1):
            if not 0 <= symbol < (1 << bits):
                raise ValueError(f"symbol {symbol} does not fit into {bits} bits")
            value |= symbol << (14 - bits * position)
        return value.to_bytes(2, "big")


PacketStatusChunk = Union[RunLengthChunk, StatusVectorChunk]


@dataclass
class RecvDelta:
    """Receive delta of one packet, in microseconds."""

    type: int
    delta: int


def _marshal_delta(recv_delta: RecvDelta) -> bytes:
    scaled = _trunc_div(recv_delta.delta, DELTA_SCALE_FACTOR)
    if recv_delta.type == PacketStatus.SMALL_DELTA and 0 <= scaled <= 0xFF:
        return bytes([scaled])
    if recv_delta.type == PacketStatus.LARGE_DELTA and _INT16_MIN <= scaled <= _INT16_MAX:
        return (scaled & _U16).to_bytes(2, "big")
    raise ValueError(f"receive delta {recv_delta.delta} exceeds the limit of its type")


@dataclass
class TransportLayerCC:
    """An RTCP transport-wide congestion control feedback packet."""

    sender_ssrc: int = 0
    media_ssrc: int = 0
    base_sequence_number: int = 0
    packet_status_count: int = 0
    reference_time: int = 0
    fb_pkt_count: int = 0
    packet_chunks: list[PacketStatusChunk] = field(default_factory=list)
    recv_deltas: list[RecvDelta] = field(default_factory=list)
    padding: bool = False
    length: int = 0

    def marshal(self) -> bytes:
        """Encode the packet including its RTCP header."""
        header = bytes(
            [
                (2 << 6) | (0x20 if self.padding else 0) | FORMAT_TCC,
                TYPE_TRANSPORT_SPECIFIC_FEEDBACK,
            ]
        ) + (self.length & _U16).to_bytes(2, "big")
        body = struct.pack(
            ">IIHHI",
            self.sender_ssrc & _U32,
            self.media_ssrc & _U32,
            self.base_sequence_number & _U16,
            self.packet_status_count & _U16,
            ((self.reference_time & 0xFFFFFF) << 8) | (self.fb_pkt_count & 0xFF),
        )
        body += b"".join(chunk.marshal() for chunk in self.packet_chunks)
        body += b"".join(_marshal_delta(delta) for delta in self.recv_deltas)

        packet_len = len(header) + len(body)
        size = (packet_len + 3) // 4 * 4
        body += bytes(size - packet_len)
        if self.padding:
            body = body[:-1] + bytes([size - packet_len])
        return header + body


@dataclass(frozen=True)
class PacketInfo:
    """An extended transport-wide sequence number and its arrival time in microseconds."""

    sequence_number: int
    arrival_time: int


def insert_sorted(packets: list[PacketInfo], element: PacketInfo) -> list[PacketInfo]:
    """Return a copy of ``packets`` with ``element`` inserted by sequence number.

    An element with an already present sequence number replaces the old one.
    """
    result = list(packets)
    pos = bisect.bisect_left(result, element.sequence_number, key=lambda p: p.sequence_number)
    if pos < len(result) and result[pos].sequence_number == element.sequence_number:
        result[pos] = element
    else:
        result.insert(pos, element)
    return result


class _Chunk:
    """Accumulates status symbols until they fill one packet status chunk."""

    def __init__(self) -> None:
        self.deltas: list[int] = []
        self.has_large_delta = False
        self.has_different_types = False

    def can_add(self, delta: int) -> bool:
        count = len(self.deltas)
        if count < MAX_TWO_BIT_CAP:
            return True
        if count < MAX_ONE_BIT_CAP and not self.has_large_delta and delta != PacketStatus.LARGE_DELTA:
            return True
        return count < MAX_RUN_LENGTH_CAP and not self.has_different_types and delta == self.deltas[0]

    def add(self, delta: int) -> None:
        self.deltas.append(delta)
        self.has_large_delta = self.has_large_delta or delta == PacketStatus.LARGE_DELTA
        self.has_different_types = self.has_different_types or delta != self.deltas[0]

    def encode(self) -> PacketStatusChunk:
        if not self.has_different_types:
            chunk: PacketStatusChunk = RunLengthChunk(self.deltas[0], len(self.deltas))
            self._reset()
            return chunk
        if len(self.deltas) == MAX_ONE_BIT_CAP:
            chunk = StatusVectorChunk(SymbolSize.ONE_BIT, list(self.deltas))
            self._reset()
            return chunk

        cut = min(MAX_TWO_BIT_CAP, len(self.deltas))
        chunk = StatusVectorChunk(SymbolSize.TWO_BIT, self.deltas[:cut])
        self.deltas = self.deltas[cut:]
        self.has_different_types = any(d != self.deltas[0] for d in self.deltas)
        self.has_large_delta = PacketStatus.LARGE_DELTA in self.deltas
        return chunk

    def _reset(self) -> None:
        self.deltas = []
        self.has_large_delta = False
        self.has_different_types = False


class _Feedback:
    """Builds a single transport-wide feedback packet."""

    def __init__(self, sender_ssrc: int = 0, media_ssrc: int = 0, count: int = 0) -> None:
        self.packet = TransportLayerCC(
            sender_ssrc=sender_ssrc, media_ssrc=media_ssrc, fb_pkt_count=count
        )
        self.base_sequence_number = 0
        self.ref_timestamp_64ms = 0
        self.last_timestamp_us = 0
        self.next_sequence_number = 0
        self.sequence_number_count = 0
        self.length = 0
        self.last_chunk = _Chunk()
        self.chunks: list[PacketStatusChunk] = []
        self.deltas: list[RecvDelta] = []

    def set_base(self, sequence_number: int, time_us: int) -> None:
        self.base_sequence_number = sequence_number & _U16
        self.next_sequence_number = self.base_sequence_number
        self.ref_timestamp_64ms = _trunc_div(time_us, 64000)
        self.last_timestamp_us = self.ref_timestamp_64ms * 64000

    def get_rtcp(self) -> TransportLayerCC:
        packet = self.packet
        packet.packet_status_count = self.sequence_number_count
        packet.reference_time = self.ref_timestamp_64ms & _U32
        packet.base_sequence_number = self.base_sequence_number
        while self.last_chunk.deltas:
            self.chunks.append(self.last_chunk.encode())
        packet.packet_chunks.extend(self.chunks)
        packet.recv_deltas = self.deltas

        # 4 bytes header, 16 bytes feedback header, 2 bytes per chunk, then the deltas
        pad_len = 20 + len(packet.packet_chunks) * 2 + self.length
        packet.padding = pad_len % 4 != 0
        pad_len = (pad_len + 3) // 4 * 4
        packet.length = (pad_len // 4 - 1) & _U16
        return packet

    def add_received(self, sequence_number: int, timestamp_us: int) -> bool:
        sequence_number &= _U16
        delta_us = timestamp_us - self.last_timestamp_us
        delta_250us = _trunc_div(delta_us, 250)
        if not _INT16_MIN <= delta_250us <= _INT16_MAX:
            return False

        while self.next_sequence_number != sequence_number:
            self._add_symbol(PacketStatus.NOT_RECEIVED)
            self.sequence_number_count = (self.sequence_number_count + 1) & _U16
            self.next_sequence_number = (self.next_sequence_number + 1) & _U16

        if 0 <= delta_250us <= 0xFF:
            self.length += 1
            status = PacketStatus.SMALL_DELTA
        else:
            self.length += 2
            status = PacketStatus.LARGE_DELTA

        self._add_symbol(status)
        self.deltas.append(RecvDelta(type=status, delta=delta_us))
        self.last_timestamp_us = timestamp_us
        self.sequence_number_count = (self.sequence_number_count + 1) & _U16
        self.next_sequence_number = (self.next_sequence_number + 1) & _U16
        return True

    def _add_symbol(self, status: int) -> None:
        if not self.last_chunk.can_add(status):
            self.chunks.append(self.last_chunk.encode())
        self.last_chunk.add(status)


class Recorder:
    """Records arrivals of transport-wide sequence numbers and builds feedback."""

    def __init__(self, sender_ssrc: int) -> None:
        self.sender_ssrc = sender_ssrc
        self.media_ssrc = 0
        self._received: list[PacketInfo] = []
        self._cycles = 0
        self._last_sequence_number = 0
        self._fb_pkt_count = 0

    def record(self, media_ssrc: int, sequence_number: int, arrival_time: int) -> None:
        """Mark a packet as received at ``arrival_time`` microseconds."""
        sequence_number &= _U16
        self.media_ssrc = media_ssrc
        if sequence_number < 0x0FFF and self._last_sequence_number > 0xF000:
            self._cycles = (self._cycles + (1 << 16)) & _U32
        self._received = insert_sorted(
            self._received,
            PacketInfo(self._cycles | sequence_number, arrival_time),
        )
        self._last_sequence_number = sequence_number

    def _new_feedback(self) -> _Feedback:
        feedback = _Feedback(self.sender_ssrc, self.media_ssrc, self._fb_pkt_count)
        self._fb_pkt_count = (self._fb_pkt_count + 1) & 0xFF
        return feedback

    def build_feedback_packet(self) -> list[TransportLayerCC]:
        """Build feedback packets for everything recorded since the last call."""
        feedback = self._new_feedback()
        received, self._received = self._received, []
        if len(received) < 2:
            return [feedback.get_rtcp()]

        first = received[0]
        feedback.set_base(first.sequence_number & _U16, first.arrival_time)

        packets = []
        for info in received:
            seq = info.sequence_number & _U16
            if not feedback.add_received(seq, info.arrival_time):
                packets.append(feedback.get_rtcp())
                feedback = self._new_feedback()
                feedback.add_received(seq, info.arrival_time)
        packets.append(feedback.get_rtcp())
        return packets