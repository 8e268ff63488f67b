"""Receiver-side RTP statistics and RTCP receiver report generation."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .rtp import Header
from .sender_stream import SenderReport, _seconds_between

_U16 = 0xFFFF
_U32 = 0xFFFFFFFF
_MAX_24 = 0xFFFFFF
_WINDOW = 128


@dataclass
class ReceptionReport:
    """Reception statistics for one source."""

    ssrc: int = 0
    fraction_lost: int = 0
    total_lost: int = 0
    last_sequence_number: int = 0
    jitter: int = 0
    last_sender_report: int = 0
    delay: int = 0


@dataclass
class ReceiverReport:
    """An RTCP receiver report."""

    ssrc: int = 0
    reports: list[ReceptionReport] = field(default_factory=list)


class ReceiverStream:
    """Tracks loss, jitter and sender reports of one remote stream."""

    def __init__(self, ssrc: int, clock_rate: int, receiver_ssrc: Optional[int] = None) -> None:
        self.ssrc = ssrc
        self.receiver_ssrc = random.getrandbits(32) if receiver_ssrc is None else receiver_ssrc
        self.clock_rate = float(clock_rate)
        self._received = [False] * _WINDOW
        self._started = False
        self._seqnum_cycles = 0
        self._last_seqnum = 0
        self._last_report_seqnum = 0
        self._last_rtp_time_rtp = 0
        self._last_rtp_time: Optional[datetime] = None
        self._jitter = 0.0
        self._last_sender_report = 0
        self._last_sender_report_time: Optional[datetime] = None
        self._total_lost = 0
        self._lock = threading.Lock()

    def process_rtp(self, now: datetime, header: Header) -> None:
        """Account for a packet received at ``now``."""
        seq = header.sequence_number & _U16
        timestamp = header.timestamp & _U32
        with self._lock:
            self._received[seq % _WINDOW] = True
            if not self._started:
                self._started = True
                self._last_seqnum = seq
                self._last_report_seqnum = (seq - 1) & _U16
                self._last_rtp_time_rtp = timestamp
                self._last_rtp_time = now
                return

            diff = seq - self._last_seqnum
            if diff > 0 or diff < -0x0FFF:
                if diff < -0x0FFF:
                    self._seqnum_cycles = (self._seqnum_cycles + 1) & _U16
                # mark the skipped sequence numbers as missing
                gap = (seq - self._last_seqnum) & _U16
                for step in range(1, min(gap, _WINDOW + 1)):
                    self._received[((self._last_seqnum + step) & _U16) % _WINDOW] = False
                self._last_seqnum = seq

            # interarrival jitter as defined in RFC 3550, section 6.4.1
            transit = _seconds_between(now, self._last_rtp_time) * self.clock_rate - (
                float(timestamp) - float(self._last_rtp_time_rtp)
            )
            self._jitter += (abs(transit) - self._jitter) / 16
            self._last_rtp_time_rtp = timestamp
            self._last_rtp_time = now

    def process_sender_report(self, now: datetime, report: SenderReport) -> None:
        """Remember the middle 32 bits of a sender report's NTP time."""
        with self._lock:
            self._last_sender_report = (report.ntp_time >> 16) & _U32
            self._last_sender_report_time = now

    def generate_report(self, now: datetime) -> ReceiverReport:
        """Build a receiver report covering packets since the previous one."""
        with self._lock:
            total_since_report = (self._last_seqnum - self._last_report_seqnum) & _U16
            span = range(1, total_since_report)
            lost_since_report = sum(
                1
                for step in span
                if not self._received[((self._last_report_seqnum + step) & _U16) % _WINDOW]
            )
            self._total_lost = min((self._total_lost + lost_since_report) & _U32, _MAX_24)
            lost_since_report = min(lost_since_report, _MAX_24)

            if total_since_report == 0:
                fraction_lost = 0
            else:
                fraction_lost = int(float(lost_since_report * 256) / float(total_since_report)) & 0xFF

            if self._last_sender_report_time is None:
                delay = 0
            else:
                delay = int(_seconds_between(now, self._last_sender_report_time) * 65536) & _U32

            reception = ReceptionReport(
                ssrc=self.ssrc,
                fraction_lost=fraction_lost,
                total_lost=self._total_lost,
                last_sequence_number=(self._seqnum_cycles << 16) | self._last_seqnum,
                jitter=int(self._jitter) & _U32,
                last_sender_report=self._last_sender_report,
                delay=delay,
            )
            self._last_report_seqnum = self._last_seqnum
            return ReceiverReport(ssrc=self.receiver_ssrc, reports=[reception])