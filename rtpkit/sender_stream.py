"""Sender-side RTP statistics and RTCP sender report generation."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .rtp import Header

_U32 = 0xFFFFFFFF
_MAX_DURATION_NS = (1 << 63) - 1
_MIN_DURATION_NS = -(1 << 63)
_NS_PER_SECOND = 10**9
_NTP_EPOCH_OFFSET = 2208988800  # seconds from 1900-01-01 to 1970-01-01
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(t: datetime) -> datetime:
    return t.replace(tzinfo=timezone.utc) if t.tzinfo is None else t


def _seconds_between(now: datetime, then: Optional[datetime]) -> float:
    """Seconds from ``then`` to ``now``, saturating like a signed 64-bit nanosecond count.

    A missing ``then`` stands for the earliest representable time.
    """
    if then is None:
        then = datetime.min.replace(tzinfo=now.tzinfo)
    delta = now - then
    ns = (delta.days * 86400 + delta.seconds) * _NS_PER_SECOND + delta.microseconds * 1000
    ns = max(_MIN_DURATION_NS, min(_MAX_DURATION_NS, ns))
    sign = -1 if ns < 0 else 1
    whole, frac = divmod(abs(ns), _NS_PER_SECOND)
    return sign * (float(whole) + float(frac) / 1e9)


def ntp_time(t: datetime) -> int:
    """Convert a time to a 64-bit NTP timestamp (32.32 fixed point since 1900).

    Naive datetimes are taken to be UTC.
    """
    delta = _as_utc(t) - _UNIX_EPOCH
    unix_ns = (delta.days * 86400 + delta.seconds) * _NS_PER_SECOND + delta.microseconds * 1000
    seconds = float(unix_ns) / 1e9 + _NTP_EPOCH_OFFSET
    integer_part = int(seconds) & _U32
    fractional_part = int((seconds - float(int(seconds))) * 0xFFFFFFFF) & _U32
    return (integer_part << 32) | fractional_part


@dataclass
class SenderReport:
    """An RTCP sender report."""

    ssrc: int = 0
    ntp_time: int = 0
    rtp_time: int = 0
    packet_count: int = 0
    octet_count: int = 0


class SenderStream:
    """Counts sent packets and octets of one stream and builds sender reports."""

    def __init__(self, ssrc: int, clock_rate: int) -> None:
        self.ssrc = ssrc
        self.clock_rate = float(clock_rate)
        self._last_rtp_time_rtp = 0
        self._last_rtp_time: Optional[datetime] = None
        self._packet_count = 0
        self._octet_count = 0
        self._lock = threading.Lock()

    def process_rtp(self, now: datetime, header: Header, payload: Optional[bytes]) -> None:
        """Account for a packet sent at ``now``."""
        with self._lock:
            # always update the time reference to minimise drift
            self._last_rtp_time_rtp = header.timestamp & _U32
            self._last_rtp_time = now
            self._packet_count = (self._packet_count + 1) & _U32
            self._octet_count = (self._octet_count + len(payload or b"")) & _U32

    def generate_report(self, now: datetime) -> SenderReport:
        """Build a sender report for the moment ``now``."""
        with self._lock:
            elapsed = _seconds_between(now, self._last_rtp_time)
            rtp_time = (self._last_rtp_time_rtp + int(elapsed * self.clock_rate)) & _U32
            return SenderReport(
                ssrc=self.ssrc,
                ntp_time=ntp_time(now),
                rtp_time=rtp_time,
                packet_count=self._packet_count,
                octet_count=self._octet_count,
            )