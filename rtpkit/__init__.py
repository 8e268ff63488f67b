"""RTP/RTCP helpers: NACK generation and resending, sender/receiver reports and transport-wide congestion control feedback."""

__version__ = "0.1.0"