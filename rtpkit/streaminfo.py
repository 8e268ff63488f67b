"""Stream description handed to stream-bound components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RTPHeaderExtension:
    """A negotiated RFC 5285 RTP header extension."""

    uri: str
    id: int


@dataclass(frozen=True)
class RTCPFeedback:
    """An additional RTCP packet type negotiated for a stream.

    ``type`` is one of ack, ccm, nack, goog-remb, transport-cc; the meaning of
    ``parameter`` depends on the type (e.g. nack with parameter pli).
    """

    type: str
    parameter: str = ""


@dataclass
class StreamInfo:
    """Describes a local or remote stream when it is bound or unbound."""

    id: str = ""
    attributes: dict[Any, Any] = field(default_factory=dict)
    ssrc: int = 0
    payload_type: int = 0
    rtp_header_extensions: list[RTPHeaderExtension] = field(default_factory=list)
    mime_type: str = ""
    clock_rate: int = 0
    channels: int = 0
    sdp_fmtp_line: str = ""
    rtcp_feedback: list[RTCPFeedback] = field(default_factory=list)


def stream_supports_nack(info: StreamInfo) -> bool:
    """Return True if the stream negotiated generic NACK feedback."""
    return any(fb.type == "nack" and fb.parameter == "" for fb in info.rtcp_feedback)