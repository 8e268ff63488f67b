"""Minimal RTP header model with RFC 8285 header extensions."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

ONE_BYTE_PROFILE = 0xBEDE
TWO_BYTE_PROFILE = 0x1000


def _check_extension(profile: int, ext_id: int, payload: bytes) -> None:
    if profile == ONE_BYTE_PROFILE:
        if not 1 <= ext_id <= 14:
            raise ValueError(f"header extension id must be between 1 and 14 for one-byte profile, got {ext_id}")
        if len(payload) > 16:
            raise ValueError("header extension payload must be 16 bytes or less for one-byte profile")
    elif profile == TWO_BYTE_PROFILE:
        if not 1 <= ext_id <= 255:
            raise ValueError(f"header extension id must be between 1 and 255 for two-byte profile, got {ext_id}")
        if len(payload) > 255:
            raise ValueError("header extension payload must be 255 bytes or less for two-byte profile")
    elif ext_id != 0:
        raise ValueError("header extension id must be 0 for non-RFC 8285 extensions")


@dataclass
class Header:
    """An RTP packet header."""

    version: int = 2
    padding: bool = False
    marker: bool = False
    payload_type: int = 0
    sequence_number: int = 0
    timestamp: int = 0
    ssrc: int = 0
    csrc: list[int] = field(default_factory=list)
    extension: bool = False
    extension_profile: int = 0
    extensions: dict[int, bytes] = field(default_factory=dict)

    def clone(self) -> Header:
        """Return a deep copy of the header."""
        return dataclasses.replace(self, csrc=list(self.csrc), extensions=dict(self.extensions))

    def set_extension(self, ext_id: int, payload: bytes) -> None:
        """Set or replace the header extension with the given id."""
        payload = bytes(payload)
        if self.extension:
            profile = self.extension_profile
        elif len(payload) <= 16:
            profile = ONE_BYTE_PROFILE
        elif len(payload) < 256:
            profile = TWO_BYTE_PROFILE
        else:
            raise ValueError("header extension payload must be less than 256 bytes")
        _check_extension(profile, ext_id, payload)
        self.extension = True
        self.extension_profile = profile
        self.extensions[ext_id] = payload

    def get_extension(self, ext_id: int) -> bytes | None:
        """Return the payload of the extension with the given id, or None."""
        if not self.extension:
            return None
        return self.extensions.get(ext_id)


@dataclass
class TransportCCExtension:
    """Transport-wide sequence number carried as an RTP header extension."""

    transport_sequence: int = 0

    SIZE = 2

    def marshal(self) -> bytes:
        """Encode the sequence number as two big-endian bytes."""
        return (self.transport_sequence & 0xFFFF).to_bytes(self.SIZE, "big")

    @classmethod
    def unmarshal(cls, data: bytes) -> TransportCCExtension:
        """Decode an extension payload."""
        if data is None or len(data) < cls.SIZE:
            raise ValueError("buffer too small for transport-cc extension")
        return cls(transport_sequence=int.from_bytes(data[: cls.SIZE], "big"))