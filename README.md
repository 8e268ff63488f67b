# rtpkit

Building blocks for real-time media over RTP. You feed packets in and get
RTCP feedback objects back, then send them however your application likes.
Everything is plain, thread-safe Python with no dependencies.

## Installation

    pip install rtpkit

## What is inside

- `rtpkit.streaminfo`: `StreamInfo`, `RTCPFeedback`, `RTPHeaderExtension`
  and `stream_supports_nack(info)`. That function is true when the stream
  negotiated plain `nack` feedback with no parameter.
- `rtpkit.rtp`: a minimal RTP `Header` with `clone()`,
  `set_extension(ext_id, payload)` and `get_extension(ext_id)`, and
  `TransportCCExtension` with `marshal()` and `unmarshal(data)`.
- `rtpkit.errors`: `InvalidSizeError` (a `ValueError`) and
  `PacketReleasedError` (a `RuntimeError`).
- `rtpkit.receive_log`: `ReceiveLog(size)`, a ring of received sequence
  numbers. `size` must be a power of two from 64 to 32768. It has `add(seq)`,
  `get(seq)`, `missing_seq_numbers(skip_last_n)` and `last_consecutive()`.
- `rtpkit.packet`: `RetainablePacket`, a reference-counted header and payload
  with `retain()` and `release()`. `PacketManager` creates packets that hold
  copies and rejects payloads over 1460 bytes. `NoOpPacketFactory` creates
  packets that keep the caller's objects.
- `rtpkit.send_buffer`: `SendBuffer(size)` keeps the last `size` sent packets.
  `size` must be a power of two up to 32768. `get(seq)` returns a retained
  packet, which the caller must `release()`.
- `rtpkit.nack_generator`: `NackGenerator`, `TransportLayerNack`, `NackPair`
  and `nack_pairs_from_sequence_numbers(...)`.
- `rtpkit.nack_responder`: `NackResponder(size=1024, copy=True)`.
  `bind_local_stream(info, writer)` wraps a `writer(header, payload)` callable
  so that it buffers each packet it writes. `handle_nack(nack)` resends the
  buffered packets that a NACK asks for and returns their sequence numbers.
- `rtpkit.sender_stream`: `SenderStream`, `SenderReport` and `ntp_time(t)`.
- `rtpkit.receiver_stream`: `ReceiverStream`, `ReceiverReport` and
  `ReceptionReport`. These cover loss, extended highest sequence number,
  jitter and delay since the last sender report.
- `rtpkit.twcc`: transport-wide congestion control feedback. It holds
  `Recorder`, `TransportLayerCC` (with `marshal()`), `RunLengthChunk`,
  `StatusVectorChunk`, `RecvDelta`, `PacketInfo` and `insert_sorted`.
- `rtpkit.twcc_streams`: `HeaderExtensionStamper` stamps outgoing headers
  with transport-wide sequence numbers. `FeedbackCollector` records incoming
  ones and builds feedback. `transport_cc_extension_id(info)` returns the
  negotiated extension id.

## Example: asking for lost packets

```python
from rtpkit.streaminfo import RTCPFeedback, StreamInfo
from rtpkit.nack_generator import NackGenerator

info = StreamInfo(ssrc=1, rtcp_feedback=[RTCPFeedback(type="nack")])
generator = NackGenerator(size=64, skip_last_n=2, sender_ssrc=99)
generator.bind_remote_stream(info)

for seq in (10, 11, 12, 14, 16, 18):
    generator.record(1, seq)

for nack in generator.build_nacks():
    print(nack.media_ssrc, [pair.packet_list() for pair in nack.nacks])
# 1 [[13, 15]]
```

## Example: resending on request

```python
from rtpkit.nack_generator import NackPair, TransportLayerNack
from rtpkit.nack_responder import NackResponder
from rtpkit.rtp import Header
from rtpkit.streaminfo import RTCPFeedback, StreamInfo

sent = []
responder = NackResponder(size=8)
info = StreamInfo(ssrc=1, rtcp_feedback=[RTCPFeedback(type="nack")])
write = responder.bind_local_stream(info, lambda header, payload: sent.append(header.sequence_number))

for seq in (10, 11, 12, 14, 15):
    write(Header(sequence_number=seq), b"")

resent = responder.handle_nack(
    TransportLayerNack(media_ssrc=1, nacks=[NackPair(11, 0b1011)])
)
print(resent)  # [11, 12, 15]
```

## Example: transport-wide feedback

```python
from rtpkit.twcc import Recorder

recorder = Recorder(sender_ssrc=5000)
recorder.record(5000, 0, 64000)
recorder.record(5000, 1, 64250)
for packet in recorder.build_feedback_packet():
    wire = packet.marshal()
```

## What it does not do

- It opens no sockets and runs no timers. Calling `build_nacks()`,
  `generate_report(now)` or `build_feedback()` at intervals is up to you.
- Only `TransportLayerCC` and its chunks can be encoded to bytes.
- RTP headers, NACKs, and sender and receiver reports are plain objects.
  There is no wire encoding or parsing for them.
- There is no packet dumping or logging of traffic.

## Running the tests

    pip install -e ".[test]"
    pytest