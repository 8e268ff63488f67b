import threading

import pytest

from rtpkit.rtp import Header, TransportCCExtension
from rtpkit.streaminfo import RTPHeaderExtension, StreamInfo
from rtpkit.twcc import PacketStatus, RunLengthChunk, StatusVectorChunk, SymbolSize
from rtpkit.twcc_streams import (
    TRANSPORT_CC_URI,
    FeedbackCollector,
    HeaderExtensionStamper,
    transport_cc_extension_id,
)

NR = PacketStatus.NOT_RECEIVED
SMALL = PacketStatus.SMALL_DELTA
LARGE = PacketStatus.LARGE_DELTA


def tcc_info(ssrc=0, ext_id=1):
    return StreamInfo(ssrc=ssrc, rtp_header_extensions=[RTPHeaderExtension(TRANSPORT_CC_URI, ext_id)])


def header_with(seq, ext_id=1):
    header = Header()
    header.set_extension(ext_id, TransportCCExtension(seq).marshal())
    return header


def feed(collector, ssrc, seqs_and_times):
    for seq, arrival in seqs_and_times:
        assert collector.receive(ssrc, header_with(seq), arrival)


def test_transport_cc_extension_id():
    info = StreamInfo(
        rtp_header_extensions=[
            RTPHeaderExtension("urn:example:other", 3),
            RTPHeaderExtension(TRANSPORT_CC_URI, 5),
        ]
    )
    assert transport_cc_extension_id(info) == 5
    assert transport_cc_extension_id(StreamInfo()) == 0


def test_stamper_adds_sequence_to_each_packet_across_threads():
    stamper = HeaderExtensionStamper()
    written = []
    lock = threading.Lock()

    def sink(header, payload):
        with lock:
            written.append(header)
        return len(payload or b"")

    def run(stream_id):
        write = stamper.bind_local_stream(tcc_info(), sink)
        for seq in [stream_id * k for k in range(1, 6)]:
            write(Header(sequence_number=seq), None)

    threads = [threading.Thread(target=run, args=(i + 1,)) for i in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(written) == 50
    numbers = sorted(
        TransportCCExtension.unmarshal(h.get_extension(1)).transport_sequence for h in written
    )
    assert numbers == list(range(50))


def test_stamper_counts_up_in_order_and_keeps_sequence_number():
    stamper = HeaderExtensionStamper()
    seen = []
    write = stamper.bind_local_stream(tcc_info(ext_id=2), lambda h, p: seen.append(h))
    write(Header(sequence_number=7), b"")
    write(Header(sequence_number=8), b"")
    assert [h.sequence_number for h in seen] == [7, 8]
    assert [h.get_extension(2) for h in seen] == [b"\x00\x00", b"\x00\x01"]


def test_stamper_returns_writer_unchanged_without_extension():
    stamper = HeaderExtensionStamper()

    def writer(header, payload):
        return 0

    assert stamper.bind_local_stream(StreamInfo(), writer) is writer


def test_collector_before_any_packets():
    collector = FeedbackCollector(sender_ssrc=9)
    assert collector.bind_remote_stream(tcc_info(ssrc=1))
    packets = collector.build_feedback()
    assert len(packets) == 1
    tlcc = packets[0]
    assert tlcc.packet_status_count == 0
    assert tlcc.fb_pkt_count == 0
    assert tlcc.base_sequence_number == 0
    assert tlcc.media_ssrc == 0
    assert tlcc.reference_time == 0
    assert tlcc.recv_deltas == []
    assert tlcc.packet_chunks == []


def test_collector_after_rtp_packets():
    collector = FeedbackCollector()
    collector.bind_remote_stream(tcc_info(ssrc=1))
    feed(collector, 1, [(i, i * 1000) for i in range(10)])
    packets = collector.build_feedback()
    assert len(packets) == 1
    cc = packets[0]
    assert cc.media_ssrc == 1
    assert cc.base_sequence_number == 0
    assert cc.packet_chunks == [RunLengthChunk(SMALL, 10)]


def test_collector_different_delays():
    collector = FeedbackCollector()
    collector.bind_remote_stream(tcc_info())
    feed(collector, 0, [(0, 0), (1, 10_000), (2, 110_000), (3, 310_000)])
    packets = collector.build_feedback()
    assert len(packets) == 1
    assert packets[0].base_sequence_number == 0
    assert packets[0].packet_chunks == [
        StatusVectorChunk(SymbolSize.TWO_BIT, [SMALL, SMALL, LARGE, LARGE])
    ]


def test_collector_packet_loss():
    collector = FeedbackCollector()
    collector.bind_remote_stream(tcc_info())
    feed(
        collector,
        0,
        [(0, 0), (1, 10_000), (4, 110_000), (8, 310_000), (9, 330_000), (10, 350_000), (30, 650_000)],
    )
    packets = collector.build_feedback()
    assert len(packets) == 1
    assert packets[0].base_sequence_number == 0
    assert packets[0].packet_chunks == [
        StatusVectorChunk(SymbolSize.TWO_BIT, [SMALL, SMALL, NR, NR, LARGE, NR, NR]),
        StatusVectorChunk(SymbolSize.TWO_BIT, [NR, LARGE, SMALL, SMALL, NR, NR, NR]),
        RunLengthChunk(NR, 16),
        RunLengthChunk(LARGE, 1),
    ]


def test_collector_overflow():
    collector = FeedbackCollector()
    collector.bind_remote_stream(tcc_info())
    feed(collector, 0, [(seq, 0) for seq in [65530, 65534, 65535, 1, 2, 10]])
    packets = collector.build_feedback()
    assert len(packets) == 1
    assert packets[0].base_sequence_number == 65530
    assert packets[0].packet_chunks == [
        StatusVectorChunk(
            SymbolSize.ONE_BIT,
            [SMALL, NR, NR, NR, SMALL, SMALL, NR, SMALL, SMALL, NR, NR, NR, NR, NR],
        ),
        StatusVectorChunk(SymbolSize.TWO_BIT, [NR, NR, SMALL]),
    ]


def test_collector_ignores_unbound_streams_and_missing_extension():
    collector = FeedbackCollector()
    assert collector.bind_remote_stream(StreamInfo(ssrc=3)) is False
    assert collector.receive(3, header_with(1)) is False
    collector.bind_remote_stream(tcc_info(ssrc=4, ext_id=2))
    assert collector.receive(4, header_with(1, ext_id=1)) is False
    assert collector.receive(4, header_with(1, ext_id=2), 0) is True


def test_collector_rejects_truncated_extension():
    collector = FeedbackCollector()
    collector.bind_remote_stream(tcc_info(ssrc=1))
    header = Header()
    header.set_extension(1, b"\x01")
    with pytest.raises(ValueError):
        collector.receive(1, header, 0)