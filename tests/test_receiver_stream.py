from datetime import datetime, timezone

from rtpkit.receiver_stream import ReceiverReport, ReceiverStream, ReceptionReport
from rtpkit.rtp import Header
from rtpkit.sender_stream import SenderReport, ntp_time

UTC = timezone.utc
T0 = datetime(2009, 11, 10, 23, 0, 0, tzinfo=UTC)
T1 = datetime(2009, 11, 10, 23, 0, 1, tzinfo=UTC)
FIXED = datetime(2020, 1, 1, tzinfo=UTC)


def make_stream():
    return ReceiverStream(123456, 90000, receiver_ssrc=42)


def receive(stream, *seqs, now=FIXED):
    for seq in seqs:
        stream.process_rtp(now, Header(sequence_number=seq))


def single_report(stream, now=FIXED):
    report = stream.generate_report(now)
    assert report.ssrc == 42
    assert len(report.reports) == 1
    return report.reports[0]


def test_before_any_packet():
    assert single_report(make_stream()) == ReceptionReport(ssrc=123456)


def test_receiver_ssrc_in_report():
    report = make_stream().generate_report(FIXED)
    assert report == ReceiverReport(ssrc=42, reports=[ReceptionReport(ssrc=123456)])


def test_after_rtp_packets():
    stream = make_stream()
    receive(stream, *range(10))
    assert single_report(stream) == ReceptionReport(ssrc=123456, last_sequence_number=9)


def test_after_rtp_and_rtcp_packets():
    stream = make_stream()
    receive(stream, *range(10))
    stream.process_sender_report(
        FIXED,
        SenderReport(ssrc=123456, ntp_time=ntp_time(T1), rtp_time=987654321, packet_count=10),
    )
    rr = single_report(stream)
    assert rr == ReceptionReport(
        ssrc=123456,
        last_sequence_number=9,
        last_sender_report=1861287936,
        delay=rr.delay,
    )


def test_overflow():
    stream = make_stream()
    receive(stream, 0xFFFF, 0x00)
    assert single_report(stream) == ReceptionReport(
        ssrc=123456, last_sequence_number=1 << 16 | 0x0000
    )


def test_packet_loss():
    stream = make_stream()
    receive(stream, 0x01, 0x03)
    assert single_report(stream) == ReceptionReport(
        ssrc=123456, last_sequence_number=0x03, fraction_lost=256 * 1 // 3, total_lost=1
    )

    stream.process_sender_report(
        FIXED,
        SenderReport(ssrc=123456, ntp_time=ntp_time(T1), rtp_time=987654321, packet_count=10),
    )
    rr = single_report(stream)
    assert rr == ReceptionReport(
        ssrc=123456,
        last_sequence_number=0x03,
        last_sender_report=1861287936,
        fraction_lost=0,
        total_lost=1,
        delay=rr.delay,
    )


def test_overflow_and_packet_loss():
    stream = make_stream()
    receive(stream, 0xFFFF, 0x01)
    assert single_report(stream) == ReceptionReport(
        ssrc=123456,
        last_sequence_number=1 << 16 | 0x01,
        fraction_lost=256 * 1 // 3,
        total_lost=1,
    )


def test_reordered_packets():
    stream = make_stream()
    receive(stream, 0x01, 0x03, 0x02, 0x04)
    assert single_report(stream) == ReceptionReport(ssrc=123456, last_sequence_number=0x04)


def test_jitter():
    stream = make_stream()
    stream.process_rtp(T0, Header(sequence_number=0x01, timestamp=42378934))
    stream.process_rtp(T1, Header(sequence_number=0x02, timestamp=42378934 + 60000))
    assert single_report(stream, T1) == ReceptionReport(
        ssrc=123456, last_sequence_number=0x02, jitter=30000 // 16
    )


def test_delay():
    stream = make_stream()
    stream.process_sender_report(
        T0, SenderReport(ssrc=123456, ntp_time=ntp_time(T0), rtp_time=987654321)
    )
    assert single_report(stream, T1) == ReceptionReport(
        ssrc=123456, last_sender_report=1861222400, delay=65536
    )


def test_loss_counted_once_per_report():
    stream = make_stream()
    receive(stream, 1, 3)
    first = single_report(stream)
    receive(stream, 6)
    second = single_report(stream)
    assert first.total_lost == 1
    assert second.total_lost == 3
    assert second.fraction_lost == 256 * 2 // 3
    assert second.last_sequence_number == 6


def test_duplicate_packet_does_not_change_report():
    stream = make_stream()
    receive(stream, 5, 6, 6, 7)
    assert single_report(stream) == ReceptionReport(ssrc=123456, last_sequence_number=7)