import pytest

from zigbee_harness.correlator import PacketCorrelator, ReceptionOutcome
from zigbee_harness.packet_tag import PacketIdTag
from zigbee_nwk.params import NwkPacket


def _send(correlator, n, start=0.0, interval=1.0):
    packets = []
    for i in range(n):
        p = NwkPacket(size_bytes=5)
        correlator.send(p, start + i * interval)
        packets.append(p)
    return packets


def test_ids_start_at_one_and_increase():
    c = PacketCorrelator()
    packets = _send(c, 4)

    assert [PacketIdTag.peek(p).packet_id for p in packets] == [1, 2, 3, 4]
    assert c.metrics.sent_count == 4


def test_all_delivered_gives_full_delivery_ratio():
    c = PacketCorrelator()
    packets = _send(c, 3)
    for i, p in enumerate(packets):
        assert c.receive(p, i + 0.1) == ReceptionOutcome.MATCHED

    report = c.finalize()
    assert report.sent_count == 3
    assert report.received_count == 3
    assert report.lost_count == 0
    assert report.pdr == 1.0
    assert report.pdr_percent == pytest.approx(100.0)
    assert report.average_delay == pytest.approx(0.1)
    assert report.jitter == pytest.approx(0.0, abs=1e-12)


def test_partial_delivery_and_delay_statistics():
    c = PacketCorrelator()
    packets = _send(c, 4, start=0.0, interval=10.0)
    c.receive(packets[0], 1.0)
    c.receive(packets[1], 12.0)
    c.receive(packets[2], 23.0)

    report = c.finalize()
    assert report.received_count == 3
    assert report.lost_count == 1
    assert report.pdr == pytest.approx(0.75)
    assert (report.average_delay, report.min_delay, report.max_delay) == pytest.approx((2.0, 1.0, 3.0))
    assert report.jitter == pytest.approx(0.8165, abs=1e-4)


def test_duplicate_reception_is_unmatched_not_delivered():
    c = PacketCorrelator()
    (p,) = _send(c, 1)

    assert c.receive(p, 0.5) == ReceptionOutcome.MATCHED
    assert c.receive(p, 0.7) == ReceptionOutcome.UNMATCHED
    assert c.metrics.received_count == 1
    assert c.metrics.unmatched_count == 1


def test_untagged_and_invalid_tag_are_told_apart():
    c = PacketCorrelator()
    untagged = NwkPacket(size_bytes=5)
    zero_id = NwkPacket(size_bytes=5)
    PacketIdTag(0).attach(zero_id)
    foreign = NwkPacket(size_bytes=5)
    PacketIdTag(77).attach(foreign)

    assert c.receive(untagged, 1.0) == ReceptionOutcome.UNTAGGED
    assert c.receive(zero_id, 1.0) == ReceptionOutcome.INVALID_TAG
    assert c.receive(foreign, 1.0) == ReceptionOutcome.UNMATCHED

    report = c.finalize()
    assert report.received_count == 0
    assert (report.untagged_count, report.invalid_tag_count, report.unmatched_count) == (1, 1, 1)


def test_nothing_sent_reports_not_applicable():
    report = PacketCorrelator().finalize()

    assert report.pdr is None
    assert report.average_delay is None
    assert report.min_delay is None
    assert report.max_delay is None
    assert report.jitter is None


def test_short_tag_is_counted_as_invalid():
    c = PacketCorrelator()
    _send(c, 1)
    p = NwkPacket(size_bytes=5)
    p.add_tag(PacketIdTag.TAG_NAME, b"\x01\x02")

    assert c.receive(p, 1.0) == ReceptionOutcome.INVALID_TAG

    report = c.finalize()
    assert report.received_count == 0
    assert report.invalid_tag_count == 1
