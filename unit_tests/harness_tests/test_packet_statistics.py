import math

import pytest

from zigbee_harness.packet_statistics import MetricsAccumulator, MetricsReport, summarize_delays


def test_summary_of_one_two_three():
    s = summarize_delays([1.0, 2.0, 3.0])

    assert s.average == pytest.approx(2.0)
    assert s.minimum == 1.0
    assert s.maximum == 3.0
    assert s.jitter == pytest.approx(math.sqrt(2.0 / 3.0))
    assert s.jitter == pytest.approx(0.8165, abs=1e-4)
    assert s.count == 3


def test_single_sample_has_zero_jitter():
    s = summarize_delays([0.0125])

    assert s.average == s.minimum == s.maximum == 0.0125
    assert s.jitter == 0.0


def test_no_samples_gives_no_summary():
    assert summarize_delays([]) is None


def test_accumulator_matches_and_forgets_pending_ids():
    m = MetricsAccumulator()
    m.record_sent(1, 10.0)
    m.record_sent(2, 10.5)

    sample = m.record_delivered(1, 10.25)
    assert sample.packet_id == 1
    assert sample.send_time == 10.0
    assert sample.delay == pytest.approx(0.25)

    # already matched once
    assert m.record_delivered(1, 11.0) is None
    assert m.received_count == 1
    assert m.lost_count == 1
    assert list(m.pending) == [2]


def test_report_renders_not_applicable_values():
    report = MetricsReport(sent_count=0, received_count=0, lost_count=0, pdr=None,
                           average_delay=None, min_delay=None, max_delay=None, jitter=None)

    d = report.as_dict()
    assert report.pdr_percent is None
    assert d['packet delivery ratio (%)'] == "N/A"
    assert d['average delay (s)'] == "N/A"
    assert d['jitter (stddev, s)'] == "N/A"
    assert d['total packets sent'] == 0
