from __future__ import annotations

import itertools
import logging
import threading
from enum import Enum

from zigbee_harness.packet_statistics import MetricsAccumulator, MetricsReport, summarize_delays
from zigbee_harness.packet_tag import PacketIdTag
from zigbee_nwk.params import NwkPacket

_logger = logging.getLogger(__name__)


class ReceptionOutcome(Enum):
    MATCHED = 1
    UNTAGGED = 2
    INVALID_TAG = 3
    UNMATCHED = 4


class PacketCorrelator:
    """Tags outgoing packets with sequential ids and matches them on arrival.

    One instance lives for the whole run: created before the first send and read by
    `finalize()` after the last possible arrival. The lock keeps the id counter, the pending
    map and the delay list consistent if receive callbacks ever run on several threads.
    """

    def __init__(self):
        self.metrics = MetricsAccumulator()
        self._packet_ids = itertools.count(1)
        self._lock = threading.Lock()

    def send(self, packet: NwkPacket, now: float) -> int:
        with self._lock:
            packet_id = next(self._packet_ids)
            PacketIdTag(packet_id).attach(packet)
            self.metrics.record_sent(packet_id, now)
        return packet_id

    def receive(self, packet: NwkPacket, now: float, *, receiver: str = "?") -> ReceptionOutcome:
        prefix = f"[sim_t={now:012.6f}s] {receiver}"
        try:
            tag = PacketIdTag.peek(packet)
        except ValueError as e:
            with self._lock:
                self.metrics.invalid_tag_count += 1
            _logger.warning(f"{prefix} | Received packet with malformed PacketIdTag: {e}")
            return ReceptionOutcome.INVALID_TAG

        with self._lock:
            if tag is None:
                self.metrics.untagged_count += 1
                outcome = ReceptionOutcome.UNTAGGED
            elif tag.packet_id == 0:
                self.metrics.invalid_tag_count += 1
                outcome = ReceptionOutcome.INVALID_TAG
            else:
                sample = self.metrics.record_delivered(tag.packet_id, now)
                if sample is None:
                    self.metrics.unmatched_count += 1
                    outcome = ReceptionOutcome.UNMATCHED
                else:
                    outcome = ReceptionOutcome.MATCHED

        if outcome == ReceptionOutcome.MATCHED:
            _logger.info(f"{prefix} | Received packet id={tag.packet_id} size={packet.size_bytes}B "
                         f"delay={sample.delay:.6f}s")
        elif outcome == ReceptionOutcome.UNTAGGED:
            _logger.warning(f"{prefix} | Received packet without PacketIdTag")
        elif outcome == ReceptionOutcome.INVALID_TAG:
            _logger.warning(f"{prefix} | Received packet with invalid id (0) in tag")
        else:
            _logger.warning(f"{prefix} | Received packet id={tag.packet_id} but no send time found")
        return outcome

    def finalize(self) -> MetricsReport:
        with self._lock:
            m = self.metrics
            summary = summarize_delays([s.delay for s in m.delay_samples])
            pdr = m.received_count / m.sent_count if m.sent_count > 0 else None
            return MetricsReport(
                sent_count=m.sent_count,
                received_count=m.received_count,
                lost_count=m.lost_count,
                pdr=pdr,
                average_delay=summary.average if summary else None,
                min_delay=summary.minimum if summary else None,
                max_delay=summary.maximum if summary else None,
                jitter=summary.jitter if summary else None,
                untagged_count=m.untagged_count,
                invalid_tag_count=m.invalid_tag_count,
                unmatched_count=m.unmatched_count,
            )
