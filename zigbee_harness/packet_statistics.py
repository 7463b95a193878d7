"""Delivery and end-to-end latency statistics of tagged application packets."""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence


@dataclass(frozen=True)
class DelaySample:
    packet_id: int
    send_time: float
    delay: float


@dataclass
class MetricsAccumulator:
    """Run-wide send/receive bookkeeping.

    `pending` maps packet id -> send time for packets not yet received. Whatever is left
    there when the run ends was lost.
    """

    sent_count: int = 0
    received_count: int = 0
    pending: Dict[int, float] = field(default_factory=dict)
    delay_samples: List[DelaySample] = field(default_factory=list)

    # receptions that were logged but not counted as deliveries
    untagged_count: int = 0
    invalid_tag_count: int = 0
    unmatched_count: int = 0

    def record_sent(self, packet_id: int, send_time: float) -> None:
        self.sent_count += 1
        self.pending[packet_id] = send_time

    def record_delivered(self, packet_id: int, receive_time: float) -> Optional[DelaySample]:
        """Match a reception against the pending map. Returns None if the id is not pending."""
        send_time = self.pending.pop(packet_id, None)
        if send_time is None:
            return None
        sample = DelaySample(packet_id=packet_id, send_time=send_time, delay=receive_time - send_time)
        self.delay_samples.append(sample)
        self.received_count += 1
        return sample

    @property
    def lost_count(self) -> int:
        return len(self.pending)


@dataclass(frozen=True)
class DelaySummary:
    average: float
    minimum: float
    maximum: float
    jitter: float
    count: int


def summarize_delays(delays: Sequence[float]) -> Optional[DelaySummary]:
    """Mean, min, max and jitter (population standard deviation) of `delays`; None if empty."""
    if not delays:
        return None
    mean = sum(delays) / len(delays)
    variance = sum((d - mean) * (d - mean) for d in delays) / len(delays)
    return DelaySummary(
        average=mean,
        minimum=min(delays),
        maximum=max(delays),
        jitter=math.sqrt(variance),
        count=len(delays),
    )


@dataclass(frozen=True)
class MetricsReport:
    """Final figures of a run. `None` means "not applicable"."""

    sent_count: int
    received_count: int
    lost_count: int
    pdr: Optional[float]
    average_delay: Optional[float]
    min_delay: Optional[float]
    max_delay: Optional[float]
    jitter: Optional[float]
    untagged_count: int = 0
    invalid_tag_count: int = 0
    unmatched_count: int = 0

    @property
    def pdr_percent(self) -> Optional[float]:
        return None if self.pdr is None else self.pdr * 100.0

    def as_dict(self) -> Dict[str, object]:
        def _na(v: Optional[float]) -> object:
            return "N/A" if v is None else v

        return {
            'total packets sent': self.sent_count,
            'total packets received': self.received_count,
            'lost packets': self.lost_count,
            'packet delivery ratio (%)': _na(self.pdr_percent),
            'average delay (s)': _na(self.average_delay),
            'minimum delay (s)': _na(self.min_delay),
            'maximum delay (s)': _na(self.max_delay),
            'jitter (stddev, s)': _na(self.jitter),
            'untagged receptions': self.untagged_count,
            'invalid tag receptions': self.invalid_tag_count,
            'unmatched receptions': self.unmatched_count,
        }
