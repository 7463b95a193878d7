from __future__ import annotations

import logging
from dataclasses import dataclass

from zigbee_harness.scenario import Scenario

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeriodicUnicastScenario(Scenario):
    """A fixed number of small packets from one device to another at a constant interval.

    Timeline, with `deadline = start + packets * interval + safety_margin`:
      - sends at start, start + interval, ...
      - neighbor table, routing table, route discovery table of the inspected device
        and a trace route, at `deadline - dump_lead` (or at the deadline when that is
        before the last send), each a hundredth of a second after the previous one
      - results at the deadline
      - simulation stop at `deadline + teardown_margin`
    """

    name: str = "periodic-unicast"
    source: int = 4
    destination: int = 6
    inspect: int = 1
    start_time_s: float = 12.0
    interval_s: float = 0.5
    packet_count: int = 200
    payload_size_bytes: int = 5
    safety_margin_s: float = 10.0
    teardown_margin_s: float = 5.0
    dump_lead_s: float = 0.5

    def __post_init__(self) -> None:
        if self.packet_count < 0:
            raise ValueError("packet_count must be >= 0")
        if self.interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        if self.payload_size_bytes < 0:
            raise ValueError("payload_size_bytes must be >= 0")
        if self.start_time_s < 0:
            raise ValueError("start_time_s must be >= 0")

    @property
    def last_send_time_s(self) -> float:
        return self.start_time_s + self.packet_count * self.interval_s

    @property
    def deadline_s(self) -> float:
        return self.last_send_time_s + self.safety_margin_s

    @property
    def dump_time_s(self) -> float:
        dump_time = self.deadline_s - self.dump_lead_s
        if dump_time < self.last_send_time_s:
            dump_time = self.deadline_s
        return dump_time

    def install(self, harness) -> None:
        try:
            source = harness.get_device(self.source)
            destination = harness.get_device(self.destination)
            inspect = harness.get_device(self.inspect)
        except IndexError as e:
            raise ValueError(f"scenario {self.name}: {e}") from e

        if self.start_time_s <= harness.sequencer.last_discovery_time_s:
            _logger.warning(f"Traffic starts at {self.start_time_s}s, before the last discovery request "
                            f"({harness.sequencer.last_discovery_time_s}s); early packets may be lost")

        sim = harness.simulator
        for i in range(self.packet_count):
            sim.schedule_at(self.start_time_s + i * self.interval_s,
                            lambda: harness.send_data(source, destination, self.payload_size_bytes))

        t = self.dump_time_s
        sim.schedule_at(t, lambda: harness.dump_neighbor_table(inspect))
        sim.schedule_at(t + 0.01, lambda: harness.dump_routing_table(inspect))
        sim.schedule_at(t + 0.02, lambda: harness.dump_route_discovery_table(inspect))
        sim.schedule_at(t + 0.03, lambda: harness.trace(source, destination))
        sim.schedule_at(self.deadline_s, harness.finalize)
        harness.stop_at(self.deadline_s + self.teardown_margin_s)

    def parameters_summary(self):
        out = super().parameters_summary()
        out.update({
            "source": self.source,
            "destination": self.destination,
            "inspect": self.inspect,
            "start_time_s": self.start_time_s,
            "interval_s": self.interval_s,
            "packet_count": self.packet_count,
            "payload_size_bytes": self.payload_size_bytes,
            "safety_margin_s": self.safety_margin_s,
        })
        return out
