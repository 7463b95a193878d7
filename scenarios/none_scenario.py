from __future__ import annotations

from dataclasses import dataclass

from zigbee_harness.scenario import Scenario


@dataclass(frozen=True)
class NoneScenario(Scenario):
    """No traffic; bring-up only, then dump the coordinator's tables."""

    name: str = "none"
    settle_time_s: float = 5.0

    def install(self, harness) -> None:
        done = harness.sequencer.last_discovery_time_s + self.settle_time_s
        coordinator = harness.registry.coordinator
        harness.simulator.schedule_at(done, lambda: harness.dump_neighbor_table(coordinator))
        harness.simulator.schedule_at(done, harness.finalize)
        harness.stop_at(done + 0.5)

    def parameters_summary(self):
        out = super().parameters_summary()
        out.update({"settle_time_s": self.settle_time_s})
        return out
