from typing import Callable, Sequence, Tuple

from zigbee_harness.harness import MediumConfig, TraceConfig, ZigbeeMeshHarness
from zigbee_harness.registry import default_extended_address
from zigbee_harness.roles import RolePartition
from zigbee_harness.sequencer import BringUpConfig


class CustomMeshHarness(ZigbeeMeshHarness):
    """A mesh whose partition and links come from the run configuration."""

    def __init__(self, partition: RolePartition, links: Sequence[Tuple[int, int]],
                 medium: MediumConfig | None = None, bring_up: BringUpConfig | None = None,
                 trace: TraceConfig | None = None,
                 extended_address_of: Callable[[int], int] = default_extended_address):
        super().__init__(
            "custom",
            partition,
            bring_up=bring_up,
            medium=medium,
            trace=trace,
            extended_address_of=extended_address_of,
        )
        self.links = tuple((int(a), int(b)) for a, b in links)

    def create_topology(self):
        for a, b in self.links:
            self.add_link(a, b)
