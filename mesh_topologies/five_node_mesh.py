from zigbee_harness.harness import MediumConfig, TraceConfig, ZigbeeMeshHarness
from zigbee_harness.roles import RolePartition
from zigbee_harness.sequencer import BringUpConfig


class FiveNodeMeshHarness(ZigbeeMeshHarness):
    """Coordinator 0, routers 1-2, end devices 3-4; each end device only hears one router."""

    LINKS = (
        (0, 1), (0, 2), (1, 2),
        (1, 3),
        (2, 4),
    )

    def __init__(self, medium: MediumConfig | None = None, bring_up: BringUpConfig | None = None,
                 trace: TraceConfig | None = None):
        super().__init__(
            "mesh-5",
            RolePartition.from_counts(2, 2),
            bring_up=bring_up,
            medium=medium,
            trace=trace,
        )

    def create_topology(self):
        for a, b in self.LINKS:
            self.add_link(a, b)
