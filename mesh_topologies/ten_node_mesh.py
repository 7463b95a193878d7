from zigbee_harness.harness import MediumConfig, TraceConfig, ZigbeeMeshHarness
from zigbee_harness.roles import RolePartition
from zigbee_harness.sequencer import BringUpConfig


class TenNodeMeshHarness(ZigbeeMeshHarness):
    """Coordinator 0, routers 1-4, end devices 5-9.

    The adjacency approximates devices scattered over a 200 m square with a ~110 m radio range:
    the coordinator sits in the middle and reaches every router, end devices 5-7 cluster around
    router 1 and 8-9 hang off routers 3/4.
    """

    LINKS = (
        (0, 1), (0, 2), (0, 3), (0, 4), (0, 9),
        (1, 5), (1, 6), (1, 7),
        (2, 4),
        (3, 4), (3, 9),
        (4, 8), (4, 9),
        (5, 6), (6, 7), (8, 9),
    )

    def __init__(self, medium: MediumConfig | None = None, bring_up: BringUpConfig | None = None,
                 trace: TraceConfig | None = None):
        super().__init__(
            "mesh-10",
            RolePartition.from_counts(4, 5),
            bring_up=bring_up,
            medium=medium,
            trace=trace,
        )

    def create_topology(self):
        for a, b in self.LINKS:
            self.add_link(a, b)
