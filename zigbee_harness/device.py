from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from zigbee_nwk.addresses import UNASSIGNED_SHORT_ADDRESS, format_extended_address, format_short_address
from zigbee_nwk.nwk import ZigbeeNwk


class DeviceRole(Enum):
    COORDINATOR = "ZC"
    ROUTER = "ZR"
    END_DEVICE = "ZED"


class JoinState(Enum):
    IDLE = 0
    FORMATION_REQUESTED = 1
    FORMATION_CONFIRMED = 2
    DISCOVERY_REQUESTED = 3
    DISCOVERY_CONFIRMED = 4
    JOIN_REQUESTED = 5
    JOIN_CONFIRMED = 6
    ROUTER_STARTED = 7
    READY = 8
    JOIN_FAILED = 9


# States in which a device holds a network address and takes part in the mesh.
ASSOCIATED_STATES = frozenset({
    JoinState.FORMATION_CONFIRMED,
    JoinState.JOIN_CONFIRMED,
    JoinState.ROUTER_STARTED,
    JoinState.READY,
})


@dataclass(eq=False)
class Device:
    """One simulated device: identity, addresses, role and bring-up progress."""

    ordinal: int
    extended_address: int
    role: DeviceRole
    network_address: int = UNASSIGNED_SHORT_ADDRESS
    join_state: JoinState = JoinState.IDLE
    join_attempts: int = 0
    nwk: Optional[ZigbeeNwk] = field(default=None, repr=False)

    @property
    def name(self) -> str:
        return f"{self.role.value}-{self.ordinal}"

    @property
    def is_associated(self) -> bool:
        return self.join_state in ASSOCIATED_STATES

    def describe(self) -> str:
        return (f"Node {self.ordinal} [{format_short_address(self.network_address)} | "
                f"{format_extended_address(self.extended_address)}]")
