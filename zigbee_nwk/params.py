"""NWK-layer primitive parameters exchanged between the harness and a network-layer stack.

Names follow the NLME/NLDE primitives of the Zigbee network layer. Requests flow from the
harness into a `ZigbeeNwk`; confirms and indications flow back through its listener.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from zigbee_nwk.addresses import UNASSIGNED_SHORT_ADDRESS

ALL_CHANNELS = 0x07FFF800  # channels 11..26 on page 0
FIRST_CHANNEL = 11
LAST_CHANNEL = 26
STACK_PROFILE_ZIGBEE_PRO = 2


class NwkStatus(Enum):
    SUCCESS = 0x00
    INVALID_PARAMETER = 0xC1
    INVALID_REQUEST = 0xC2
    NOT_PERMITTED = 0xC3
    STARTUP_FAILURE = 0xC4
    NO_NETWORKS = 0xCA
    ROUTE_DISCOVERY_FAILED = 0xD0
    ROUTE_ERROR = 0xD1


class DeviceType(Enum):
    END_DEVICE = 0
    ROUTER = 1


class JoiningMethod(Enum):
    ASSOCIATION = 0
    DIRECT_OR_REJOIN = 1
    REJOINING = 2
    CHANGE_CHANNEL = 3


class DiscoverRouteType(Enum):
    SUPPRESS_ROUTE_DISCOVERY = 0
    ENABLE_ROUTE_DISCOVERY = 1


def channels_in_mask(mask: int) -> list[int]:
    return [ch for ch in range(FIRST_CHANNEL, LAST_CHANNEL + 1) if mask & (1 << ch)]


@dataclass(frozen=True)
class CapabilityInformation:
    """MAC capability information field carried by a join request (one octet)."""

    device_type: DeviceType
    allocate_address: bool = True
    receiver_on_when_idle: bool = True
    mains_powered: bool = True

    def to_byte(self) -> int:
        value = 0
        if self.device_type == DeviceType.ROUTER:
            value |= 1 << 1
        if self.mains_powered:
            value |= 1 << 2
        if self.receiver_on_when_idle:
            value |= 1 << 3
        if self.allocate_address:
            value |= 1 << 7
        return value

    @staticmethod
    def from_byte(value: int) -> "CapabilityInformation":
        return CapabilityInformation(
            device_type=DeviceType.ROUTER if value & (1 << 1) else DeviceType.END_DEVICE,
            allocate_address=bool(value & (1 << 7)),
            receiver_on_when_idle=bool(value & (1 << 3)),
            mains_powered=bool(value & (1 << 2)),
        )


@dataclass
class NwkPacket:
    """Application payload handed to the NWK layer.

    Tags are opaque byte strings attached by upper layers; the NWK layer carries them
    end to end without interpreting them.
    """

    size_bytes: int
    tags: Dict[str, bytes] = field(default_factory=dict)

    def add_tag(self, name: str, data: bytes) -> None:
        self.tags[name] = bytes(data)

    def peek_tag(self, name: str) -> Optional[bytes]:
        return self.tags.get(name)

    def copy(self) -> "NwkPacket":
        return NwkPacket(size_bytes=self.size_bytes, tags=dict(self.tags))


# --- requests ---

@dataclass(frozen=True)
class NlmeNetworkFormationRequestParams:
    scan_channel_mask: int = ALL_CHANNELS
    scan_duration: int = 0
    beacon_order: int = 15
    superframe_order: int = 15


@dataclass(frozen=True)
class NlmeNetworkDiscoveryRequestParams:
    scan_channel_mask: int = 0x00007800
    scan_duration: int = 2


@dataclass(frozen=True)
class NlmeJoinRequestParams:
    extended_pan_id: int
    capability_info: int
    rejoin_network: JoiningMethod = JoiningMethod.ASSOCIATION


@dataclass(frozen=True)
class NlmeStartRouterRequestParams:
    beacon_order: int = 15
    superframe_order: int = 15


@dataclass(frozen=True)
class NldeDataRequestParams:
    dst_address: int
    nsdu_handle: int = 1
    discover_route: DiscoverRouteType = DiscoverRouteType.ENABLE_ROUTE_DISCOVERY
    radius: int = 0  # 0 means "use the stack's default radius"


# --- confirms / indications ---

@dataclass(frozen=True)
class NetworkDescriptor:
    extended_pan_id: int
    logical_channel: int
    pan_id: int
    stack_profile: int = STACK_PROFILE_ZIGBEE_PRO
    permit_joining: bool = True


@dataclass(frozen=True)
class NlmeNetworkFormationConfirmParams:
    status: NwkStatus


@dataclass(frozen=True)
class NlmeNetworkDiscoveryConfirmParams:
    status: NwkStatus
    network_descriptors: Tuple[NetworkDescriptor, ...] = ()


@dataclass(frozen=True)
class NlmeJoinConfirmParams:
    status: NwkStatus
    network_address: int = UNASSIGNED_SHORT_ADDRESS
    extended_pan_id: int = 0


@dataclass(frozen=True)
class NlmeRouteDiscoveryConfirmParams:
    status: NwkStatus
    dst_address: int = UNASSIGNED_SHORT_ADDRESS


@dataclass(frozen=True)
class NldeDataIndicationParams:
    src_address: int
    dst_address: int
    packet: NwkPacket
