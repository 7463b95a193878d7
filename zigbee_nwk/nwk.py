from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, TextIO, Tuple, Union

from zigbee_nwk.params import (
    NldeDataIndicationParams,
    NldeDataRequestParams,
    NlmeJoinConfirmParams,
    NlmeJoinRequestParams,
    NlmeNetworkDiscoveryConfirmParams,
    NlmeNetworkDiscoveryRequestParams,
    NlmeNetworkFormationConfirmParams,
    NlmeNetworkFormationRequestParams,
    NlmeRouteDiscoveryConfirmParams,
    NlmeStartRouterRequestParams,
    NwkPacket,
)

NwkConfirm = Union[
    NlmeNetworkFormationConfirmParams,
    NlmeNetworkDiscoveryConfirmParams,
    NlmeJoinConfirmParams,
    NlmeRouteDiscoveryConfirmParams,
    NldeDataIndicationParams,
]
NwkListener = Callable[[NwkConfirm], None]


class ZigbeeNwk(ABC):
    """Network-layer stack of a single device, as seen by the harness.

    Requests return immediately. Their outcome arrives later (in simulation time) as a
    confirm/indication object passed to the listener installed with `set_listener`.
    `nlme_start_router_request` has no confirm.
    """

    @property
    @abstractmethod
    def network_address(self) -> int:
        ...

    @property
    @abstractmethod
    def ieee_address(self) -> int:
        ...

    @abstractmethod
    def set_listener(self, listener: NwkListener) -> None:
        ...

    @abstractmethod
    def nlme_network_formation_request(self, params: NlmeNetworkFormationRequestParams) -> None:
        ...

    @abstractmethod
    def nlme_network_discovery_request(self, params: NlmeNetworkDiscoveryRequestParams) -> None:
        ...

    @abstractmethod
    def nlme_join_request(self, params: NlmeJoinRequestParams) -> None:
        ...

    @abstractmethod
    def nlme_start_router_request(self, params: NlmeStartRouterRequestParams) -> None:
        ...

    @abstractmethod
    def nlde_data_request(self, params: NldeDataRequestParams, packet: NwkPacket) -> None:
        ...

    @abstractmethod
    def find_route(self, destination: int) -> Tuple[int, bool]:
        """Return (next hop, is_neighbor) toward `destination`, or (UNREACHABLE, False)."""

    @abstractmethod
    def print_neighbor_table(self, stream: TextIO) -> None:
        ...

    @abstractmethod
    def print_routing_table(self, stream: TextIO) -> None:
        ...

    @abstractmethod
    def print_route_discovery_table(self, stream: TextIO) -> None:
        ...
