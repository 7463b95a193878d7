"""In-memory reference implementation of the `ZigbeeNwk` contract.

A `MeshMedium` owns a static adjacency between device ordinals (no radio model) and moves
data frames between neighbors as DES events. Each device gets an `InMemoryNwk` attached to
the medium. The behavior is intentionally small:

  * formation: the coordinator takes address 0x0000 and the lowest channel of the mask;
  * discovery: a device hears every associated routing-capable neighbor on a scanned channel;
  * association: the shallowest permitting neighbor becomes the parent and hands out a
    stochastic (seeded) short address;
  * routing: end devices forward to their parent, routers run a BFS route discovery over
    associated routing-capable devices and install next hops along the path.
"""
from __future__ import annotations

import itertools
import logging
import random
from collections import defaultdict, deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Deque, Dict, List, Optional, Set, TextIO, Tuple

import xxhash

from des.des import DiscreteEventSimulator
from zigbee_nwk.addresses import (
    COORDINATOR_SHORT_ADDRESS,
    MAX_STOCHASTIC_ADDRESS,
    UNASSIGNED_SHORT_ADDRESS,
    UNREACHABLE,
    format_extended_address,
    format_short_address,
)
from zigbee_nwk.nwk import NwkConfirm, NwkListener, ZigbeeNwk
from zigbee_nwk.params import (
    CapabilityInformation,
    DeviceType,
    DiscoverRouteType,
    JoiningMethod,
    NetworkDescriptor,
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
    NwkStatus,
    channels_in_mask,
)

_logger = logging.getLogger(__name__)

BASE_SUPERFRAME_DURATION_S = 960 * 16e-6  # aBaseSuperframeDuration symbols at 16 us/symbol
ASSOCIATION_DELAY_S = 0.05
DEFAULT_RADIUS = 30


def scan_time_s(channel_mask: int, scan_duration: int) -> float:
    """Time spent scanning every channel of the mask for 2^duration + 1 superframes."""
    return len(channels_in_mask(channel_mask)) * BASE_SUPERFRAME_DURATION_S * (2 ** scan_duration + 1)


def derive_pan_id(extended_pan_id: int) -> int:
    """Stable 16-bit PAN id for an extended PAN id (0xFFFF is reserved for broadcast)."""
    pan_id = xxhash.xxh32(extended_pan_id.to_bytes(8, "big")).intdigest() & 0xFFFF
    return 0xFFFE if pan_id == 0xFFFF else pan_id


class Relationship(Enum):
    PARENT = 0
    CHILD = 1
    SIBLING = 2


@dataclass(frozen=True)
class NeighborEntry:
    network_address: int
    ieee_address: int
    device_type: str
    relationship: Relationship
    depth: int


@dataclass
class RouteEntry:
    destination: int
    next_hop: int


@dataclass(frozen=True)
class RouteDiscoveryEntry:
    route_request_id: int
    source_address: int
    destination: int
    path_cost: int
    status: NwkStatus


@dataclass(frozen=True)
class DataFrame:
    src_address: int
    dst_address: int
    radius: int
    discover_route: DiscoverRouteType
    packet: NwkPacket


class MeshMedium:
    """Shared neighborhood of all in-memory NWK instances of one simulation."""

    def __init__(self, scheduler: DiscreteEventSimulator, *,
                 hop_delay_s: float = 0.004,
                 hop_jitter_s: float = 0.002,
                 loss_probability: float = 0.0,
                 link_failure_percent: float = 0.0,
                 max_children: int = 20,
                 seed: int = 0):
        if hop_delay_s < 0 or hop_jitter_s < 0:
            raise ValueError("hop delay and jitter must be >= 0")
        if not 0.0 <= loss_probability <= 1.0:
            raise ValueError("loss_probability must be within [0, 1]")
        self.scheduler = scheduler
        self.hop_delay_s = float(hop_delay_s)
        self.hop_jitter_s = float(hop_jitter_s)
        self.loss_probability = float(loss_probability)
        self.link_failure_percent = float(link_failure_percent)
        self.max_children = int(max_children)
        self._rnd = random.Random(seed)
        self._address_rnd = random.Random(seed ^ 0x5A5A)
        self._adjacency: Dict[int, Set[int]] = defaultdict(set)
        self._failed_links: Set[frozenset[int]] = set()
        self._nodes: Dict[int, InMemoryNwk] = {}
        self._by_short_address: Dict[int, InMemoryNwk] = {}
        self._route_request_ids = itertools.count(1)

        # statistics
        self.frames_transmitted = 0
        self.frames_lost = 0

    def attach(self, ordinal: int, ieee_address: int) -> "InMemoryNwk":
        assert ordinal not in self._nodes, f"ordinal {ordinal} already attached"
        nwk = InMemoryNwk(self, ordinal, ieee_address)
        self._nodes[ordinal] = nwk
        return nwk

    def add_link(self, a: int, b: int) -> None:
        """Declare that devices `a` and `b` hear each other.

        Whether the link is failed is decided here, once, from `link_failure_percent`.
        """
        if a == b:
            raise ValueError(f"self link on device {a}")
        self._adjacency[a].add(b)
        self._adjacency[b].add(a)
        if self.link_failure_percent > 0.0:
            p = max(0.0, min(100.0, self.link_failure_percent)) / 100.0
            if self._rnd.random() < p:
                self._failed_links.add(frozenset((a, b)))

    @property
    def links(self) -> List[Tuple[int, int]]:
        return sorted({tuple(sorted((a, b))) for a, peers in self._adjacency.items() for b in peers})

    @property
    def failed_links(self) -> List[Tuple[int, int]]:
        return sorted(tuple(sorted(link)) for link in self._failed_links)

    def is_link_up(self, a: int, b: int) -> bool:
        return b in self._adjacency.get(a, ()) and frozenset((a, b)) not in self._failed_links

    def neighbors(self, ordinal: int) -> List["InMemoryNwk"]:
        return [self._nodes[o] for o in sorted(self._adjacency.get(ordinal, ()))
                if o in self._nodes and self.is_link_up(ordinal, o)]

    def find_by_short_address(self, address: int) -> Optional["InMemoryNwk"]:
        return self._by_short_address.get(address)

    def register_address(self, nwk: "InMemoryNwk") -> None:
        self._by_short_address[nwk.network_address] = nwk

    def allocate_address(self) -> int:
        while True:
            candidate = self._address_rnd.randint(0x0001, MAX_STOCHASTIC_ADDRESS)
            if candidate not in self._by_short_address:
                return candidate

    def next_route_request_id(self) -> int:
        return next(self._route_request_ids)

    def route_path(self, origin: "InMemoryNwk", destination: int) -> Optional[List["InMemoryNwk"]]:
        """Shortest path of routing-capable devices from `origin` to the router serving `destination`."""
        target = self.find_by_short_address(destination)
        if target is None or not target.associated:
            return None
        goal = target if target.routing_capable else target.parent
        if goal is None:
            return None

        previous: Dict[int, Optional[InMemoryNwk]] = {origin.ordinal: None}
        queue: Deque[InMemoryNwk] = deque([origin])
        while queue:
            node = queue.popleft()
            if node is goal:
                path = [node]
                back = previous[node.ordinal]
                while back is not None:
                    path.append(back)
                    back = previous[back.ordinal]
                path.reverse()
                return path
            for peer in self.neighbors(node.ordinal):
                if peer.ordinal in previous:
                    continue
                if not peer.routing_capable or peer.extended_pan_id != origin.extended_pan_id:
                    continue
                previous[peer.ordinal] = node
                queue.append(peer)
        return None

    def transmit(self, sender: "InMemoryNwk", receiver: Optional["InMemoryNwk"], frame: DataFrame) -> None:
        now = self.scheduler.get_current_time()
        if receiver is None or not self.is_link_up(sender.ordinal, receiver.ordinal):
            _logger.debug(f"[sim_t={now:012.6f}s] Frame dropped      node={sender.ordinal} no usable link")
            self.frames_lost += 1
            return
        self.frames_transmitted += 1
        if self.loss_probability > 0.0 and self._rnd.random() < self.loss_probability:
            _logger.debug(f"[sim_t={now:012.6f}s] Frame lost         {sender.ordinal}->{receiver.ordinal}")
            self.frames_lost += 1
            return
        delay = self.hop_delay_s
        if self.hop_jitter_s > 0.0:
            delay += self._rnd.uniform(0.0, self.hop_jitter_s)
        self.scheduler.schedule_event(delay, lambda: receiver.receive_frame(frame))


class InMemoryNwk(ZigbeeNwk):

    def __init__(self, medium: MeshMedium, ordinal: int, ieee_address: int):
        self.medium = medium
        self.scheduler = medium.scheduler
        self.ordinal = ordinal
        self._ieee_address = ieee_address
        self._network_address = UNASSIGNED_SHORT_ADDRESS
        self._listener: NwkListener | None = None

        self.extended_pan_id: int | None = None
        self.pan_id: int | None = None
        self.channel: int | None = None
        self.depth = 0
        self.is_coordinator = False
        self.device_type: DeviceType | None = None
        self.router_started = False
        self.parent: InMemoryNwk | None = None
        self.children: List[InMemoryNwk] = []

        self.routing_table: Dict[int, RouteEntry] = {}
        self.route_discovery_table: List[RouteDiscoveryEntry] = []

    # --- identity ---

    @property
    def network_address(self) -> int:
        return self._network_address

    @property
    def ieee_address(self) -> int:
        return self._ieee_address

    @property
    def associated(self) -> bool:
        return self._network_address != UNASSIGNED_SHORT_ADDRESS

    @property
    def routing_capable(self) -> bool:
        return self.associated and (self.is_coordinator or self.router_started)

    @property
    def permits_joining(self) -> bool:
        return self.routing_capable and len(self.children) < self.medium.max_children

    def set_listener(self, listener: NwkListener) -> None:
        self._listener = listener

    def _notify(self, confirm: NwkConfirm) -> None:
        if self._listener is None:
            _logger.debug(f"Node {self.ordinal}: no listener for {type(confirm).__name__}")
            return
        self._listener(confirm)

    def _assign(self, address: int) -> None:
        self._network_address = address
        self.medium.register_address(self)

    # --- management primitives ---

    def nlme_network_formation_request(self, params: NlmeNetworkFormationRequestParams) -> None:
        channels = channels_in_mask(params.scan_channel_mask)
        if not channels or self.associated:
            self.scheduler.schedule_event(
                0.0, lambda: self._notify(NlmeNetworkFormationConfirmParams(NwkStatus.INVALID_REQUEST)))
            return

        def confirm() -> None:
            self.is_coordinator = True
            self.extended_pan_id = self._ieee_address
            self.pan_id = derive_pan_id(self._ieee_address)
            self.channel = channels[0]
            self.depth = 0
            self._assign(COORDINATOR_SHORT_ADDRESS)
            self._notify(NlmeNetworkFormationConfirmParams(NwkStatus.SUCCESS))

        self.scheduler.schedule_event(scan_time_s(params.scan_channel_mask, params.scan_duration), confirm)

    def nlme_network_discovery_request(self, params: NlmeNetworkDiscoveryRequestParams) -> None:
        scanned = set(channels_in_mask(params.scan_channel_mask))

        def confirm() -> None:
            descriptors: List[NetworkDescriptor] = []
            seen: Set[int] = set()
            for peer in self.medium.neighbors(self.ordinal):
                if not peer.routing_capable or peer.channel not in scanned:
                    continue
                if peer.extended_pan_id in seen:
                    continue
                seen.add(peer.extended_pan_id)
                descriptors.append(NetworkDescriptor(
                    extended_pan_id=peer.extended_pan_id,
                    logical_channel=peer.channel,
                    pan_id=peer.pan_id,
                    permit_joining=peer.permits_joining,
                ))
            status = NwkStatus.SUCCESS if descriptors else NwkStatus.NO_NETWORKS
            self._notify(NlmeNetworkDiscoveryConfirmParams(status, tuple(descriptors)))

        self.scheduler.schedule_event(scan_time_s(params.scan_channel_mask, params.scan_duration), confirm)

    def nlme_join_request(self, params: NlmeJoinRequestParams) -> None:
        def confirm() -> None:
            if params.rejoin_network != JoiningMethod.ASSOCIATION:
                self._notify(NlmeJoinConfirmParams(NwkStatus.INVALID_REQUEST))
                return
            if self.associated:
                self._notify(NlmeJoinConfirmParams(NwkStatus.INVALID_REQUEST))
                return
            candidates = [p for p in self.medium.neighbors(self.ordinal)
                          if p.permits_joining and p.extended_pan_id == params.extended_pan_id]
            if not candidates:
                self._notify(NlmeJoinConfirmParams(NwkStatus.NOT_PERMITTED))
                return
            parent = min(candidates, key=lambda p: (p.depth, p.ordinal))
            capability = CapabilityInformation.from_byte(params.capability_info)

            self.parent = parent
            parent.children.append(self)
            self.device_type = capability.device_type
            self.extended_pan_id = parent.extended_pan_id
            self.pan_id = parent.pan_id
            self.channel = parent.channel
            self.depth = parent.depth + 1
            self._assign(self.medium.allocate_address())
            self._notify(NlmeJoinConfirmParams(NwkStatus.SUCCESS, self._network_address, self.extended_pan_id))

        self.scheduler.schedule_event(ASSOCIATION_DELAY_S, confirm)

    def nlme_start_router_request(self, params: NlmeStartRouterRequestParams) -> None:
        if not self.associated or self.device_type != DeviceType.ROUTER:
            _logger.warning(f"Node {self.ordinal}: START-ROUTER ignored (not associated as a router)")
            return
        self.router_started = True

    # --- data path ---

    def nlde_data_request(self, params: NldeDataRequestParams, packet: NwkPacket) -> None:
        frame = DataFrame(
            src_address=self._network_address,
            dst_address=params.dst_address,
            radius=params.radius or DEFAULT_RADIUS,
            discover_route=params.discover_route,
            packet=packet,
        )
        self.scheduler.schedule_event(0.0, lambda: self._route_frame(frame, originator=True))

    def receive_frame(self, frame: DataFrame) -> None:
        if frame.dst_address == self._network_address:
            self._notify(NldeDataIndicationParams(frame.src_address, frame.dst_address, frame.packet.copy()))
            return
        self._route_frame(frame, originator=False)

    def _route_frame(self, frame: DataFrame, *, originator: bool) -> None:
        now = self.scheduler.get_current_time()
        if not self.associated:
            _logger.debug(f"[sim_t={now:012.6f}s] Frame dropped      node={self.ordinal} not associated")
            return

        next_hop, _ = self.find_route(frame.dst_address)
        if (next_hop == UNREACHABLE and self.routing_capable
                and frame.discover_route == DiscoverRouteType.ENABLE_ROUTE_DISCOVERY):
            found = self._discover_route(frame.dst_address)
            if originator:
                status = NwkStatus.SUCCESS if found else NwkStatus.ROUTE_DISCOVERY_FAILED
                self._notify(NlmeRouteDiscoveryConfirmParams(status, frame.dst_address))
            next_hop, _ = self.find_route(frame.dst_address)

        if next_hop == UNREACHABLE:
            _logger.debug(f"[sim_t={now:012.6f}s] Frame no route     node={self.ordinal} "
                          f"dst={format_short_address(frame.dst_address)}")
            return
        if frame.radius <= 0:
            _logger.debug(f"[sim_t={now:012.6f}s] Frame radius spent node={self.ordinal}")
            return
        receiver = self.medium.find_by_short_address(next_hop)
        self.medium.transmit(self, receiver, replace(frame, radius=frame.radius - 1))

    def _discover_route(self, destination: int) -> bool:
        path = self.medium.route_path(self, destination)
        status = NwkStatus.SUCCESS if path else NwkStatus.ROUTE_DISCOVERY_FAILED
        self.route_discovery_table.append(RouteDiscoveryEntry(
            route_request_id=self.medium.next_route_request_id(),
            source_address=self._network_address,
            destination=destination,
            path_cost=len(path) - 1 if path else 0,
            status=status,
        ))
        if not path:
            return False
        for hop, next_node in zip(path, path[1:]):
            hop.routing_table[destination] = RouteEntry(destination, next_node.network_address)
        return True

    def neighbor_entries(self) -> List[NeighborEntry]:
        entries: List[NeighborEntry] = []
        if self.parent is not None:
            entries.append(self._entry(self.parent, Relationship.PARENT))
        for child in self.children:
            entries.append(self._entry(child, Relationship.CHILD))
        if self.routing_capable:
            for peer in self.medium.neighbors(self.ordinal):
                if peer is self.parent or peer in self.children:
                    continue
                if peer.routing_capable and peer.extended_pan_id == self.extended_pan_id:
                    entries.append(self._entry(peer, Relationship.SIBLING))
        return entries

    @staticmethod
    def _entry(peer: "InMemoryNwk", relationship: Relationship) -> NeighborEntry:
        if peer.is_coordinator:
            device_type = "COORDINATOR"
        elif peer.device_type == DeviceType.ROUTER:
            device_type = "ROUTER"
        else:
            device_type = "END_DEVICE"
        return NeighborEntry(peer.network_address, peer.ieee_address, device_type, relationship, peer.depth)

    def find_route(self, destination: int) -> Tuple[int, bool]:
        if not self.associated:
            return UNREACHABLE, False
        if any(e.network_address == destination for e in self.neighbor_entries()):
            return destination, True
        if not self.routing_capable:
            if self.parent is not None:
                return self.parent.network_address, True
            return UNREACHABLE, False
        route = self.routing_table.get(destination)
        if route is None:
            return UNREACHABLE, False
        return route.next_hop, False

    # --- diagnostics ---

    def _header(self, title: str) -> str:
        return (f"{title} (Node {self.ordinal} | [{format_short_address(self._network_address)} | "
                f"{format_extended_address(self._ieee_address)}]):\n")

    def print_neighbor_table(self, stream: TextIO) -> None:
        stream.write(self._header("Neighbor Table"))
        stream.write(f"{'Neighbor Address':<18}{'IEEE Address':<25}{'Device Type':<14}{'Relationship':<14}Depth\n")
        for e in self.neighbor_entries():
            stream.write(f"{format_short_address(e.network_address):<18}"
                         f"{format_extended_address(e.ieee_address):<25}"
                         f"{e.device_type:<14}{e.relationship.name:<14}{e.depth}\n")

    def print_routing_table(self, stream: TextIO) -> None:
        stream.write(self._header("Routing Table"))
        stream.write(f"{'Destination':<14}{'Status':<10}Next hop\n")
        for dst in sorted(self.routing_table):
            entry = self.routing_table[dst]
            stream.write(f"{format_short_address(dst):<14}{'ACTIVE':<10}{format_short_address(entry.next_hop)}\n")

    def print_route_discovery_table(self, stream: TextIO) -> None:
        stream.write(self._header("Route Discovery Table"))
        stream.write(f"{'RREQ ID':<10}{'Source':<10}{'Destination':<14}{'Cost':<6}Status\n")
        for e in self.route_discovery_table:
            stream.write(f"{e.route_request_id:<10}{format_short_address(e.source_address):<10}"
                         f"{format_short_address(e.destination):<14}{e.path_cost:<6}{e.status.name}\n")
