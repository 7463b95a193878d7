"""Hop-by-hop route reconstruction over the network layer's next-hop lookup."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from zigbee_harness.device import Device
from zigbee_nwk.addresses import UNREACHABLE, format_short_address

FindRoute = Callable[[int, int], Tuple[int, bool]]
DeviceLookup = Callable[[int], Optional[Device]]

DEFAULT_MAX_HOPS = 30
DEFAULT_LOOP_THRESHOLD = 3


class TraceStatus(Enum):
    REACHED = 1
    UNREACHABLE = 2
    LOOP_DETECTED = 3
    NODE_NOT_FOUND = 4
    MAX_HOPS_EXCEEDED = 5


@dataclass(frozen=True)
class RouteHop:
    device: Device
    next_hop: int
    is_neighbor: bool


@dataclass
class TraceResult:
    source: int
    destination: int
    status: TraceStatus
    hops: List[RouteHop] = field(default_factory=list)
    # address at which the walk stopped (unknown node, unreachable lookup, revisited node)
    stopped_at: Optional[int] = None

    @property
    def reached(self) -> bool:
        return self.status == TraceStatus.REACHED

    def hop_lines(self) -> List[str]:
        lines = []
        for count, hop in enumerate(self.hops, start=1):
            suffix = " (*Neighbor)" if hop.is_neighbor else ""
            lines.append(f"{count}. {hop.device.describe()}: NextHop [{format_short_address(hop.next_hop)}]{suffix}")
        if self.status != TraceStatus.REACHED:
            where = format_short_address(self.stopped_at) if self.stopped_at is not None else "?"
            lines.append(f"{len(self.hops) + 1}. [{where}]: {self.status.name}")
        return lines


def trace_route(source: int, destination: int, find_route: FindRoute, device_lookup: DeviceLookup,
                *, max_hops: int = DEFAULT_MAX_HOPS,
                loop_threshold: int = DEFAULT_LOOP_THRESHOLD) -> TraceResult:
    """Follow next hops from `source` until `destination` is reached or the walk has to stop.

    `find_route(current, destination)` is the routing oracle as seen from `current`.
    A node that becomes current `loop_threshold` times ends the walk with LOOP_DETECTED; this
    check runs before the hop budget so that a cycle is never reported as MAX_HOPS_EXCEEDED.
    """
    if max_hops < 1 or loop_threshold < 1:
        raise ValueError("max_hops and loop_threshold must be >= 1")

    if source == destination:
        return TraceResult(source, destination, TraceStatus.REACHED)

    visits: Counter[int] = Counter()
    hops: List[RouteHop] = []
    current = source
    while True:
        visits[current] += 1
        if visits[current] >= loop_threshold:
            return TraceResult(source, destination, TraceStatus.LOOP_DETECTED, hops, stopped_at=current)
        if len(hops) > max_hops:
            return TraceResult(source, destination, TraceStatus.MAX_HOPS_EXCEEDED, hops, stopped_at=current)

        device = device_lookup(current)
        if device is None:
            return TraceResult(source, destination, TraceStatus.NODE_NOT_FOUND, hops, stopped_at=current)

        next_hop, is_neighbor = find_route(current, destination)
        if next_hop == UNREACHABLE:
            return TraceResult(source, destination, TraceStatus.UNREACHABLE, hops, stopped_at=current)

        hops.append(RouteHop(device, next_hop, is_neighbor))
        if next_hop == destination:
            return TraceResult(source, destination, TraceStatus.REACHED, hops)
        current = next_hop
