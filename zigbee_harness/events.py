"""Events delivered by a device's network layer, tagged with the device they belong to.

Every confirm/indication a `ZigbeeNwk` emits is wrapped into one of these classes and
routed through a single dispatcher (`ZigbeeMeshHarness.dispatch`).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Type

from zigbee_harness.device import Device
from zigbee_nwk.nwk import NwkConfirm
from zigbee_nwk.params import (
    NldeDataIndicationParams,
    NlmeJoinConfirmParams,
    NlmeNetworkDiscoveryConfirmParams,
    NlmeNetworkFormationConfirmParams,
    NlmeRouteDiscoveryConfirmParams,
)


@dataclass(frozen=True)
class NwkEvent:
    device: Device


@dataclass(frozen=True)
class FormationConfirm(NwkEvent):
    params: NlmeNetworkFormationConfirmParams


@dataclass(frozen=True)
class DiscoveryConfirm(NwkEvent):
    params: NlmeNetworkDiscoveryConfirmParams


@dataclass(frozen=True)
class JoinConfirm(NwkEvent):
    params: NlmeJoinConfirmParams


@dataclass(frozen=True)
class RouteDiscoveryConfirm(NwkEvent):
    params: NlmeRouteDiscoveryConfirmParams


@dataclass(frozen=True)
class DataIndication(NwkEvent):
    params: NldeDataIndicationParams


_EVENT_TYPES: Dict[type, Callable[..., NwkEvent]] = {
    NlmeNetworkFormationConfirmParams: FormationConfirm,
    NlmeNetworkDiscoveryConfirmParams: DiscoveryConfirm,
    NlmeJoinConfirmParams: JoinConfirm,
    NlmeRouteDiscoveryConfirmParams: RouteDiscoveryConfirm,
    NldeDataIndicationParams: DataIndication,
}


def wrap_confirm(device: Device, confirm: NwkConfirm) -> NwkEvent:
    try:
        event_type = _EVENT_TYPES[type(confirm)]
    except KeyError:
        raise TypeError(f"Unknown NWK confirm type: {type(confirm)}") from None
    return event_type(device=device, params=confirm)


BRING_UP_EVENTS: tuple[Type[NwkEvent], ...] = (FormationConfirm, DiscoveryConfirm, JoinConfirm)
