from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from des.des import DiscreteEventSimulator
from zigbee_harness.device import Device, DeviceRole, JoinState
from zigbee_harness.events import DiscoveryConfirm, FormationConfirm, JoinConfirm, NwkEvent
from zigbee_harness.registry import DeviceRegistry
from zigbee_nwk.addresses import format_short_address
from zigbee_nwk.params import (
    ALL_CHANNELS,
    CapabilityInformation,
    DeviceType,
    JoiningMethod,
    NlmeJoinRequestParams,
    NlmeNetworkDiscoveryRequestParams,
    NlmeNetworkFormationRequestParams,
    NlmeStartRouterRequestParams,
    NwkStatus,
)

_logger = logging.getLogger(__name__)


class BringUpAbortedError(RuntimeError):
    """Network formation or discovery failed; the run cannot continue."""


@dataclass(frozen=True)
class JoinRetryPolicy:
    """What to do when a JOIN is refused.

    `max_retries=0` leaves the device unassociated for the rest of the run. Otherwise the
    device goes back to discovery `backoff_s` seconds later, up to `max_retries` times.
    """

    max_retries: int = 0
    backoff_s: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("join retry max_retries must be >= 0")
        if self.backoff_s < 0:
            raise ValueError("join retry backoff_s must be >= 0")

    @staticmethod
    def from_mapping(d: Mapping[str, Any] | None) -> "JoinRetryPolicy":
        if d is None:
            return JoinRetryPolicy()
        if not isinstance(d, Mapping):
            raise ValueError("Expected mapping for bring_up.join_retry")
        return JoinRetryPolicy(
            max_retries=int(d.get("max_retries", 0)),
            backoff_s=float(d.get("backoff_s", 1.0)),
        )


def _as_int(raw: Any, path: str) -> int:
    """Accepts YAML ints as well as strings such as '0x07FFF800'."""
    try:
        return int(raw, 0) if isinstance(raw, str) else int(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Expected integer at '{path}', got {raw!r}") from e


@dataclass(frozen=True)
class BringUpConfig:
    formation_time_s: float = 1.0
    discovery_start_s: float = 3.0
    discovery_stagger_s: float = 1.0
    formation_channel_mask: int = ALL_CHANNELS
    formation_scan_duration: int = 0
    beacon_order: int = 15
    superframe_order: int = 15
    discovery_channel_mask: int = 0x00007800  # channels 11..14
    discovery_scan_duration: int = 2
    join_retry: JoinRetryPolicy = JoinRetryPolicy()

    def discovery_time_s(self, position: int) -> float:
        return self.discovery_start_s + position * self.discovery_stagger_s

    @staticmethod
    def from_mapping(d: Mapping[str, Any] | None) -> "BringUpConfig":
        """Every key is optional; missing keys keep their defaults."""
        if d is None:
            return BringUpConfig()
        if not isinstance(d, Mapping):
            raise ValueError("Expected mapping for bring_up")
        defaults = BringUpConfig()
        cfg = BringUpConfig(
            formation_time_s=float(d.get("formation_time_s", defaults.formation_time_s)),
            discovery_start_s=float(d.get("discovery_start_s", defaults.discovery_start_s)),
            discovery_stagger_s=float(d.get("discovery_stagger_s", defaults.discovery_stagger_s)),
            formation_channel_mask=_as_int(d.get("formation_channel_mask", defaults.formation_channel_mask),
                                           "bring_up.formation_channel_mask"),
            formation_scan_duration=_as_int(d.get("formation_scan_duration", defaults.formation_scan_duration),
                                            "bring_up.formation_scan_duration"),
            beacon_order=_as_int(d.get("beacon_order", defaults.beacon_order), "bring_up.beacon_order"),
            superframe_order=_as_int(d.get("superframe_order", defaults.superframe_order),
                                     "bring_up.superframe_order"),
            discovery_channel_mask=_as_int(d.get("discovery_channel_mask", defaults.discovery_channel_mask),
                                           "bring_up.discovery_channel_mask"),
            discovery_scan_duration=_as_int(d.get("discovery_scan_duration", defaults.discovery_scan_duration),
                                            "bring_up.discovery_scan_duration"),
            join_retry=JoinRetryPolicy.from_mapping(d.get("join_retry")),
        )
        if cfg.discovery_stagger_s < 0 or cfg.formation_time_s < 0 or cfg.discovery_start_s < 0:
            raise ValueError("bring_up times must be >= 0")
        return cfg


def _sim_time_prefix(sim: DiscreteEventSimulator) -> str:
    return f"[sim_t={sim.get_current_time():012.6f}s]"


class BringUpSequencer:
    """Event-driven state machine that takes every device from Idle to RouterStarted / Ready.

    `schedule()` puts the coordinator's formation request and the staggered discovery
    requests on the simulator. Afterwards the sequencer only reacts to confirm events,
    each of which is resolved into either the next request or a logged final state.
    """

    def __init__(self, sim: DiscreteEventSimulator, registry: DeviceRegistry, config: BringUpConfig | None = None):
        self.sim = sim
        self.registry = registry
        self.config = config or BringUpConfig()

    def schedule(self) -> None:
        coordinator = self.registry.coordinator
        self.sim.schedule_at(self.config.formation_time_s, lambda: self._request_formation(coordinator))
        for position, device in enumerate(self.registry.joiners()):
            self.sim.schedule_at(self.config.discovery_time_s(position),
                                 lambda d=device: self._request_discovery(d))

    @property
    def last_discovery_time_s(self) -> float:
        return self.config.discovery_time_s(max(0, len(self.registry.joiners()) - 1))

    # --- requests ---

    def _request_formation(self, device: Device) -> None:
        _logger.info(f"{_sim_time_prefix(self.sim)} {device.name}: NLME-NETWORK-FORMATION.request")
        device.join_state = JoinState.FORMATION_REQUESTED
        device.nwk.nlme_network_formation_request(NlmeNetworkFormationRequestParams(
            scan_channel_mask=self.config.formation_channel_mask,
            scan_duration=self.config.formation_scan_duration,
            beacon_order=self.config.beacon_order,
            superframe_order=self.config.superframe_order,
        ))

    def _request_discovery(self, device: Device) -> None:
        _logger.info(f"{_sim_time_prefix(self.sim)} {device.name}: NLME-NETWORK-DISCOVERY.request")
        device.join_state = JoinState.DISCOVERY_REQUESTED
        device.nwk.nlme_network_discovery_request(NlmeNetworkDiscoveryRequestParams(
            scan_channel_mask=self.config.discovery_channel_mask,
            scan_duration=self.config.discovery_scan_duration,
        ))

    @staticmethod
    def join_request_for(device: Device, extended_pan_id: int) -> NlmeJoinRequestParams:
        device_type = DeviceType.ROUTER if device.role == DeviceRole.ROUTER else DeviceType.END_DEVICE
        capability = CapabilityInformation(device_type=device_type, allocate_address=True)
        return NlmeJoinRequestParams(
            extended_pan_id=extended_pan_id,
            capability_info=capability.to_byte(),
            rejoin_network=JoiningMethod.ASSOCIATION,
        )

    # --- confirms ---

    def handle_event(self, event: NwkEvent) -> None:
        if isinstance(event, FormationConfirm):
            self._on_formation_confirm(event)
        elif isinstance(event, DiscoveryConfirm):
            self._on_discovery_confirm(event)
        elif isinstance(event, JoinConfirm):
            self._on_join_confirm(event)
        else:
            raise TypeError(f"Not a bring-up event: {type(event)}")

    def _on_formation_confirm(self, event: FormationConfirm) -> None:
        device = event.device
        status = event.params.status
        if device.join_state != JoinState.FORMATION_REQUESTED:
            _logger.warning(f"{_sim_time_prefix(self.sim)} {device.name}: unexpected formation confirm "
                            f"in state {device.join_state.name}, ignored")
            return
        if status != NwkStatus.SUCCESS:
            raise BringUpAbortedError(f"Network formation failed on {device.name} | status: {status.name}")
        device.network_address = device.nwk.network_address
        device.join_state = JoinState.FORMATION_CONFIRMED
        _logger.info(f"{_sim_time_prefix(self.sim)} {device.name}: network formed, "
                     f"short address {format_short_address(device.network_address)}")

    def _on_discovery_confirm(self, event: DiscoveryConfirm) -> None:
        device = event.device
        params = event.params
        if device.join_state != JoinState.DISCOVERY_REQUESTED:
            _logger.warning(f"{_sim_time_prefix(self.sim)} {device.name}: unexpected discovery confirm "
                            f"in state {device.join_state.name}, ignored")
            return
        if params.status != NwkStatus.SUCCESS or not params.network_descriptors:
            raise BringUpAbortedError(
                f"Unable to discover networks on {device.name} | status: {params.status.name}, "
                f"networks found: {len(params.network_descriptors)}")

        device.join_state = JoinState.DISCOVERY_CONFIRMED
        _logger.info(f"{_sim_time_prefix(self.sim)} {device.name}: network discovery confirm, "
                     f"networks found ({len(params.network_descriptors)})")
        for nd in params.network_descriptors:
            _logger.debug(f"  ExtPanID: {nd.extended_pan_id:#x} CH: {nd.logical_channel} "
                          f"PanID: {nd.pan_id:#06x} Stack profile: {nd.stack_profile}")

        join_params = self.join_request_for(device, params.network_descriptors[0].extended_pan_id)
        _logger.debug(f"{_sim_time_prefix(self.sim)} {device.name}: joining as {device.role.name}")
        device.join_state = JoinState.JOIN_REQUESTED
        device.join_attempts += 1
        self.sim.schedule_event(0.0, lambda: device.nwk.nlme_join_request(join_params))

    def _on_join_confirm(self, event: JoinConfirm) -> None:
        device = event.device
        params = event.params
        if device.join_state != JoinState.JOIN_REQUESTED:
            _logger.warning(f"{_sim_time_prefix(self.sim)} {device.name}: unexpected join confirm "
                            f"in state {device.join_state.name}, ignored")
            return

        if params.status != NwkStatus.SUCCESS:
            self._on_join_failure(device, params.status)
            return

        device.network_address = params.network_address
        device.join_state = JoinState.JOIN_CONFIRMED
        _logger.info(f"{_sim_time_prefix(self.sim)} {device.name}: joined SUCCESSFULLY with short address "
                     f"{format_short_address(params.network_address)} on ExtPanId {params.extended_pan_id:#x}")

        if device.role == DeviceRole.ROUTER:
            _logger.info(f"{_sim_time_prefix(self.sim)} {device.name}: starting as router")
            self.sim.schedule_event(0.0, lambda: device.nwk.nlme_start_router_request(NlmeStartRouterRequestParams(
                beacon_order=self.config.beacon_order,
                superframe_order=self.config.superframe_order,
            )))
            device.join_state = JoinState.ROUTER_STARTED
        else:
            device.join_state = JoinState.READY

    def _on_join_failure(self, device: Device, status: NwkStatus) -> None:
        retry = self.config.join_retry
        retries_used = device.join_attempts - 1
        if retries_used < retry.max_retries:
            _logger.warning(f"{_sim_time_prefix(self.sim)} {device.name}: join FAILED with status {status.name}, "
                            f"retrying discovery in {retry.backoff_s}s "
                            f"({retries_used + 1}/{retry.max_retries})")
            device.join_state = JoinState.IDLE
            self.sim.schedule_event(retry.backoff_s, lambda: self._request_discovery(device))
            return
        _logger.warning(f"{_sim_time_prefix(self.sim)} {device.name}: join FAILED with status {status.name}, "
                        f"device stays unassociated")
        device.join_state = JoinState.JOIN_FAILED
