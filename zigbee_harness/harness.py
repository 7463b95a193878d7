from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, TextIO

from des.des import DiscreteEventSimulator
from zigbee_harness.correlator import PacketCorrelator
from zigbee_harness.device import Device, DeviceRole, JoinState
from zigbee_harness.events import BRING_UP_EVENTS, DataIndication, NwkEvent, RouteDiscoveryConfirm, wrap_confirm
from zigbee_harness.packet_statistics import MetricsReport
from zigbee_harness.registry import DeviceRegistry, default_extended_address
from zigbee_harness.roles import RolePartition
from zigbee_harness.scenario import Scenario
from zigbee_harness.sequencer import BringUpConfig, BringUpSequencer
from zigbee_harness.trace_route import DEFAULT_LOOP_THRESHOLD, DEFAULT_MAX_HOPS, TraceResult, trace_route
from zigbee_nwk.addresses import UNASSIGNED_SHORT_ADDRESS, UNREACHABLE, format_short_address
from zigbee_nwk.in_memory_nwk import MeshMedium
from zigbee_nwk.params import DiscoverRouteType, NldeDataRequestParams, NwkPacket, NwkStatus

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediumConfig:
    hop_delay_s: float = 0.004
    hop_jitter_s: float = 0.002
    loss_probability: float = 0.0
    link_failure_percent: float = 0.0
    max_children: int = 20
    seed: int = 0

    @staticmethod
    def from_mapping(d: Mapping[str, Any], *, seed: int = 0) -> "MediumConfig":
        """Reads the medium keys of the `topology` section; missing keys keep their defaults."""
        if not isinstance(d, Mapping):
            raise ValueError("Expected mapping for topology")
        defaults = MediumConfig()
        return MediumConfig(
            hop_delay_s=float(d.get("hop_delay_s", defaults.hop_delay_s)),
            hop_jitter_s=float(d.get("hop_jitter_s", defaults.hop_jitter_s)),
            loss_probability=float(d.get("loss_probability", defaults.loss_probability)),
            link_failure_percent=float(d.get("link_failure_percent", defaults.link_failure_percent)),
            max_children=int(d.get("max_children", defaults.max_children)),
            seed=int(seed),
        )


@dataclass(frozen=True)
class TraceConfig:
    max_hops: int = DEFAULT_MAX_HOPS
    loop_threshold: int = DEFAULT_LOOP_THRESHOLD

    def __post_init__(self) -> None:
        if self.max_hops < 1 or self.loop_threshold < 1:
            raise ValueError("trace max_hops and loop_threshold must be >= 1")

    @staticmethod
    def from_mapping(d: Mapping[str, Any] | None) -> "TraceConfig":
        if d is None:
            return TraceConfig()
        if not isinstance(d, Mapping):
            raise ValueError("Expected mapping for trace")
        return TraceConfig(
            max_hops=int(d.get("max_hops", DEFAULT_MAX_HOPS)),
            loop_threshold=int(d.get("loop_threshold", DEFAULT_LOOP_THRESHOLD)),
        )


class ZigbeeMeshHarness(ABC):
    def __init__(self, name: str, partition: RolePartition, *,
                 bring_up: BringUpConfig | None = None,
                 medium: MediumConfig | None = None,
                 trace: TraceConfig | None = None,
                 extended_address_of: Callable[[int], int] = default_extended_address):
        """Base class for mesh topologies driven through bring-up and a traffic scenario.

        Parameters:
        name: name of the topology
        partition: which ordinals are the coordinator, routers and end devices
        bring_up: formation/discovery timing and request parameters
        medium: reference network-layer medium settings (delay, jitter, loss, link failures)
        trace: hop budget and loop threshold of the end-of-run trace route
        """
        self.name = name
        self.simulator = DiscreteEventSimulator()
        self.registry = DeviceRegistry(partition, extended_address_of)
        self.medium_config = medium or MediumConfig()
        self.medium = MeshMedium(
            self.simulator,
            hop_delay_s=self.medium_config.hop_delay_s,
            hop_jitter_s=self.medium_config.hop_jitter_s,
            loss_probability=self.medium_config.loss_probability,
            link_failure_percent=self.medium_config.link_failure_percent,
            max_children=self.medium_config.max_children,
            seed=self.medium_config.seed,
        )
        self.sequencer = BringUpSequencer(self.simulator, self.registry, bring_up)
        self.correlator = PacketCorrelator()
        self.trace_config = trace or TraceConfig()

        self.stop_time: float | None = None
        self.metrics_report: MetricsReport | None = None
        self.trace_result: TraceResult | None = None
        self.tables: Dict[str, str] = {}
        self.route_discovery_results: List[tuple[int, NwkStatus]] = []
        self._scenario: Scenario | None = None

    def create(self) -> None:
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("Creating topology...")
        for device in self.registry:
            device.nwk = self.medium.attach(device.ordinal, device.extended_address)
            device.nwk.set_listener(lambda confirm, d=device: self.dispatch(wrap_confirm(d, confirm)))
        self.create_topology()
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("topology created.")

        if self.medium_config.link_failure_percent > 0.0:
            logging.info(f"Link failure summary: {len(self.medium.failed_links)} links marked as failed "
                         f"{self.medium.failed_links}")

        self.sequencer.schedule()

    @abstractmethod
    def create_topology(self) -> None:
        pass

    def add_link(self, a: int, b: int) -> None:
        for ordinal in (a, b):
            if not 0 <= ordinal < len(self.registry):
                raise ValueError(f"link ({a}, {b}) references unknown device {ordinal}")
        self.medium.add_link(a, b)

    def assign_scenario(self, scenario: Scenario) -> None:
        logging.info("Creating scenario...")
        self._scenario = scenario
        self._scenario.install(self)
        logging.info("Scenario created.")

    def stop_at(self, time: float) -> None:
        self.stop_time = time

    def run(self) -> None:
        assert self.simulator is not None
        self.simulator.run(until=self.stop_time)

    def now(self) -> float:
        return self.simulator.get_current_time()

    def _sim_time_prefix(self) -> str:
        return f"[sim_t={self.now():012.6f}s]"

    # --- event dispatch ---

    def dispatch(self, event: NwkEvent) -> None:
        if isinstance(event, BRING_UP_EVENTS):
            self.sequencer.handle_event(event)
            return

        if isinstance(event, RouteDiscoveryConfirm):
            status = event.params.status
            self.route_discovery_results.append((event.device.ordinal, status))
            log = _logger.info if status == NwkStatus.SUCCESS else _logger.warning
            log(f"{self._sim_time_prefix()} {event.device.name}: route discovery to "
                f"{format_short_address(event.params.dst_address)} status={status.name}")
            return

        if isinstance(event, DataIndication):
            self.correlator.receive(event.params.packet, self.now(), receiver=event.device.name)
            return

        raise TypeError(f"Unknown NWK event type: {type(event)}")

    # --- traffic ---

    def send_data(self, source: Device, destination: Device, payload_size_bytes: int) -> int:
        """Tag and send one packet. The destination's address is read now, not at scheduling time."""
        packet = NwkPacket(size_bytes=payload_size_bytes)
        packet_id = self.correlator.send(packet, self.now())
        params = NldeDataRequestParams(
            dst_address=destination.network_address,
            nsdu_handle=1,
            discover_route=DiscoverRouteType.ENABLE_ROUTE_DISCOVERY,
        )
        _logger.debug(f"{self._sim_time_prefix()} {source.name} sending packet id={packet_id} to {destination.name}")
        self.simulator.schedule_event(0.0, lambda: source.nwk.nlde_data_request(params, packet))
        return packet_id

    # --- diagnostics ---

    def _dump(self, title: str, device: Device, printer: Callable[[TextIO], None]) -> str:
        buffer = io.StringIO()
        printer(buffer)
        text = buffer.getvalue()
        self.tables[f"{title} {device.name}"] = text
        logging.info(f"{self._sim_time_prefix()} {title} of {device.name}:\n{text}")
        return text

    def dump_neighbor_table(self, device: Device) -> str:
        return self._dump("neighbor table", device, device.nwk.print_neighbor_table)

    def dump_routing_table(self, device: Device) -> str:
        return self._dump("routing table", device, device.nwk.print_routing_table)

    def dump_route_discovery_table(self, device: Device) -> str:
        return self._dump("route discovery table", device, device.nwk.print_route_discovery_table)

    def _find_route(self, current: int, destination: int) -> tuple[int, bool]:
        device = self.registry.by_network_address(current)
        if device is None:
            return UNREACHABLE, False
        return device.nwk.find_route(destination)

    def trace(self, source: Device, destination: Device) -> Optional[TraceResult]:
        """Trace the route between two devices using their addresses at execution time."""
        src, dst = source.network_address, destination.network_address
        if src == UNASSIGNED_SHORT_ADDRESS or dst == UNASSIGNED_SHORT_ADDRESS:
            _logger.warning(f"{self._sim_time_prefix()} Trace route cancelled: source [{format_short_address(src)}] "
                            f"or destination [{format_short_address(dst)}] has no network address")
            return None

        result = trace_route(src, dst, self._find_route, self.registry.by_network_address,
                             max_hops=self.trace_config.max_hops,
                             loop_threshold=self.trace_config.loop_threshold)
        self.trace_result = result
        lines = "\n".join(result.hop_lines()) or "(source is the destination)"
        log = logging.info if result.reached else logging.warning
        log(f"{self._sim_time_prefix()} Traceroute {source.name} -> {destination.name} "
            f"[{format_short_address(dst)}]: {result.status.name}\n{lines}")
        return result

    def finalize(self) -> MetricsReport:
        report = self.correlator.finalize()
        self.metrics_report = report
        message = "\n".join(f"{k}: {v}" for k, v in report.as_dict().items())
        logging.info(f"{self._sim_time_prefix()} Simulation results:\n{message}")
        return report

    # --- results ---

    def get_results(self) -> Dict[str, Any]:
        report = self.metrics_report or self.correlator.finalize()
        devices = list(self.registry)

        topology_summary = {
            'devices count': len(devices),
            'routers count': len(self.registry.with_role(DeviceRole.ROUTER)),
            'end devices count': len(self.registry.with_role(DeviceRole.END_DEVICE)),
            'links count': len(self.medium.links),
            'failed links': len(self.medium.failed_links),
            'associated devices': len([d for d in devices if d.is_associated]),
            'failed joins': len([d for d in devices if d.join_state == JoinState.JOIN_FAILED]),
        }

        bring_up_summary = {
            d.name: {
                'state': d.join_state.name,
                'network address': format_short_address(d.network_address),
                'join attempts': d.join_attempts,
            }
            for d in devices
        }

        run_statistics = report.as_dict()
        run_statistics['total run time (simulator time in seconds)'] = self.simulator.end_time
        run_statistics['frames transmitted'] = self.medium.frames_transmitted
        run_statistics['frames lost'] = self.medium.frames_lost

        trace_summary: Dict[str, Any] = {'status': 'NOT RUN', 'hops': []}
        if self.trace_result is not None:
            trace_summary = {
                'status': self.trace_result.status.name,
                'hops': self.trace_result.hop_lines(),
            }

        return {
            'topology summary': topology_summary,
            'parameters summary': self.get_parameters_summary(),
            'run statistics': run_statistics,
            'bring-up summary': bring_up_summary,
            'trace route': trace_summary,
            'route discoveries': [
                {'device': self.registry[ordinal].name, 'status': status.name}
                for ordinal, status in self.route_discovery_results
            ],
            'tables': dict(self.tables),
            'delay samples': [(s.packet_id, s.send_time, s.delay) for s in self.correlator.metrics.delay_samples],
        }

    def get_parameters_summary(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            'topology': self.name,
            'hop_delay_s': self.medium_config.hop_delay_s,
            'hop_jitter_s': self.medium_config.hop_jitter_s,
            'loss_probability': self.medium_config.loss_probability,
            'link_failure_percent': self.medium_config.link_failure_percent,
            'seed': self.medium_config.seed,
            'join_max_retries': self.sequencer.config.join_retry.max_retries,
            'trace_max_hops': self.trace_config.max_hops,
            'trace_loop_threshold': self.trace_config.loop_threshold,
        }
        if self._scenario is not None:
            params.update(self._scenario.parameters_summary())
        return params

    def get_device(self, ordinal: int) -> Device:
        return self.registry[ordinal]
