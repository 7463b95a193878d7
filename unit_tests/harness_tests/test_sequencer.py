import pytest

from des.des import DiscreteEventSimulator
from zigbee_harness.device import JoinState
from zigbee_harness.events import DiscoveryConfirm, FormationConfirm, JoinConfirm
from zigbee_harness.registry import DeviceRegistry
from zigbee_harness.roles import RolePartition
from zigbee_harness.sequencer import BringUpAbortedError, BringUpConfig, BringUpSequencer, JoinRetryPolicy
from zigbee_nwk.nwk import ZigbeeNwk
from zigbee_nwk.params import (
    CapabilityInformation,
    DeviceType,
    JoiningMethod,
    NetworkDescriptor,
    NlmeJoinConfirmParams,
    NlmeNetworkDiscoveryConfirmParams,
    NlmeNetworkFormationConfirmParams,
    NwkStatus,
)

EXT_PAN_ID = 0xCAFE


class RecordingNwk(ZigbeeNwk):
    """Network layer double that only records the requests it gets and when."""

    def __init__(self, sim, address=0xFFFF):
        self.sim = sim
        self.address = address
        self.calls = []

    @property
    def network_address(self):
        return self.address

    @property
    def ieee_address(self):
        return 0

    def _record(self, name, params):
        self.calls.append((name, self.sim.get_current_time(), params))

    def names(self):
        return [name for name, _, _ in self.calls]

    def set_listener(self, listener):
        pass

    def nlme_network_formation_request(self, params):
        self._record("formation", params)

    def nlme_network_discovery_request(self, params):
        self._record("discovery", params)

    def nlme_join_request(self, params):
        self._record("join", params)

    def nlme_start_router_request(self, params):
        self._record("start_router", params)

    def nlde_data_request(self, params, packet):
        self._record("data", params)

    def find_route(self, destination):
        return 0xFFFF, False

    def print_neighbor_table(self, stream):
        pass

    def print_routing_table(self, stream):
        pass

    def print_route_discovery_table(self, stream):
        pass


def _setup(config=None):
    sim = DiscreteEventSimulator()
    registry = DeviceRegistry(RolePartition.from_counts(4, 5))
    for d in registry:
        d.nwk = RecordingNwk(sim, address=0x0000 if d.ordinal == 0 else 0xFFFF)
    return sim, registry, BringUpSequencer(sim, registry, config)


def _discovered(device, *ext_pan_ids, status=NwkStatus.SUCCESS):
    descriptors = tuple(NetworkDescriptor(extended_pan_id=e, logical_channel=11, pan_id=0x1A2B) for e in ext_pan_ids)
    return DiscoveryConfirm(device=device, params=NlmeNetworkDiscoveryConfirmParams(status, descriptors))


def _joined(device, address):
    return JoinConfirm(device=device, params=NlmeJoinConfirmParams(NwkStatus.SUCCESS, address, EXT_PAN_ID))


def test_schedule_formation_then_staggered_discovery():
    sim, registry, sequencer = _setup()
    sequencer.schedule()
    sim.run()

    assert registry[0].nwk.names() == ["formation"]
    name, t, params = registry[0].nwk.calls[0]
    assert t == 1.0
    assert params.scan_channel_mask == 0x07FFF800
    assert (params.scan_duration, params.beacon_order, params.superframe_order) == (0, 15, 15)

    for ordinal in range(1, 10):
        calls = registry[ordinal].nwk.calls
        assert [(n, t) for n, t, _ in calls] == [("discovery", 3.0 + (ordinal - 1))]
        assert calls[0][2].scan_channel_mask == 0x00007800
        assert calls[0][2].scan_duration == 2
        assert registry[ordinal].join_state == JoinState.DISCOVERY_REQUESTED

    assert sequencer.last_discovery_time_s == 11.0


def test_formation_success_records_coordinator_address():
    sim, registry, sequencer = _setup()
    sequencer.schedule()
    sim.run(until=2.0)

    coordinator = registry.coordinator
    sequencer.handle_event(FormationConfirm(coordinator, NlmeNetworkFormationConfirmParams(NwkStatus.SUCCESS)))

    assert coordinator.join_state == JoinState.FORMATION_CONFIRMED
    assert coordinator.network_address == 0x0000
    assert coordinator.is_associated


def test_formation_failure_aborts_bring_up():
    sim, registry, sequencer = _setup()
    sequencer.schedule()
    sim.run(until=2.0)

    with pytest.raises(BringUpAbortedError):
        sequencer.handle_event(FormationConfirm(registry.coordinator,
                                                NlmeNetworkFormationConfirmParams(NwkStatus.STARTUP_FAILURE)))


@pytest.mark.parametrize("ordinal, device_type", [(2, DeviceType.ROUTER), (7, DeviceType.END_DEVICE)])
def test_discovery_success_joins_first_network_with_role_capability(ordinal, device_type):
    sim, registry, sequencer = _setup()
    device = registry[ordinal]
    device.join_state = JoinState.DISCOVERY_REQUESTED

    sequencer.handle_event(_discovered(device, EXT_PAN_ID, 0xBEEF))
    sim.run()

    assert device.nwk.names() == ["join"]
    params = device.nwk.calls[0][2]
    assert params.extended_pan_id == EXT_PAN_ID
    assert params.rejoin_network == JoiningMethod.ASSOCIATION
    capability = CapabilityInformation.from_byte(params.capability_info)
    assert capability.device_type == device_type
    assert capability.allocate_address
    assert device.join_state == JoinState.JOIN_REQUESTED
    assert device.join_attempts == 1


@pytest.mark.parametrize("status, ext_pan_ids", [
    (NwkStatus.NO_NETWORKS, ()),
    (NwkStatus.SUCCESS, ()),
])
def test_discovery_failure_aborts_bring_up(status, ext_pan_ids):
    sim, registry, sequencer = _setup()
    device = registry[3]
    device.join_state = JoinState.DISCOVERY_REQUESTED

    with pytest.raises(BringUpAbortedError):
        sequencer.handle_event(_discovered(device, *ext_pan_ids, status=status))


def test_end_device_join_does_not_start_router():
    sim, registry, sequencer = _setup()
    device = registry[7]
    device.join_state = JoinState.JOIN_REQUESTED

    sequencer.handle_event(_joined(device, 0x0707))
    sim.run()

    assert device.nwk.names() == []
    assert device.network_address == 0x0707
    assert device.join_state == JoinState.READY


def test_router_join_starts_router():
    sim, registry, sequencer = _setup()
    device = registry[2]
    device.join_state = JoinState.JOIN_REQUESTED

    sequencer.handle_event(_joined(device, 0x0202))
    sim.run()

    assert device.nwk.names() == ["start_router"]
    assert device.network_address == 0x0202
    assert device.join_state == JoinState.ROUTER_STARTED


def test_join_failure_leaves_device_unassociated_by_default():
    sim, registry, sequencer = _setup()
    device = registry[5]
    device.join_state = JoinState.JOIN_REQUESTED
    device.join_attempts = 1

    sequencer.handle_event(JoinConfirm(device, NlmeJoinConfirmParams(NwkStatus.NOT_PERMITTED)))
    sim.run()

    assert device.join_state == JoinState.JOIN_FAILED
    assert device.network_address == 0xFFFF
    assert not device.is_associated
    assert device.nwk.names() == []


def test_join_failure_retries_discovery_with_backoff():
    config = BringUpConfig(join_retry=JoinRetryPolicy(max_retries=1, backoff_s=2.0))
    sim, registry, sequencer = _setup(config)
    device = registry[5]

    device.join_state = JoinState.DISCOVERY_REQUESTED
    sequencer.handle_event(_discovered(device, EXT_PAN_ID))
    sim.run()
    sequencer.handle_event(JoinConfirm(device, NlmeJoinConfirmParams(NwkStatus.NOT_PERMITTED)))
    sim.run()

    assert device.nwk.names() == ["join", "discovery"]
    assert device.nwk.calls[1][1] == pytest.approx(2.0)
    assert device.join_state == JoinState.DISCOVERY_REQUESTED

    # second refusal uses up the only retry
    sequencer.handle_event(_discovered(device, EXT_PAN_ID))
    sim.run()
    sequencer.handle_event(JoinConfirm(device, NlmeJoinConfirmParams(NwkStatus.NOT_PERMITTED)))
    sim.run()

    assert device.join_attempts == 2
    assert device.join_state == JoinState.JOIN_FAILED


def test_confirm_in_unexpected_state_is_ignored():
    sim, registry, sequencer = _setup()
    device = registry[4]

    sequencer.handle_event(_joined(device, 0x0404))
    sim.run()

    assert device.join_state == JoinState.IDLE
    assert device.network_address == 0xFFFF
    assert device.nwk.names() == []


def test_invalid_retry_policy_is_rejected():
    with pytest.raises(ValueError):
        JoinRetryPolicy(max_retries=-1)
