import pytest

from zigbee_harness.device import DeviceRole, JoinState
from zigbee_harness.registry import DeviceRegistry
from zigbee_harness.roles import RolePartition


def _registry():
    return DeviceRegistry(RolePartition.from_counts(4, 5))


def test_devices_are_ordered_with_default_addresses():
    r = _registry()

    assert len(r) == 10
    assert [d.ordinal for d in r] == list(range(10))
    assert r.coordinator.extended_address == 0xCAFE
    assert r[3].extended_address == 3
    assert r[3].name == "ZR-3"
    assert r[7].name == "ZED-7"
    assert all(d.network_address == 0xFFFF and d.join_state == JoinState.IDLE for d in r)


def test_lookup_by_role_and_joiners():
    r = _registry()

    assert [d.ordinal for d in r.with_role(DeviceRole.ROUTER)] == [1, 2, 3, 4]
    assert [d.ordinal for d in r.joiners()] == list(range(1, 10))


def test_lookup_by_addresses():
    r = _registry()
    r[6].network_address = 0x1234

    assert r.by_network_address(0x1234) is r[6]
    assert r.by_network_address(0x4321) is None
    # unassigned devices never match
    assert r.by_network_address(0xFFFF) is None
    assert r.by_extended_address(0xCAFE) is r.coordinator


def test_unknown_ordinal_raises_index_error():
    with pytest.raises(IndexError):
        _registry()[10]


def test_duplicate_extended_addresses_are_rejected():
    with pytest.raises(ValueError):
        DeviceRegistry(RolePartition.from_counts(2, 0), extended_address_of=lambda ordinal: 7)
