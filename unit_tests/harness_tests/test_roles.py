import pytest

from zigbee_harness.device import DeviceRole
from zigbee_harness.roles import RolePartition


def test_default_ten_device_partition():
    p = RolePartition.from_counts(4, 5)

    assert p.device_count == 10
    assert p.role_of(0) == DeviceRole.COORDINATOR
    assert [p.role_of(i) for i in range(1, 5)] == [DeviceRole.ROUTER] * 4
    assert [p.role_of(i) for i in range(5, 10)] == [DeviceRole.END_DEVICE] * 5


def test_out_of_range_ordinal_is_rejected():
    p = RolePartition.from_counts(4, 5)
    with pytest.raises(ValueError):
        p.role_of(10)


def test_partition_without_routers():
    p = RolePartition.from_counts(0, 3)

    assert p.routers is None
    assert p.end_devices == (1, 3)
    assert p.role_of(1) == DeviceRole.END_DEVICE


@pytest.mark.parametrize("routers, end_devices", [
    ((2, 4), (5, 9)),   # gap at ordinal 1
    ((1, 4), (4, 9)),   # overlap
    ((1, 4), (6, 9)),   # gap at ordinal 5
    ((4, 1), None),     # reversed
])
def test_invalid_partitions_are_rejected(routers, end_devices):
    with pytest.raises(ValueError):
        RolePartition(routers=routers, end_devices=end_devices)


def test_from_mapping_accepts_ranges_and_counts():
    by_range = RolePartition.from_mapping({"coordinator": 0, "routers": [1, 2], "end_devices": [3, 4]})
    by_count = RolePartition.from_mapping({"routers": 2, "end_devices": 2})

    assert by_range == by_count
    assert by_range.device_count == 5


def test_from_mapping_reports_missing_keys():
    with pytest.raises(ValueError, match="end_devices"):
        RolePartition.from_mapping({"routers": 2})
