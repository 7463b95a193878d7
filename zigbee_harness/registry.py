from __future__ import annotations

from typing import Callable, Iterator, List, Optional

from zigbee_harness.device import Device, DeviceRole
from zigbee_harness.roles import RolePartition
from zigbee_nwk.addresses import UNASSIGNED_SHORT_ADDRESS

DEFAULT_COORDINATOR_EXTENDED_ADDRESS = 0xCAFE


def default_extended_address(ordinal: int) -> int:
    """00:00:00:00:00:00:ca:fe for the coordinator, the ordinal itself for everyone else."""
    return DEFAULT_COORDINATOR_EXTENDED_ADDRESS if ordinal == 0 else ordinal


class DeviceRegistry:
    """Ordered, ordinal-addressed collection of every device in a run."""

    def __init__(self, partition: RolePartition,
                 extended_address_of: Callable[[int], int] = default_extended_address):
        self.partition = partition
        self._devices: List[Device] = []
        seen: set[int] = set()
        for ordinal in range(partition.device_count):
            ext = extended_address_of(ordinal)
            if ext in seen:
                raise ValueError(f"duplicate extended address {ext:#x} for ordinal {ordinal}")
            seen.add(ext)
            self._devices.append(Device(ordinal=ordinal, extended_address=ext, role=partition.role_of(ordinal)))

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[Device]:
        return iter(self._devices)

    def __getitem__(self, ordinal: int) -> Device:
        if not 0 <= ordinal < len(self._devices):
            raise IndexError(f"no device with ordinal {ordinal}")
        return self._devices[ordinal]

    @property
    def coordinator(self) -> Device:
        return self._devices[self.partition.coordinator]

    def with_role(self, role: DeviceRole) -> List[Device]:
        return [d for d in self._devices if d.role == role]

    def joiners(self) -> List[Device]:
        """Every device that must discover and join (all but the coordinator), in ordinal order."""
        return [d for d in self._devices if d.role != DeviceRole.COORDINATOR]

    def by_network_address(self, address: int) -> Optional[Device]:
        if address == UNASSIGNED_SHORT_ADDRESS:
            return None
        for d in self._devices:
            if d.network_address == address:
                return d
        return None

    def by_extended_address(self, address: int) -> Optional[Device]:
        for d in self._devices:
            if d.extended_address == address:
                return d
        return None
