from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from zigbee_harness.device import DeviceRole


@dataclass(frozen=True)
class RolePartition:
    """Static partition of device ordinals into roles.

    Ordinal 0 is the coordinator, followed by a contiguous block of routers and a
    contiguous block of end devices. Blocks are inclusive ``(first, last)`` ranges; an
    empty block is ``None``.
    """

    routers: tuple[int, int] | None
    end_devices: tuple[int, int] | None
    coordinator: int = 0

    def __post_init__(self) -> None:
        if self.coordinator != 0:
            raise ValueError("the coordinator must be ordinal 0")
        expected_next = 1
        for label, block in (("routers", self.routers), ("end_devices", self.end_devices)):
            if block is None:
                continue
            first, last = block
            if first > last:
                raise ValueError(f"{label} block is empty or reversed: {block}")
            if first != expected_next:
                raise ValueError(f"{label} block must start at ordinal {expected_next}, got {first}")
            expected_next = last + 1

    @staticmethod
    def from_counts(router_count: int, end_device_count: int) -> "RolePartition":
        if router_count < 0 or end_device_count < 0:
            raise ValueError("role counts must be >= 0")
        routers = (1, router_count) if router_count else None
        first_ed = router_count + 1
        end_devices = (first_ed, first_ed + end_device_count - 1) if end_device_count else None
        return RolePartition(routers=routers, end_devices=end_devices)

    @staticmethod
    def from_mapping(d: Mapping[str, Any] | None) -> "RolePartition":
        """Build from ``{coordinator: 0, routers: [1, 4], end_devices: [5, 9]}`` or ``{routers: 4, end_devices: 5}``."""
        if not isinstance(d, Mapping):
            raise ValueError("Expected mapping for topology.partition")
        missing = [k for k in ("routers", "end_devices") if k not in d]
        if missing:
            raise ValueError("Missing required topology.partition keys: " + ", ".join(missing))

        routers, end_devices = d["routers"], d["end_devices"]
        if isinstance(routers, int) and isinstance(end_devices, int):
            return RolePartition.from_counts(routers, end_devices)

        def _block(raw: Any, path: str) -> tuple[int, int] | None:
            if raw is None or raw == []:
                return None
            if not isinstance(raw, (list, tuple)) or len(raw) != 2:
                raise ValueError(f"Expected [first, last] at 'topology.partition.{path}', got {raw!r}")
            return int(raw[0]), int(raw[1])

        return RolePartition(
            routers=_block(routers, "routers"),
            end_devices=_block(end_devices, "end_devices"),
            coordinator=int(d.get("coordinator", 0)),
        )

    @property
    def device_count(self) -> int:
        last = self.coordinator
        for block in (self.routers, self.end_devices):
            if block is not None:
                last = block[1]
        return last + 1

    def role_of(self, ordinal: int) -> DeviceRole:
        if ordinal == self.coordinator:
            return DeviceRole.COORDINATOR
        if self.routers is not None and self.routers[0] <= ordinal <= self.routers[1]:
            return DeviceRole.ROUTER
        if self.end_devices is not None and self.end_devices[0] <= ordinal <= self.end_devices[1]:
            return DeviceRole.END_DEVICE
        raise ValueError(f"ordinal {ordinal} is outside the role partition (0..{self.device_count - 1})")
