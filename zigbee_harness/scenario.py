from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, TYPE_CHECKING

if TYPE_CHECKING:
    from zigbee_harness.harness import ZigbeeMeshHarness


class Scenario(ABC):
    """A traffic/diagnostics definition.

    A Scenario must not create devices or links. It only schedules events on
    `harness.simulator` and sends traffic between devices the topology already created.

    Contract:
      - `install(harness)` may look devices up with `harness.get_device(ordinal)`.
      - It must set the run horizon with `harness.stop_at(...)`.
    """

    name: str

    @abstractmethod
    def install(self, harness: ZigbeeMeshHarness) -> None:
        raise NotImplementedError

    def parameters_summary(self) -> Dict[str, Any]:
        return {"scenario": getattr(self, "name", self.__class__.__name__)}
