"""Traffic scenarios.

Each scenario only schedules traffic and diagnostics on top of a mesh whose devices already exist.
See `zigbee_harness.scenario.Scenario`.
"""
from zigbee_harness.scenario import Scenario
from .none_scenario import NoneScenario
from .periodic_unicast import PeriodicUnicastScenario

__all__ = [
    "Scenario",
    "NoneScenario",
    "PeriodicUnicastScenario",
]
