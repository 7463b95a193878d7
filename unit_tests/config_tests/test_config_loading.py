import textwrap

import pytest

from mesh_topologies.custom_mesh import CustomMeshHarness
from mesh_topologies.ten_node_mesh import TenNodeMeshHarness
from scenarios.none_scenario import NoneScenario
from scenarios.periodic_unicast import PeriodicUnicastScenario
from zigbee_harness.sequencer import BringUpConfig
from zigbee_mesh_simulation import _build_harness, _build_scenario, _load_yaml, main

TEN_NODE_YAML = """
run:
  seed: 11
topology:
  type: mesh-10
  hop_delay_s: 0.002
  loss_probability: 0.1
bring_up:
  discovery_channel_mask: 0x00000800
  join_retry:
    max_retries: 2
scenario:
  name: periodic-unicast
  params:
    source: 4
    destination: 6
    packet_count: 10
trace:
  max_hops: 12
"""


def _write(tmp_path, text, name="cfg.yaml"):
    path = tmp_path / name
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return str(path)


def test_ten_node_config(tmp_path):
    cfg = _load_yaml(_write(tmp_path, TEN_NODE_YAML))
    harness = _build_harness(cfg)
    scenario = _build_scenario(cfg)

    assert isinstance(harness, TenNodeMeshHarness)
    assert harness.medium_config.hop_delay_s == 0.002
    assert harness.medium_config.loss_probability == 0.1
    assert harness.medium_config.seed == 11
    assert harness.sequencer.config.discovery_channel_mask == 0x800
    assert harness.sequencer.config.formation_channel_mask == BringUpConfig().formation_channel_mask
    assert harness.sequencer.config.join_retry.max_retries == 2
    assert harness.trace_config.max_hops == 12
    assert harness.trace_config.loop_threshold == 3

    assert isinstance(scenario, PeriodicUnicastScenario)
    assert (scenario.source, scenario.destination, scenario.packet_count) == (4, 6, 10)
    assert scenario.interval_s == 0.5


def test_custom_topology_config(tmp_path):
    cfg = _load_yaml(_write(tmp_path, """
        topology:
          type: custom
          coordinator_extended_address: "00:00:00:00:00:00:be:ef"
          partition:
            routers: [1, 1]
            end_devices: [2, 3]
          links: [[0, 1], [1, 2], [1, 3]]
        bring_up:
          formation_channel_mask: "0x00000800"
        scenario:
          name: none
        """))
    harness = _build_harness(cfg)

    assert isinstance(harness, CustomMeshHarness)
    assert harness.links == ((0, 1), (1, 2), (1, 3))
    assert len(harness.registry) == 4
    assert harness.registry.coordinator.extended_address == 0xBEEF
    assert harness.registry[2].extended_address == 2
    assert harness.sequencer.config.formation_channel_mask == 0x800
    assert isinstance(_build_scenario(cfg), NoneScenario)


def test_empty_file_loads_as_empty_mapping(tmp_path):
    assert _load_yaml(_write(tmp_path, "")) == {}


@pytest.mark.parametrize("text, message", [
    ("topology: []\n", "topology"),
    ("topology:\n  type: ring\n", "topology.type"),
    ("topology:\n  type: custom\n  partition: {routers: 1, end_devices: 1}\n", "topology.links"),
    ("topology:\n  type: mesh-5\nbring_up:\n  beacon_order: fifteen\n", "bring_up.beacon_order"),
])
def test_invalid_topology_sections_are_rejected(tmp_path, text, message):
    cfg = _load_yaml(_write(tmp_path, text))
    with pytest.raises(ValueError, match=message):
        _build_harness(cfg)


@pytest.mark.parametrize("text, message", [
    ("scenario: {}\n", "scenario.name"),
    ("scenario:\n  name: flood\n", "scenario.name"),
    ("scenario:\n  name: periodic-unicast\n  params: {source: 1}\n", "destination"),
])
def test_invalid_scenario_sections_are_rejected(tmp_path, text, message):
    cfg = _load_yaml(_write(tmp_path, text))
    with pytest.raises(ValueError, match=message):
        _build_scenario(cfg)


def test_yaml_entry_point_runs_a_small_mesh(tmp_path):
    path = _write(tmp_path, f"""
        run:
          seed: 5
          log_dir: {tmp_path / 'logs'}
        topology:
          type: mesh-5
        scenario:
          name: periodic-unicast
          params:
            source: 3
            destination: 4
            start_time_s: 8.0
            packet_count: 5
        """)

    assert main([path]) == 0
    assert list((tmp_path / "logs").glob("mesh-5.periodic-unicast_*.log"))


def test_yaml_entry_point_reports_aborted_bring_up(tmp_path):
    path = _write(tmp_path, f"""
        run:
          log_dir: {tmp_path / 'logs'}
        topology:
          type: mesh-5
        bring_up:
          formation_channel_mask: 0
        scenario:
          name: none
        """)

    assert main([path]) == 1
