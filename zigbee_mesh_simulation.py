"""Zigbee mesh simulation entrypoint (YAML-driven).

Usage:
    python zigbee_mesh_simulation.py <path-to-config.yaml>
"""

import argparse
import logging
import os
import sys
import time
from typing import Any, Dict, List, Tuple

import yaml

from log_setup import configure_run_logging
from mesh_topologies.custom_mesh import CustomMeshHarness
from mesh_topologies.five_node_mesh import FiveNodeMeshHarness
from mesh_topologies.ten_node_mesh import TenNodeMeshHarness
from scenarios.none_scenario import NoneScenario
from scenarios.periodic_unicast import PeriodicUnicastScenario
from visualization.delay_visualizer import visualize_experiment_results
from zigbee_harness.harness import MediumConfig, TraceConfig, ZigbeeMeshHarness
from zigbee_harness.registry import default_extended_address
from zigbee_harness.roles import RolePartition
from zigbee_harness.scenario import Scenario
from zigbee_harness.sequencer import BringUpAbortedError, BringUpConfig
from zigbee_nwk.addresses import parse_extended_address


def _require_dict(d: Any, path: str) -> Dict[str, Any]:
    if not isinstance(d, dict):
        raise ValueError(f"Expected mapping at '{path}', got {type(d).__name__}")
    return d


def _load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    return _require_dict(data, "/")


def _configure_logging(file_debug: bool, *, run_tag: str, log_dir: str) -> str:
    """Console is always at INFO level. File is at DEBUG level if file_debug=True, else INFO."""
    return configure_run_logging(
        run_tag,
        log_dir=log_dir,
        console_level=logging.INFO,
        file_level=logging.DEBUG if file_debug else logging.INFO,
        force=True,
    )


def _parse_links(raw: Any) -> List[Tuple[int, int]]:
    if not isinstance(raw, list) or not raw:
        raise ValueError("Expected a non-empty list of [a, b] pairs at 'topology.links'")
    links = []
    for i, pair in enumerate(raw):
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ValueError(f"Expected [a, b] at 'topology.links[{i}]', got {pair!r}")
        links.append((int(pair[0]), int(pair[1])))
    return links


def _build_harness(cfg: Dict[str, Any]) -> ZigbeeMeshHarness:
    run_cfg = _require_dict(cfg.get("run", {}), "run")
    topo = _require_dict(cfg.get("topology", {}), "topology")
    if "type" not in topo:
        raise ValueError("Missing required key 'topology.type'")
    topo_type = str(topo["type"]).lower()

    medium = MediumConfig.from_mapping(topo, seed=int(run_cfg.get("seed", 0)))
    bring_up = BringUpConfig.from_mapping(cfg.get("bring_up"))
    trace = TraceConfig.from_mapping(cfg.get("trace"))

    if topo_type == "mesh-10":
        return TenNodeMeshHarness(medium=medium, bring_up=bring_up, trace=trace)
    if topo_type == "mesh-5":
        return FiveNodeMeshHarness(medium=medium, bring_up=bring_up, trace=trace)
    if topo_type == "custom":
        partition = RolePartition.from_mapping(topo.get("partition"))
        links = _parse_links(topo.get("links"))
        extended_address_of = default_extended_address
        if "coordinator_extended_address" in topo:
            coordinator_ext = parse_extended_address(topo["coordinator_extended_address"])

            def extended_address_of(ordinal: int) -> int:
                return coordinator_ext if ordinal == 0 else ordinal

        return CustomMeshHarness(partition, links, medium=medium, bring_up=bring_up, trace=trace,
                                 extended_address_of=extended_address_of)

    raise ValueError(f"Invalid topology type at 'topology.type': {topo['type']!r}. Valid: mesh-10 | mesh-5 | custom")


def _build_scenario(cfg: Dict[str, Any]) -> Scenario:
    scen = _require_dict(cfg.get("scenario", {}), "scenario")
    if "name" not in scen:
        raise ValueError("Missing required key 'scenario.name'")
    name = str(scen["name"]).lower()
    params = _require_dict(scen.get("params", {}) or {}, "scenario.params")

    if name == "none":
        return NoneScenario(settle_time_s=float(params.get("settle_time_s", 5.0)))

    if name == "periodic-unicast":
        missing = [k for k in ("source", "destination") if k not in params]
        if missing:
            raise ValueError("Missing required scenario.params keys: " + ", ".join(missing))
        defaults = PeriodicUnicastScenario()
        return PeriodicUnicastScenario(
            source=int(params["source"]),
            destination=int(params["destination"]),
            inspect=int(params.get("inspect", defaults.inspect)),
            start_time_s=float(params.get("start_time_s", defaults.start_time_s)),
            interval_s=float(params.get("interval_s", defaults.interval_s)),
            packet_count=int(params.get("packet_count", defaults.packet_count)),
            payload_size_bytes=int(params.get("payload_size_bytes", defaults.payload_size_bytes)),
            safety_margin_s=float(params.get("safety_margin_s", defaults.safety_margin_s)),
            teardown_margin_s=float(params.get("teardown_margin_s", defaults.teardown_margin_s)),
        )

    raise ValueError(f"Invalid scenario name at 'scenario.name': {scen['name']!r}. Valid: none | periodic-unicast")


def _resolve_yaml_arg(arg: str) -> str:
    if not isinstance(arg, str) or not arg:
        raise ValueError("config argument must be a non-empty string")
    if not arg.lower().endswith((".yaml", ".yml")):
        raise ValueError("Config argument must be a YAML file path")

    candidate = os.path.abspath(arg)
    if not os.path.exists(candidate):
        raise FileNotFoundError(f"YAML configuration file not found: {candidate}")
    return candidate


def parse_args(argv):
    p = argparse.ArgumentParser(description="Zigbee Mesh Simulation (YAML-driven)")
    p.add_argument("config", help="Path to YAML configuration file")
    return p.parse_args(argv)


def main(argv) -> int:
    args = parse_args(argv)
    yaml_path = _resolve_yaml_arg(args.config)
    cfg = _load_yaml(yaml_path)

    run_cfg = _require_dict(cfg.get("run", {}), "run")
    file_debug = bool(run_cfg.get("file_debug", False))
    visualize = bool(run_cfg.get("visualize", False))
    log_dir = str(run_cfg.get("log_dir", "results/logs"))

    topo_type = str(_require_dict(cfg.get("topology", {}), "topology").get("type", "unknown"))
    scen_name = str(_require_dict(cfg.get("scenario", {}), "scenario").get("name", "none"))
    logfile_path = _configure_logging(file_debug=file_debug, run_tag=f"{topo_type}.{scen_name}", log_dir=log_dir)
    logging.info("Logging to console and file: %s", logfile_path)
    logging.info(f"Loaded configuration from: {yaml_path}")

    harness = _build_harness(cfg)
    scenario = _build_scenario(cfg)

    harness.create()
    harness.assign_scenario(scenario)

    logging.info("Starting Zigbee mesh simulation")
    start = time.perf_counter()
    try:
        harness.run()
    except BringUpAbortedError:
        logging.exception("Bring-up aborted, no results")
        return 1
    elapsed = time.perf_counter() - start
    logging.info("Simulation run time: %.3f seconds", elapsed)

    results = harness.get_results()

    def _fmt_block(d: Any) -> str:
        return "\n".join(f"{k}: {v}" for k, v in d.items()) if isinstance(d, dict) and d else "(empty)"

    logging.info("Results summary - Topology:\n%s", _fmt_block(results.get("topology summary", {})))
    logging.info("Results summary - Parameters:\n%s", _fmt_block(results.get("parameters summary", {})))
    logging.info("Results summary - Bring-up:\n%s", _fmt_block(results.get("bring-up summary", {})))
    logging.info("Results summary - Run statistics:\n%s", _fmt_block(results.get("run statistics", {})))

    if visualize:
        visualize_experiment_results([results])

    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
