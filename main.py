import logging
import argparse
import sys
import time
import os

from mesh_topologies.five_node_mesh import FiveNodeMeshHarness
from mesh_topologies.ten_node_mesh import TenNodeMeshHarness
from scenarios.none_scenario import NoneScenario
from scenarios.periodic_unicast import PeriodicUnicastScenario
from visualization.delay_visualizer import visualize_experiment_results
from zigbee_harness.harness import MediumConfig, ZigbeeMeshHarness
from zigbee_harness.sequencer import BringUpAbortedError, BringUpConfig, JoinRetryPolicy

# source, destination, inspect defaults per topology
_TRAFFIC_DEFAULTS = {
    'mesh-10': (4, 6, 1),
    'mesh-5': (3, 4, 1),
}


def _scenario_from_args(args):
    name = (getattr(args, 'scenario', None) or 'periodic-unicast').lower()
    if name == 'none':
        return NoneScenario()
    if name == 'periodic-unicast':
        source, destination, inspect = _TRAFFIC_DEFAULTS[args.t.lower()]
        return PeriodicUnicastScenario(
            source=args.source if args.source is not None else source,
            destination=args.destination if args.destination is not None else destination,
            inspect=args.inspect if args.inspect is not None else inspect,
            start_time_s=args.start,
            interval_s=args.interval,
            packet_count=args.packets,
            payload_size_bytes=args.payload_size,
        )
    raise ValueError(f"Unknown scenario '{name}'. Valid options: none, periodic-unicast")


def create_harness_from_args(args) -> ZigbeeMeshHarness:
    topology = args.t.lower()
    medium = MediumConfig(
        hop_delay_s=args.hop_delay,
        hop_jitter_s=args.hop_jitter,
        loss_probability=args.loss,
        link_failure_percent=args.link_failure,
        seed=args.seed,
    )
    bring_up = BringUpConfig(join_retry=JoinRetryPolicy(max_retries=args.join_retries))

    if topology == 'mesh-10':
        logging.info(f"Creating 10 device mesh with link-failure={args.link_failure}% loss={args.loss}")
        return TenNodeMeshHarness(medium=medium, bring_up=bring_up)
    if topology == 'mesh-5':
        logging.info(f"Creating 5 device mesh with link-failure={args.link_failure}% loss={args.loss}")
        return FiveNodeMeshHarness(medium=medium, bring_up=bring_up)
    raise ValueError(f"Unknown topology '{args.t}'. Valid options: mesh-10, mesh-5")


def parse_args(argv):
    parser = argparse.ArgumentParser(description='Zigbee mesh bring-up and delivery harness')
    parser.add_argument('-t', default='mesh-10',
                        help='Type of topology: mesh-10 (coordinator, 4 routers, 5 end devices), mesh-5')
    parser.add_argument('-scenario', default='periodic-unicast',
                        help='Scenario to run once the mesh is up: none, periodic-unicast')
    parser.add_argument('-packets', type=int, default=200, help='Number of packets to send')
    parser.add_argument('-interval', type=float, default=0.5, help='Seconds between two packets')
    parser.add_argument('-start', type=float, default=12.0, help='Simulation time of the first packet (seconds)')
    parser.add_argument('-payload-size', type=int, default=5, dest='payload_size', help='Packet size in bytes')
    parser.add_argument('-source', type=int, default=None, help='Ordinal of the sending device')
    parser.add_argument('-destination', type=int, default=None, help='Ordinal of the receiving device')
    parser.add_argument('-inspect', type=int, default=None, help='Ordinal of the device whose tables are dumped')
    parser.add_argument('-hop-delay', type=float, default=0.004, dest='hop_delay', help='Per hop delay (seconds)')
    parser.add_argument('-hop-jitter', type=float, default=0.002, dest='hop_jitter',
                        help='Maximal random extra delay per hop (seconds)')
    parser.add_argument('-loss', type=float, default=0.0, help='Per frame loss probability (0-1)')
    parser.add_argument('-link-failure', type=float, default=0.0, dest='link_failure',
                        help='Percentage (0-100) of links to fail')
    parser.add_argument('-join-retries', type=int, default=0, dest='join_retries',
                        help='How many times a refused device goes back to discovery')
    parser.add_argument('-seed', type=int, default=1972, help='Seed of the random generators')
    parser.add_argument('-visualize', required=False, action='store_true', default=False,
                        help='Save the delay timeline graph under results/')
    return parser.parse_args(argv)


def main(argv) -> int:
    args = parse_args(argv)

    # Re-configure the file logger now that we know which run we're doing.
    set_logger(topology=args.t, scenario=args.scenario)

    logging.info(
        f"Starting mesh simulation. topology={args.t}, scenario={args.scenario}, packets={args.packets}, "
        f"interval={args.interval}, seed={args.seed}"
    )

    harness = create_harness_from_args(args)
    scenario = _scenario_from_args(args)

    harness.create()
    harness.assign_scenario(scenario)

    logging.info("Starting simulation")
    start = time.perf_counter()
    try:
        harness.run()
    except BringUpAbortedError:
        logging.exception("Bring-up aborted")
        return 1
    elapsed = time.perf_counter() - start
    logging.info(f"Simulation run time: {elapsed:.3f} seconds")

    results = harness.get_results()
    for block in ('topology summary', 'bring-up summary', 'run statistics'):
        message = "\n".join(f"{k}: {v}" for k, v in results[block].items())
        logging.info(f"Results summary - {block}:\n{message}")

    if args.visualize:
        visualize_experiment_results([results])
    return 0


def _sanitize_filename(name: str) -> str:
    return "".join(c if c.isalnum() or c in "._-" else "_" for c in str(name))


class _AlignedPrefixFormatter(logging.Formatter):
    """Formatter that keeps log message bodies aligned by padding *after* the line number.

    Layout:
        time [LEVEL] filename.py:123<spaces> message
    """

    def __init__(self, prefix_width: int, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._prefix_width = prefix_width

    def format(self, record: logging.LogRecord) -> str:
        file_line = f"{record.filename}:{record.lineno}"
        pad_len = max(1, self._prefix_width - len(file_line))
        record.lineno_pad = " " * pad_len
        return super().format(record)


def set_logger(topology: str | None = None, scenario: str | None = None):
    logger = logging.getLogger()
    # root at DEBUG so handlers decide what to record
    logger.setLevel(logging.DEBUG)

    for h in logger.handlers[:]:
        logger.removeHandler(h)

    console_handler = logging.StreamHandler(stream=sys.stdout)
    console_handler.setLevel(logging.INFO)

    formatter = _AlignedPrefixFormatter(
        prefix_width=24,
        fmt="%(asctime)s [%(levelname)s] %(filename)s:%(lineno)d%(lineno_pad)s%(message)s",
        datefmt="%H:%M:%S",
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logging.getLogger('matplotlib').setLevel(logging.WARNING)
    logging.getLogger('matplotlib.font_manager').setLevel(logging.WARNING)

    # Bootstrap: no file handler until the topology is known.
    if not topology:
        return

    results_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "results")
    os.makedirs(results_dir, exist_ok=True)

    topo_part = _sanitize_filename(topology)
    scen_part = _sanitize_filename(scenario) if scenario else None
    if scen_part:
        log_filename = f"simulation_{topo_part}__{scen_part}.log"
    else:
        log_filename = f"simulation_{topo_part}.log"

    file_handler = logging.FileHandler(os.path.join(results_dir, log_filename), mode="w")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


if __name__ == '__main__':
    # Console-only logging until main() knows the run.
    set_logger(topology=None)
    try:
        sys.exit(main(sys.argv[1:]))
    except Exception:
        logging.exception("Simulation failed with an exception")
        raise
