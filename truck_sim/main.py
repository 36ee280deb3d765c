import argparse
import logging

from .config import SimulationConfig
from .demo_map import demo_map
from .simulation import FleetSim


def build_parser():
    parser = argparse.ArgumentParser(
        prog="truck-sim",
        description="Run the truck fleet simulation headless on the demo mine map.",
    )
    parser.add_argument("--config", help="YAML file with simulation options")
    parser.add_argument("--ticks", type=int, default=600, help="number of steps to run")
    parser.add_argument("--trucks", type=int, default=10, help="trucks spawned at start")
    parser.add_argument("--seed", type=int, default=None, help="random seed")
    parser.add_argument("--policy", choices=["queue", "closed_when_full"], default=None)
    parser.add_argument("--report-every", type=int, default=60, help="ticks between progress lines")
    parser.add_argument("--log-level", default="WARNING")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    cfg = SimulationConfig.from_yaml(args.config) if args.config else SimulationConfig()
    overrides = {}
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.policy is not None:
        overrides["overflow_policy"] = args.policy
    if overrides:
        cfg = cfg.replace(**overrides)

    sim = FleetSim(cfg)
    sim.load_map(*demo_map())
    spawned = sum(1 for _ in range(args.trucks) if sim.spawn_random_truck() is not None)
    print(f"Spawned {spawned}/{args.trucks} trucks")

    for i in range(1, args.ticks + 1):
        stats = sim.tick()
        if args.report_every and i % args.report_every == 0:
            print(f"time={stats.time:.0f}s  active={stats.active_trucks}  completed={stats.completed_trips}")
        if stats.active_trucks == 0:
            break

    stats = sim.get_stats()
    print(
        f"Simulation finished at t={stats.time:.1f}s: completed={stats.completed_trips} "
        f"avg_travel={stats.avg_travel_time:.1f}s avg_delay={stats.avg_delay:.1f}s "
        f"distance={stats.total_distance:.0f}m"
    )
    return 0
