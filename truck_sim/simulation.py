# simulation.py
import copy
import logging
from collections import Counter, deque
from dataclasses import asdict, dataclass, fields
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from .agent import FINISHED, IDLE, MOVING, Truck, TruckId, move_trucks
from .config import SimulationConfig
from .congestion import reset_edge_weights, update_edge_weights
from .errors import InvariantViolation, NoPathFound, UnknownEntity
from .localization import update_localization
from .network_graph import Beacon, Edge, EdgeId, Node, NodeId, RoadNetwork
from .planner import find_path

logger = logging.getLogger(__name__)

# float slack when comparing accumulated step time against the re-plan interval
REPLAN_EPSILON = 1e-9


@dataclass
class FleetStats:
    time: float
    active_trucks: int
    completed_trips: int
    avg_travel_time: float
    total_distance: float
    avg_delay: float

    def to_dict(self):
        return asdict(self)


@dataclass
class SimulationSnapshot:
    """Detached copy of engine state for viewers."""

    time: float
    nodes: List[Node]
    edges: List[Edge]
    beacons: List[Beacon]
    trucks: List[Truck]
    stats: FleetStats


class FleetSim:
    def __init__(self, config: Optional[SimulationConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        """
        config: step size, congestion, localization and routing parameters
        rng: random generator for speed sampling and beacon noise; pass a
             seeded generator (or set config.seed) for reproducible runs
        """
        self.config = config or SimulationConfig()
        self.rng = rng if rng is not None else self.config.make_rng()
        self.network = RoadNetwork()
        self._reset_dynamic_state()

    def _reset_dynamic_state(self):
        self.trucks: Dict[TruckId, Truck] = {}
        self.time = 0.0
        self.ticks = 0
        self._time_since_replan = 0.0
        self._next_truck_id = 1
        # trip aggregates
        self.completed_trips = 0
        self.total_trip_time = 0.0
        self.total_trip_distance = 0.0
        self.stats_history = deque(maxlen=self.config.stats_history_size)

    def configure(self, **changes) -> SimulationConfig:
        """
        Swap in a new config (e.g. a slider moved); dynamic state is kept.
        Passing ``seed`` rebuilds the random generator from that seed.
        """
        self.config = self.config.replace(**changes)
        if "seed" in changes:
            self.rng = self.config.make_rng()
        history = list(self.stats_history)
        self.stats_history = deque(history, maxlen=self.config.stats_history_size)
        return self.config

    # -----------------------
    # Topology
    # -----------------------
    def load_map(self, nodes: Iterable[Node], edges: Iterable[Edge], beacons: Iterable[Beacon] = ()):
        """
        Replace the topology wholesale and reset every piece of dynamic state.
        Edges with a missing endpoint are skipped with a warning; an edge with
        invalid capacity or length still raises InvalidEdge.
        """
        network = RoadNetwork()
        for node in nodes:
            network.add_node(copy.deepcopy(node))
        for edge in edges:
            try:
                network.add_edge(copy.deepcopy(edge))
            except UnknownEntity as e:
                logger.warning("load_map: skipping edge %s: %s", edge.id, e)
        for beacon in beacons:
            beacon = copy.deepcopy(beacon)
            mapped = [e for e in beacon.mapped_edge_ids if e in network.edges]
            if mapped:
                beacon.mapped_edge_ids = mapped
                network.beacons[beacon.id] = beacon
            else:
                network.add_beacon(beacon)

        self.network = network
        reset_edge_weights(self.network)
        self._reset_dynamic_state()
        logger.info(
            "Loaded map: %d nodes, %d edges, %d beacons",
            len(network.nodes), len(network.edges), len(network.beacons),
        )

    def clear_simulation(self):
        """Drop trucks and counters but keep the map."""
        reset_edge_weights(self.network)
        self._reset_dynamic_state()
        logger.info("Simulation cleared")

    def add_node(self, node: Node) -> bool:
        return self.network.add_node(copy.deepcopy(node))

    def remove_node(self, node_id: NodeId) -> bool:
        if node_id not in self.network.nodes:
            logger.debug("remove_node: unknown node %s", node_id)
            return False
        self._detach_trucks(self.network.remove_node(node_id))
        return True

    def add_edge(self, edge: Edge) -> bool:
        """Add an edge; unknown endpoints make this a no-op, bad capacity raises InvalidEdge."""
        try:
            self.network.add_edge(copy.deepcopy(edge))
        except UnknownEntity as e:
            logger.warning("add_edge %s ignored: %s", edge.id, e)
            return False
        return True

    def connect(self, source: NodeId, target: NodeId, edge_id: Optional[EdgeId] = None, **kwargs) -> Optional[EdgeId]:
        """Draw an edge between two existing nodes using geometric length."""
        edge_id = edge_id or EdgeId(f"e-{source}-{target}")
        try:
            edge = self.network.make_edge(edge_id, source, target, **kwargs)
        except UnknownEntity as e:
            logger.warning("connect %s -> %s ignored: %s", source, target, e)
            return None
        return edge_id if self.add_edge(edge) else None

    def remove_edge(self, edge_id: EdgeId) -> bool:
        if not self.network.remove_edge(edge_id):
            logger.debug("remove_edge: unknown edge %s", edge_id)
            return False
        self._detach_trucks([edge_id])
        return True

    def set_edge_closed(self, edge_id: EdgeId, closed: bool = True) -> bool:
        return self.network.set_edge_closed(edge_id, closed)

    def toggle_edge_closure(self, edge_id: EdgeId) -> bool:
        edge = self.network.edges.get(edge_id)
        if edge is None:
            return False
        return self.network.set_edge_closed(edge_id, not edge.closed)

    def add_beacon(self, beacon: Beacon) -> Beacon:
        return copy.deepcopy(self.network.add_beacon(copy.deepcopy(beacon)))

    def remove_beacon(self, beacon_id) -> bool:
        return self.network.remove_beacon(beacon_id)

    def remap_beacons(self) -> int:
        return self.network.remap_beacons()

    def _detach_trucks(self, edge_ids):
        """Trucks standing on deleted edges lose their edge and plan and go idle."""
        removed = set(edge_ids)
        if not removed:
            return
        for truck in self.trucks.values():
            if truck.current_edge in removed:
                truck.state = IDLE
                truck.current_edge = None
                truck.progress = 0.0
                truck.plan = []

    # -----------------------
    # Trucks
    # -----------------------
    def spawn_truck(self, start_node: NodeId, destination_node: NodeId) -> Optional[TruckId]:
        """Create a truck on the cheapest current route; returns None when no route exists."""
        if start_node not in self.network.nodes:
            logger.warning("Cannot spawn truck: unknown start node %s", start_node)
            return None
        try:
            route = find_path(self.network, start_node, destination_node)
        except NoPathFound as e:
            logger.warning("No path found for new truck: %s", e)
            return None
        if not route.edges:
            logger.warning("No path found for new truck: %s is already the destination", start_node)
            return None

        first_edge = self.network.edge(route.edges[0])
        cfg = self.config
        truck_id = TruckId(f"T-{self._next_truck_id}")
        self._next_truck_id += 1
        truck = Truck(
            id=truck_id,
            speed=float(self.rng.uniform(cfg.agent_speed_min, cfg.agent_speed_max)),
            destination=destination_node,
            position=self.network.node(start_node).position,
            current_edge=first_edge.id,
            state=MOVING,
            plan=list(route.edges),
        )
        first_edge.current_load += 1
        self.trucks[truck_id] = truck
        return truck_id

    def spawn_random_truck(self) -> Optional[TruckId]:
        node_ids = list(self.network.nodes)
        if len(node_ids) < 2:
            return None
        start, end = self.rng.choice(len(node_ids), size=2, replace=False)
        return self.spawn_truck(node_ids[int(start)], node_ids[int(end)])

    # -----------------------
    # Stepping
    # -----------------------
    def tick(self) -> FleetStats:
        """
        Advance the simulation by one fixed step:
        motion -> prune finished -> localization -> congestion -> periodic re-plan.
        """
        cfg = self.config
        self.time += cfg.dt
        self.ticks += 1

        # 1) move trucks; completion bookkeeping happens in the same phase
        for truck in move_trucks(self.trucks.values(), self.network, cfg.dt, cfg.overflow_policy):
            self.completed_trips += 1
            self.total_trip_time += truck.total_time
            self.total_trip_distance += truck.total_distance

        # 2) prune
        self.trucks = {tid: t for tid, t in self.trucks.items() if t.state != FINISHED}

        # 3) localization on post-move positions
        update_localization(
            self.trucks.values(),
            self.network.beacons,
            cfg.localization_noise_sigma,
            cfg.hysteresis_threshold,
            self.time,
            self.rng,
        )

        # 4) congestion weights from post-move loads
        update_edge_weights(self.network, cfg.congestion_sensitivity, cfg.congestion_exponent)

        # 5) periodic re-plan; the remainder carries over so the cadence
        # stays once per interval when dt does not divide it
        self._time_since_replan += cfg.dt
        if self._time_since_replan >= cfg.replan_interval - REPLAN_EPSILON:
            self._time_since_replan -= cfg.replan_interval
            self._replan()

        stats = self.get_stats()
        self.stats_history.append(stats)
        return stats

    def _replan(self):
        for truck in self.trucks.values():
            if truck.state != MOVING or truck.destination is None or truck.current_edge is None:
                continue
            edge = self.network.edges.get(truck.current_edge)
            if edge is None:
                continue
            try:
                route = find_path(self.network, edge.target, truck.destination)
            except NoPathFound as e:
                logger.debug("Truck %s keeps its plan: %s", truck.id, e)
                continue
            truck.plan = [edge.id] + route.edges
            truck.reroute_count += 1

    def run(self, n_ticks: int, report_every: Optional[int] = None) -> FleetStats:
        """Run ``n_ticks`` steps, logging a progress line every ``report_every`` ticks."""
        stats = self.get_stats()
        for i in range(1, n_ticks + 1):
            stats = self.tick()
            if report_every and i % report_every == 0:
                logger.info(
                    "time=%.0fs  active=%d  completed=%d",
                    stats.time, stats.active_trucks, stats.completed_trips,
                )
        return stats

    # -----------------------
    # Read-only views
    # -----------------------
    def get_stats(self) -> FleetStats:
        n = self.completed_trips
        if n > 0:
            baseline = self.total_trip_distance / self.config.mean_speed
            delay = max(0.0, self.total_trip_time - baseline)
            avg_travel = self.total_trip_time / n
        else:
            delay = 0.0
            avg_travel = 0.0
        return FleetStats(
            time=self.time,
            active_trucks=len(self.trucks),
            completed_trips=n,
            avg_travel_time=avg_travel,
            total_distance=self.total_trip_distance,
            avg_delay=delay,
        )

    def stats_frame(self) -> pd.DataFrame:
        """Recent per-tick stats as a DataFrame (one row per tick)."""
        columns = [f.name for f in fields(FleetStats)]
        return pd.DataFrame([s.to_dict() for s in self.stats_history], columns=columns)

    def snapshot(self) -> SimulationSnapshot:
        net = self.network
        return SimulationSnapshot(
            time=self.time,
            nodes=copy.deepcopy(list(net.nodes.values())),
            edges=copy.deepcopy(list(net.edges.values())),
            beacons=copy.deepcopy(list(net.beacons.values())),
            trucks=copy.deepcopy(list(self.trucks.values())),
            stats=self.get_stats(),
        )

    def check_invariants(self) -> None:
        """Raise InvariantViolation on dangling references or load drift."""
        self.network.check_invariants()
        occupancy = Counter(t.current_edge for t in self.trucks.values() if t.current_edge is not None)
        for edge in self.network.edges.values():
            if edge.current_load != occupancy.get(edge.id, 0):
                raise InvariantViolation(
                    f"edge {edge.id!r} load {edge.current_load} != {occupancy.get(edge.id, 0)} occupants"
                )
        for edge_id in occupancy:
            if edge_id not in self.network.edges:
                raise InvariantViolation(f"truck on missing edge {edge_id!r}")
