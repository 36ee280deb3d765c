import sys
from pathlib import Path

# Ensure package import for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from truck_sim import Beacon, Edge, FleetSim, Node, SimulationConfig


def quiet_config(**overrides):
    """Noise-free, seeded, one-second steps, trucks halt before closed edges."""
    params = dict(
        seed=0,
        localization_noise_sigma=0.0,
        dt=1.0,
        replan_interval=5.0,
        overflow_policy="closed_when_full",
    )
    params.update(overrides)
    return SimulationConfig(**params)


def make_edge(edge_id, source, target, length, capacity=2, base_speed=10.0, base_travel_time=None):
    return Edge(
        id=edge_id,
        source=source,
        target=target,
        length=float(length),
        capacity=capacity,
        base_speed=float(base_speed),
        base_travel_time=base_travel_time,
    )


@pytest.fixture
def line_map():
    """A(0,0) -> B(100,0) -> C(200,0) plus a detour B -> D(100,100) -> C."""
    nodes = [
        Node("A", 0.0, 0.0, "A"),
        Node("B", 100.0, 0.0, "B"),
        Node("C", 200.0, 0.0, "C"),
        Node("D", 100.0, 100.0, "D"),
    ]
    edges = [
        make_edge("ab", "A", "B", 100),
        make_edge("bc", "B", "C", 100),
        make_edge("bd", "B", "D", 100),
        make_edge("dc", "D", "C", 141.5),
    ]
    beacons = [Beacon("b1", 50.0, 5.0), Beacon("b2", 150.0, 5.0)]
    return nodes, edges, beacons


@pytest.fixture
def straight_map():
    """A -> B -> C with no alternative, 200 units total."""
    nodes = [Node("A", 0.0, 0.0), Node("B", 100.0, 0.0), Node("C", 200.0, 0.0)]
    edges = [make_edge("ab", "A", "B", 100, base_speed=20.0), make_edge("bc", "B", "C", 100, base_speed=20.0)]
    return nodes, edges, []


@pytest.fixture
def make_sim():
    def _make(nodes, edges, beacons=(), **overrides):
        sim = FleetSim(quiet_config(**overrides))
        sim.load_map(nodes, edges, beacons)
        return sim

    return _make
