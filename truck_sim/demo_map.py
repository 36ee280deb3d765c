"""Small open-pit mine used by the command-line runner and the tests."""

from .convert import map_from_dict

DEMO_MAP = {
    "nodes": [
        {"id": "n1", "x": 100, "y": 100, "label": "Depot"},
        {"id": "n2", "x": 300, "y": 100, "label": "Junction A"},
        {"id": "n3", "x": 500, "y": 200, "label": "Pit 1"},
        {"id": "n4", "x": 300, "y": 400, "label": "Crusher"},
        {"id": "n5", "x": 100, "y": 300, "label": "Workshop"},
    ],
    # length m, capacity trucks, base speed m/s, free-flow time s
    "edges": [
        {"id": "e1", "source": "n1", "target": "n2", "length": 200, "capacity": 2, "base_speed": 30, "base_travel_time": 6.6},
        {"id": "e2", "source": "n2", "target": "n3", "length": 223, "capacity": 1, "base_speed": 25, "base_travel_time": 8.9},
        {"id": "e3", "source": "n3", "target": "n4", "length": 282, "capacity": 2, "base_speed": 30, "base_travel_time": 9.4},
        {"id": "e4", "source": "n4", "target": "n5", "length": 223, "capacity": 2, "base_speed": 35, "base_travel_time": 6.3},
        {"id": "e5", "source": "n5", "target": "n1", "length": 200, "capacity": 3, "base_speed": 40, "base_travel_time": 5.0},
        {"id": "e6", "source": "n2", "target": "n4", "length": 300, "capacity": 1, "base_speed": 20, "base_travel_time": 15.0},
    ],
    "beacons": [
        {"id": "r1", "x": 200, "y": 100, "mapped_edge_ids": ["e1"]},
        {"id": "r2", "x": 400, "y": 150, "mapped_edge_ids": ["e2"]},
        {"id": "r3", "x": 300, "y": 250, "mapped_edge_ids": ["e6"]},
        {"id": "r4", "x": 400, "y": 300, "mapped_edge_ids": ["e3"]},
    ],
}


def demo_map():
    """(nodes, edges, beacons) for ``FleetSim.load_map``."""
    return map_from_dict(DEMO_MAP)
