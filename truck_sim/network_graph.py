"""Road network: nodes, directed capacity-limited edges and positioning beacons.

The topology is kept in a ``networkx.MultiDiGraph`` (edge key = edge id) which
doubles as the node -> outgoing-edge adjacency index; ``edges`` is the
id -> edge lookup table. Both are updated together on every edit.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, NewType, Optional, Tuple

import networkx as nx
from shapely.geometry import LineString, Point

from .errors import InvalidEdge, InvariantViolation, UnknownEntity

logger = logging.getLogger(__name__)

NodeId = NewType("NodeId", str)
EdgeId = NewType("EdgeId", str)
BeaconId = NewType("BeaconId", str)

# editor defaults for edges drawn between two nodes
DEFAULT_EDGE_CAPACITY = 2
DEFAULT_EDGE_SPEED = 30.0


# ---------------------------
# Geometry helpers
# ---------------------------

def distance(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    return math.hypot(p2[0] - p1[0], p2[1] - p1[1])


def point_on_segment(p1, p2, ratio: float) -> Tuple[float, float]:
    """Linear interpolation between p1 and p2 (ratio 0 -> p1, 1 -> p2)."""
    return (p1[0] + (p2[0] - p1[0]) * ratio, p1[1] + (p2[1] - p1[1]) * ratio)


def distance_to_segment(p, a, b) -> float:
    """Shortest distance from point p to the segment a-b."""
    if a == b:
        return distance(p, a)
    return LineString([a, b]).distance(Point(p))


# ---------------------------
# Entities
# ---------------------------

@dataclass
class Node:
    id: NodeId
    x: float
    y: float
    label: str = ""

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class Edge:
    id: EdgeId
    source: NodeId
    target: NodeId
    length: float  # metres
    capacity: int  # max simultaneous trucks
    base_speed: float  # free-flow speed, m/s
    base_travel_time: Optional[float] = None  # free-flow time, seconds
    current_load: int = 0
    current_weight: Optional[float] = None  # dynamic travel time
    closed: bool = False

    def __post_init__(self):
        if self.base_travel_time is None and self.base_speed > 0:
            self.base_travel_time = self.length / self.base_speed
        if self.current_weight is None:
            self.current_weight = self.base_travel_time


@dataclass
class Beacon:
    id: BeaconId
    x: float
    y: float
    mapped_edge_ids: List[EdgeId] = field(default_factory=list)

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


# ---------------------------
# Network
# ---------------------------

class RoadNetwork:
    def __init__(self):
        self.G = nx.MultiDiGraph()
        self.nodes: Dict[NodeId, Node] = {}
        self.edges: Dict[EdgeId, Edge] = {}
        self.beacons: Dict[BeaconId, Beacon] = {}

    # -- lookups -------------------------------------------------------

    def node(self, node_id) -> Node:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise UnknownEntity("node", node_id) from None

    def edge(self, edge_id) -> Edge:
        try:
            return self.edges[edge_id]
        except KeyError:
            raise UnknownEntity("edge", edge_id) from None

    def beacon(self, beacon_id) -> Beacon:
        try:
            return self.beacons[beacon_id]
        except KeyError:
            raise UnknownEntity("beacon", beacon_id) from None

    def outgoing(self, node_id) -> List[Edge]:
        """Edges leaving ``node_id``, in insertion order."""
        if node_id not in self.G:
            raise UnknownEntity("node", node_id)
        return [data["edge"] for _, _, data in self.G.out_edges(node_id, data=True)]

    def edge_endpoints(self, edge_id) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        edge = self.edge(edge_id)
        return self.node(edge.source).position, self.node(edge.target).position

    @property
    def max_free_flow_speed(self) -> float:
        """Largest straight-line distance covered per second of free-flow time on any edge."""
        speeds = []
        for e in self.edges.values():
            chord = distance(self.nodes[e.source].position, self.nodes[e.target].position)
            if chord > 0:
                speeds.append(chord / e.base_travel_time)
        return max(speeds) if speeds else 1.0

    # -- nodes ---------------------------------------------------------

    def add_node(self, node: Node) -> bool:
        if node.id in self.nodes:
            logger.debug("Node %s already exists; ignoring add", node.id)
            return False
        self.nodes[node.id] = node
        self.G.add_node(node.id, x=node.x, y=node.y, label=node.label)
        return True

    def remove_node(self, node_id) -> List[EdgeId]:
        """Remove a node and every edge touching it; returns the removed edge ids."""
        if node_id not in self.nodes:
            return []
        incident = [
            key for _, _, key in self.G.in_edges(node_id, keys=True)
        ] + [
            key for _, _, key in self.G.out_edges(node_id, keys=True)
        ]
        removed = list(dict.fromkeys(incident))
        for edge_id in removed:
            del self.edges[edge_id]
        # drops incident edges from the adjacency as well
        self.G.remove_node(node_id)
        del self.nodes[node_id]
        self._purge_beacon_mappings(set(removed))
        return removed

    # -- edges ---------------------------------------------------------

    def add_edge(self, edge: Edge) -> Edge:
        if edge.id in self.edges:
            raise InvalidEdge(f"edge {edge.id!r} already exists")
        if edge.source not in self.nodes:
            raise UnknownEntity("node", edge.source)
        if edge.target not in self.nodes:
            raise UnknownEntity("node", edge.target)
        if edge.capacity is None or int(edge.capacity) < 1:
            raise InvalidEdge(f"edge {edge.id!r} capacity must be >= 1, got {edge.capacity}")
        if edge.length <= 0:
            raise InvalidEdge(f"edge {edge.id!r} length must be positive, got {edge.length}")
        if not edge.base_travel_time or edge.base_travel_time <= 0:
            raise InvalidEdge(f"edge {edge.id!r} needs a positive free-flow time")
        edge.capacity = int(edge.capacity)
        self.edges[edge.id] = edge
        self.G.add_edge(edge.source, edge.target, key=edge.id, edge=edge)
        return edge

    def make_edge(self, edge_id, source, target, capacity=DEFAULT_EDGE_CAPACITY,
                  base_speed=DEFAULT_EDGE_SPEED, length=None) -> Edge:
        """Build (not add) an edge whose length comes from node geometry."""
        if length is None:
            length = distance(self.node(source).position, self.node(target).position)
        return Edge(
            id=edge_id,
            source=source,
            target=target,
            length=float(length),
            capacity=capacity,
            base_speed=float(base_speed),
        )

    def remove_edge(self, edge_id) -> bool:
        edge = self.edges.pop(edge_id, None)
        if edge is None:
            return False
        self.G.remove_edge(edge.source, edge.target, key=edge_id)
        self._purge_beacon_mappings({edge_id})
        return True

    def set_edge_closed(self, edge_id, closed: bool) -> bool:
        edge = self.edges.get(edge_id)
        if edge is None:
            return False
        edge.closed = bool(closed)
        return True

    # -- beacons -------------------------------------------------------

    def nearest_edge(self, x: float, y: float) -> Optional[EdgeId]:
        """Edge whose segment lies closest to (x, y); first one wins ties."""
        best_id = None
        best_dist = float("inf")
        for edge in self.edges.values():
            a = self.nodes[edge.source].position
            b = self.nodes[edge.target].position
            d = distance_to_segment((x, y), a, b)
            if d < best_dist:
                best_dist = d
                best_id = edge.id
        return best_id

    def add_beacon(self, beacon: Beacon) -> Beacon:
        nearest = self.nearest_edge(beacon.x, beacon.y)
        beacon.mapped_edge_ids = [nearest] if nearest is not None else []
        self.beacons[beacon.id] = beacon
        return beacon

    def remove_beacon(self, beacon_id) -> bool:
        return self.beacons.pop(beacon_id, None) is not None

    def remap_beacons(self) -> int:
        """Map every beacon with an empty mapping to its nearest edge."""
        remapped = 0
        for beacon in self.beacons.values():
            if beacon.mapped_edge_ids:
                continue
            nearest = self.nearest_edge(beacon.x, beacon.y)
            if nearest is not None:
                beacon.mapped_edge_ids = [nearest]
                remapped += 1
        return remapped

    def _purge_beacon_mappings(self, edge_ids):
        if not edge_ids:
            return
        for beacon in self.beacons.values():
            beacon.mapped_edge_ids = [e for e in beacon.mapped_edge_ids if e not in edge_ids]

    # -- integrity -----------------------------------------------------

    def check_invariants(self) -> None:
        for edge in self.edges.values():
            if edge.source not in self.nodes or edge.target not in self.nodes:
                raise InvariantViolation(f"edge {edge.id!r} references a missing node")
            if not self.G.has_edge(edge.source, edge.target, key=edge.id):
                raise InvariantViolation(f"edge {edge.id!r} missing from adjacency index")
        if self.G.number_of_edges() != len(self.edges):
            raise InvariantViolation("adjacency index out of sync with edge table")
        for beacon in self.beacons.values():
            for edge_id in beacon.mapped_edge_ids:
                if edge_id not in self.edges:
                    raise InvariantViolation(
                        f"beacon {beacon.id!r} mapped to missing edge {edge_id!r}"
                    )
