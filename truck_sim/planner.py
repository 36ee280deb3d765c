"""Dynamic-weight A* route planning over the road network.

Costs are the edges' ``current_weight`` at call time; closed edges are hidden
from the search. The heuristic is the straight-line distance to the goal
divided by the fastest chord speed in the network (endpoint distance over
free-flow time, whatever length an edge declares). Any route to the goal
covers at least that distance, and congestion only ever inflates an edge
above its free-flow time, so the estimate never exceeds the true cost.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import networkx as nx

from .errors import NoPathFound
from .network_graph import Edge, EdgeId, NodeId, RoadNetwork, distance

logger = logging.getLogger(__name__)


@dataclass
class PlannedRoute:
    edges: List[EdgeId]
    cost: float

    def __len__(self):
        return len(self.edges)


def _cheapest_open_edge(keyed_data) -> Optional[Edge]:
    """Cheapest non-closed parallel edge; lowest id wins ties."""
    best = None
    for data in keyed_data.values():
        edge = data["edge"]
        if edge.closed:
            continue
        if best is None or (edge.current_weight, edge.id) < (best.current_weight, best.id):
            best = edge
    return best


def find_path(network: RoadNetwork, source: NodeId, target: NodeId) -> PlannedRoute:
    """Cheapest route from ``source`` to ``target`` under the current weights.

    Raises NoPathFound when either node is unknown or every route is closed or
    disconnected. ``source == target`` yields an empty route of cost 0.
    """
    if source not in network.nodes or target not in network.nodes:
        raise NoPathFound(source, target, reason="unknown node")

    goal = network.nodes[target].position
    speed = network.max_free_flow_speed

    def heuristic(u, _target):
        return distance(network.nodes[u].position, goal) / speed

    def weight(u, v, keyed_data):
        # returning None hides the hop from the search
        edge = _cheapest_open_edge(keyed_data)
        return None if edge is None else edge.current_weight

    try:
        node_path = nx.astar_path(network.G, source, target, heuristic=heuristic, weight=weight)
    except (nx.NetworkXNoPath, nx.NodeNotFound):
        raise NoPathFound(source, target) from None

    edges = []
    cost = 0.0
    for u, v in zip(node_path[:-1], node_path[1:]):
        edge = _cheapest_open_edge(network.G[u][v])
        edges.append(edge.id)
        cost += edge.current_weight
    logger.debug("Planned %s -> %s via %s (cost %.2f)", source, target, edges, cost)
    return PlannedRoute(edges=edges, cost=cost)


def route_cost(network: RoadNetwork, edge_ids) -> float:
    """Summed current weight of a route, e.g. to re-price a stored plan."""
    return float(sum(network.edge(e).current_weight for e in edge_ids))
