"""BPR-style congestion cost: travel_time = base * (1 + alpha * (load / capacity) ** beta)."""

from .network_graph import RoadNetwork


def congested_travel_time(load, capacity, base_travel_time, alpha, beta) -> float:
    """Dynamic edge cost for ``load`` trucks on an edge of ``capacity``.

    Non-decreasing in ``load`` and never below ``base_travel_time`` for
    non-negative ``alpha``, which keeps the planner heuristic admissible.
    """
    if capacity <= 0:
        raise ValueError(f"capacity must be >= 1, got {capacity}")
    frac = float(load) / float(capacity)
    multiplier = 1.0 + alpha * (frac ** beta)
    return float(base_travel_time * multiplier)


def update_edge_weights(network: RoadNetwork, alpha: float, beta: float) -> None:
    # every edge reads only its own load
    for edge in network.edges.values():
        edge.current_weight = congested_travel_time(
            edge.current_load, edge.capacity, edge.base_travel_time, alpha, beta
        )


def reset_edge_weights(network: RoadNetwork) -> None:
    for edge in network.edges.values():
        edge.current_load = 0
        edge.current_weight = float(edge.base_travel_time)
