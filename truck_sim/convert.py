"""Adapters between the engine's map objects and plain dicts, osmnx graphs and GeoDataFrames."""

from typing import Any, Dict, List, Mapping, Optional, Tuple

import geopandas as gpd
import osmnx as ox
import pandas as pd
from shapely.geometry import LineString, Point

from .network_graph import DEFAULT_EDGE_CAPACITY, DEFAULT_EDGE_SPEED, Beacon, Edge, Node

MapParts = Tuple[List[Node], List[Edge], List[Beacon]]


def _pick(d: Mapping[str, Any], *keys, default=None):
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


def map_from_dict(data: Mapping[str, Any]) -> MapParts:
    """
    Build map objects from a dict with ``nodes``, ``edges`` and ``beacons``
    (``routers`` is accepted too). Keys may be snake_case or camelCase
    (``sourceId``, ``baseSpeed``, ``mappedEdgeIds``...).
    """
    nodes = [
        Node(id=n["id"], x=float(n["x"]), y=float(n["y"]), label=n.get("label", ""))
        for n in data.get("nodes", [])
    ]
    edges = []
    for e in data.get("edges", []):
        edges.append(
            Edge(
                id=e["id"],
                source=_pick(e, "source", "sourceId"),
                target=_pick(e, "target", "targetId"),
                length=float(e["length"]),
                capacity=int(_pick(e, "capacity", default=DEFAULT_EDGE_CAPACITY)),
                base_speed=float(_pick(e, "base_speed", "baseSpeed", default=DEFAULT_EDGE_SPEED)),
                base_travel_time=_pick(e, "base_travel_time", "baseTravelTime"),
                closed=bool(_pick(e, "closed", "isClosed", default=False)),
            )
        )
    beacons = [
        Beacon(
            id=b["id"],
            x=float(b["x"]),
            y=float(b["y"]),
            mapped_edge_ids=list(_pick(b, "mapped_edge_ids", "mappedEdgeIds", default=[])),
        )
        for b in _pick(data, "beacons", "routers", default=[])
    ]
    return nodes, edges, beacons


def _capacity_from_lanes(lanes, default: int) -> int:
    # osmnx leaves lanes as str, list of str or NaN
    if isinstance(lanes, list):
        lanes = lanes[0] if lanes else None
    try:
        value = int(float(lanes))
    except (TypeError, ValueError):
        return default
    return value if value >= 1 else default


def map_from_osmnx(G, default_capacity: int = DEFAULT_EDGE_CAPACITY,
                   default_speed_m_s: float = DEFAULT_EDGE_SPEED) -> Tuple[List[Node], List[Edge]]:
    """
    Convert a projected osmnx graph (metric CRS, lengths in metres) into
    nodes and edges for ``FleetSim.load_map``. Uses ``speed_kph`` when
    ``ox.add_edge_speeds`` has been run and ``lanes`` as capacity.
    """
    nodes_gdf, edges_gdf = ox.graph_to_gdfs(G, nodes=True, edges=True)

    nodes = [
        Node(id=str(osmid), x=float(row["x"]), y=float(row["y"]), label=str(row.get("name", "") or ""))
        for osmid, row in nodes_gdf.iterrows()
    ]

    edges = []
    for (u, v, k), row in edges_gdf.iterrows():
        length = row.get("length")
        if length is None or pd.isna(length):
            length = row.geometry.length
        length = float(length)
        if length <= 0 or u == v:
            continue
        speed_kph = row.get("speed_kph")
        speed = default_speed_m_s if speed_kph is None or pd.isna(speed_kph) else float(speed_kph) / 3.6
        edges.append(
            Edge(
                id=f"{u}-{v}-{k}",
                source=str(u),
                target=str(v),
                length=length,
                capacity=_capacity_from_lanes(row.get("lanes"), default_capacity),
                base_speed=speed,
            )
        )
    return nodes, edges


EDGE_COLUMNS = [
    "edge_id", "source", "target", "capacity", "current_load",
    "current_weight", "congestion", "closed", "geometry",
]
TRUCK_COLUMNS = [
    "truck_id", "state", "current_edge", "inferred_beacon", "inferred_edge",
    "speed", "reroute_count", "geometry",
]


def edges_frame(network, crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """Edge geometry with live load / weight, for map viewers."""
    records: List[Dict[str, Any]] = []
    for edge in network.edges.values():
        a, b = network.edge_endpoints(edge.id)
        records.append(
            {
                "edge_id": edge.id,
                "source": edge.source,
                "target": edge.target,
                "capacity": edge.capacity,
                "current_load": edge.current_load,
                "current_weight": edge.current_weight,
                "congestion": edge.current_weight / edge.base_travel_time,
                "closed": edge.closed,
                "geometry": LineString([a, b]),
            }
        )
    df = pd.DataFrame(records, columns=EDGE_COLUMNS)
    return gpd.GeoDataFrame(df, geometry="geometry", crs=crs)


def trucks_frame(trucks, crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """Truck positions and localization state, one row per truck."""
    records = [
        {
            "truck_id": t.id,
            "state": t.state,
            "current_edge": t.current_edge,
            "inferred_beacon": t.inferred_beacon,
            "inferred_edge": t.inferred_edge,
            "speed": t.speed,
            "reroute_count": t.reroute_count,
            "geometry": Point(t.position),
        }
        for t in trucks
    ]
    df = pd.DataFrame(records, columns=TRUCK_COLUMNS)
    return gpd.GeoDataFrame(df, geometry="geometry", crs=crs)
