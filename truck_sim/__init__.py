"""Truck fleet simulation over a congestion-aware road network with beacon localization."""

from .agent import BROKEN, FINISHED, IDLE, MOVING, WAITING, Truck, TruckId
from .config import SimulationConfig
from .errors import (
    ConfigError,
    InvalidEdge,
    InvariantViolation,
    NoPathFound,
    SimulationError,
    UnknownEntity,
)
from .network_graph import Beacon, BeaconId, Edge, EdgeId, Node, NodeId, RoadNetwork
from .planner import PlannedRoute, find_path
from .simulation import FleetSim, FleetStats, SimulationSnapshot

__all__ = [
    "BROKEN", "FINISHED", "IDLE", "MOVING", "WAITING",
    "Beacon", "BeaconId", "ConfigError", "Edge", "EdgeId", "FleetSim",
    "FleetStats", "InvalidEdge", "InvariantViolation", "NoPathFound", "Node",
    "NodeId", "PlannedRoute", "RoadNetwork", "SimulationConfig",
    "SimulationError", "SimulationSnapshot", "Truck", "TruckId",
    "UnknownEntity", "find_path",
]
