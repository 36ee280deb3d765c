import logging
from dataclasses import dataclass, field
from typing import Iterable, List, NewType, Optional, Tuple

from .localization import Localization
from .network_graph import EdgeId, NodeId, RoadNetwork, point_on_segment

logger = logging.getLogger(__name__)

TruckId = NewType("TruckId", str)

IDLE = "idle"
MOVING = "moving"
WAITING = "waiting"
BROKEN = "broken"  # reserved; no transition leads here yet
FINISHED = "finished"


@dataclass
class Truck:
    id: TruckId
    speed: float  # m/s, fixed at spawn
    destination: Optional[NodeId]
    position: Tuple[float, float]
    current_edge: Optional[EdgeId] = None
    progress: float = 0.0  # metres travelled along current_edge
    state: str = IDLE  # idle / moving / waiting / broken / finished
    plan: List[EdgeId] = field(default_factory=list)  # head == current_edge while moving
    waiting_at: Optional[NodeId] = None  # boundary node when blocked
    localization: Localization = field(default_factory=Localization)
    # metrics
    total_distance: float = 0.0
    total_time: float = 0.0
    reroute_count: int = 0

    @property
    def inferred_beacon(self):
        return self.localization.inferred_beacon

    @property
    def inferred_edge(self):
        return self.localization.inferred_edge


def advance_truck(truck: Truck, network: RoadNetwork, dt: float, policy: str) -> None:
    """Move one ``moving`` truck forward by ``dt`` seconds."""
    if truck.state != MOVING:
        return

    edge = network.edges.get(truck.current_edge)
    if edge is None:
        # edge was deleted underneath the truck
        truck.state = IDLE
        truck.current_edge = None
        return

    step = truck.speed * dt
    truck.progress += step
    truck.total_distance += step
    truck.total_time += dt

    a, b = network.edge_endpoints(edge.id)
    truck.position = point_on_segment(a, b, min(1.0, truck.progress / edge.length))

    if truck.progress < edge.length:
        return

    # leave the finished edge; overshoot is not carried over
    edge.current_load = max(0, edge.current_load - 1)
    truck.progress = 0.0
    if truck.plan and truck.plan[0] == edge.id:
        truck.plan.pop(0)

    if not truck.plan:
        truck.state = FINISHED
        truck.current_edge = None
        return

    next_edge = network.edges.get(truck.plan[0])
    if next_edge is not None and (not next_edge.closed or policy == "queue"):
        truck.current_edge = next_edge.id
        next_edge.current_load += 1
    else:
        truck.state = WAITING
        truck.current_edge = None
        truck.waiting_at = edge.target
        logger.debug("Truck %s waiting at %s for %s", truck.id, edge.target, truck.plan[0])


def move_trucks(trucks: Iterable[Truck], network: RoadNetwork, dt: float, policy: str) -> List[Truck]:
    """Advance every moving truck; returns the ones that finished this step."""
    finished = []
    for truck in trucks:
        advance_truck(truck, network, dt, policy)
        if truck.state == FINISHED:
            finished.append(truck)
    return finished
