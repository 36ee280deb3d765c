"""Beacon-based localization with hysteresis.

Each tick every truck "hears" all beacons at their true distance plus Gaussian
noise and picks the closest reading as its instantaneous candidate. The
inferred beacon only changes after the same candidate has been read
``threshold`` times in a row, which suppresses flicker between neighbouring
beacons.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple, Union

import numpy as np

from .network_graph import Beacon, BeaconId, EdgeId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stable:
    """Inferred beacon confirmed, nothing pending."""

    beacon: Optional[BeaconId] = None


@dataclass(frozen=True)
class Pending:
    """A different beacon has been read ``count`` times in a row."""

    beacon: Optional[BeaconId]
    candidate: BeaconId
    count: int


HysteresisState = Union[Stable, Pending]


def step_hysteresis(state: HysteresisState, candidate: BeaconId, threshold: int) -> Tuple[HysteresisState, bool]:
    """Advance the filter by one reading; returns (new_state, committed)."""
    if candidate == state.beacon:
        return Stable(state.beacon), False
    if isinstance(state, Pending) and candidate == state.candidate:
        count = state.count + 1
    else:
        count = 1
    if count >= threshold:
        return Stable(candidate), True
    return Pending(state.beacon, candidate, count), False


@dataclass
class Localization:
    """Per-truck localization sub-state."""

    state: HysteresisState = field(default_factory=Stable)
    inferred_edge: Optional[EdgeId] = None
    last_switch_time: float = 0.0

    @property
    def inferred_beacon(self) -> Optional[BeaconId]:
        return self.state.beacon

    @property
    def pending_candidate(self) -> Optional[BeaconId]:
        return self.state.candidate if isinstance(self.state, Pending) else None

    @property
    def pending_count(self) -> int:
        return self.state.count if isinstance(self.state, Pending) else 0

    def observe(self, candidate: BeaconId, threshold: int, now: float,
                beacons: Mapping[BeaconId, Beacon]) -> bool:
        self.state, committed = step_hysteresis(self.state, candidate, threshold)
        if committed:
            self.last_switch_time = now
            beacon = beacons.get(candidate)
            if beacon is not None and beacon.mapped_edge_ids:
                self.inferred_edge = beacon.mapped_edge_ids[0]
        return committed


def nearest_beacon(position, beacons: Mapping[BeaconId, Beacon], sigma: float,
                   rng: np.random.Generator) -> Optional[BeaconId]:
    """Beacon with the smallest noisy distance; None when there are no beacons."""
    if not beacons:
        return None
    ids = list(beacons)
    coords = np.array([beacons[b].position for b in ids], dtype=float)
    dists = np.hypot(coords[:, 0] - position[0], coords[:, 1] - position[1])
    if sigma > 0:
        dists = dists + rng.normal(0.0, sigma, size=len(ids))
    return ids[int(np.argmin(dists))]


def update_localization(trucks, beacons: Mapping[BeaconId, Beacon], sigma: float,
                        threshold: int, now: float, rng: np.random.Generator) -> None:
    for truck in trucks:
        candidate = nearest_beacon(truck.position, beacons, sigma, rng)
        if candidate is None:
            continue
        if truck.localization.observe(candidate, threshold, now, beacons):
            logger.debug("Truck %s switched to beacon %s at t=%.1f", truck.id, candidate, now)
