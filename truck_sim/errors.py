"""Error taxonomy for the simulation engine.

None of these are fatal to a running simulation: the engine catches them at
its public surface and turns them into no-ops (with a log line) so that one
truck or one bad edit never aborts a tick.
"""


class SimulationError(Exception):
    """Base class for all engine errors."""


class NoPathFound(SimulationError):
    """The planner exhausted its frontier without reaching the goal."""

    def __init__(self, source, target, reason="unreachable"):
        super().__init__(f"no path from {source!r} to {target!r} ({reason})")
        self.source = source
        self.target = target
        self.reason = reason


class UnknownEntity(SimulationError, KeyError):
    """An operation referenced a node, edge, beacon or truck that does not exist."""

    def __init__(self, kind, entity_id):
        super().__init__(f"unknown {kind} {entity_id!r}")
        self.kind = kind
        self.entity_id = entity_id

    def __str__(self):
        return self.args[0]


class InvalidEdge(SimulationError, ValueError):
    """Edge rejected at creation time (zero capacity, missing endpoint...)."""


class ConfigError(SimulationError, ValueError):
    """Configuration value out of range."""


class InvariantViolation(SimulationError):
    """Structural invariant broken (dangling reference, load mismatch)."""
