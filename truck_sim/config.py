"""Simulation tunables.

All step, routing, congestion and localization parameters live on a single
``SimulationConfig`` so that the engine and the command-line runner share one
source of truth. Configs can be built programmatically, from a plain dict
(accepting the camelCase option names used by front-ends) or from YAML.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

import numpy as np
import yaml

from .errors import ConfigError

__all__ = [
    "SimulationConfig",
    "OVERFLOW_POLICIES",
]

DEFAULT_YAML_INDENT = 2

OVERFLOW_POLICIES = ("queue", "closed_when_full")

# front-end option name -> dataclass field
_ALIASES = {
    "hysteresisThreshold": "hysteresis_threshold",
    "hysteresisN": "hysteresis_threshold",
    "localizationNoiseSigma": "localization_noise_sigma",
    "routerNoiseSigma": "localization_noise_sigma",
    "congestionSensitivity": "congestion_sensitivity",
    "alpha": "congestion_sensitivity",
    "congestionExponent": "congestion_exponent",
    "beta": "congestion_exponent",
    "replanInterval": "replan_interval",
    "rerouteInterval": "replan_interval",
    "agentSpeedMin": "agent_speed_min",
    "truckSpeedMin": "agent_speed_min",
    "agentSpeedMax": "agent_speed_max",
    "truckSpeedMax": "agent_speed_max",
    "overflowPolicy": "overflow_policy",
    "policy": "overflow_policy",
    "statsHistorySize": "stats_history_size",
}


@dataclass
class SimulationConfig:
    """Container for all simulation parameters.

    Attributes
    ----------
    dt
        Fixed step duration in seconds.
    hysteresis_threshold
        Consecutive readings of a new beacon required before switching to it.
    localization_noise_sigma
        Standard deviation of the Gaussian noise added to beacon distances.
    congestion_sensitivity
        BPR ``alpha``; how strongly load inflates travel time.
    congestion_exponent
        BPR ``beta``; curvature of the load/capacity response.
    replan_interval
        Seconds of simulated time between re-planning passes.
    agent_speed_min, agent_speed_max
        Bounds of the uniform distribution each truck's speed is drawn from.
    overflow_policy
        ``queue`` lets trucks enter any edge (closed or over capacity);
        ``closed_when_full`` makes trucks wait in front of closed edges.
    seed
        Seed for the engine's random generator; ``None`` draws fresh entropy.
    stats_history_size
        Number of per-tick stats snapshots kept for chart consumers.
    """

    dt: float = 0.5
    hysteresis_threshold: int = 3
    localization_noise_sigma: float = 10.0
    congestion_sensitivity: float = 1.0
    congestion_exponent: float = 2.0
    replan_interval: float = 2.0
    agent_speed_min: float = 20.0
    agent_speed_max: float = 40.0
    overflow_policy: str = "queue"
    seed: Optional[int] = None
    stats_history_size: int = 50

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.dt <= 0:
            raise ConfigError(f"dt must be positive, got {self.dt}")
        if int(self.hysteresis_threshold) < 1:
            raise ConfigError("hysteresis_threshold must be >= 1")
        if self.localization_noise_sigma < 0:
            raise ConfigError("localization_noise_sigma must be >= 0")
        if self.congestion_sensitivity < 0:
            raise ConfigError("congestion_sensitivity must be >= 0")
        if self.congestion_exponent < 0:
            raise ConfigError("congestion_exponent must be >= 0")
        if self.replan_interval <= 0:
            raise ConfigError("replan_interval must be positive")
        if self.agent_speed_min <= 0 or self.agent_speed_max < self.agent_speed_min:
            raise ConfigError(
                f"invalid speed range [{self.agent_speed_min}, {self.agent_speed_max}]"
            )
        if self.overflow_policy not in OVERFLOW_POLICIES:
            raise ConfigError(
                f"overflow_policy must be one of {OVERFLOW_POLICIES}, got {self.overflow_policy!r}"
            )
        if self.stats_history_size < 1:
            raise ConfigError("stats_history_size must be >= 1")

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------
    @property
    def mean_speed(self) -> float:
        return (self.agent_speed_min + self.agent_speed_max) / 2.0

    def make_rng(self) -> np.random.Generator:
        return np.random.default_rng(self.seed)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SimulationConfig":
        """Build a config from snake_case or camelCase option names."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigError(f"unrecognized option {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: os.PathLike | str) -> "SimulationConfig":
        """Load a configuration from a YAML file."""
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        return cls.from_dict(data or {})

    def to_yaml(self, path: os.PathLike | str) -> None:
        """Save the config to YAML."""
        with open(path, "w", encoding="utf-8") as fh:
            yaml.safe_dump(asdict(self), fh, indent=DEFAULT_YAML_INDENT)

    def replace(self, **changes) -> "SimulationConfig":
        data = asdict(self)
        data.update(changes)
        return SimulationConfig.from_dict(data)
