from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class DroneConfig:
    base_max_speed: float = 10.0
    max_speed_jitter: float = 2.5
    max_acceleration: float = 100.0


@dataclass
class PredatorConfig:
    enabled: bool = True
    max_speed: float = 15.0
    retarget_interval_ticks: int = 240


@dataclass
class FlockingConfig:
    cohesion_range: float = 15.0
    cohesion_weight: float = 0.3
    separation_range: float = 5.0
    separation_weight: float = 2.0
    alignment_range: float = 10.0
    alignment_weight: float = 1.0
    # Pull toward the origin keeps the flock on screen
    home_weight: float = 0.2
    avoidance_distance: float = 25.0
    avoidance_weight: float = 2.0


@dataclass
class SimulationConfig:
    tick_rate: float = 60.0
    population: int = 1000
    cell_size: float = 15.0
    workers: int = 4
    max_neighbours: int = 10
    seed: int = 42
    spawn_radius: float = 150.0
    initial_speed_max: float = 10.0
    config_version: str = "v1"
    drone: DroneConfig = field(default_factory=DroneConfig)
    predator: PredatorConfig = field(default_factory=PredatorConfig)
    flocking: FlockingConfig = field(default_factory=FlockingConfig)

    @property
    def time_step(self) -> float:
        return 1.0 / self.tick_rate

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


def load_config(raw: dict) -> SimulationConfig:
    drone = DroneConfig(**raw.get("drone", {}))
    predator = PredatorConfig(**raw.get("predator", {}))
    flocking = FlockingConfig(**raw.get("flocking", {}))
    sim_values = {k: v for k, v in raw.items() if k not in {"drone", "predator", "flocking"}}
    return SimulationConfig(drone=drone, predator=predator, flocking=flocking, **sim_values)
