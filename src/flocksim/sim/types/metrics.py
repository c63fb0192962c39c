from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    neighbor_checks: int
    average_speed: float
    centroid_x: float
    centroid_y: float
    spread: float
    tick_duration_ms: float = 0.0
