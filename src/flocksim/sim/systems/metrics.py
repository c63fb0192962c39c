from __future__ import annotations

import math
from typing import Sequence

from ..core.agent import Drone
from ..types.metrics import TickMetrics


def create_metrics(
    tick: int,
    drones: Sequence[Drone],
    neighbor_checks: int,
    duration_ms: float,
) -> TickMetrics:
    population = len(drones)
    if population == 0:
        return TickMetrics(
            tick=tick,
            population=0,
            neighbor_checks=neighbor_checks,
            average_speed=0.0,
            centroid_x=0.0,
            centroid_y=0.0,
            spread=0.0,
            tick_duration_ms=duration_ms,
        )
    sum_x = 0.0
    sum_y = 0.0
    speed_sum = 0.0
    for drone in drones:
        sum_x += drone.position.x
        sum_y += drone.position.y
        speed_sum += drone.velocity.length()
    centroid_x = sum_x / population
    centroid_y = sum_y / population
    spread = 0.0
    for drone in drones:
        spread += math.hypot(drone.position.x - centroid_x, drone.position.y - centroid_y)
    return TickMetrics(
        tick=tick,
        population=population,
        neighbor_checks=neighbor_checks,
        average_speed=speed_sum / population,
        centroid_x=centroid_x,
        centroid_y=centroid_y,
        spread=spread / population,
        tick_duration_ms=duration_ms,
    )
