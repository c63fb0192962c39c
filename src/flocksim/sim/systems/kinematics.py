from __future__ import annotations

from pygame.math import Vector2

from ..core.agent import Drone
from ..utils.math2d import _clamp_length_xy_f


def integrate(drone: Drone, force: Vector2, tick_rate: float) -> None:
    """Semi-implicit Euler step: accelerate, cap speed, then move."""
    accel_scale = drone.max_acceleration / tick_rate
    vel_x = drone.velocity.x + force.x * accel_scale
    vel_y = drone.velocity.y + force.y * accel_scale
    vel_x, vel_y = _clamp_length_xy_f(vel_x, vel_y, drone.max_speed)
    dt = 1.0 / tick_rate
    drone.position.update(
        drone.position.x + vel_x * dt,
        drone.position.y + vel_y * dt,
    )
    drone.velocity.update(vel_x, vel_y)
