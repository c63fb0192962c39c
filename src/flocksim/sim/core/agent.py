from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pygame.math import Vector2

if TYPE_CHECKING:
    from ..systems.program import FlockingProgram


@dataclass(slots=True)
class Drone:
    position: Vector2
    velocity: Vector2
    max_speed: float
    max_acceleration: float
    program: "FlockingProgram"
