from __future__ import annotations

from dataclasses import dataclass

from pygame.math import Vector2


@dataclass(slots=True)
class NeighbourInfo:
    """What a drone observes about one nearby drone during a single query."""

    index: int
    position: Vector2
    forward: Vector2
    offset: Vector2
    distance: float
    direction: Vector2
