from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from pygame.math import Vector2

from ..types.neighbour import NeighbourInfo
from ..utils.math2d import _safe_normalize, _safe_normalize_xy


class SteeringRule(Protocol):
    """A single steering behaviour.

    `force` receives the neighbour list sorted nearest first and returns a
    direction, or None when the rule has nothing to say this tick. `range`
    is the furthest neighbour distance the rule ever looks at.
    """

    def force(self, position: Vector2, neighbours: Sequence[NeighbourInfo]) -> Optional[Vector2]:
        ...

    def range(self) -> float:
        ...


@dataclass
class SeparationRule:
    avoid_range: float
    deactivate_on_no_neighbours: bool = False
    only_use_closest: bool = False

    def force(self, position: Vector2, neighbours: Sequence[NeighbourInfo]) -> Optional[Vector2]:
        total_x = 0.0
        total_y = 0.0
        for i, neighbour in enumerate(neighbours):
            if neighbour.distance > self.avoid_range or (i > 0 and self.only_use_closest):
                break
            total_x -= neighbour.direction.x
            total_y -= neighbour.direction.y
        return _finish(total_x, total_y, self.deactivate_on_no_neighbours)

    def range(self) -> float:
        return self.avoid_range


@dataclass
class AlignmentRule:
    align_range: float
    # Off: the sum of headings is divided by the full neighbour count, so the
    # result shrinks below unit length when headings disagree or neighbours
    # sit outside align_range.
    perform_normalisation: bool = False
    deactivate_on_no_neighbours: bool = False

    def force(self, position: Vector2, neighbours: Sequence[NeighbourInfo]) -> Optional[Vector2]:
        total_x = 0.0
        total_y = 0.0
        for neighbour in neighbours:
            if neighbour.distance > self.align_range:
                break
            total_x += neighbour.forward.x
            total_y += neighbour.forward.y
        if total_x == 0.0 and total_y == 0.0:
            return None if self.deactivate_on_no_neighbours else Vector2()
        if self.perform_normalisation:
            return _safe_normalize_xy(total_x, total_y)
        count = len(neighbours)
        return Vector2(total_x / count, total_y / count)

    def range(self) -> float:
        return self.align_range


@dataclass
class CohesionRule:
    cohere_range: float
    deactivate_on_no_neighbours: bool = False

    def force(self, position: Vector2, neighbours: Sequence[NeighbourInfo]) -> Optional[Vector2]:
        total_x = 0.0
        total_y = 0.0
        for neighbour in neighbours:
            if neighbour.distance > self.cohere_range:
                break
            total_x += neighbour.direction.x
            total_y += neighbour.direction.y
        return _finish(total_x, total_y, self.deactivate_on_no_neighbours)

    def range(self) -> float:
        return self.cohere_range


@dataclass
class TargetingRule:
    target: Vector2 = field(default_factory=Vector2)

    def force(self, position: Vector2, neighbours: Sequence[NeighbourInfo]) -> Optional[Vector2]:
        # Sitting exactly on the target yields a zero pull, still counted as active.
        return _safe_normalize(self.target - position)

    def range(self) -> float:
        return 0.0


@dataclass
class AvoidanceRule:
    target: Vector2 = field(default_factory=Vector2)
    target_distance: float = 0.0

    def force(self, position: Vector2, neighbours: Sequence[NeighbourInfo]) -> Optional[Vector2]:
        away = position - self.target
        if away.length() < self.target_distance:
            return _safe_normalize(away)
        return None

    def range(self) -> float:
        return 0.0


@dataclass
class MultiAvoidanceRule:
    targets: List[Vector2] = field(default_factory=list)
    target_distance: float = 0.0

    def force(self, position: Vector2, neighbours: Sequence[NeighbourInfo]) -> Optional[Vector2]:
        total_x = 0.0
        total_y = 0.0
        for target in self.targets:
            away = position - target
            if away.length() < self.target_distance:
                unit = _safe_normalize(away)
                total_x += unit.x
                total_y += unit.y
        if total_x == 0.0 and total_y == 0.0:
            return None
        return _safe_normalize_xy(total_x, total_y)

    def range(self) -> float:
        return 0.0


def _finish(total_x: float, total_y: float, deactivate_on_no_neighbours: bool) -> Optional[Vector2]:
    if total_x == 0.0 and total_y == 0.0:
        return None if deactivate_on_no_neighbours else Vector2()
    return _safe_normalize_xy(total_x, total_y)
