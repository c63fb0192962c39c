from __future__ import annotations

from typing import List, Sequence, Tuple

from pygame.math import Vector2

from ..types.neighbour import NeighbourInfo
from .steering import SteeringRule


class FlockingProgram:
    """Ordered (rule, weight) pairs blended into one steering force.

    The blend is a weighted average over the rules that are active for the
    call, so the magnitude does not depend on how many of them fired.
    """

    def __init__(self) -> None:
        self._rules: List[Tuple[SteeringRule, float]] = []
        self._max_range = 0.0

    @property
    def rules(self) -> List[Tuple[SteeringRule, float]]:
        return list(self._rules)

    def add_rule(self, rule: SteeringRule, weight: float) -> "FlockingProgram":
        self._rules.append((rule, weight))
        self._recalc_max_range()
        return self

    def force(self, position: Vector2, neighbours: Sequence[NeighbourInfo]) -> Vector2:
        total_x = 0.0
        total_y = 0.0
        total_weight = 0.0
        for rule, weight in self._rules:
            rule_force = rule.force(position, neighbours)
            if rule_force is None:
                continue
            total_x += rule_force.x * weight
            total_y += rule_force.y * weight
            total_weight += weight
        if total_weight == 0.0:
            return Vector2()
        return Vector2(total_x / total_weight, total_y / total_weight)

    def range(self) -> float:
        return self._max_range

    def _recalc_max_range(self) -> None:
        max_range = 0.0
        for rule, _weight in self._rules:
            max_range = max(max_range, rule.range())
        self._max_range = max_range
