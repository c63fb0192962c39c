from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from pygame.math import Vector2
from pytest import approx

from flocksim.sim.systems.program import FlockingProgram
from flocksim.sim.systems.steering import CohesionRule, SeparationRule, TargetingRule


@dataclass
class FixedRule:
    value: Optional[Vector2]
    reach: float = 0.0
    calls: int = 0

    def force(self, position, neighbours):
        self.calls += 1
        return None if self.value is None else Vector2(self.value)

    def range(self) -> float:
        return self.reach


def test_empty_program_returns_zero():
    assert FlockingProgram().force(Vector2(), []) == (0.0, 0.0)


def test_only_inactive_rules_returns_zero():
    program = FlockingProgram().add_rule(FixedRule(None), 1.0).add_rule(FixedRule(None), 5.0)
    assert program.force(Vector2(), []) == (0.0, 0.0)


def test_active_rules_with_zero_weight_return_zero():
    program = FlockingProgram().add_rule(FixedRule(Vector2(1.0, 0.0)), 0.0)
    assert program.force(Vector2(), []) == (0.0, 0.0)


def test_weighted_average_of_active_rules():
    program = (
        FlockingProgram()
        .add_rule(FixedRule(Vector2(1.0, 0.0)), 1.0)
        .add_rule(FixedRule(Vector2(0.0, 1.0)), 3.0)
    )
    force = program.force(Vector2(), [])
    assert force.x == approx(0.25)
    assert force.y == approx(0.75)


def test_inactive_rule_weight_is_excluded():
    program = (
        FlockingProgram()
        .add_rule(FixedRule(Vector2(1.0, 0.0)), 2.0)
        .add_rule(FixedRule(None), 10.0)
    )
    assert program.force(Vector2(), []) == (1.0, 0.0)


def test_every_rule_is_consulted_in_order():
    first = FixedRule(Vector2(1.0, 0.0))
    second = FixedRule(None)
    program = FlockingProgram().add_rule(first, 1.0).add_rule(second, 1.0)
    program.force(Vector2(), [])
    assert first.calls == 1
    assert second.calls == 1
    assert [rule for rule, _ in program.rules] == [first, second]


def test_blend_is_bounded_by_largest_active_force():
    rng = random.Random(99)
    for _ in range(200):
        program = FlockingProgram()
        largest = 0.0
        for _ in range(rng.randint(1, 6)):
            if rng.random() < 0.3:
                program.add_rule(FixedRule(None), rng.uniform(0.0, 4.0))
                continue
            value = Vector2(rng.uniform(-3.0, 3.0), rng.uniform(-3.0, 3.0))
            largest = max(largest, value.length())
            program.add_rule(FixedRule(value), rng.uniform(0.0, 4.0))
        assert program.force(Vector2(), []).length() <= largest + 1e-9


def test_range_tracks_largest_rule_range():
    program = FlockingProgram()
    assert program.range() == 0.0
    program.add_rule(CohesionRule(cohere_range=15.0), 0.3)
    assert program.range() == 15.0
    program.add_rule(SeparationRule(avoid_range=5.0), 2.0)
    assert program.range() == 15.0
    program.add_rule(TargetingRule(), 0.2)
    assert program.range() == 15.0
    program.add_rule(FixedRule(None, reach=40.0), 1.0)
    assert program.range() == 40.0
