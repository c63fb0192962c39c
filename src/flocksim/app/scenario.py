from __future__ import annotations

from typing import List

from pygame.math import Vector2

from ..sim.core.agent import Drone
from ..sim.core.config import FlockingConfig, SimulationConfig
from ..sim.core.flock import Flock
from ..sim.core.rng import DeterministicRng
from ..sim.systems.program import FlockingProgram
from ..sim.systems.steering import (
    AlignmentRule,
    AvoidanceRule,
    CohesionRule,
    SeparationRule,
    TargetingRule,
)
from ..sim.types.metrics import TickMetrics

PREDATOR_INDEX = 0


def build_flock_program(flocking: FlockingConfig) -> tuple[FlockingProgram, TargetingRule, AvoidanceRule]:
    home = TargetingRule(target=Vector2())
    avoid = AvoidanceRule(target=Vector2(), target_distance=flocking.avoidance_distance)
    program = (
        FlockingProgram()
        .add_rule(CohesionRule(cohere_range=flocking.cohesion_range), flocking.cohesion_weight)
        .add_rule(
            SeparationRule(
                avoid_range=flocking.separation_range,
                deactivate_on_no_neighbours=True,
                only_use_closest=True,
            ),
            flocking.separation_weight,
        )
        .add_rule(
            AlignmentRule(align_range=flocking.alignment_range, deactivate_on_no_neighbours=True),
            flocking.alignment_weight,
        )
        .add_rule(home, flocking.home_weight)
        .add_rule(avoid, flocking.avoidance_weight)
    )
    return program, home, avoid


class PredatorScenario:
    """Flock of drones harried by a single predator drone.

    Drone 0 chases a randomly chosen flock member, switching prey every
    `retarget_interval_ticks`; the rest of the flock steers away from it.
    Call `before_tick` between ticks to move the targets.
    """

    def __init__(self, config: SimulationConfig):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self.program, self.home_rule, self.avoid_rule = build_flock_program(config.flocking)
        self.predator_program = FlockingProgram()
        self.chase_rule = TargetingRule()
        self.predator_program.add_rule(self.chase_rule, 1.0)
        self.flock = Flock(self._spawn_drones(), config)
        self._prey_index = 1 if len(self.flock.drones) > 1 else PREDATOR_INDEX
        self._retarget_timer = 0

    @property
    def prey_index(self) -> int:
        return self._prey_index

    @property
    def has_predator(self) -> bool:
        return self._config.predator.enabled and len(self.flock.drones) > 1

    def before_tick(self) -> None:
        if not self.has_predator:
            return
        drones = self.flock.drones
        self._retarget_timer += 1
        if self._retarget_timer > self._config.predator.retarget_interval_ticks:
            self._retarget_timer = 0
            self._prey_index = self._rng.next_int(len(drones) - 1) + 1
        self.chase_rule.target = Vector2(drones[self._prey_index].position)
        self.avoid_rule.target = Vector2(drones[PREDATOR_INDEX].position)

    def step(self) -> TickMetrics:
        self.before_tick()
        return self.flock.tick()

    def close(self) -> None:
        self.flock.close()

    def _spawn_drones(self) -> List[Drone]:
        config = self._config
        drone_config = config.drone
        rng = self._rng
        drones: List[Drone] = []
        for index in range(config.population):
            program = self.program
            max_speed = drone_config.base_max_speed + rng.next_range(0.0, drone_config.max_speed_jitter)
            if index == PREDATOR_INDEX and config.predator.enabled and config.population > 1:
                program = self.predator_program
                max_speed = config.predator.max_speed
            drones.append(
                Drone(
                    position=rng.next_in_disc(config.spawn_radius),
                    velocity=rng.next_unit_circle() * rng.next_range(0.0, config.initial_speed_max),
                    max_speed=max_speed,
                    max_acceleration=drone_config.max_acceleration,
                    program=program,
                )
            )
        return drones
