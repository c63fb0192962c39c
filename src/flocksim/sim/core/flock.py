from __future__ import annotations

import math
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from time import perf_counter
from typing import Callable, Deque, Dict, Iterable, List, Sequence, Tuple

from loguru import logger
from pygame.math import Vector2

from .agent import Drone
from .config import SimulationConfig
from .spatial_grid import SpatialGrid
from ..systems import kinematics, metrics as metrics_system
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata
from ..utils.math2d import _heading_from_velocity


class TickPhase(str, Enum):
    IDLE = "Idle"
    GRID_REBUILD = "GridRebuild"
    FORCES = "ForceComputation"
    INTEGRATION = "KinematicsIntegration"
    FAULTED = "Faulted"


class PipelineFault(RuntimeError):
    """A worker job failed mid-tick; the population is in an undefined state."""


class Flock:
    """Owns a fixed drone population and advances it one tick at a time.

    A tick rebuilds the spatial grid, computes every drone's steering force in
    parallel, waits for all of them, then integrates every drone in parallel
    and waits again. Force jobs only read drone state and write their own
    slot in `_forces`; integration jobs only touch their own drones, so
    neither phase needs locks beyond the join between them.

    Collaborators may change rule parameters between ticks, either directly
    or through `post_update`, which defers the change to the start of the
    next tick.
    """

    def __init__(self, drones: Iterable[Drone], config: SimulationConfig | None = None):
        self._config = config if config is not None else SimulationConfig()
        config = self._config
        if config.workers < 1:
            raise ValueError(f"workers must be at least 1, got {config.workers}")
        if config.tick_rate <= 0:
            raise ValueError(f"tick_rate must be positive, got {config.tick_rate}")
        if config.max_neighbours < 1:
            raise ValueError(f"max_neighbours must be at least 1, got {config.max_neighbours}")
        self._drones: Tuple[Drone, ...] = tuple(drones)
        self._grid = SpatialGrid(config.cell_size)
        self._forces: List[Vector2] = [Vector2() for _ in self._drones]
        self._chunks = _partition(len(self._drones), config.workers)
        self._executor = ThreadPoolExecutor(max_workers=config.workers, thread_name_prefix="flock-worker")
        self._tick_lock = threading.Lock()
        self._pending_updates: Deque[Callable[[], None]] = deque()
        self._pending_lock = threading.Lock()
        self._phase = TickPhase.IDLE
        self._tick = 0
        self._metrics: TickMetrics | None = None
        logger.info(
            f"Flock ready: {len(self._drones)} drones, {config.workers} workers, "
            f"cell_size={config.cell_size}, tick_rate={config.tick_rate}"
        )

    @property
    def drones(self) -> Sequence[Drone]:
        return self._drones

    @property
    def phase(self) -> TickPhase:
        return self._phase

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def post_update(self, update: Callable[[], None]) -> None:
        """Queue a parameter change to run before the next tick starts."""
        with self._pending_lock:
            self._pending_updates.append(update)

    def tick(self) -> TickMetrics:
        with self._tick_lock:
            if self._phase == TickPhase.FAULTED:
                raise PipelineFault("flock faulted on an earlier tick")
            start = perf_counter()
            self._apply_pending_updates()

            self._phase = TickPhase.GRID_REBUILD
            self._grid.rebuild(self._drones)

            checks = self._run_phase(TickPhase.FORCES, self._compute_forces)
            self._run_phase(TickPhase.INTEGRATION, self._integrate)

            self._phase = TickPhase.IDLE
            elapsed_ms = (perf_counter() - start) * 1000.0
            metrics = metrics_system.create_metrics(self._tick, self._drones, sum(checks), elapsed_ms)
            self._metrics = metrics
            self._tick += 1
            return metrics

    def snapshot(self, tick: int | None = None) -> Snapshot:
        tick = self._tick if tick is None else tick
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(tick, self._drones, 0, 0.0)
        metadata = SnapshotMetadata(
            sim_dt=self._config.time_step,
            tick_rate=self._config.tick_rate,
            seed=self._config.seed,
            config_version=self._config.config_version,
        )
        drones_payload = [self._drone_snapshot(index, drone) for index, drone in enumerate(self._drones)]
        return Snapshot(tick=tick, metrics=metrics, drones=drones_payload, metadata=metadata)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "Flock":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _apply_pending_updates(self) -> None:
        with self._pending_lock:
            updates = list(self._pending_updates)
            self._pending_updates.clear()
        for update in updates:
            update()

    def _run_phase(self, phase: TickPhase, job: Callable[[int, int], int]) -> List[int]:
        self._phase = phase
        futures: List[Future] = [self._executor.submit(job, start, stop) for start, stop in self._chunks]
        wait(futures)
        results: List[int] = []
        for future in futures:
            error = future.exception()
            if error is not None:
                self._phase = TickPhase.FAULTED
                logger.opt(exception=error).error(f"{phase.value} job failed on tick {self._tick}")
                raise PipelineFault(f"{phase.value} failed on tick {self._tick}") from error
            results.append(future.result())
        return results

    def _compute_forces(self, start: int, stop: int) -> int:
        drones = self._drones
        grid = self._grid
        forces = self._forces
        cap = self._config.max_neighbours
        checks = 0
        for index in range(start, stop):
            drone = drones[index]
            program = drone.program
            neighbours = grid.query(drones, index, program.range())
            checks += len(neighbours)
            if len(neighbours) > cap:
                del neighbours[cap:]
            forces[index] = program.force(drone.position, neighbours)
        return checks

    def _integrate(self, start: int, stop: int) -> int:
        drones = self._drones
        forces = self._forces
        tick_rate = self._config.tick_rate
        for index in range(start, stop):
            kinematics.integrate(drones[index], forces[index], tick_rate)
        return stop - start

    def _drone_snapshot(self, index: int, drone: Drone) -> Dict[str, float]:
        return {
            "id": index,
            "x": drone.position.x,
            "y": drone.position.y,
            "vx": drone.velocity.x,
            "vy": drone.velocity.y,
            "speed": drone.velocity.length(),
            "heading": _heading_from_velocity(drone.velocity),
        }


def _partition(count: int, workers: int) -> List[Tuple[int, int]]:
    if count == 0:
        return []
    size = int(math.ceil(count / workers))
    return [(start, min(start + size, count)) for start in range(0, count, size)]
