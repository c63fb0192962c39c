from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

from pygame.math import Vector2

from ..types.neighbour import NeighbourInfo
from ..utils.math2d import _round_half_up, _safe_normalize

if TYPE_CHECKING:
    from .agent import Drone


class SpatialGrid:
    """Uniform hash grid over drone indices, rebuilt from scratch every tick.

    Cells are centred on multiples of `cell_size`: a coordinate maps to the
    nearest cell centre. Queries scan a square block of cells wide enough to
    cover the search radius and then filter on exact distance, so the result
    set never depends on the cell size.

    The grid is only read while forces are computed, so queries allocate their
    own result lists and may run concurrently.
    """

    def __init__(self, cell_size: float) -> None:
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self._cell_size = cell_size
        self._inv_cell_size = 1.0 / cell_size
        self._cells: Dict[Tuple[int, int], List[int]] = {}

    @property
    def occupied_cells(self) -> int:
        return len(self._cells)

    def cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (
            _round_half_up(position.x * self._inv_cell_size),
            _round_half_up(position.y * self._inv_cell_size),
        )

    def cell_span(self, position: Vector2, radius: float) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """Inclusive key bounds of every cell touching the square of half-width `radius`."""
        # Same rounding as rebuild, padded by a few ulps so a pair that rounds to
        # exactly `radius` apart stays inside from either end.
        reach = radius + 4.0 * math.ulp(max(abs(position.x), abs(position.y), radius))
        low = self.cell_key(Vector2(position.x - reach, position.y - reach))
        high = self.cell_key(Vector2(position.x + reach, position.y + reach))
        return low, high

    def rebuild(self, drones: Sequence["Drone"]) -> None:
        cells: Dict[Tuple[int, int], List[int]] = {}
        for index, drone in enumerate(drones):
            key = self.cell_key(drone.position)
            bucket = cells.get(key)
            if bucket is None:
                bucket = []
                cells[key] = bucket
            bucket.append(index)
        self._cells = cells

    def bucket(self, key: Tuple[int, int]) -> List[int]:
        return list(self._cells.get(key, ()))

    def query(self, drones: Sequence["Drone"], index: int, max_range: float) -> List[NeighbourInfo]:
        """Return every other drone within `max_range` of drone `index`, nearest first."""
        origin = drones[index].position
        (low_x, low_y), (high_x, high_y) = self.cell_span(origin, max_range)
        pos_x = origin.x
        pos_y = origin.y
        cells = self._cells
        found: List[NeighbourInfo] = []

        for key_x in range(low_x, high_x + 1):
            for key_y in range(low_y, high_y + 1):
                bucket = cells.get((key_x, key_y))
                if not bucket:
                    continue
                for other_index in bucket:
                    if other_index == index:
                        continue
                    other = drones[other_index]
                    offset_x = other.position.x - pos_x
                    offset_y = other.position.y - pos_y
                    distance = math.hypot(offset_x, offset_y)
                    if distance > max_range:
                        continue
                    if distance > 0.0:
                        direction = Vector2(offset_x / distance, offset_y / distance)
                    else:
                        direction = Vector2()
                    found.append(
                        NeighbourInfo(
                            index=other_index,
                            position=Vector2(other.position),
                            forward=_safe_normalize(other.velocity),
                            offset=Vector2(offset_x, offset_y),
                            distance=distance,
                            direction=direction,
                        )
                    )

        found.sort(key=lambda info: info.distance)
        return found
