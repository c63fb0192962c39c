from __future__ import annotations

import math

from pygame.math import Vector2


def _safe_normalize(vector: Vector2) -> Vector2:
    return _safe_normalize_xy(vector.x, vector.y)


def _safe_normalize_xy(x: float, y: float) -> Vector2:
    # Zero-length input maps to the zero vector instead of NaN.
    magnitude_sq = x * x + y * y
    if magnitude_sq <= 0.0:
        return Vector2()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector2(x * inv, y * inv)


def _clamp_length_xy_f(x: float, y: float, max_length: float) -> tuple[float, float]:
    if max_length <= 0.0:
        return 0.0, 0.0
    magnitude_sq = x * x + y * y
    max_sq = max_length * max_length
    if magnitude_sq <= max_sq:
        return x, y
    inv = max_length / math.sqrt(magnitude_sq)
    return x * inv, y * inv


def _heading_from_velocity(vector: Vector2) -> float:
    if vector.length_squared() < 1e-12:
        return 0.0
    return math.atan2(vector.y, vector.x)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

