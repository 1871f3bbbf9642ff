from __future__ import annotations

import math
from typing import Iterable, Sequence

from pygame.math import Vector3

TAU = 2.0 * math.pi


def _vec(value: Sequence[float] | Vector3 | None) -> Vector3:
    if value is None:
        return Vector3()
    if isinstance(value, Vector3):
        return Vector3(value)
    x, y, *rest = value
    return Vector3(float(x), float(y), float(rest[0]) if rest else 0.0)


def _safe_normalize(vector: Vector3) -> Vector3:
    return _safe_normalize_xyz(vector.x, vector.y, vector.z)


def _safe_normalize_xyz(x: float, y: float, z: float) -> Vector3:
    magnitude_sq = x * x + y * y + z * z
    if magnitude_sq < 1e-18:
        return Vector3()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector3(x * inv, y * inv, z * inv)


def _rescale(vector: Vector3, length: float) -> Vector3:
    return _safe_normalize(vector) * length


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))


def _wrap_unit(value: float) -> float:
    wrapped = value % 1.0
    # -1e-17 % 1.0 rounds to 1.0
    if wrapped >= 1.0:
        return 0.0
    return wrapped


def _wrap_angle(theta: float) -> float:
    return ((theta % TAU) + TAU) % TAU


def _mean(values: Iterable[float]) -> float:
    total = 0.0
    count = 0
    for value in values:
        total += value
        count += 1
    if count == 0:
        return 0.0
    return total / count


def _circular_mean(angles: Sequence[float]) -> float | None:
    if not angles:
        return None
    x = sum(math.cos(theta) for theta in angles)
    y = sum(math.sin(theta) for theta in angles)
    if abs(x) < 1e-12 and abs(y) < 1e-12:
        # Balanced samples have no preferred direction.
        return _mean(angles)
    return math.atan2(y, x)


def _state_distance(current: Sequence[float], previous: Sequence[float]) -> float:
    total = 0.0
    for index, value in enumerate(current):
        other = previous[index] if index < len(previous) else 0.0
        delta = value - other
        total += delta * delta
    return math.sqrt(total)
