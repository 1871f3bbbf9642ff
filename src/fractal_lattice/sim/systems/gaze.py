from __future__ import annotations

import math
from typing import TYPE_CHECKING, Mapping, Optional

from pygame.math import Vector3

from ..core.config import EvolutionConfig
from ..utils.math3d import _clamp_value, _safe_normalize

if TYPE_CHECKING:
    from ..core.node import Node
    from ..core.region import Region


def observer_gaze(
    position: Vector3,
    region: Optional[Region],
    all_nodes: Mapping[str, Node],
    config: EvolutionConfig,
) -> float:
    """Sum of attention paid to ``position`` by the region's qualifying observers.

    An observer contributes when its coherence is above the gaze threshold, the
    position lies within its range, and the direction to it falls inside half of
    the observer's field of view around its facing ``(cos rotation, sin rotation)``.
    Observers are read from the previous-step snapshot, so a registered observer
    also gazes at its own new position.
    """
    if region is None or not region.observers:
        return 0.0
    gaze = 0.0
    for observer_id in sorted(region.observers):
        observer = all_nodes.get(observer_id)
        if observer is None or observer.coherence <= config.gaze_min_coherence:
            continue
        offset = position - observer.pos
        distance = offset.length()
        if distance > observer.range:
            continue
        direction = _safe_normalize(offset)
        forward_x = math.cos(observer.rotation)
        forward_y = math.sin(observer.rotation)
        cosine = _clamp_value(forward_x * direction.x + forward_y * direction.y, -1.0, 1.0)
        if math.acos(cosine) <= observer.fov / 2.0:
            proximity = 1.0 - _clamp_value(distance / observer.range, 0.0, 1.0)
            gaze += (observer.coherence / 100.0) * proximity
    return gaze
