from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from pygame.math import Vector3

from ..core.config import EvolutionConfig
from ..core.rng import DeterministicRng
from ..utils.math3d import _rescale, _safe_normalize

if TYPE_CHECKING:
    from ..core.node import Node
    from ..core.region import Region


def neighbor_forces(
    position: Vector3, coherence: float, spatial_neighbors: Sequence[Node], config: EvolutionConfig
) -> Vector3:
    force = Vector3()
    if not spatial_neighbors:
        return force
    centroid = Vector3()
    for other in spatial_neighbors:
        centroid += other.pos
    centroid /= len(spatial_neighbors)
    force += _safe_normalize(centroid - position) * (config.attraction_weight * (coherence / 100.0))

    radius = config.repulsion_radius
    for other in spatial_neighbors:
        separation = position - other.pos
        distance = separation.length()
        if distance < radius:
            force += _safe_normalize(separation) * (config.repulsion_weight * (radius - distance))
    return force


def horizon_pull(
    rotation: float,
    hue: float,
    coherence: float,
    growth_potential: float,
    region: Optional[Region],
    config: EvolutionConfig,
) -> Tuple[float, float]:
    """Rotation and hue nudges toward the parent region, for settled high-growth nodes."""
    if region is None or coherence <= config.horizon_coherence_threshold:
        return 0.0, 0.0
    if growth_potential <= config.horizon_growth_threshold:
        return 0.0, 0.0
    parent = region.parent
    if parent is None:
        return 0.0, 0.0
    parent_band = parent.allowed_hue_band((), coherence, cache=False)
    theta = config.horizon_rotation_rate * (parent.mean_theta - rotation)
    hue_delta = config.horizon_hue_rate * (parent_band.center - hue)
    return theta, hue_delta


def breakthrough(
    coherence: float, stagnation: float, config: EvolutionConfig, rng: DeterministicRng
) -> Tuple[float, float]:
    if coherence <= config.breakthrough_coherence_threshold:
        return 0.0, 0.0
    if stagnation <= config.breakthrough_stagnation_threshold:
        return 0.0, 0.0
    jitter = config.breakthrough_rotation_jitter
    return rng.next_range(-jitter, jitter), config.breakthrough_entropy_bump


def motion_jitter(coherence: float, config: EvolutionConfig, rng: DeterministicRng) -> Vector3:
    scale = 1.0 + (1.0 - coherence / 100.0) * config.motion_jitter_incoherence_weight
    amplitude = config.motion_jitter * scale
    return Vector3(
        rng.next_range(-0.5, 0.5) * amplitude,
        rng.next_range(-0.5, 0.5) * amplitude,
        0.0,
    )


def integrate(
    position: Vector3, velocity: Vector3, force: Vector3, mass: float, config: EvolutionConfig
) -> Tuple[Vector3, Vector3, Vector3]:
    acc = force / mass
    vel = velocity * config.velocity_damping + acc
    pos = position + vel
    if pos.length() > config.world_radius:
        pos = _rescale(pos, config.world_clamp_radius)
    return pos, vel, acc
