from __future__ import annotations

import random
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from ..core.config import EvolutionConfig
from ..core.node import Awareness, Node, observable_record, state_vector
from ..core.region import HueBand
from ..core.rng import DeterministicRng
from ..utils.math3d import _clamp_value, _mean, _state_distance, _wrap_unit
from . import forces, gaze, lifecycle
from .checkpoint import CheckpointSink, Sha256CheckpointSink

if TYPE_CHECKING:
    from ..core.region import Region

_DEFAULT_CONFIG = EvolutionConfig()


@dataclass(slots=True)
class StepContext:
    neighbors: Sequence[Node] = ()
    spatial_neighbors: Optional[Sequence[Node]] = None
    region: Optional[Region] = None
    contributions: Sequence[float] = ()
    all_nodes: Mapping[str, Node] = field(default_factory=dict)
    rng: Optional[DeterministicRng] = None
    sink: Optional[CheckpointSink] = None


def evolve_node(node: Node, context: StepContext, config: Optional[EvolutionConfig] = None) -> Node:
    """Return the node's next-step state; ``node`` and the context are left untouched.

    Regions are only read. Randomness comes from ``context.rng`` in a fixed draw
    order (breakthrough jitter, motion jitter x then y, checkpoint sampling).
    """
    config = config or _DEFAULT_CONFIG
    rng = context.rng or DeterministicRng(random.SystemRandom().getrandbits(64))
    region = context.region
    neighbors = context.neighbors
    contributions = tuple(context.contributions)

    current_state = state_vector(node)
    velocity = _state_distance(current_state, node.last_state or current_state)
    if velocity < config.stagnation_velocity_threshold:
        stagnation = node.stagnation + config.stagnation_rise
    else:
        stagnation = node.stagnation - config.stagnation_decay
    stagnation = _clamp_value(stagnation, 0.0, 1.0)

    if contributions:
        learning_factor = _mean(contributions) / config.contribution_learning_scale
    else:
        learning_factor = config.idle_learning_factor
    learning_rate = max(0.0, velocity * learning_factor)

    entropy = _clamp_value(
        (1.0 - node.coherence / 100.0) * (1.0 + 2.0 * stagnation) * (1.0 - learning_rate),
        config.entropy_min,
        config.entropy_max,
    )
    growth_potential = entropy * learning_rate / (stagnation + config.growth_stagnation_offset)

    rotation = node.rotation
    if neighbors:
        rotation += config.rotation_alignment_rate * (_mean(other.rotation for other in neighbors) - rotation)

    hue = node.hue
    half_width = config.default_band_half_width
    band = HueBand(
        lower=_clamp_value(hue - half_width, 0.0, 1.0),
        upper=_clamp_value(hue + half_width, 0.0, 1.0),
        center=hue,
        half_width=half_width,
        mean_theta=0.0,
    )
    if region is not None:
        samples = [other.rotation for other in neighbors] + [rotation]
        coherence_estimate = _mean([other.coherence for other in neighbors] + [node.coherence])
        band = region.allowed_hue_band(samples, coherence_estimate, cache=False)
        diff = ((band.center - hue + 1.5) % 1.0) - 0.5
        hue = _wrap_unit(hue + config.hue_alignment_rate * diff)

    spatial = context.spatial_neighbors
    if spatial is None:
        spatial = [other for other in neighbors if (other.pos - node.pos).length() < node.range]
    force = forces.neighbor_forces(node.pos, node.coherence, spatial, config)
    if region is not None:
        force += region.field_at(node.pos)

    horizon_theta, horizon_hue = forces.horizon_pull(
        rotation, hue, node.coherence, growth_potential, region, config
    )
    jitter_theta, entropy_bump = forces.breakthrough(node.coherence, stagnation, config, rng)
    entropy = min(config.entropy_max, entropy + entropy_bump)
    rotation += horizon_theta + jitter_theta
    hue = _wrap_unit(hue + horizon_hue)

    force += forces.motion_jitter(node.coherence, config, rng)
    pos, vel, acc = forces.integrate(node.pos, node.vel, force, node.mass, config)

    gaze_intensity = gaze.observer_gaze(pos, region, context.all_nodes, config)

    coherence = lifecycle.update_coherence(contributions, entropy, growth_potential, config)
    sandbox = lifecycle.adapt_sandbox(node.sandbox, coherence, config)
    observer = lifecycle.is_observer(coherence, node.children, config)
    incubation = lifecycle.advance_incubation(
        node.incubation_history,
        node.incubating,
        sandbox,
        coherence,
        entropy,
        stagnation,
        growth_potential,
        config,
    )

    # Plain hue difference: nodes across the 0/1 seam from the centre score negative.
    if band.half_width > 0:
        hue_convergence = 1.0 - abs(hue - band.center) / band.half_width
    else:
        hue_convergence = 0.0
    awareness = Awareness(
        velocity=velocity,
        alignment_score=coherence / 100.0,
        hue_convergence=hue_convergence,
        gaze_intensity=gaze_intensity,
        thriving=(
            coherence > config.thriving_coherence_threshold
            and growth_potential > config.thriving_growth_threshold
            and stagnation < config.thriving_stagnation_limit
            and (horizon_theta != 0.0 or coherence > config.thriving_settled_coherence)
        ),
    )

    next_node = replace(
        node,
        hue=hue,
        rotation=rotation,
        pos=pos,
        vel=vel,
        acc=acc,
        coherence=coherence,
        entropy=entropy,
        sandbox=incubation.sandbox,
        stagnation=stagnation,
        learning_rate=learning_rate,
        growth_potential=growth_potential,
        incubating=incubation.incubating,
        incubation_history=incubation.history,
        incubation_score=incubation.score,
        observer=observer,
        awareness=awareness,
        last_state=current_state,
    )
    if rng.chance(config.checkpoint_probability):
        sink = context.sink or Sha256CheckpointSink()
        next_node.checkpoints = node.checkpoints + (sink(observable_record(next_node)),)
    return next_node
