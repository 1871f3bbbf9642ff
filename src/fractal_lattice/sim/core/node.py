from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

from pygame.math import Vector3

from .config import ConfigurationError, NodeConfig
from .rng import DeterministicRng
from ..systems.checkpoint import CheckpointSink, Sha256CheckpointSink
from ..utils.math3d import _vec, _wrap_unit


@dataclass(slots=True, frozen=True)
class Awareness:
    velocity: float = 0.0
    alignment_score: float = 0.0
    hue_convergence: float = 0.0
    gaze_intensity: float = 0.0
    thriving: bool = False


@dataclass(slots=True)
class Node:
    id: str
    type: str
    angles: Tuple[float, ...]
    hue: float
    rotation: float
    pos: Vector3
    vel: Vector3 = field(default_factory=Vector3)
    acc: Vector3 = field(default_factory=Vector3)
    coherence: float = 50.0
    entropy: float = 1.0
    sandbox: float = 1.0
    stagnation: float = 0.0
    learning_rate: float = 0.0
    growth_potential: float = 0.0
    mass: float = 1.0
    range: float = 30.0
    fov: float = 0.0
    region: Optional[str] = None
    incubating: bool = True
    incubation_history: Tuple[float, ...] = ()
    incubation_score: float = 0.0
    children: Tuple[str, ...] = ()
    observer: bool = False
    awareness: Awareness = field(default_factory=Awareness)
    checkpoints: Tuple[str, ...] = ()
    last_state: Tuple[float, ...] = ()

    @property
    def sides(self) -> int:
        return len(self.angles)


def state_vector(node: Node) -> Tuple[float, ...]:
    return (node.hue, node.rotation, *node.angles, node.pos.x, node.pos.y)


def observable_record(node: Node) -> Dict[str, Any]:
    return {
        "id": node.id,
        "hue": node.hue,
        "rotation": node.rotation,
        "coherence": node.coherence,
        "entropy": node.entropy,
        "sandbox": node.sandbox,
        "region": node.region,
        "pos": [node.pos.x, node.pos.y, node.pos.z],
    }


def create_node(
    node_id: str,
    node_type: str = "triangle",
    angles: Sequence[float] = (60.0, 60.0, 60.0),
    config: Optional[NodeConfig] = None,
    rng: Optional[DeterministicRng] = None,
    sink: Optional[CheckpointSink] = None,
    spawn_extent: float = 20.0,
) -> Node:
    """Build a node with documented defaults and record its construction checkpoint.

    Unset hue, rotation and position are drawn from ``rng``; pass a seeded
    :class:`DeterministicRng` for reproducible populations.
    """
    config = config or NodeConfig()
    angles = tuple(float(angle) for angle in angles)
    if not angles:
        raise ConfigurationError(f"node {node_id!r} needs at least one interior angle")
    if rng is None:
        rng = DeterministicRng(random.SystemRandom().getrandbits(64))
    if sink is None:
        sink = Sha256CheckpointSink()

    hue = _wrap_unit(config.hue) if config.hue is not None else rng.next_float()
    rotation = config.rotation if config.rotation is not None else rng.next_angle()
    if config.pos is not None:
        pos = _vec(config.pos)
    else:
        pos = Vector3(rng.next_signed(spawn_extent), rng.next_signed(spawn_extent), 0.0)

    node = Node(
        id=str(node_id),
        type=node_type,
        angles=angles,
        hue=hue,
        rotation=rotation,
        pos=pos,
        vel=_vec(config.vel),
        acc=_vec(config.acc),
        coherence=config.coherence,
        entropy=config.entropy,
        sandbox=config.sandbox,
        stagnation=config.stagnation,
        mass=config.mass,
        range=config.range,
        fov=config.fov,
        region=config.region,
        incubating=config.incubating,
        children=config.children,
    )
    node.last_state = state_vector(node)
    node.checkpoints = (sink(observable_record(node)),)
    return node
