from __future__ import annotations

import math

import pytest
from pygame.math import Vector3

from fractal_lattice.sim.core.config import ConfigurationError, NodeConfig
from fractal_lattice.sim.core.node import Node, create_node, observable_record, state_vector
from fractal_lattice.sim.core.rng import DeterministicRng
from fractal_lattice.sim.systems.checkpoint import Sha256CheckpointSink


def test_defaults_match_documented_values():
    node = create_node("n0", rng=DeterministicRng(1))

    assert node.type == "triangle"
    assert node.angles == (60.0, 60.0, 60.0)
    assert node.sides == 3
    assert node.coherence == 50.0
    assert node.entropy == 1.0
    assert node.sandbox == 1.0
    assert node.mass == 1.0
    assert node.range == 30.0
    assert node.fov == pytest.approx(0.9 * math.pi)
    assert node.incubating is True
    assert node.incubation_history == ()
    assert node.stagnation == 0.0
    assert node.vel == Vector3()
    assert node.region is None
    assert 0.0 <= node.hue < 1.0
    assert 0.0 <= node.rotation < 2 * math.pi
    assert abs(node.pos.x) <= 20.0 and abs(node.pos.y) <= 20.0
    assert node.pos.z == 0.0


def test_node_uses_slots():
    node = create_node("n0", rng=DeterministicRng(1))

    assert not hasattr(node, "__dict__")
    assert hasattr(Node, "__slots__")


def test_construction_appends_one_checkpoint_of_observable_state():
    sink = Sha256CheckpointSink()
    node = create_node(
        "n7",
        "square",
        [90, 90, 90, 90],
        NodeConfig(hue=0.25, rotation=1.0, pos=(1.0, 2.0, 3.0), region="r"),
        sink=sink,
    )

    assert node.sides == 4
    assert len(node.checkpoints) == 1
    assert node.checkpoints[0] == sink(observable_record(node))
    record = observable_record(node)
    assert record["region"] == "r"
    assert record["pos"] == [1.0, 2.0, 3.0]


def test_seeded_rng_makes_random_defaults_reproducible():
    first = create_node("n0", rng=DeterministicRng(99))
    second = create_node("n0", rng=DeterministicRng(99))

    assert first.hue == second.hue
    assert first.rotation == second.rotation
    assert first.pos == second.pos
    assert first.checkpoints == second.checkpoints


def test_overrides_are_applied_and_hue_wraps():
    node = create_node(
        "n1",
        config=NodeConfig(hue=1.25, rotation=-1.0, coherence=96.0, stagnation=0.85, incubating=False),
        rng=DeterministicRng(3),
    )

    assert node.hue == pytest.approx(0.25)
    assert node.rotation == -1.0
    assert node.coherence == 96.0
    assert node.stagnation == 0.85
    assert node.incubating is False


def test_last_state_starts_at_current_state():
    node = create_node("n0", rng=DeterministicRng(5))

    assert node.last_state == state_vector(node)
    assert state_vector(node) == (node.hue, node.rotation, 60.0, 60.0, 60.0, node.pos.x, node.pos.y)


@pytest.mark.parametrize(
    "overrides",
    [
        {"mass": 0.0},
        {"mass": -1.0},
        {"range": 0.0},
        {"fov": 0.0},
        {"fov": 4.0},
        {"coherence": 120.0},
        {"entropy": 0.0},
        {"sandbox": -2.0},
        {"stagnation": 1.5},
        {"pos": (1.0,)},
        {"mass": float("nan")},
        {"range": float("nan")},
        {"entropy": float("nan")},
        {"sandbox": float("inf")},
        {"hue": float("nan")},
        {"vel": (float("nan"), 0.0, 0.0)},
    ],
)
def test_invalid_node_configuration_is_rejected(overrides):
    with pytest.raises(ConfigurationError):
        NodeConfig(**overrides)


def test_empty_geometry_is_rejected():
    with pytest.raises(ConfigurationError):
        create_node("n0", angles=[], rng=DeterministicRng(1))
