from __future__ import annotations

from dataclasses import replace

import pytest
from pytest import approx

from fractal_lattice.sim.core.config import ConfigurationError, RegionConfig, RegionSpec, SimulationConfig
from fractal_lattice.sim.core.world import World
from fractal_lattice.sim.utils.math3d import _circular_mean


def _solo_config(**overrides) -> SimulationConfig:
    overrides.setdefault("initial_population", 5)
    overrides.setdefault(
        "regions",
        [RegionSpec(id="solo", field_strength=0.0, contributions=(100.0,), population_share=1.0)],
    )
    return SimulationConfig(**overrides)


def _fingerprint(world: World):
    return [
        (node.id, node.region, node.hue, node.rotation, node.coherence, node.pos.x, node.pos.y, node.checkpoints)
        for node in world.nodes
    ]


def run_steps(config: SimulationConfig, steps: int):
    world = World(config)
    history = []
    for tick in range(steps):
        metrics = world.step(tick)
        history.append((metrics.population, metrics.incubating, metrics.thriving, round(metrics.average_coherence, 6)))
    return world, history


def test_deterministic_steps():
    world_a, result_a = run_steps(SimulationConfig(seed=1234, initial_population=20), 30)
    world_b, result_b = run_steps(SimulationConfig(seed=1234, initial_population=20), 30)

    assert result_a == result_b
    assert _fingerprint(world_a) == _fingerprint(world_b)


def test_different_seeds_diverge():
    world_a, _ = run_steps(SimulationConfig(seed=1, initial_population=10), 3)
    world_b, _ = run_steps(SimulationConfig(seed=2, initial_population=10), 3)

    assert _fingerprint(world_a) != _fingerprint(world_b)


def test_threaded_evolution_matches_serial():
    serial, serial_history = run_steps(SimulationConfig(seed=99, initial_population=24, workers=1), 20)
    threaded, threaded_history = run_steps(SimulationConfig(seed=99, initial_population=24, workers=4), 20)

    assert serial_history == threaded_history
    assert _fingerprint(serial) == _fingerprint(threaded)


def test_bootstrap_assigns_weighted_regions():
    world = World(SimulationConfig(seed=5, initial_population=40))

    assert [node.id for node in world.nodes] == [f"n{i}" for i in range(40)]
    assert {node.region for node in world.nodes} <= {"1", "2"}
    assert all(abs(node.pos.x) <= 20.0 and abs(node.pos.y) <= 20.0 for node in world.nodes)
    assert all(len(node.checkpoints) == 1 for node in world.nodes)


def test_nodes_without_population_share_have_no_region():
    world = World(SimulationConfig(initial_population=4, regions=[RegionSpec(id="root")]))

    metrics = world.step(0)

    assert all(node.region is None for node in world.nodes)
    assert metrics.population == 4
    assert metrics.average_gaze == 0.0


def test_invariants_hold_over_default_run():
    for seed in (3, 17):
        world = World(SimulationConfig(seed=seed, initial_population=30))
        left_incubation: set[str] = set()
        for tick in range(80):
            metrics = world.step(tick)
            assert metrics.population == 30
            for node in world.nodes:
                assert 0.0 <= node.hue < 1.0
                assert 0.0 <= node.coherence <= 100.0
                assert 0.0 <= node.stagnation <= 1.0
                assert 0.1 <= node.entropy <= 1000.0
                assert 0.3 <= node.sandbox <= 10.0
                assert node.pos.length() <= 500.0
                assert len(node.incubation_history) <= 40
                if node.id in left_incubation:
                    assert node.incubating is False
                if not node.incubating:
                    left_incubation.add(node.id)


def test_hatched_metric_counts_incubation_exits():
    world = World(SimulationConfig(seed=8, initial_population=30))
    first = world.step(0)
    incubating_before = first.incubating
    total_hatched = first.hatched
    for tick in range(1, 120):
        metrics = world.step(tick)
        total_hatched += metrics.hatched
        assert metrics.incubating == incubating_before - metrics.hatched
        incubating_before = metrics.incubating
    assert total_hatched == sum(1 for node in world.nodes if not node.incubating)


def test_region_mean_angle_refreshed_from_subtree_before_step():
    world = World(_solo_config(seed=4))
    expected = _circular_mean([node.rotation for node in world.nodes])

    world.step(0)

    assert world.regions["solo"].mean_theta == approx(expected)


def test_empty_region_keeps_cached_mean_angle():
    world = World(SimulationConfig(seed=4, initial_population=6))
    world.add_region("empty", "root")
    world.regions["empty"].mean_theta = 1.5

    world.step(0)

    assert world.regions["empty"].mean_theta == 1.5


def test_observer_nodes_register_with_their_region():
    world = World(_solo_config(seed=6))
    world.nodes[0] = replace(world.nodes[0], children=("a", "b", "c"))

    metrics = world.step(0)

    assert world.nodes[0].observer is True
    assert metrics.observers == 1
    assert world.regions["solo"].observers == {world.nodes[0].id}


def test_configured_observers_are_preregistered():
    config = _solo_config(
        regions=[RegionSpec(id="solo", population_share=1.0, observers=("n0", "n1"))],
    )
    world = World(config)

    assert world.regions["solo"].observers == {"n0", "n1"}


def test_add_region_extends_tree_and_contributions():
    world = World(SimulationConfig(initial_population=0))

    region = world.add_region("3", "1", RegionConfig(kappa=0.5), contributions=[4])

    assert region.generation == 2
    assert "3" in world.regions["1"].children
    assert world.contributions_for("3") == (4.0,)
    assert world.contributions_for("1") == (15.0, 10.0)
    assert world.contributions_for("missing") == ()
    assert world.contributions_for(None) == ()
    with pytest.raises(ConfigurationError):
        world.add_region("4", "missing")


def test_empty_world_steps():
    world = World(SimulationConfig(initial_population=0))

    metrics = world.step(0)

    assert metrics.population == 0
    assert metrics.average_coherence == 0.0
    assert metrics.neighbor_checks == 0


def test_reset_restores_initial_population():
    world = World(SimulationConfig(seed=21, initial_population=12))
    initial = _fingerprint(world)
    for tick in range(5):
        world.step(tick)
    world.add_region("extra", "root")

    world.reset()

    assert _fingerprint(world) == initial
    assert "extra" not in world.regions
    assert world.metrics is None


def test_snapshot_contains_metadata_nodes_and_regions():
    world = World(SimulationConfig(seed=7, initial_population=3))
    world.step(0)

    snapshot = world.snapshot(1)

    assert snapshot.tick == 1
    assert snapshot.metadata.seed == 7
    assert snapshot.metadata.config_version == "v1"
    assert snapshot.metadata.world_radius == approx(500.0)
    assert snapshot.metadata.region_count == 3
    assert snapshot.metadata.timestamped_checkpoints is False
    assert snapshot.metrics.population == 3

    payload = snapshot.nodes[0]
    node = world.nodes[0]
    for key in ["id", "x", "y", "z", "vx", "vy", "hue", "coherence", "incubating", "gaze_intensity", "thriving"]:
        assert key in payload
    assert payload["sides"] == 3
    assert payload["speed"] == approx(node.vel.length())
    assert payload["last_checkpoint"] == node.checkpoints[-1]

    regions = {entry["id"]: entry for entry in snapshot.regions}
    assert regions["root"]["children"] == ["1", "2"]
    assert regions["1"]["parent"] == "root"
    assert regions["2"]["generation"] == 1
    assert regions["1"]["effective_kappa"] == approx(world.regions["1"].effective_kappa())


def test_snapshot_before_first_step_reports_initial_metrics():
    world = World(SimulationConfig(initial_population=4))

    snapshot = world.snapshot(0)

    assert snapshot.metrics.population == 4
    assert snapshot.metrics.incubating == 4
    assert snapshot.metrics.hatched == 0


def test_timestamped_checkpoints_flagged_in_metadata():
    world = World(SimulationConfig(initial_population=1, timestamp_checkpoints=True))

    assert world.snapshot(0).metadata.timestamped_checkpoints is True


@pytest.mark.config_change
def test_long_run_default_config():
    world = World(SimulationConfig())
    thriving_seen = 0
    for tick in range(1000):
        metrics = world.step(tick)
        thriving_seen = max(thriving_seen, metrics.thriving)

    summary = f"incubating={metrics.incubating}, thriving_peak={thriving_seen}, coherence={metrics.average_coherence:.2f}"
    assert metrics.population == 40, summary
    assert metrics.average_coherence > 50.0, summary
