from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from time import perf_counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import NodeConfig, RegionConfig, SimulationConfig
from .node import Node, create_node
from .region import Region, RegionTree
from .rng import DeterministicRng, derive_stream_seed, node_stream_seed
from .spatial_grid import SpatialGrid
from ..systems import metrics as metrics_system
from ..systems.checkpoint import Sha256CheckpointSink
from ..systems.evolution import StepContext, evolve_node
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata
from ..utils.math3d import _mean

logger = logging.getLogger(__name__)

_SPAWN_RNG_SALT = 0xA55167E0F00DCAFE
_STEP_RNG_SALT = 0x57E9C0DE1A77ACE5


class World:
    def __init__(self, config: SimulationConfig):
        self._config = config
        self._rng = DeterministicRng(derive_stream_seed(config.seed, _SPAWN_RNG_SALT))
        self._sink = Sha256CheckpointSink(time.time if config.timestamp_checkpoints else None)
        self._grid = SpatialGrid(config.cell_size)
        self._regions = RegionTree()
        self._contributions: Dict[str, Tuple[float, ...]] = {}
        self._nodes: List[Node] = []
        self._metrics: TickMetrics | None = None
        self._build_regions()
        self._bootstrap_population()

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def nodes(self) -> List[Node]:
        return self._nodes

    @property
    def regions(self) -> RegionTree:
        return self._regions

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def reset(self) -> None:
        self._rng.reset()
        self._grid.clear()
        self._regions = RegionTree()
        self._contributions.clear()
        self._nodes = []
        self._metrics = None
        self._build_regions()
        self._bootstrap_population()

    def add_region(
        self,
        region_id: str,
        parent: Optional[str] = None,
        config: Optional[RegionConfig] = None,
        contributions: Sequence[float] = (),
    ) -> Region:
        region = self._regions.add(region_id, parent, config)
        self._contributions[region.id] = tuple(float(value) for value in contributions)
        return region

    def contributions_for(self, region_id: Optional[str]) -> Tuple[float, ...]:
        if region_id is None:
            return self._config.default_contributions
        return self._contributions.get(region_id, self._config.default_contributions)

    def step(self, tick: int) -> TickMetrics:
        start = perf_counter()
        config = self._config
        population = tuple(self._nodes)
        all_nodes = {node.id: node for node in population}
        members: Dict[Optional[str], List[Node]] = {}
        for node in population:
            members.setdefault(node.region, []).append(node)

        self._refresh_region_means(members)

        self._grid.clear()
        for node in population:
            self._grid.insert(node)

        neighbor_checks = 0
        contexts: List[StepContext] = []
        for node in population:
            region = self._regions.get(node.region)
            if region is not None:
                neighbors = [other for other in members.get(node.region, ()) if other.id != node.id]
            else:
                neighbors = []
            spatial: List[Node] = []
            self._grid.collect_neighbors(node.pos, node.range, spatial, exclude_id=node.id)
            neighbor_checks += len(neighbors) + len(spatial)
            contexts.append(
                StepContext(
                    neighbors=neighbors,
                    spatial_neighbors=spatial,
                    region=region,
                    contributions=self.contributions_for(node.region),
                    all_nodes=all_nodes,
                    rng=DeterministicRng(node_stream_seed(config.seed, _STEP_RNG_SALT, tick, node.id)),
                    sink=self._sink,
                )
            )

        next_nodes = self._evolve_all(population, contexts)

        hatched = 0
        checkpoints = 0
        for previous, node in zip(population, next_nodes):
            checkpoints += len(node.checkpoints) - len(previous.checkpoints)
            if previous.incubating and not node.incubating:
                hatched += 1
                logger.info(
                    f"Node {node.id} left incubation at tick {tick} "
                    f"(score={node.incubation_score:.3f}, growth={node.growth_potential:.2f})"
                )
            if node.observer and node.region in self._regions:
                region = self._regions[node.region]
                if node.id not in region.observers:
                    region.observers.add(node.id)
                    logger.debug(f"Node {node.id} registered as observer of region {region.id}")

        self._nodes = next_nodes
        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(tick, hatched, checkpoints, neighbor_checks, elapsed_ms, next_nodes)
        self._metrics = metrics
        return metrics

    def snapshot(self, tick: int) -> Snapshot:
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(tick, 0, 0, 0, 0.0, self._nodes)
        metadata = SnapshotMetadata(
            seed=self._config.seed,
            config_version=self._config.config_version,
            world_radius=self._config.evolution.world_radius,
            region_count=len(self._regions),
            timestamped_checkpoints=self._sink.timestamped,
        )
        return Snapshot(
            tick=tick,
            metrics=metrics,
            nodes=[self._node_snapshot(node) for node in self._nodes],
            regions=[self._region_snapshot(region) for region in self._regions],
            metadata=metadata,
        )

    def _build_regions(self) -> None:
        for declared in self._config.regions:
            self.add_region(declared.id, declared.parent, declared.region_config(), declared.contributions)
            for observer_id in declared.observers:
                self._regions.add_observer(declared.id, observer_id)

    def _bootstrap_population(self) -> None:
        config = self._config
        candidates = [declared.id for declared in config.regions if declared.population_share > 0]
        weights = [declared.population_share for declared in config.regions if declared.population_share > 0]
        for index in range(config.initial_population):
            region_id = self._rng.sample_weighted(candidates, weights)
            node = create_node(
                f"n{index}",
                config.node_type,
                config.angles,
                NodeConfig(region=region_id),
                rng=self._rng,
                sink=self._sink,
                spawn_extent=config.spawn_extent,
            )
            self._nodes.append(node)

    def _refresh_region_means(self, members: Dict[Optional[str], List[Node]]) -> None:
        # Sole writer of Region.mean_theta; runs before any node of the tick is evolved.
        for region in self._regions:
            rotations: List[float] = []
            coherences: List[float] = []
            for descendant in self._regions.subtree(region.id):
                for node in members.get(descendant.id, ()):
                    rotations.append(node.rotation)
                    coherences.append(node.coherence)
            if rotations:
                region.allowed_hue_band(rotations, _mean(coherences), cache=True)

    def _evolve_all(self, population: Sequence[Node], contexts: Sequence[StepContext]) -> List[Node]:
        evolution = self._config.evolution
        workers = self._config.workers
        if workers > 1 and len(population) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                return list(
                    executor.map(lambda node, context: evolve_node(node, context, evolution), population, contexts)
                )
        return [evolve_node(node, context, evolution) for node, context in zip(population, contexts)]

    def _node_snapshot(self, node: Node) -> Dict[str, Any]:
        awareness = node.awareness
        return {
            "id": node.id,
            "type": node.type,
            "sides": node.sides,
            "region": node.region,
            "x": node.pos.x,
            "y": node.pos.y,
            "z": node.pos.z,
            "vx": node.vel.x,
            "vy": node.vel.y,
            "vz": node.vel.z,
            "speed": node.vel.length(),
            "hue": node.hue,
            "rotation": node.rotation,
            "coherence": node.coherence,
            "entropy": node.entropy,
            "sandbox": node.sandbox,
            "stagnation": node.stagnation,
            "learning_rate": node.learning_rate,
            "growth_potential": node.growth_potential,
            "incubating": node.incubating,
            "incubation_score": node.incubation_score,
            "observer": node.observer,
            "velocity": awareness.velocity,
            "alignment_score": awareness.alignment_score,
            "hue_convergence": awareness.hue_convergence,
            "gaze_intensity": awareness.gaze_intensity,
            "thriving": awareness.thriving,
            "checkpoints": len(node.checkpoints),
            "last_checkpoint": node.checkpoints[-1] if node.checkpoints else None,
        }

    @staticmethod
    def _region_snapshot(region: Region) -> Dict[str, Any]:
        return {
            "id": region.id,
            "parent": region.parent_id,
            "generation": region.generation,
            "children": sorted(region.children),
            "kappa": region.kappa,
            "effective_kappa": region.effective_kappa(),
            "noise": region.noise,
            "field_center": [region.field_center.x, region.field_center.y, region.field_center.z],
            "field_strength": region.field_strength,
            "mean_theta": region.mean_theta,
            "observers": sorted(region.observers),
        }
