from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

Triple = Tuple[float, float, float]


class ConfigurationError(ValueError):
    """Raised when a region, node or simulation is configured with values it cannot run with."""


def _triple(value: Any, name: str) -> Optional[Triple]:
    if value is None:
        return None
    if isinstance(value, dict):
        value = (value.get("x", 0.0), value.get("y", 0.0), value.get("z", 0.0))
    if not isinstance(value, (tuple, list)) or len(value) not in (2, 3):
        raise ConfigurationError(f"{name} must be a 2- or 3-component vector, got {value!r}")
    x, y, *rest = value
    triple = (float(x), float(y), float(rest[0]) if rest else 0.0)
    if not all(math.isfinite(component) for component in triple):
        raise ConfigurationError(f"{name} must have finite components, got {value!r}")
    return triple


@dataclass
class RegionConfig:
    kappa: Optional[float] = None
    noise: Optional[float] = None
    field_center: Triple = (0.0, 0.0, 0.0)
    field_strength: float = 0.005

    def __post_init__(self) -> None:
        self.field_center = _triple(self.field_center, "field_center") or (0.0, 0.0, 0.0)
        if self.kappa is not None and not (math.isfinite(self.kappa) and self.kappa >= 0):
            raise ConfigurationError(f"kappa must be finite and >= 0, got {self.kappa}")
        if not (math.isfinite(self.field_strength) and self.field_strength >= 0):
            raise ConfigurationError(f"field_strength must be finite and >= 0, got {self.field_strength}")


@dataclass
class NodeConfig:
    hue: Optional[float] = None
    rotation: Optional[float] = None
    coherence: float = 50.0
    entropy: float = 1.0
    sandbox: float = 1.0
    stagnation: float = 0.0
    pos: Optional[Triple] = None
    vel: Optional[Triple] = None
    acc: Optional[Triple] = None
    mass: float = 1.0
    range: float = 30.0
    fov: float = math.pi * 0.9
    region: Optional[str] = None
    incubating: bool = True
    children: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.pos = _triple(self.pos, "pos")
        self.vel = _triple(self.vel, "vel")
        self.acc = _triple(self.acc, "acc")
        self.children = tuple(str(child) for child in self.children)
        for name in ("hue", "rotation"):
            value = getattr(self, name)
            if value is not None and not math.isfinite(value):
                raise ConfigurationError(f"{name} must be finite, got {value}")
        if not (math.isfinite(self.mass) and self.mass > 0):
            raise ConfigurationError(f"mass must be finite and > 0, got {self.mass}")
        if not (math.isfinite(self.range) and self.range > 0):
            raise ConfigurationError(f"range must be finite and > 0, got {self.range}")
        if not 0.0 < self.fov <= math.pi:
            raise ConfigurationError(f"fov must be in (0, pi], got {self.fov}")
        if not 0.0 <= self.coherence <= 100.0:
            raise ConfigurationError(f"coherence must be in [0, 100], got {self.coherence}")
        if not (math.isfinite(self.entropy) and self.entropy > 0):
            raise ConfigurationError(f"entropy must be finite and > 0, got {self.entropy}")
        if not (math.isfinite(self.sandbox) and self.sandbox > 0):
            raise ConfigurationError(f"sandbox must be finite and > 0, got {self.sandbox}")
        if not 0.0 <= self.stagnation <= 1.0:
            raise ConfigurationError(f"stagnation must be in [0, 1], got {self.stagnation}")


@dataclass
class EvolutionConfig:
    stagnation_velocity_threshold: float = 0.001
    stagnation_rise: float = 0.05
    stagnation_decay: float = 0.04
    idle_learning_factor: float = 0.3
    contribution_learning_scale: float = 10.0
    entropy_min: float = 0.1
    entropy_max: float = 1000.0
    growth_stagnation_offset: float = 0.1
    rotation_alignment_rate: float = 0.04
    hue_alignment_rate: float = 0.018
    default_band_half_width: float = 0.5
    attraction_weight: float = 0.002
    repulsion_radius: float = 6.0
    repulsion_weight: float = 0.02
    horizon_coherence_threshold: float = 75.0
    horizon_growth_threshold: float = 1.2
    horizon_rotation_rate: float = 0.008
    horizon_hue_rate: float = 0.006
    breakthrough_coherence_threshold: float = 92.0
    breakthrough_stagnation_threshold: float = 0.8
    breakthrough_rotation_jitter: float = 0.1
    breakthrough_entropy_bump: float = 0.1
    motion_jitter: float = 0.0005
    motion_jitter_incoherence_weight: float = 1.5
    velocity_damping: float = 0.98
    world_radius: float = 500.0
    world_clamp_radius: float = 475.0
    gaze_min_coherence: float = 80.0
    coherence_gain: float = 10.0
    coherence_growth_weight: float = 0.01
    sandbox_coherence_threshold: float = 80.0
    sandbox_growth_rate: float = 1.006
    sandbox_decay_rate: float = 0.994
    sandbox_min: float = 0.3
    sandbox_max: float = 10.0
    observer_coherence_threshold: float = 85.0
    observer_min_children: int = 3
    incubation_window: int = 40
    incubation_score_threshold: float = 0.85
    incubation_growth_threshold: float = 1.0
    incubating_sandbox_cap: float = 1.2
    thriving_coherence_threshold: float = 65.0
    thriving_growth_threshold: float = 1.0
    thriving_stagnation_limit: float = 0.6
    thriving_settled_coherence: float = 80.0
    checkpoint_probability: float = 0.02

    def __post_init__(self) -> None:
        if self.incubation_window < 1:
            raise ConfigurationError(f"incubation_window must be >= 1, got {self.incubation_window}")
        if self.sandbox_min > self.sandbox_max:
            raise ConfigurationError("sandbox_min must not exceed sandbox_max")
        if self.world_clamp_radius > self.world_radius:
            raise ConfigurationError("world_clamp_radius must not exceed world_radius")
        if not 0.0 <= self.checkpoint_probability <= 1.0:
            raise ConfigurationError(
                f"checkpoint_probability must be in [0, 1], got {self.checkpoint_probability}"
            )


@dataclass
class RegionSpec:
    id: str
    parent: Optional[str] = None
    kappa: Optional[float] = None
    noise: Optional[float] = None
    field_center: Triple = (0.0, 0.0, 0.0)
    field_strength: float = 0.005
    contributions: Tuple[float, ...] = ()
    population_share: float = 0.0
    observers: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.id = str(self.id)
        self.parent = None if self.parent is None else str(self.parent)
        self.contributions = tuple(float(value) for value in self.contributions)
        self.observers = tuple(str(value) for value in self.observers)
        if self.population_share < 0:
            raise ConfigurationError(
                f"population_share of region {self.id!r} must be >= 0, got {self.population_share}"
            )

    def region_config(self) -> RegionConfig:
        return RegionConfig(
            kappa=self.kappa,
            noise=self.noise,
            field_center=self.field_center,
            field_strength=self.field_strength,
        )


def _default_regions() -> List[RegionSpec]:
    return [
        RegionSpec(id="root", field_strength=0.008),
        RegionSpec(
            id="1",
            parent="root",
            kappa=0.12,
            field_center=(80.0, 0.0, 0.0),
            contributions=(15.0, 10.0),
            population_share=0.6,
        ),
        RegionSpec(
            id="2",
            parent="root",
            kappa=0.35,
            field_center=(-80.0, 0.0, 0.0),
            contributions=(2.0,),
            population_share=0.4,
        ),
    ]


@dataclass
class SimulationConfig:
    seed: int = 42
    initial_population: int = 40
    node_type: str = "triangle"
    angles: Tuple[float, ...] = (60.0, 60.0, 60.0)
    spawn_extent: float = 20.0
    cell_size: float = 30.0
    regions: List[RegionSpec] = field(default_factory=_default_regions)
    default_contributions: Tuple[float, ...] = ()
    workers: int = 1
    report_interval: int = 40
    report_nodes: int = 8
    timestamp_checkpoints: bool = False
    config_version: str = "v1"
    evolution: EvolutionConfig = field(default_factory=EvolutionConfig)

    def __post_init__(self) -> None:
        self.angles = tuple(float(value) for value in self.angles)
        self.default_contributions = tuple(float(value) for value in self.default_contributions)
        if not self.angles:
            raise ConfigurationError("angles must contain at least one interior angle")
        if self.initial_population < 0:
            raise ConfigurationError(f"initial_population must be >= 0, got {self.initial_population}")
        if self.spawn_extent < 0:
            raise ConfigurationError(f"spawn_extent must be >= 0, got {self.spawn_extent}")
        if self.cell_size <= 0:
            raise ConfigurationError(f"cell_size must be > 0, got {self.cell_size}")
        if self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")
        if self.report_interval < 1:
            raise ConfigurationError(f"report_interval must be >= 1, got {self.report_interval}")
        seen: set[str] = set()
        for declared in self.regions:
            if declared.id in seen:
                raise ConfigurationError(f"duplicate region id {declared.id!r}")
            if declared.parent is not None and declared.parent not in seen:
                raise ConfigurationError(
                    f"region {declared.id!r} names parent {declared.parent!r} which is not declared before it"
                )
            seen.add(declared.id)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text())
        return load_config(data or {})


def _known(cls: type, raw: Dict[str, Any], section: str) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - names)
    if unknown:
        raise ConfigurationError(f"unknown option(s) in {section}: {', '.join(unknown)}")
    return dict(raw)


def load_config(raw: dict) -> SimulationConfig:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"configuration must be a mapping, got {type(raw).__name__}")
    evolution = EvolutionConfig(**_known(EvolutionConfig, raw.get("evolution", {}) or {}, "evolution"))
    regions_raw = raw.get("regions")
    sim_values = {k: v for k, v in raw.items() if k not in {"evolution", "regions"}}
    sim_values = _known(SimulationConfig, sim_values, "simulation")
    if regions_raw is not None:
        regions = []
        for entry in regions_raw:
            entry = _known(RegionSpec, entry or {}, "regions")
            if "field_center" in entry:
                entry["field_center"] = _triple(entry["field_center"], "field_center")
            regions.append(RegionSpec(**entry))
        sim_values["regions"] = regions
    return SimulationConfig(evolution=evolution, **sim_values)
