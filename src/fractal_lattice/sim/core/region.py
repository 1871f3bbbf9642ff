from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional, Sequence, Set

from pygame.math import Vector3

from .config import ConfigurationError, RegionConfig
from ..utils.math3d import TAU, _circular_mean, _clamp_value, _safe_normalize, _vec, _wrap_angle, _wrap_unit

logger = logging.getLogger(__name__)

ROOT_KAPPA = 0.1
KAPPA_INHERITANCE = 0.92
KAPPA_GENERATION_DECAY = 0.88
FIELD_FALLOFF = 0.01
HUE_KAPPA_COMPRESSION = 8.0


@dataclass(slots=True, frozen=True)
class HueBand:
    lower: float
    upper: float
    center: float
    half_width: float
    mean_theta: float


@dataclass(slots=True, eq=False)
class Region:
    """One node of the parameter-inheritance tree.

    Parent and children are stored as ids; the owning :class:`RegionTree` resolves
    them, so regions never hold references to each other.
    """

    id: str
    parent_id: Optional[str]
    kappa: float
    noise: float
    generation: int
    field_center: Vector3
    field_strength: float
    tree: "RegionTree" = field(repr=False)
    children: Set[str] = field(default_factory=set)
    observers: Set[str] = field(default_factory=set)
    mean_theta: float = 0.0

    @property
    def parent(self) -> Optional["Region"]:
        if self.parent_id is None:
            return None
        return self.tree.get(self.parent_id)

    def ancestors(self) -> Iterator["Region"]:
        """Yield this region, then each ancestor up to the root."""
        current: Optional[Region] = self
        while current is not None:
            yield current
            current = current.parent

    def effective_kappa(self, at_generation: Optional[int] = None) -> float:
        generation = self.generation if at_generation is None else at_generation
        total = 0.0
        weight_sum = 0.0
        for ancestor in self.ancestors():
            # The root anchors the blend at full weight whatever the generation gap.
            if ancestor.parent_id is None:
                weight = 1.0
            else:
                weight = KAPPA_GENERATION_DECAY ** max(0, generation - ancestor.generation)
            total += weight * ancestor.kappa
            weight_sum += weight
        if weight_sum <= 0.0:
            return self.kappa
        return total / weight_sum

    def field_at(self, position: Vector3) -> Vector3:
        """Superposed attraction of this region and every ancestor at ``position``."""
        force = Vector3()
        for ancestor in self.ancestors():
            to_center = ancestor.field_center - position
            distance = to_center.length() + 1e-6
            magnitude = ancestor.field_strength / (1.0 + FIELD_FALLOFF * distance * distance)
            force += _safe_normalize(to_center) * magnitude
        return force

    def compute_field(self) -> Callable[[Vector3], Vector3]:
        return self.field_at

    def allowed_hue_band(
        self, angle_samples: Sequence[float], coherence_estimate: float, cache: bool = True
    ) -> HueBand:
        mean_theta = _circular_mean(angle_samples)
        if mean_theta is None:
            mean_theta = self.mean_theta
        if cache:
            self.mean_theta = mean_theta
        spread = _clamp_value(0.2 + (1.0 - _clamp_value(coherence_estimate / 100.0, 0.0, 1.0)) * 0.8, 0.05, 1.5)
        center = _wrap_unit(_wrap_angle(mean_theta) / TAU)
        half_width = spread / (1.0 + HUE_KAPPA_COMPRESSION * self.effective_kappa())
        return HueBand(
            lower=_clamp_value(center - half_width, 0.0, 1.0),
            upper=_clamp_value(center + half_width, 0.0, 1.0),
            center=center,
            half_width=half_width,
            mean_theta=mean_theta,
        )


class RegionTree:
    """Arena owning every region of a run, indexed by id."""

    def __init__(self) -> None:
        self._regions: Dict[str, Region] = {}

    def __contains__(self, region_id: object) -> bool:
        return region_id in self._regions

    def __iter__(self) -> Iterator[Region]:
        return iter(self._regions.values())

    def __len__(self) -> int:
        return len(self._regions)

    def __getitem__(self, region_id: str) -> Region:
        return self._regions[region_id]

    def get(self, region_id: Optional[str]) -> Optional[Region]:
        if region_id is None:
            return None
        return self._regions.get(region_id)

    def add(self, region_id: str, parent: Optional[str] = None, config: Optional[RegionConfig] = None) -> Region:
        region_id = str(region_id)
        config = config or RegionConfig()
        if region_id in self._regions:
            raise ConfigurationError(f"region {region_id!r} already exists")
        parent_region = None
        if parent is not None:
            parent_region = self._regions.get(str(parent))
            if parent_region is None:
                raise ConfigurationError(f"parent region {parent!r} of {region_id!r} does not exist")

        if config.kappa is not None:
            kappa = config.kappa
        elif parent_region is not None:
            kappa = parent_region.kappa * KAPPA_INHERITANCE
        else:
            kappa = ROOT_KAPPA
        if config.noise is not None:
            noise = config.noise
        else:
            noise = parent_region.noise if parent_region is not None else 0.0

        region = Region(
            id=region_id,
            parent_id=parent_region.id if parent_region is not None else None,
            kappa=kappa,
            noise=noise,
            generation=parent_region.generation + 1 if parent_region is not None else 0,
            field_center=_vec(config.field_center),
            field_strength=config.field_strength,
            tree=self,
        )
        self._regions[region_id] = region
        if parent_region is not None:
            parent_region.children.add(region_id)
        logger.debug(
            f"Region {region_id} added (parent={region.parent_id}, generation={region.generation}, kappa={kappa:.4f})"
        )
        return region

    def remove(self, region_id: str) -> Region:
        region = self._regions.get(region_id)
        if region is None:
            raise ConfigurationError(f"region {region_id!r} does not exist")
        if region.children:
            raise ConfigurationError(
                f"region {region_id!r} still has children: {', '.join(sorted(region.children))}"
            )
        parent = region.parent
        if parent is not None:
            parent.children.discard(region_id)
        del self._regions[region_id]
        return region

    def subtree(self, region_id: str) -> Iterator[Region]:
        stack = [self._regions[region_id]]
        while stack:
            region = stack.pop()
            yield region
            stack.extend(self._regions[child] for child in sorted(region.children, reverse=True))

    def add_observer(self, region_id: str, node_id: str) -> None:
        region = self._regions.get(region_id)
        if region is None:
            raise ConfigurationError(f"region {region_id!r} does not exist")
        region.observers.add(str(node_id))

    def discard_observer(self, region_id: str, node_id: str) -> None:
        region = self._regions.get(region_id)
        if region is not None:
            region.observers.discard(str(node_id))
