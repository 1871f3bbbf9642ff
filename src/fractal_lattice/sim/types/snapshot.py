from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: TickMetrics
    nodes: List[Dict[str, Any]]
    regions: List[Dict[str, Any]]
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotMetadata:
    seed: int
    config_version: str
    world_radius: float
    region_count: int
    timestamped_checkpoints: bool
