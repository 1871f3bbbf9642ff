from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    incubating: int
    hatched: int
    thriving: int
    observers: int
    average_coherence: float
    average_entropy: float
    average_growth: float
    average_gaze: float
    checkpoints: int
    neighbor_checks: int
    tick_duration_ms: float = 0.0
