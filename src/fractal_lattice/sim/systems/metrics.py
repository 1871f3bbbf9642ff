from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from ..types.metrics import TickMetrics

if TYPE_CHECKING:
    from ..core.node import Node


def create_metrics(
    tick: int,
    hatched: int,
    checkpoints: int,
    neighbor_checks: int,
    duration_ms: float,
    nodes: Sequence[Node],
) -> TickMetrics:
    population = len(nodes)
    incubating = 0
    thriving = 0
    observers = 0
    coherence_sum = 0.0
    entropy_sum = 0.0
    growth_sum = 0.0
    gaze_sum = 0.0
    for node in nodes:
        if node.incubating:
            incubating += 1
        if node.awareness.thriving:
            thriving += 1
        if node.observer:
            observers += 1
        coherence_sum += node.coherence
        entropy_sum += node.entropy
        growth_sum += node.growth_potential
        gaze_sum += node.awareness.gaze_intensity

    def _avg(total: float) -> float:
        return 0.0 if population == 0 else total / population

    return TickMetrics(
        tick=tick,
        population=population,
        incubating=incubating,
        hatched=hatched,
        thriving=thriving,
        observers=observers,
        average_coherence=_avg(coherence_sum),
        average_entropy=_avg(entropy_sum),
        average_growth=_avg(growth_sum),
        average_gaze=_avg(gaze_sum),
        checkpoints=checkpoints,
        neighbor_checks=neighbor_checks,
        tick_duration_ms=duration_ms,
    )
