from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Sequence, Tuple

from ..core.config import EvolutionConfig
from ..utils.math3d import _clamp_value, _mean


@dataclass(slots=True, frozen=True)
class IncubationState:
    history: Tuple[float, ...]
    score: float
    incubating: bool
    sandbox: float


def update_coherence(
    contributions: Sequence[float], entropy: float, growth_potential: float, config: EvolutionConfig
) -> float:
    raw = (
        config.coherence_gain
        * sum(contributions)
        / (entropy + 1.0)
        * (1.0 + config.coherence_growth_weight * growth_potential)
    )
    return _clamp_value(raw, 0.0, 100.0)


def adapt_sandbox(sandbox: float, coherence: float, config: EvolutionConfig) -> float:
    if coherence > config.sandbox_coherence_threshold:
        rate = config.sandbox_growth_rate
    else:
        rate = config.sandbox_decay_rate
    return _clamp_value(sandbox * rate, config.sandbox_min, config.sandbox_max)


def is_observer(coherence: float, children: Sequence[str], config: EvolutionConfig) -> bool:
    return coherence > config.observer_coherence_threshold and len(children) >= config.observer_min_children


def health_score(coherence: float, entropy: float, stagnation: float) -> float:
    return _clamp_value((coherence / 100.0) * (1.0 - entropy / 10.0) * (1.0 - stagnation), 0.0, 1.0)


def advance_incubation(
    history: Sequence[float],
    incubating: bool,
    sandbox: float,
    coherence: float,
    entropy: float,
    stagnation: float,
    growth_potential: float,
    config: EvolutionConfig,
) -> IncubationState:
    window = deque(history, maxlen=config.incubation_window)
    window.append(health_score(coherence, entropy, stagnation))
    score = _mean(window)
    if (
        incubating
        and score > config.incubation_score_threshold
        and growth_potential > config.incubation_growth_threshold
    ):
        incubating = False
    if incubating:
        sandbox = min(sandbox, config.incubating_sandbox_cap)
    return IncubationState(history=tuple(window), score=score, incubating=incubating, sandbox=sandbox)
