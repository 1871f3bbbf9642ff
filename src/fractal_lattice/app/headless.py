from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.world import World
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

_HEADER = [
    "tick",
    "population",
    "incubating",
    "hatched",
    "thriving",
    "observers",
    "avg_coherence",
    "avg_entropy",
    "avg_growth",
    "avg_gaze",
    "checkpoints",
    "neighbor_checks",
    "tick_ms",
]


def _format_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.incubating,
        metrics.hatched,
        metrics.thriving,
        metrics.observers,
        f"{metrics.average_coherence:.4f}",
        f"{metrics.average_entropy:.4f}",
        f"{metrics.average_growth:.4f}",
        f"{metrics.average_gaze:.4f}",
        metrics.checkpoints,
        metrics.neighbor_checks,
        f"{tick_ms:.3f}",
    ]


def _report(world: World, tick: int) -> None:
    logger.info(f"STEP {tick}")
    for node in world.nodes[: world.config.report_nodes]:
        awareness = node.awareness
        tag = "[INC]" if node.incubating else "     "
        logger.info(
            f"{tag} {node.id:<4} coh={node.coherence:5.1f} "
            f"thriving={'YES' if awareness.thriving else 'no '} growth={node.growth_potential:.2f} "
            f"gaze={awareness.gaze_intensity:.2f} pos({node.pos.x:.0f},{node.pos.y:.0f})"
        )


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p95": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p95": _percentile(sorted_values, 0.95),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    config_path: Optional[Path] = None,
    summary_path: Optional[Path] = None,
    summary_window: int = 100,
    report_interval: Optional[int] = None,
    workers: Optional[int] = None,
) -> World:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    if workers is not None:
        config.workers = max(1, workers)
    interval = config.report_interval if report_interval is None else report_interval
    world = World(config)
    logger.info(
        f"Running {steps} steps: seed={config.seed} population={len(world.nodes)} regions={len(world.regions)}"
    )

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    tick_ms_series: list[float] = []
    coherence_series: list[float] = []
    thriving_series: list[float] = []
    incubating_series: list[float] = []
    first_hatch_tick = -1
    peak_thriving = (-1, -1)

    try:
        for tick in range(steps):
            metrics = world.step(tick)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            if interval > 0 and tick % interval == 0:
                _report(world, tick)

            if summary_path:
                tick_ms_series.append(tick_ms)
                coherence_series.append(metrics.average_coherence)
                thriving_series.append(float(metrics.thriving))
                incubating_series.append(float(metrics.incubating))
                if metrics.hatched and first_hatch_tick < 0:
                    first_hatch_tick = tick
                if metrics.thriving > peak_thriving[0]:
                    peak_thriving = (metrics.thriving, tick)

            if writer:
                writer.writerow(_format_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "population": len(world.nodes),
            "deterministic_log": deterministic_log,
            "tick_ms": _summary_stats(tick_ms_series),
            "average_coherence": _summary_stats(coherence_series),
            "thriving": _summary_stats(thriving_series),
            "incubating": _summary_stats(incubating_series),
            "first_hatch_tick": first_hatch_tick,
            "peaks": {
                "thriving": {"value": peak_thriving[0], "tick": peak_thriving[1]},
            },
            "tail_window": {
                "window": window,
                "average_coherence": _summary_stats(coherence_series[tail_slice]),
                "thriving": _summary_stats(thriving_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return world


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless fractal lattice simulation")
    parser.add_argument("--steps", type=int, default=300)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=100,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=None,
        help="Log a node report every N ticks (0 disables; defaults to the config value).",
    )
    parser.add_argument("--workers", type=int, default=None, help="Threads used to evolve nodes.")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        config_path=args.config,
        summary_path=args.summary,
        summary_window=args.summary_window,
        report_interval=args.report_interval,
        workers=args.workers,
    )


if __name__ == "__main__":
    main()
