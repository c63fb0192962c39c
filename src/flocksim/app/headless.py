from __future__ import annotations

import argparse
import csv
import dataclasses
from pathlib import Path
from typing import Optional

from loguru import logger

from ..sim.core.config import SimulationConfig
from .scenario import PredatorScenario

_HEADER = [
    "tick",
    "population",
    "neighbor_checks",
    "avg_speed",
    "centroid_x",
    "centroid_y",
    "spread",
    "tick_ms",
]


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    config: Optional[SimulationConfig] = None,
) -> None:
    config = config if config is not None else SimulationConfig()
    if seed is not None:
        config = dataclasses.replace(config, seed=seed)
    scenario = PredatorScenario(config)
    logger.info(f"Headless run: {steps} ticks, seed={config.seed}, population={config.population}")
    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    try:
        for _ in range(steps):
            metrics = scenario.step()
            if writer:
                tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
                writer.writerow(
                    [
                        metrics.tick,
                        metrics.population,
                        metrics.neighbor_checks,
                        f"{metrics.average_speed:.4f}",
                        f"{metrics.centroid_x:.4f}",
                        f"{metrics.centroid_y:.4f}",
                        f"{metrics.spread:.4f}",
                        f"{tick_ms:.3f}",
                    ]
                )
    finally:
        scenario.close()
        if csv_file:
            csv_file.close()
    logger.info(f"Headless run finished after {steps} ticks")


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless flocking simulation")
    parser.add_argument("--steps", type=int, default=600)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML file overriding SimulationConfig")
    parser.add_argument("--population", type=int, default=None)
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    args = parser.parse_args()
    config = SimulationConfig.from_yaml(args.config) if args.config else SimulationConfig()
    if args.population is not None:
        config.population = args.population
    if args.workers is not None:
        config.workers = args.workers
    run_headless(args.steps, args.seed, args.log, deterministic_log=args.deterministic_log, config=config)


if __name__ == "__main__":
    main()
