#!/usr/bin/env python
"""Command-line entry point for the tape index simulator.

    tapesim                 # default comparison report
    tapesim benchmark       # CSV wall-clock benchmark
    tapesim -c cfg.toml --output results.parquet --plot comparison.png

Exit status is 0 on success and 1 on any error. Diagnostics go to
stderr through logging; stdout carries only the report or CSV.
"""

import argparse
import logging
import sys
import tomllib
from pathlib import Path
from typing import Optional, Sequence

from tapesim.analysis import BASELINE_STRATEGY, format_speedups, plot_comparison
from tapesim.config import SimulationConfig, compute_experiment_hash, config_from_dict
from tapesim.simulation import SimulationResult, Statistics

logger = logging.getLogger(__name__)

BENCHMARK_HEADER = "strategy,index_build_time_ms,query_time_ms"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tapesim",
        description="Compare index strategies on a simulated sequential-access tape",
    )
    parser.add_argument(
        "mode",
        nargs="?",
        default="compare",
        choices=["compare", "benchmark"],
        help="compare (default): timing-model report; benchmark: wall-clock CSV",
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to TOML configuration file (default: built-in defaults)"
    )
    parser.add_argument("--blocks", type=int, default=None, help="Number of data blocks (default: 10000)")
    parser.add_argument("--queries", type=int, default=None, help="Number of queries (default: 1000)")
    parser.add_argument("--block-size", type=int, default=None, help="Block size in bytes (default: 4096)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--strategies",
        default=None,
        help="Comma-separated strategy names (default: none,fixed,hierarchical)"
    )
    parser.add_argument("--output", default=None, help="Export results to .parquet or .csv")
    parser.add_argument("--plot", default=None, help="Save a comparison chart (e.g. comparison.png)")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress all logging except errors"
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress bar"
    )
    return parser


def setup_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        logging.basicConfig(level=logging.ERROR, format='%(levelname)s: %(message)s')
    elif verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO, format='%(message)s')


def resolve_config(args: argparse.Namespace) -> SimulationConfig:
    """Merge the optional TOML file with command-line overrides."""
    raw: dict = {}
    if args.config:
        with open(args.config, "rb") as f:
            raw = tomllib.load(f)

    sim = raw.setdefault("simulation", {})
    if args.blocks is not None:
        sim["block_count"] = args.blocks
    if args.queries is not None:
        sim["query_count"] = args.queries
    if args.seed is not None:
        sim["seed"] = args.seed
    if args.strategies:
        sim["strategies"] = [s.strip() for s in args.strategies.split(",") if s.strip()]
    if args.block_size is not None:
        raw.setdefault("device", {})["block_size"] = args.block_size

    config = config_from_dict(raw)
    logger.debug(f"Config hash: {compute_experiment_hash(raw)}")
    return config


def format_results(results: Sequence[SimulationResult]) -> str:
    """Fixed-width results table."""
    lines = [
        f"{'Strategy':<30}{'Index Build Time (s)':<24}{'Avg Access Time (s)':<24}"
        f"{'Total Seeks':<15}{'Total Access Time (s)':<24}",
        "-" * 117,
    ]
    for res in results:
        lines.append(
            f"{res.strategy_name:<30}{res.index_build_time:<24.6f}{res.average_access_time:<24.6f}"
            f"{res.total_seeks:<15}{res.total_access_time:<24.6f}"
        )
    return "\n".join(lines)


def export_results(stats: Statistics, path: str) -> None:
    if Path(path).suffix == ".csv":
        stats.export_csv(path)
    else:
        stats.export_parquet(path)
    logger.info(f"Results exported to {path}")


def run_compare(config: SimulationConfig, args: argparse.Namespace) -> None:
    sim = config.build_simulator()
    queries = config.make_queries(sim)

    print(f"Starting tape storage simulation with {config.block_count} blocks "
          f"and {config.query_count} queries...")
    show_progress = not args.no_progress and not args.verbose and not args.quiet
    sim.run_comparison(config.block_count, queries, config.strategies, progress=show_progress)

    print("\nSimulation Results:\n")
    print(format_results(sim.results))

    df = sim.statistics.to_dataframe()
    if BASELINE_STRATEGY in config.strategies:
        print("\nPerformance Analysis:")
        for line in format_speedups(df):
            print(line)

    if args.output:
        export_results(sim.statistics, args.output)
    if args.plot:
        plot_comparison(df, args.plot, title=f"{config.block_count} blocks, {config.query_count} queries")


def run_benchmark(config: SimulationConfig) -> None:
    """Wall-clock benchmark of build and query time per strategy, as CSV."""
    sim = config.build_simulator()
    queries = config.make_queries(sim)

    print(BENCHMARK_HEADER)
    for name in config.strategies:
        sim.set_strategy(sim.make_strategy(name))
        build_ms = sim.benchmark_index_build(config.block_count)
        query_ms = sim.benchmark_queries(queries)
        print(f"{name},{build_ms:.3f},{query_ms:.3f}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    try:
        config = resolve_config(args)
        if args.mode == "benchmark":
            run_benchmark(config)
        else:
            run_compare(config, args)
    except Exception as e:
        logger.error(f"Error: {e}")
        return 1
    return 0


def cli():
    """CLI entry point for the tape simulator."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
