"""Configuration parsing and validation for the tape simulator.

This module contains:
- SimulationConfig: frozen, fully validated run parameters
- load_simulation_config(): TOML entry point
- default_simulation_config(): built-in defaults (no file)
- validate_config(): error/warning collection
- compute_experiment_hash(): seed-independent config hash
"""

from __future__ import annotations

import hashlib
import json
import logging
import tomllib
from dataclasses import dataclass, field
from typing import Optional

from tapesim.index import (
    DEFAULT_INTERVAL,
    DEFAULT_LEVEL1_INTERVAL,
    DEFAULT_LEVEL2_INTERVAL,
    STRATEGY_NAMES,
)
from tapesim.simulation import TapeSimulator
from tapesim.tape import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_READ_RATE,
    DEFAULT_SEEK_RATE,
    DEFAULT_WRITE_RATE,
    ID_SPACE,
    TapeDevice,
)
from tapesim.workload import Workload, WorkloadConfig

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_COUNT = 10_000
DEFAULT_QUERY_COUNT = 1_000


# ---------------------------------------------------------------------------
# Configuration error
# ---------------------------------------------------------------------------

class ConfigurationError(Exception):
    """Fatal configuration error(s)."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("\n".join(errors))


# ---------------------------------------------------------------------------
# SimulationConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SimulationConfig:
    """Complete simulation configuration.

    The config is frozen to prevent accidental mutation during a run.
    Components are built on demand so each simulator gets a fresh
    device and a freshly seeded workload.
    """
    seed: Optional[int] = None
    block_count: int = DEFAULT_BLOCK_COUNT
    query_count: int = DEFAULT_QUERY_COUNT
    strategies: tuple[str, ...] = STRATEGY_NAMES

    # Device
    block_size: int = DEFAULT_BLOCK_SIZE
    read_rate: float = DEFAULT_READ_RATE
    write_rate: float = DEFAULT_WRITE_RATE
    seek_rate: float = DEFAULT_SEEK_RATE

    # Workload
    payload_size_ratio: float = 0.5
    id_space: int = ID_SPACE

    # Strategy parameters
    fixed_interval: int = DEFAULT_INTERVAL
    level1_interval: int = DEFAULT_LEVEL1_INTERVAL
    level2_interval: int = DEFAULT_LEVEL2_INTERVAL

    raw: dict = field(default_factory=dict, compare=False, repr=False)

    def strategy_params(self) -> dict[str, tuple[int, int]]:
        return {
            "none": (0, 0),
            "fixed": (self.fixed_interval, 0),
            "hierarchical": (self.level1_interval, self.level2_interval),
        }

    def build_device(self) -> TapeDevice:
        return TapeDevice(
            block_size=self.block_size,
            read_rate=self.read_rate,
            write_rate=self.write_rate,
            seek_rate=self.seek_rate,
        )

    def build_workload(self) -> Workload:
        return Workload(
            WorkloadConfig(id_space=self.id_space, payload_size_ratio=self.payload_size_ratio),
            seed=self.seed,
        )

    def build_simulator(self) -> TapeSimulator:
        """Construct a simulator with a fresh device and seeded workload."""
        return TapeSimulator(
            device=self.build_device(),
            workload=self.build_workload(),
            strategy_params=self.strategy_params(),
        )

    def make_queries(self, simulator: TapeSimulator) -> list[int]:
        """Draw query_count query ids from the simulator's workload."""
        return simulator.workload.queries(self.query_count)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_simulation_config(
    config_path: str,
    *,
    seed_override: int | None = None,
) -> SimulationConfig:
    """Load simulation configuration from TOML file.

    Args:
        config_path: Path to TOML configuration file.
        seed_override: If provided, overrides the seed in the config file.

    Returns:
        Validated SimulationConfig.

    Raises:
        ConfigurationError: If validation finds any errors.
    """
    with open(config_path, "rb") as f:
        raw = tomllib.load(f)

    if seed_override is not None:
        raw.setdefault("simulation", {})["seed"] = seed_override

    return config_from_dict(raw)


def default_simulation_config(seed: int | None = None) -> SimulationConfig:
    """Built-in defaults: 10,000 blocks, 1,000 queries, 4,096-byte blocks."""
    raw = {"simulation": {"seed": seed}} if seed is not None else {}
    return config_from_dict(raw)


def config_from_dict(raw: dict) -> SimulationConfig:
    """Validate a raw config mapping and build a SimulationConfig."""
    errors, warnings = validate_config(raw)
    if errors:
        raise ConfigurationError(errors)
    for warning in warnings:
        logger.warning(warning)

    sim_cfg = raw.get("simulation", {})
    dev_cfg = raw.get("device", {})
    wl_cfg = raw.get("workload", {})
    strat_cfg = raw.get("strategy", {})
    fixed_cfg = strat_cfg.get("fixed", {})
    hier_cfg = strat_cfg.get("hierarchical", {})

    return SimulationConfig(
        seed=sim_cfg.get("seed"),
        block_count=sim_cfg.get("block_count", DEFAULT_BLOCK_COUNT),
        query_count=sim_cfg.get("query_count", DEFAULT_QUERY_COUNT),
        strategies=tuple(sim_cfg.get("strategies", STRATEGY_NAMES)),
        block_size=dev_cfg.get("block_size", DEFAULT_BLOCK_SIZE),
        read_rate=float(dev_cfg.get("read_rate", DEFAULT_READ_RATE)),
        write_rate=float(dev_cfg.get("write_rate", DEFAULT_WRITE_RATE)),
        seek_rate=float(dev_cfg.get("seek_rate", DEFAULT_SEEK_RATE)),
        payload_size_ratio=float(wl_cfg.get("payload_size_ratio", 0.5)),
        id_space=wl_cfg.get("id_space", ID_SPACE),
        fixed_interval=fixed_cfg.get("interval", DEFAULT_INTERVAL),
        level1_interval=hier_cfg.get("level1_interval", DEFAULT_LEVEL1_INTERVAL),
        level2_interval=hier_cfg.get("level2_interval", DEFAULT_LEVEL2_INTERVAL),
        raw=raw,
    )


# ---------------------------------------------------------------------------
# Hashing and validation
# ---------------------------------------------------------------------------

def compute_experiment_hash(config: dict) -> str:
    """Compute deterministic hash of a raw config, ignoring its seed.

    Same config -> same hash; different seeds -> same hash.

    Returns:
        8-character hex hash string
    """
    config_for_hash = dict(config)
    if 'simulation' in config_for_hash and 'seed' in config_for_hash['simulation']:
        config_for_hash['simulation'] = dict(config_for_hash['simulation'])
        del config_for_hash['simulation']['seed']

    config_str = json.dumps(config_for_hash, sort_keys=True)
    return hashlib.sha256(config_str.encode('utf-8')).hexdigest()[:8]


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: dict) -> tuple[list[str], list[str]]:
    """Validate configuration and return errors/warnings.

    Returns:
        (errors, warnings) where:
        - errors: List of fatal configuration errors
        - warnings: List of non-fatal warnings
    """
    errors = []
    warnings = []

    # Simulation section
    sim = config.get('simulation', {})
    seed = sim.get('seed')
    if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool) or seed < 0):
        errors.append(f"simulation.seed must be a non-negative integer, got {seed!r}")

    block_count = sim.get('block_count', DEFAULT_BLOCK_COUNT)
    if not isinstance(block_count, int) or block_count < 0:
        errors.append(f"simulation.block_count must be >= 0, got {block_count!r}")
    elif block_count == 0:
        warnings.append("simulation.block_count = 0; every query will miss")

    query_count = sim.get('query_count', DEFAULT_QUERY_COUNT)
    if not isinstance(query_count, int) or query_count < 0:
        errors.append(f"simulation.query_count must be >= 0, got {query_count!r}")

    strategies = sim.get('strategies', list(STRATEGY_NAMES))
    if not isinstance(strategies, list) or not strategies:
        errors.append("simulation.strategies must be a non-empty list")
    else:
        for name in strategies:
            if name not in STRATEGY_NAMES:
                errors.append(f"Unknown strategy: '{name}'. Valid strategies: {list(STRATEGY_NAMES)}")
        if "none" not in strategies:
            warnings.append("simulation.strategies has no 'none' baseline; speedups will not be reported")

    # Device section
    dev = config.get('device', {})
    block_size = dev.get('block_size', DEFAULT_BLOCK_SIZE)
    if not isinstance(block_size, int) or block_size <= 0:
        errors.append(f"device.block_size must be a positive integer, got {block_size!r}")
    for key in ('read_rate', 'write_rate'):
        if key in dev and (not _is_number(dev[key]) or dev[key] <= 0):
            errors.append(f"device.{key} must be > 0, got {dev[key]!r}")
    if 'seek_rate' in dev:
        if not _is_number(dev['seek_rate']) or dev['seek_rate'] < 0:
            errors.append(f"device.seek_rate must be >= 0, got {dev['seek_rate']!r}")
        elif dev['seek_rate'] == 0:
            warnings.append("device.seek_rate = 0; seeks are free and index strategies lose their advantage")

    # Workload section
    wl = config.get('workload', {})
    ratio = wl.get('payload_size_ratio', 0.5)
    if not _is_number(ratio) or ratio <= 0:
        errors.append(f"workload.payload_size_ratio must be > 0, got {ratio!r}")
    elif ratio > 1.0:
        warnings.append(f"workload.payload_size_ratio ({ratio}) > 1.0; payloads may exceed block_size")
    id_space = wl.get('id_space', ID_SPACE)
    if not isinstance(id_space, int) or id_space <= 0:
        errors.append(f"workload.id_space must be a positive integer, got {id_space!r}")
    elif id_space > ID_SPACE:
        errors.append(f"workload.id_space must be <= {ID_SPACE} so marker ids cannot collide, got {id_space}")

    # Strategy section
    strat = config.get('strategy', {})
    for section, keys in (('fixed', ('interval',)),
                          ('hierarchical', ('level1_interval', 'level2_interval'))):
        params = strat.get(section, {})
        for key in keys:
            if key in params and (not isinstance(params[key], int) or params[key] < 0):
                errors.append(f"strategy.{section}.{key} must be a non-negative integer, got {params[key]!r}")

    fixed_interval = strat.get('fixed', {}).get('interval', DEFAULT_INTERVAL)
    if isinstance(block_count, int) and isinstance(fixed_interval, int) and 0 < block_count < fixed_interval:
        warnings.append(f"strategy.fixed.interval ({fixed_interval}) > block_count ({block_count}); no markers will be written")

    return errors, warnings
