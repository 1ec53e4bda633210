"""Simulation orchestrator.

Coordinates workload generation, index construction and query
resolution against a single TapeDevice, producing comparable
SimulationResult records.

Key types:
- SimulationResult: Immutable per-run summary
- Statistics: Append-only result log with DataFrame/parquet export
- TapeSimulator: Main runner (run_single, run_comparison, benchmarks)

All times in results are simulated seconds from the device cost model,
except the benchmark_* helpers which measure wall-clock milliseconds.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
from tqdm import tqdm

from tapesim.index import NOT_FOUND, IndexStrategy, create_strategy
from tapesim.tape import DEFAULT_BLOCK_SIZE, TapeDevice
from tapesim.workload import Workload

logger = logging.getLogger(__name__)


class NoStrategyError(RuntimeError):
    """Raised when a simulation is run without an index strategy."""
    pass


# ---------------------------------------------------------------------------
# SimulationResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SimulationResult:
    """Immutable summary of one strategy run.

    total_blocks_accessed counts resolved queries (one per query);
    total_seeks counts queries that needed at least one device access.
    """
    strategy_name: str
    index_build_time: float
    average_access_time: float
    total_seeks: int
    total_blocks_accessed: int
    total_access_time: float

    strategy_key: str = ""
    block_count: int = 0
    query_count: int = 0
    hits: int = 0
    misses: int = 0
    workload_fingerprint: str = ""


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

# Arrow schema for result export
_ARROW_SCHEMA = pa.schema([
    ("strategy", pa.string()),
    ("strategy_name", pa.string()),
    ("block_count", pa.int64()),
    ("query_count", pa.int64()),
    ("index_build_time", pa.float64()),
    ("average_access_time", pa.float64()),
    ("total_access_time", pa.float64()),
    ("total_seeks", pa.int64()),
    ("total_blocks_accessed", pa.int64()),
    ("hits", pa.int64()),
    ("misses", pa.int64()),
    ("workload_fingerprint", pa.string()),
])


def _result_to_row(r: SimulationResult) -> dict:
    """Convert a SimulationResult to a dict matching the Arrow schema."""
    return {
        "strategy": r.strategy_key,
        "strategy_name": r.strategy_name,
        "block_count": r.block_count,
        "query_count": r.query_count,
        "index_build_time": r.index_build_time,
        "average_access_time": r.average_access_time,
        "total_access_time": r.total_access_time,
        "total_seeks": r.total_seeks,
        "total_blocks_accessed": r.total_blocks_accessed,
        "hits": r.hits,
        "misses": r.misses,
        "workload_fingerprint": r.workload_fingerprint,
    }


def _rows_to_arrow_table(rows: list[dict]) -> pa.Table:
    arrays = {}
    for field in _ARROW_SCHEMA:
        arrays[field.name] = pa.array(
            [row[field.name] for row in rows],
            type=field.type,
        )
    return pa.table(arrays, schema=_ARROW_SCHEMA)


class Statistics:
    """Append-only log of simulation results.

    Results are never reordered or discarded; exports always reflect the
    full log in recording order.
    """

    def __init__(self):
        self._results: list[SimulationResult] = []

    def record(self, result: SimulationResult) -> None:
        self._results.append(result)

    @property
    def results(self) -> tuple[SimulationResult, ...]:
        return tuple(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self):
        return iter(tuple(self._results))

    def to_dataframe(self) -> pd.DataFrame:
        """Export results to DataFrame for analysis."""
        if not self._results:
            return pd.DataFrame(columns=_ARROW_SCHEMA.names)
        rows = [_result_to_row(r) for r in self._results]
        return _rows_to_arrow_table(rows).to_pandas()

    def export_parquet(self, path: str) -> None:
        """Write all results to a parquet file."""
        rows = [_result_to_row(r) for r in self._results]
        if rows:
            table = _rows_to_arrow_table(rows)
        else:
            table = pa.table({f.name: pa.array([], type=f.type) for f in _ARROW_SCHEMA},
                             schema=_ARROW_SCHEMA)
        pq.write_table(table, path, compression="snappy")

    def export_csv(self, path: str) -> None:
        """Write all results to a CSV file."""
        self.to_dataframe().to_csv(path, index=False)


# ---------------------------------------------------------------------------
# TapeSimulator
# ---------------------------------------------------------------------------

class TapeSimulator:
    """Main simulation runner.

    Owns the TapeDevice for the lifetime of the simulator; only the
    active strategy touches it during build/lookup.

    Usage:
        sim = TapeSimulator(workload=Workload(seed=42))
        results = sim.run_comparison(10_000, queries, ["none", "fixed", "hierarchical"])
        sim.statistics.export_parquet("results.parquet")
    """

    def __init__(
        self,
        device: Optional[TapeDevice] = None,
        workload: Optional[Workload] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
        strategy_params: Optional[Mapping[str, tuple[int, int]]] = None,
    ):
        self._device = device if device is not None else TapeDevice(block_size=block_size)
        self._workload = workload if workload is not None else Workload()
        self._strategy: Optional[IndexStrategy] = None
        self._strategy_params = dict(strategy_params or {})
        self._stats = Statistics()

    @property
    def device(self) -> TapeDevice:
        return self._device

    @property
    def workload(self) -> Workload:
        return self._workload

    @property
    def strategy(self) -> Optional[IndexStrategy]:
        return self._strategy

    @property
    def statistics(self) -> Statistics:
        return self._stats

    @property
    def results(self) -> tuple[SimulationResult, ...]:
        return self._stats.results

    def set_strategy(self, strategy: IndexStrategy) -> None:
        self._strategy = strategy

    def make_strategy(self, name: str) -> IndexStrategy:
        """Construct a strategy through the factory with configured parameters."""
        param1, param2 = self._strategy_params.get(name, (0, 0))
        return create_strategy(name, param1, param2)

    def generate_workload(
        self,
        block_count: int,
        payload_size_ratio: Optional[float] = None,
    ) -> float:
        """Reset the tape and fill it with `block_count` random blocks.

        Returns:
            Total simulated write time in seconds.
        """
        self._device.reset()
        elapsed = 0.0
        for block in self._workload.blocks(block_count, self._device.block_size, payload_size_ratio):
            elapsed += self._device.write(block)
        logger.debug(f"Generated workload: {block_count} blocks, write time {elapsed:.3f}s")
        return elapsed

    def run_single(
        self,
        block_count: int,
        query_ids: Sequence[int],
        regenerate: bool = True,
        strategy: Optional[IndexStrategy] = None,
        progress: bool = False,
    ) -> SimulationResult:
        """Build the index and resolve every query with one strategy.

        Args:
            block_count: Blocks to generate when regenerate is True.
            query_ids: Ids resolved in order via find_block.
            regenerate: Whether to generate fresh tape content first.
            strategy: Strategy to use; becomes the current strategy.
            progress: Show a tqdm bar over the queries.

        Raises:
            NoStrategyError: If no strategy is given or set.
        """
        if strategy is not None:
            self._strategy = strategy
        if self._strategy is None:
            raise NoStrategyError("No index strategy set")
        strategy = self._strategy

        if regenerate:
            self.generate_workload(block_count)

        fingerprint = self._device.fingerprint()
        tape_blocks = self._device.block_count()
        build_time = strategy.build_index(self._device)

        total_time = 0.0
        seeks = 0
        accessed = 0
        hits = 0

        queries: Iterable[int] = query_ids
        if progress:
            queries = tqdm(query_ids, desc=strategy.name, unit="query", leave=False)
        for data_id in queries:
            pos, elapsed = strategy.find_block(self._device, data_id)
            total_time += elapsed
            accessed += 1
            if elapsed > 0:
                seeks += 1
            if pos != NOT_FOUND:
                hits += 1

        result = SimulationResult(
            strategy_name=strategy.name,
            index_build_time=build_time,
            average_access_time=total_time / accessed if accessed > 0 else 0.0,
            total_seeks=seeks,
            total_blocks_accessed=accessed,
            total_access_time=total_time,
            strategy_key=strategy.key,
            block_count=tape_blocks,
            query_count=len(query_ids),
            hits=hits,
            misses=accessed - hits,
            workload_fingerprint=fingerprint,
        )
        logger.info(f"{result.strategy_name}: build {build_time:.3f}s, "
                    f"avg access {result.average_access_time:.6f}s, "
                    f"{hits}/{accessed} found")
        self._stats.record(result)
        return result

    def run_comparison(
        self,
        block_count: int,
        query_ids: Sequence[int],
        strategy_names: Sequence[str],
        progress: bool = False,
    ) -> list[SimulationResult]:
        """Run every named strategy against one shared workload.

        The tape is generated exactly once; all strategies see the same
        content and the same queries. Markers written by one strategy's
        build are removed and the cursor rewound before the next runs.
        """
        strategies = [self.make_strategy(name) for name in strategy_names]
        self.generate_workload(block_count)
        data_blocks = self._device.block_count()

        results = []
        for strategy in strategies:
            # Drop markers left by the previous build
            self._device.truncate(data_blocks)
            results.append(self.run_single(
                block_count, query_ids, regenerate=False,
                strategy=strategy, progress=progress,
            ))
        return results

    # -- Wall-clock benchmarks --

    def benchmark_index_build(self, block_count: int) -> float:
        """Regenerate the tape and time build_index in wall-clock ms."""
        if self._strategy is None:
            raise NoStrategyError("No index strategy set")
        self.generate_workload(block_count)
        start = time.perf_counter()
        self._strategy.build_index(self._device)
        return (time.perf_counter() - start) * 1000.0

    def benchmark_queries(self, query_ids: Sequence[int]) -> float:
        """Time resolving every query in wall-clock ms."""
        if self._strategy is None:
            raise NoStrategyError("No index strategy set")
        start = time.perf_counter()
        for data_id in query_ids:
            self._strategy.find_block(self._device, data_id)
        return (time.perf_counter() - start) * 1000.0
