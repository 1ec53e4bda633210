"""Index strategies for locating blocks on a tape.

Each strategy trades index-build cost against lookup cost by using the
TapeDevice timing model differently. Strategies hold only positions
(never Block objects) between calls, and every build rebuilds the
internal mapping from scratch.

Key types:
- IndexStrategy: ABC with build_index/find_block/name/get_stats
- NoIndexStrategy: Full wrap-around sweep from the current cursor
- FixedIntervalIndexStrategy: Exact id -> position map, markers every k blocks
- HierarchicalIndexStrategy: Two-level bucket index, markers at the tape end
- create_strategy: Factory from strategy name + parameters

Lookups that fail return NOT_FOUND, which can never be a valid position.
Device errors (OutOfRangeError) are never caught here.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod

from tapesim.tape import MARKER_ID_OFFSET, Block, TapeDevice

logger = logging.getLogger(__name__)

NOT_FOUND = sys.maxsize

DEFAULT_INTERVAL = 10
DEFAULT_LEVEL1_INTERVAL = 100
DEFAULT_LEVEL2_INTERVAL = 10

LEVEL1_MARKER_ID = 2 * MARKER_ID_OFFSET
LEVEL2_MARKER_ID = 3 * MARKER_ID_OFFSET


class UnknownStrategyError(ValueError):
    """Raised when the factory is asked for a strategy it does not know."""
    pass


# ---------------------------------------------------------------------------
# IndexStrategy ABC
# ---------------------------------------------------------------------------

class IndexStrategy(ABC):
    """Pluggable index algorithm over a TapeDevice.

    Both operations return elapsed simulated seconds alongside their
    result. With an empty tape neither operation touches the device.
    """

    key: str = ""

    @abstractmethod
    def build_index(self, tape: TapeDevice) -> float:
        """Build the index from the current tape content.

        Returns:
            Elapsed time in seconds.
        """
        ...

    @abstractmethod
    def find_block(self, tape: TapeDevice, data_id: int) -> tuple[int, float]:
        """Resolve a logical id to a tape position.

        Returns:
            (position, elapsed) where position is NOT_FOUND on a miss.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable strategy name."""
        ...

    @abstractmethod
    def get_stats(self) -> str:
        """One-line description of index parameters and size."""
        ...

    @property
    def index_entries(self) -> int:
        return 0

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get_stats()})"


# ---------------------------------------------------------------------------
# Concrete strategies
# ---------------------------------------------------------------------------

class NoIndexStrategy(IndexStrategy):
    """Sequential scan baseline.

    find_block visits every block once starting at the cursor, moving
    forward and wrapping around to block 0 after the last block.
    """

    key = "none"

    def build_index(self, tape: TapeDevice) -> float:
        return 0.0

    def find_block(self, tape: TapeDevice, data_id: int) -> tuple[int, float]:
        count = tape.block_count()
        if count == 0:
            return NOT_FOUND, 0.0

        elapsed = 0.0
        start = tape.position()
        for i in range(count):
            pos = (start + i) % count
            elapsed += tape.seek_to(pos)
            block, read_time = tape.read_current()
            elapsed += read_time
            if not block.is_index_marker and block.id == data_id:
                return pos, elapsed

        return NOT_FOUND, elapsed

    @property
    def name(self) -> str:
        return "No Index"

    def get_stats(self) -> str:
        return "No index used"


class FixedIntervalIndexStrategy(IndexStrategy):
    """Exact id -> position map with physical markers every `interval` blocks.

    The build walks the blocks present when it starts. Each time the
    number of data blocks visited reaches a multiple of `interval`, a
    marker is written at the tape end and the tape advances one block,
    which is also the step to the next block in the walk. Duplicate ids
    keep their first position.
    """

    key = "fixed"

    def __init__(self, interval: int = DEFAULT_INTERVAL):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._interval = interval
        self._index: dict[int, int] = {}
        self._markers_written = 0

    @property
    def interval(self) -> int:
        return self._interval

    @property
    def markers_written(self) -> int:
        """Markers appended by the most recent build."""
        return self._markers_written

    @property
    def index_entries(self) -> int:
        return len(self._index)

    def position_of(self, data_id: int) -> int:
        """Recorded position for data_id without touching the tape."""
        return self._index.get(data_id, NOT_FOUND)

    def build_index(self, tape: TapeDevice) -> float:
        self._index.clear()
        self._markers_written = 0
        count = tape.block_count()
        if count == 0:
            return 0.0

        elapsed = 0.0
        original_pos = tape.position()
        data_blocks = 0

        elapsed += tape.seek_to(0)
        for pos in range(count):
            # Zero cost when a marker write already advanced the tape here
            elapsed += tape.seek_to(pos)
            block, read_time = tape.read_current()
            elapsed += read_time
            if block.is_index_marker:
                continue

            self._index.setdefault(block.id, pos)
            data_blocks += 1
            if data_blocks % self._interval == 0:
                elapsed += tape.write(Block.marker(block.id + MARKER_ID_OFFSET))
                elapsed += tape.move_forward(1)
                self._markers_written += 1

        elapsed += tape.seek_to(original_pos)
        logger.debug(f"Fixed index built: {len(self._index)} entries, "
                     f"{self._markers_written} markers, {elapsed:.6f}s")
        return elapsed

    def find_block(self, tape: TapeDevice, data_id: int) -> tuple[int, float]:
        if tape.block_count() == 0:
            return NOT_FOUND, 0.0

        target = self._index.get(data_id)
        if target is None:
            return NOT_FOUND, 0.0

        elapsed = tape.seek_to(target)
        block, read_time = tape.read_current()
        elapsed += read_time

        if block.is_index_marker or block.id != data_id:
            return NOT_FOUND, elapsed
        return target, elapsed

    @property
    def name(self) -> str:
        return "Fixed Interval Index"

    def get_stats(self) -> str:
        return f"Interval: {self._interval}, Index entries: {len(self._index)}"


class HierarchicalIndexStrategy(IndexStrategy):
    """Two-level sparse index stored as two markers at the tape end.

    Data block ordinal i belongs to level-2 bucket i // level2_interval;
    level-2 buckets are grouped level1_interval at a time into level-1
    buckets. Each id maps to (level1_bucket, level2_bucket), where the
    level-2 bucket is numbered within its level-1 bucket, so

        (level1_bucket * level1_interval + level2_bucket) * level2_interval

    is the ordinal of the first block of the id's bucket. The level-2
    marker models a table of bucket start positions; a lookup reads both
    markers, jumps to the bucket start and scans at most level2_interval
    data blocks.

    Every lookup on a built index pays for reading both markers, even
    when the id is not in the map.
    """

    key = "hierarchical"

    def __init__(
        self,
        level1_interval: int = DEFAULT_LEVEL1_INTERVAL,
        level2_interval: int = DEFAULT_LEVEL2_INTERVAL,
    ):
        if level1_interval <= 0:
            raise ValueError(f"level1_interval must be positive, got {level1_interval}")
        if level2_interval <= 0:
            raise ValueError(f"level2_interval must be positive, got {level2_interval}")
        self._level1_interval = level1_interval
        self._level2_interval = level2_interval
        self._index: dict[int, tuple[int, int]] = {}
        self._bucket_starts: list[int] = []
        self._level1_pos: int | None = None
        self._level2_pos: int | None = None

    @property
    def level1_interval(self) -> int:
        return self._level1_interval

    @property
    def level2_interval(self) -> int:
        return self._level2_interval

    @property
    def index_entries(self) -> int:
        return len(self._index)

    @property
    def marker_positions(self) -> tuple[int, int] | None:
        """(level1, level2) marker positions, or None before a build."""
        if self._level1_pos is None:
            return None
        return self._level1_pos, self._level2_pos

    def buckets_of(self, data_id: int) -> tuple[int, int] | None:
        return self._index.get(data_id)

    def build_index(self, tape: TapeDevice) -> float:
        self._index.clear()
        self._bucket_starts = []
        self._level1_pos = None
        self._level2_pos = None
        count = tape.block_count()
        if count == 0:
            return 0.0

        elapsed = 0.0
        original_pos = tape.position()

        data_blocks: list[tuple[int, int]] = []
        elapsed += tape.seek_to(0)
        for pos in range(count):
            elapsed += tape.seek_to(pos)
            block, read_time = tape.read_current()
            elapsed += read_time
            if not block.is_index_marker:
                data_blocks.append((block.id, pos))

        elapsed += tape.write(Block.marker(LEVEL1_MARKER_ID))
        self._level1_pos = tape.block_count() - 1
        elapsed += tape.write(Block.marker(LEVEL2_MARKER_ID))
        self._level2_pos = tape.block_count() - 1

        for ordinal, (block_id, pos) in enumerate(data_blocks):
            global_bucket = ordinal // self._level2_interval
            if global_bucket == len(self._bucket_starts):
                self._bucket_starts.append(pos)
            level1_bucket = global_bucket // self._level1_interval
            level2_bucket = global_bucket % self._level1_interval
            self._index.setdefault(block_id, (level1_bucket, level2_bucket))

        elapsed += tape.seek_to(original_pos)
        logger.debug(f"Hierarchical index built: {len(self._index)} entries, "
                     f"{len(self._bucket_starts)} level-2 buckets, {elapsed:.6f}s")
        return elapsed

    def find_block(self, tape: TapeDevice, data_id: int) -> tuple[int, float]:
        if tape.block_count() == 0 or self._level1_pos is None:
            return NOT_FOUND, 0.0

        elapsed = tape.seek_to(self._level1_pos)
        elapsed += tape.read_current()[1]
        elapsed += tape.seek_to(self._level2_pos)
        elapsed += tape.read_current()[1]

        buckets = self._index.get(data_id)
        if buckets is None:
            return NOT_FOUND, elapsed

        level1_bucket, level2_bucket = buckets
        bucket = level1_bucket * self._level1_interval + level2_bucket
        pos = self._bucket_starts[bucket]
        elapsed += tape.seek_to(pos)

        examined = 0
        while True:
            block, read_time = tape.read_current()
            elapsed += read_time
            if not block.is_index_marker:
                if block.id == data_id:
                    return pos, elapsed
                examined += 1
                if examined >= self._level2_interval:
                    break
            # Never scan into the index markers
            if pos + 1 >= self._level1_pos:
                break
            elapsed += tape.move_forward(1)
            pos += 1

        return NOT_FOUND, elapsed

    @property
    def name(self) -> str:
        return "Hierarchical Index"

    def get_stats(self) -> str:
        return (f"Level1 interval: {self._level1_interval}, "
                f"Level2 interval: {self._level2_interval}, "
                f"Index entries: {len(self._index)}")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

STRATEGY_NAMES = (
    NoIndexStrategy.key,
    FixedIntervalIndexStrategy.key,
    HierarchicalIndexStrategy.key,
)


def _param_or_default(value: int | None, default: int, label: str) -> int:
    if value is None or value == 0:
        return default
    if value < 0:
        raise ValueError(f"{label} must be positive, got {value}")
    return int(value)


def create_strategy(
    name: str,
    param1: int | None = 0,
    param2: int | None = 0,
) -> IndexStrategy:
    """Factory function to create an IndexStrategy from a name.

    Args:
        name: One of 'none', 'fixed', 'hierarchical'.
        param1: fixed interval, or hierarchical level-1 interval.
        param2: hierarchical level-2 interval.
            Zero or None selects the documented default.

    Raises:
        UnknownStrategyError: If name is not a known strategy.
    """
    if name == NoIndexStrategy.key:
        return NoIndexStrategy()
    if name == FixedIntervalIndexStrategy.key:
        return FixedIntervalIndexStrategy(
            _param_or_default(param1, DEFAULT_INTERVAL, "interval"),
        )
    if name == HierarchicalIndexStrategy.key:
        return HierarchicalIndexStrategy(
            _param_or_default(param1, DEFAULT_LEVEL1_INTERVAL, "level1_interval"),
            _param_or_default(param2, DEFAULT_LEVEL2_INTERVAL, "level2_interval"),
        )
    raise UnknownStrategyError(
        f"Unknown index strategy: {name!r}. Valid: {list(STRATEGY_NAMES)}"
    )
