"""Synthetic workload generation.

The Workload owns a seeded numpy RandomState and is the only source of
randomness in a simulation run: block ids, payload sizes, payload bytes
and query ids are all drawn from it, so a fixed seed reproduces the
same tape content and query set.

Key types:
- WorkloadConfig: Immutable workload parameters
- Workload: Block and query generator
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np

from tapesim.tape import ID_SPACE, Block

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkloadConfig:
    """Immutable workload configuration.

    Attributes:
        id_space: Block ids are uniform in [1, id_space]
        payload_size_ratio: Payload length is uniform in
            [1, block_size * payload_size_ratio]
    """
    id_space: int = ID_SPACE
    payload_size_ratio: float = 0.5

    def __post_init__(self):
        if self.id_space <= 0:
            raise ValueError(f"id_space must be > 0, got {self.id_space}")
        if self.payload_size_ratio <= 0:
            raise ValueError(f"payload_size_ratio must be > 0, got {self.payload_size_ratio}")


class Workload:
    """Block and query generator with a seedable random source.

    Usage:
        workload = Workload(WorkloadConfig(), seed=42)
        for block in workload.blocks(1000, block_size=4096):
            tape.write(block)
        queries = workload.queries(100)
    """

    def __init__(
        self,
        config: Optional[WorkloadConfig] = None,
        seed: Optional[int] = None,
    ):
        self._config = config or WorkloadConfig()
        self._seed = seed
        self._rng = np.random.RandomState(seed)

    @property
    def config(self) -> WorkloadConfig:
        return self._config

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def max_payload_size(self, block_size: int, payload_size_ratio: Optional[float] = None) -> int:
        ratio = self._config.payload_size_ratio if payload_size_ratio is None else payload_size_ratio
        return max(1, int(block_size * ratio))

    def blocks(
        self,
        count: int,
        block_size: int,
        payload_size_ratio: Optional[float] = None,
    ) -> Iterator[Block]:
        """Generate `count` data blocks.

        Ids are drawn independently, so collisions are rare but possible.
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        max_size = self.max_payload_size(block_size, payload_size_ratio)
        ids = self._rng.randint(1, self._config.id_space + 1, size=count, dtype=np.int64)
        sizes = self._rng.randint(1, max_size + 1, size=count)
        logger.debug(f"Generating {count} blocks, payload <= {max_size} bytes")
        for block_id, size in zip(ids, sizes):
            payload = self._rng.randint(0, 256, size=int(size), dtype=np.uint8).tobytes()
            yield Block(id=int(block_id), payload=payload)

    def queries(self, count: int) -> list[int]:
        """Draw `count` query ids uniformly over the id space.

        Queries are independent of tape content, so most of them miss
        on a sparsely populated id space.
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        ids = self._rng.randint(1, self._config.id_space + 1, size=count, dtype=np.int64)
        return [int(i) for i in ids]
