"""Sequential-access tape device timing model.

The device is a pure timing oracle: every operation that moves the tape
or transfers data returns its elapsed time in seconds instead of
accumulating it. Callers (index strategies, the simulator) decide how
costs are summed.

Key types:
- Block: Immutable logical unit on the tape (data or index marker)
- TapeDevice: Ordered block sequence with a cursor
- OutOfRangeError: Raised for reads/seeks with no valid target

Cost model:
- write:  len(payload) / write_rate
- read:   len(payload) / read_rate
- seek:   |target - cursor| * seek_rate
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass


# Logical ids are drawn from [1, ID_SPACE]; marker ids live above it.
ID_SPACE = 1_000_000
MARKER_ID_OFFSET = 1_000_000

DEFAULT_BLOCK_SIZE = 4096
DEFAULT_READ_RATE = 1024 * 1024      # 1 MiB/s
DEFAULT_WRITE_RATE = 512 * 1024      # 512 KiB/s
DEFAULT_SEEK_RATE = 0.01             # 10ms per block


class OutOfRangeError(IndexError):
    """Raised when a device access has no valid target block."""
    pass


@dataclass(frozen=True)
class Block:
    """Immutable block on the tape.

    Attributes:
        id: Logical id (uint64 range)
        payload: Raw bytes; content is meaningless, only length is costed
        is_index_marker: True for synthetic blocks written by index builds
    """
    id: int
    payload: bytes = b""
    is_index_marker: bool = False

    @classmethod
    def marker(cls, marker_id: int, payload: bytes = b"") -> Block:
        """Construct an index marker block."""
        return cls(id=marker_id, payload=payload, is_index_marker=True)


class TapeDevice:
    """Simulated tape drive.

    The cursor is always a valid index into the block sequence when the
    sequence is non-empty, and 0 otherwise. seek_to() is the single
    position-changing primitive; move_forward()/move_backward() route
    through it.
    """

    def __init__(
        self,
        block_size: int = DEFAULT_BLOCK_SIZE,
        read_rate: float = DEFAULT_READ_RATE,
        write_rate: float = DEFAULT_WRITE_RATE,
        seek_rate: float = DEFAULT_SEEK_RATE,
    ):
        if block_size <= 0:
            raise ValueError(f"block_size must be > 0, got {block_size}")
        if read_rate <= 0:
            raise ValueError(f"read_rate must be > 0, got {read_rate}")
        if write_rate <= 0:
            raise ValueError(f"write_rate must be > 0, got {write_rate}")
        if seek_rate < 0:
            raise ValueError(f"seek_rate must be >= 0, got {seek_rate}")
        self._block_size = int(block_size)
        self._read_rate = float(read_rate)
        self._write_rate = float(write_rate)
        self._seek_rate = float(seek_rate)
        self._blocks: list[Block] = []
        self._cursor = 0

    # -- Properties --

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def read_rate(self) -> float:
        return self._read_rate

    @property
    def write_rate(self) -> float:
        return self._write_rate

    @property
    def seek_rate(self) -> float:
        return self._seek_rate

    # -- Accessors --

    def block_count(self) -> int:
        return len(self._blocks)

    def position(self) -> int:
        return self._cursor

    def block_at(self, index: int) -> Block:
        """Return the block at index without moving the tape."""
        if index < 0 or index >= len(self._blocks):
            raise OutOfRangeError(f"Block index {index} out of range (block_count={len(self._blocks)})")
        return self._blocks[index]

    # -- Timed operations --

    def write(self, block: Block) -> float:
        """Append block at the logical end of the tape.

        The cursor does not move.

        Returns:
            Elapsed time in seconds.
        """
        self._blocks.append(block)
        return len(block.payload) / self._write_rate

    def read_current(self) -> tuple[Block, float]:
        """Read the block under the cursor.

        Raises:
            OutOfRangeError: If the tape is empty.
        """
        if self._cursor >= len(self._blocks):
            raise OutOfRangeError("Position out of range")
        block = self._blocks[self._cursor]
        return block, len(block.payload) / self._read_rate

    def seek_to(self, index: int) -> float:
        """Move the cursor to index.

        Raises:
            OutOfRangeError: If index is not a valid block position.
        """
        if index < 0 or index >= len(self._blocks):
            raise OutOfRangeError(f"Block index {index} out of range (block_count={len(self._blocks)})")
        distance = abs(index - self._cursor)
        self._cursor = index
        return distance * self._seek_rate

    def move_forward(self, n: int = 1) -> float:
        """Move n blocks towards the end, pinning at the last block."""
        return self.seek_to(self._clamp(self._cursor + n))

    def move_backward(self, n: int = 1) -> float:
        """Move n blocks towards the start, pinning at block 0."""
        return self.seek_to(self._clamp(self._cursor - n))

    def _clamp(self, index: int) -> int:
        if not self._blocks:
            raise OutOfRangeError("Cannot move on an empty tape")
        return max(0, min(index, len(self._blocks) - 1))

    def reset(self) -> None:
        """Drop all blocks and rewind."""
        self._blocks.clear()
        self._cursor = 0

    def truncate(self, block_count: int) -> None:
        """Keep only the first block_count blocks and rewind.

        Untimed; used to restore a generated workload between runs.
        """
        if block_count < 0 or block_count > len(self._blocks):
            raise OutOfRangeError(f"Cannot truncate to {block_count} blocks (block_count={len(self._blocks)})")
        del self._blocks[block_count:]
        self._cursor = 0

    # -- Workload identity --

    def fingerprint(self) -> str:
        """SHA-256 digest of the data blocks in tape order.

        Index markers are excluded so that strategies which append
        markers do not change the fingerprint of the workload.
        """
        digest = hashlib.sha256()
        for block in self._blocks:
            if block.is_index_marker:
                continue
            digest.update(block.id.to_bytes(8, "little"))
            digest.update(len(block.payload).to_bytes(8, "little"))
            digest.update(block.payload)
        return digest.hexdigest()

    def __repr__(self) -> str:
        return (f"TapeDevice(block_size={self._block_size}, blocks={len(self._blocks)}, "
                f"cursor={self._cursor})")
