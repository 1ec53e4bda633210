"""Tests for tapesim.tape: the TapeDevice timing model.

Unit tests:
- Block is immutable (frozen dataclass)
- write/read cost is payload_length / rate; zero for empty payloads
- seek cost is |delta| * seek_rate; cursor lands on the target
- move_forward/move_backward clamp at both ends
- Out-of-range reads and seeks raise OutOfRangeError
- reset clears blocks and rewinds; truncate drops trailing blocks and rewinds
- fingerprint ignores index markers
"""

import pytest
import numpy as np

from tapesim.tape import (
    Block,
    OutOfRangeError,
    TapeDevice,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_tape(n_blocks=10, payload_size=100, seek_rate=0.01,
              read_rate=1000.0, write_rate=500.0):
    """Create a tape with n_blocks data blocks with ids 1..n."""
    tape = TapeDevice(block_size=4096, read_rate=read_rate,
                      write_rate=write_rate, seek_rate=seek_rate)
    for i in range(n_blocks):
        tape.write(Block(id=i + 1, payload=b"x" * payload_size))
    return tape


# ---------------------------------------------------------------------------
# Block
# ---------------------------------------------------------------------------

class TestBlock:
    """Block is a frozen dataclass."""

    def test_fields_accessible(self):
        b = Block(id=7, payload=b"abc")
        assert b.id == 7
        assert b.payload == b"abc"
        assert b.is_index_marker is False
        assert len(b.payload) == 3

    def test_immutable(self):
        b = Block(id=1, payload=b"")
        with pytest.raises(AttributeError):
            b.id = 2
        with pytest.raises(AttributeError):
            b.is_index_marker = True

    def test_marker_is_truthy(self):
        assert Block.marker(1_000_001)
        assert Block(id=1, payload=b"")

    def test_marker_constructor(self):
        m = Block.marker(1_000_005)
        assert m.is_index_marker is True
        assert m.id == 1_000_005
        assert m.payload == b""

    def test_equality(self):
        assert Block(id=1, payload=b"a") == Block(id=1, payload=b"a")
        assert Block(id=1, payload=b"a") != Block(id=1, payload=b"a", is_index_marker=True)


# ---------------------------------------------------------------------------
# Construction and accessors
# ---------------------------------------------------------------------------

class TestConstruction:
    def test_defaults(self):
        tape = TapeDevice()
        assert tape.block_size == 4096
        assert tape.read_rate == 1024 * 1024
        assert tape.write_rate == 512 * 1024
        assert tape.seek_rate == 0.01
        assert tape.block_count() == 0
        assert tape.position() == 0

    @pytest.mark.parametrize("kwargs", [
        {"block_size": 0},
        {"read_rate": 0},
        {"write_rate": -1.0},
        {"seek_rate": -0.5},
    ])
    def test_invalid_parameters_rejected(self, kwargs):
        with pytest.raises(ValueError):
            TapeDevice(**kwargs)

    def test_block_at(self):
        tape = make_tape(3)
        assert tape.block_at(0).id == 1
        assert tape.block_at(2).id == 3
        assert tape.position() == 0

    def test_block_at_out_of_range(self):
        tape = make_tape(3)
        with pytest.raises(OutOfRangeError):
            tape.block_at(3)
        with pytest.raises(OutOfRangeError):
            tape.block_at(-1)


# ---------------------------------------------------------------------------
# Write / read cost
# ---------------------------------------------------------------------------

class TestTransferCost:
    def test_write_cost(self):
        tape = TapeDevice(write_rate=500.0)
        assert tape.write(Block(id=1, payload=b"x" * 250)) == pytest.approx(0.5)

    def test_write_appends_without_moving(self):
        tape = make_tape(5)
        tape.seek_to(2)
        tape.write(Block(id=99, payload=b"y"))
        assert tape.block_count() == 6
        assert tape.position() == 2
        assert tape.block_at(5).id == 99

    def test_read_cost(self):
        tape = make_tape(3, payload_size=100, read_rate=1000.0)
        block, elapsed = tape.read_current()
        assert block.id == 1
        assert elapsed == pytest.approx(0.1)

    def test_zero_length_payload_costs_nothing(self):
        tape = TapeDevice()
        assert tape.write(Block(id=1, payload=b"")) == 0.0
        block, elapsed = tape.read_current()
        assert elapsed == 0.0

    def test_read_does_not_move(self):
        tape = make_tape(3)
        tape.read_current()
        assert tape.position() == 0

    def test_read_empty_tape_raises(self):
        tape = TapeDevice()
        with pytest.raises(OutOfRangeError):
            tape.read_current()

    def test_out_of_range_is_index_error(self):
        tape = TapeDevice()
        with pytest.raises(IndexError):
            tape.read_current()


# ---------------------------------------------------------------------------
# Seek / move
# ---------------------------------------------------------------------------

class TestSeek:
    def test_seek_cost_and_cursor(self):
        tape = make_tape(10, seek_rate=0.5)
        assert tape.seek_to(4) == pytest.approx(2.0)
        assert tape.position() == 4
        assert tape.seek_to(1) == pytest.approx(1.5)
        assert tape.position() == 1

    def test_seek_to_current_is_free(self):
        tape = make_tape(10)
        tape.seek_to(3)
        assert tape.seek_to(3) == 0.0

    def test_random_seek_sequence(self):
        """Every seek costs |delta| * seek_rate and lands on the target."""
        rng = np.random.RandomState(42)
        tape = make_tape(50, seek_rate=0.01)
        for _ in range(200):
            target = int(rng.randint(50))
            before = tape.position()
            elapsed = tape.seek_to(target)
            assert elapsed == pytest.approx(abs(target - before) * 0.01)
            assert tape.position() == target

    def test_seek_out_of_range(self):
        tape = make_tape(5)
        with pytest.raises(OutOfRangeError):
            tape.seek_to(5)
        with pytest.raises(OutOfRangeError):
            tape.seek_to(-1)
        assert tape.position() == 0

    def test_seek_on_empty_tape(self):
        with pytest.raises(OutOfRangeError):
            TapeDevice().seek_to(0)


class TestMove:
    def test_move_forward(self):
        tape = make_tape(10, seek_rate=0.1)
        assert tape.move_forward(3) == pytest.approx(0.3)
        assert tape.position() == 3

    def test_move_backward(self):
        tape = make_tape(10, seek_rate=0.1)
        tape.seek_to(8)
        assert tape.move_backward(2) == pytest.approx(0.2)
        assert tape.position() == 6

    def test_move_forward_clamps_at_end(self):
        tape = make_tape(10, seek_rate=0.1)
        tape.seek_to(7)
        assert tape.move_forward(100) == pytest.approx(0.2)
        assert tape.position() == 9

    def test_move_backward_clamps_at_start(self):
        tape = make_tape(10, seek_rate=0.1)
        tape.seek_to(2)
        assert tape.move_backward(100) == pytest.approx(0.2)
        assert tape.position() == 0

    def test_move_at_boundary_is_free(self):
        tape = make_tape(3)
        assert tape.move_backward() == 0.0
        tape.seek_to(2)
        assert tape.move_forward() == 0.0
        assert tape.position() == 2

    def test_cursor_never_leaves_tape(self):
        rng = np.random.RandomState(7)
        tape = make_tape(20)
        for _ in range(200):
            n = int(rng.randint(0, 40))
            if rng.random_sample() < 0.5:
                tape.move_forward(n)
            else:
                tape.move_backward(n)
            assert 0 <= tape.position() < tape.block_count()

    def test_move_on_empty_tape_raises(self):
        tape = TapeDevice()
        with pytest.raises(OutOfRangeError):
            tape.move_forward()
        with pytest.raises(OutOfRangeError):
            tape.move_backward()


# ---------------------------------------------------------------------------
# Reset and fingerprint
# ---------------------------------------------------------------------------

class TestReset:
    def test_reset(self):
        tape = make_tape(10)
        tape.seek_to(5)
        tape.reset()
        assert tape.block_count() == 0
        assert tape.position() == 0

    def test_reusable_after_reset(self):
        tape = make_tape(10)
        tape.reset()
        tape.write(Block(id=42, payload=b"z"))
        block, _ = tape.read_current()
        assert block.id == 42


class TestTruncate:
    def test_drops_trailing_blocks_and_rewinds(self):
        tape = make_tape(10)
        tape.write(Block.marker(2_000_000))
        tape.seek_to(10)
        tape.truncate(10)
        assert tape.block_count() == 10
        assert tape.position() == 0
        assert [tape.block_at(i).id for i in range(10)] == list(range(1, 11))

    def test_to_zero(self):
        tape = make_tape(3)
        tape.truncate(0)
        assert tape.block_count() == 0

    @pytest.mark.parametrize("count", [-1, 11])
    def test_out_of_range(self, count):
        tape = make_tape(10)
        with pytest.raises(OutOfRangeError):
            tape.truncate(count)
        assert tape.block_count() == 10


class TestFingerprint:
    def test_same_content_same_fingerprint(self):
        assert make_tape(10).fingerprint() == make_tape(10).fingerprint()

    def test_different_content_different_fingerprint(self):
        a = make_tape(10)
        b = make_tape(10)
        b.write(Block(id=999, payload=b""))
        assert a.fingerprint() != b.fingerprint()

    def test_markers_ignored(self):
        tape = make_tape(10)
        before = tape.fingerprint()
        tape.write(Block.marker(2_000_000))
        assert tape.fingerprint() == before

    def test_payload_matters(self):
        a = TapeDevice()
        a.write(Block(id=1, payload=b"a"))
        b = TapeDevice()
        b.write(Block(id=1, payload=b"b"))
        assert a.fingerprint() != b.fingerprint()
