"""Tests for patchdyn.snapshots — grid history recording."""

import numpy as np
import pytest

from patchdyn.snapshots import GridRecorder


class TestGridRecorder:
    def test_preallocated_history(self):
        rec = GridRecorder(tmax=4, shape=(3, 5))
        assert rec.history.shape == (4, 3, 5)

    def test_record(self):
        rec = GridRecorder(tmax=3, shape=(2, 2))
        rec.record(0, np.array([[1, 2], [3, 4]]))
        rec.record(1, np.array([1, 1, 0, 0]))  # flat input reshaped
        np.testing.assert_array_equal(rec.history[0], [[1, 2], [3, 4]])
        np.testing.assert_array_equal(rec.history[1], [[1, 1], [0, 0]])

    def test_record_copies(self):
        rec = GridRecorder(tmax=2, shape=(2, 2))
        grid = np.zeros((2, 2), dtype=np.int16)
        rec.record(0, grid)
        grid[0, 0] = 4
        assert rec.history[0, 0, 0] == 0

    def test_history_read_only(self):
        rec = GridRecorder(tmax=2, shape=(2, 2))
        with pytest.raises(ValueError):
            rec.history[0, 0, 0] = 1

    def test_spatial_stack_layout(self):
        rec = GridRecorder(tmax=3, shape=(2, 4))
        for t in range(3):
            rec.record(t, np.full((2, 4), t))
        stack = rec.as_spatial_stack()
        assert stack.shape == (2, 4, 3)
        np.testing.assert_array_equal(stack[:, :, 2], np.full((2, 4), 2))

    def test_disabled_is_noop(self):
        rec = GridRecorder(tmax=1000, shape=(100, 100), enabled=False)
        rec.record(0, np.zeros((100, 100)))
        assert rec.history is None
        assert rec.as_spatial_stack() is None
        assert rec.memory_estimate_mb() == 0.0

    def test_memory_estimate(self):
        rec = GridRecorder(tmax=16, shape=(256, 256), dtype=np.int16)
        assert rec.memory_estimate_mb() == pytest.approx(2.0)


class TestSaveLoad:
    def test_round_trip(self, tmp_path):
        rec = GridRecorder(tmax=3, shape=(4, 4))
        rng = np.random.default_rng(0)
        for t in range(3):
            rec.record(t, rng.integers(0, 5, size=(4, 4)))
        path = tmp_path / "sub" / "history.npz"
        rec.save(str(path))

        loaded = GridRecorder.load(str(path))
        np.testing.assert_array_equal(loaded.history, rec.history)
        assert loaded.shape == (4, 4)

    def test_disabled_save_writes_nothing(self, tmp_path):
        path = tmp_path / "none.npz"
        GridRecorder(tmax=2, shape=(2, 2), enabled=False).save(str(path))
        assert not path.exists()
