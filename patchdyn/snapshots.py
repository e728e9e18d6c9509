"""Optional full-landscape history recording.

Stores the patch grid of every time step for spatial playback. The whole
history is allocated once, up front, for the run's horizon. When disabled,
the engines keep only aggregate counts and the memory for the
time × rows × cols array is never allocated.

Usage:
    recorder = GridRecorder(tmax=100, shape=(50, 50), enabled=True)

    # In simulation loop:
    recorder.record(t, grid)

    # After simulation:
    recorder.history          # (tmax, rows, cols)
    recorder.as_spatial_stack()  # (rows, cols, tmax) for animation
    recorder.save("niche_run.npz")
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import numpy as np


class GridRecorder:
    """Records one grid per step into a preallocated array.

    When enabled=False, all methods are no-ops (zero overhead).
    """

    def __init__(
        self,
        tmax: int,
        shape: Tuple[int, int],
        enabled: bool = True,
        dtype=np.int16,
    ):
        """
        Args:
            tmax: Number of steps to hold.
            shape: (rows, cols) of the landscape.
            enabled: Master switch. False = aggregates only.
            dtype: Patch code dtype.
        """
        self.tmax = int(tmax)
        self.shape = (int(shape[0]), int(shape[1]))
        self.enabled = enabled
        self._history: Optional[np.ndarray] = None
        if enabled:
            self._history = np.zeros((self.tmax, *self.shape), dtype=dtype)

    def record(self, t: int, grid: np.ndarray) -> None:
        """Copy the grid for step t into the history."""
        if not self.enabled:
            return
        self._history[t] = np.asarray(grid).reshape(self.shape)

    @property
    def history(self) -> Optional[np.ndarray]:
        """Read-only (tmax, rows, cols) view, or None when disabled."""
        if self._history is None:
            return None
        view = self._history.view()
        view.flags.writeable = False
        return view

    def as_spatial_stack(self) -> Optional[np.ndarray]:
        """History as (rows, cols, tmax), the layout used for animation."""
        if self._history is None:
            return None
        return np.moveaxis(self.history, 0, -1)

    def save(self, path: str) -> None:
        """Save the history to a compressed npz file.

        Array: 'history' (tmax, rows, cols).
        """
        if self._history is None:
            return
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(path, history=self._history)

    @classmethod
    def load(cls, path: str) -> 'GridRecorder':
        """Load a history saved with save()."""
        data = np.load(path)
        history = data['history']
        recorder = cls(
            tmax=history.shape[0],
            shape=history.shape[1:],
            enabled=False,
            dtype=history.dtype,
        )
        recorder.enabled = True
        recorder._history = history
        return recorder

    def memory_estimate_mb(self) -> float:
        """Memory held by the history array."""
        if self._history is None:
            return 0.0
        return self._history.nbytes / (1024 * 1024)
