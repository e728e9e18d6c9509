"""Generic N-stage Markov succession on a landscape of patches.

The transition matrix A is column-stochastic: A[j, i] is the probability
that a patch in stage i at t-1 is in stage j at t. Columns must sum to 1 so
no area is lost. Each step, the patches of every stage are redrawn from that
stage's column.

The long-run stage distribution implied by A is the dominant eigenvector
(largest real eigenvalue, λ = 1 for a stochastic matrix), normalized to sum
to 1 and scaled by the number of patches.

References:
  - Gotelli, N.J. 2008. A Primer of Ecology. 4th ed. Sinauer.
  - Horn, H.S. 1975. Markovian properties of forest succession.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy import linalg

from patchdyn.errors import (
    InvalidInitialDistributionError,
    InvalidProbabilityMassError,
    SuccessionValidationError,
)
from patchdyn.rng import create_rng_hierarchy, get_partition_rng
from patchdyn.sampling import (
    categorical_resample,
    occupancy_counts,
    place_counts,
    rounded_counts,
)
from patchdyn.snapshots import GridRecorder
from patchdyn.types import PATCH_DTYPE, validate_landscape

logger = logging.getLogger(__name__)

# Column and proportion sums are compared to 1 within this tolerance
MASS_TOL = 1e-9


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def validate_transition_matrix(mat_trans) -> np.ndarray:
    """Coerce to a square float matrix and check every column sums to 1.

    Raises:
        SuccessionValidationError: Not a square 2-D numeric table.
        InvalidProbabilityMassError: Negative entries or a column sum ≠ 1.
    """
    try:
        mat = np.array(mat_trans, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise SuccessionValidationError(
            f"transition matrix is not numeric: {exc}"
        ) from exc
    if mat.ndim != 2 or mat.shape[0] != mat.shape[1] or mat.shape[0] == 0:
        raise SuccessionValidationError(
            f"transition matrix must be square, got shape {mat.shape}"
        )
    if not np.all(np.isfinite(mat)) or np.any(mat < 0):
        raise InvalidProbabilityMassError(
            "transition probabilities must be finite and non-negative"
        )

    col_sums = mat.sum(axis=0)
    bad = np.flatnonzero(np.abs(col_sums - 1.0) > MASS_TOL)
    if bad.size:
        raise InvalidProbabilityMassError(
            f"the transitions out of each stage must sum to 1 (no loss of "
            f"area): columns {bad.tolist()} sum to "
            f"{np.round(col_sums[bad], 12).tolist()}"
        )
    return mat


def validate_initial_proportions(init_prop: Sequence[float], n_stages: int) -> np.ndarray:
    """Check initial proportions have one entry per stage and sum to 1."""
    prop = np.asarray(init_prop, dtype=np.float64).ravel()
    if prop.size != n_stages:
        raise InvalidInitialDistributionError(
            f"initial proportions have {prop.size} entries but the "
            f"transition matrix has {n_stages} stages"
        )
    if not np.all(np.isfinite(prop)) or np.any(prop < 0):
        raise InvalidInitialDistributionError(
            f"initial proportions must be non-negative, got {prop.tolist()}"
        )
    if abs(prop.sum() - 1.0) > MASS_TOL:
        raise InvalidInitialDistributionError(
            f"initial proportions must sum to 1, got {prop.sum():.12g}"
        )
    return prop


# ═══════════════════════════════════════════════════════════════════════
# INITIALIZATION
# ═══════════════════════════════════════════════════════════════════════

def initial_stage_counts(init_prop: np.ndarray, n_patches: int) -> np.ndarray:
    """round(init_prop · N), corrected so the counts sum to exactly N."""
    return rounded_counts(init_prop, n_patches)


# ═══════════════════════════════════════════════════════════════════════
# STABLE STAGE
# ═══════════════════════════════════════════════════════════════════════

def dominant_eigenpair(mat: np.ndarray) -> Tuple[float, np.ndarray]:
    """Eigenvalue with the largest real part and its real eigenvector."""
    values, vectors = linalg.eig(mat)
    dom = int(np.argmax(values.real))
    return float(values[dom].real), vectors[:, dom].real


def stable_stage(mat: np.ndarray, n_patches: int) -> Tuple[float, np.ndarray]:
    """Dominant eigenvalue and eigenvector scaled to sum to n_patches."""
    value, vec = dominant_eigenpair(mat)
    return value, vec / vec.sum() * n_patches


def stable_stage_distribution(mat_trans, n_patches: int) -> np.ndarray:
    """Theoretical stable-stage patch counts for a transition matrix.

    Args:
        mat_trans: Column-stochastic transition matrix.
        n_patches: Landscape size N.

    Returns:
        (n_stages,) expected patch counts; sums to N.
    """
    mat = validate_transition_matrix(mat_trans)
    return stable_stage(mat, n_patches)[1]


# ═══════════════════════════════════════════════════════════════════════
# STEP
# ═══════════════════════════════════════════════════════════════════════

def markov_step(
    grid: np.ndarray,
    mat: np.ndarray,
    rngs: Dict[str, np.random.Generator],
) -> np.ndarray:
    """Redraw every stage partition from its column of mat. Returns a new grid."""
    n_stages = mat.shape[0]
    stages = np.arange(n_stages, dtype=grid.dtype)
    new = np.empty_like(grid)
    for nf in range(n_stages):
        mask = grid == nf
        new[mask] = categorical_resample(
            int(mask.sum()), stages, mat[:, nf],
            get_partition_rng(rngs, nf), dtype=grid.dtype,
        )
    return new


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class MarkovResult:
    """Output of a Markov succession run."""
    tmax: int = 0
    rows: int = 0
    cols: int = 0
    transition: Optional[np.ndarray] = None     # (n, n) column-stochastic
    stage_counts: Optional[np.ndarray] = None   # (tmax, n) patches per stage
    history: Optional[np.ndarray] = None        # (tmax, rows, cols) or None
    final_grid: Optional[np.ndarray] = None     # (rows, cols)
    stable_stage: Optional[np.ndarray] = None   # (n,) expected counts
    dominant_eigenvalue: float = 1.0

    @property
    def n_patches(self) -> int:
        return self.rows * self.cols

    @property
    def n_stages(self) -> int:
        return self.transition.shape[0]

    @property
    def occupancy(self) -> np.ndarray:
        """(tmax, n) stage fractions."""
        return self.stage_counts / self.n_patches


def run_markov_simulation(
    mat_trans,
    init_prop: Sequence[float],
    rows: int = 20,
    cols: int = 20,
    tmax: int = 100,
    seed: int = 42,
    record_history: bool = True,
) -> MarkovResult:
    """Run a Markov succession model on a rows × cols landscape.

    Validation happens before any allocation or random draw.

    Args:
        mat_trans: Square transition table; mat_trans[j][i] = P(i → j).
        init_prop: Initial stage proportions, one per stage, summing to 1.
        rows, cols: Landscape dimensions.
        tmax: Number of recorded steps (including the initial one).
        seed: Master RNG seed.
        record_history: Keep every grid (True) or stage counts only (False).

    Returns:
        MarkovResult with stage counts, optional history and stable stage.

    Raises:
        InvalidProbabilityMassError: A column does not sum to 1.
        InvalidInitialDistributionError: Bad init_prop.
        SuccessionValidationError: Non-square matrix or bad dimensions.
    """
    mat = validate_transition_matrix(mat_trans)
    n_stages = mat.shape[0]
    prop = validate_initial_proportions(init_prop, n_stages)
    validate_landscape(tmax, rows, cols)

    n_patches = rows * cols
    eigenvalue, stable = stable_stage(mat, n_patches)
    logger.info(
        "markov run: %d stages, %dx%d patches, tmax=%d, seed=%d",
        n_stages, rows, cols, tmax, seed,
    )

    rngs = create_rng_hierarchy(seed, n_partitions=n_stages)
    recorder = GridRecorder(tmax, (rows, cols), enabled=record_history)
    if record_history:
        logger.info("grid history: %.1f MB", recorder.memory_estimate_mb())
    stage_counts = np.zeros((tmax, n_stages), dtype=np.int64)

    counts0 = initial_stage_counts(prop, n_patches)
    grid = place_counts(
        counts0, np.arange(n_stages), rngs['init'], dtype=PATCH_DTYPE,
    ).reshape(rows, cols)
    recorder.record(0, grid)
    stage_counts[0] = occupancy_counts(grid, n_stages)

    for t in range(1, tmax):
        grid = markov_step(grid, mat, rngs)
        recorder.record(t, grid)
        stage_counts[t] = occupancy_counts(grid, n_stages)

    logger.info(
        "markov run finished: final counts %s, stable stage %s",
        stage_counts[-1].tolist(), np.round(stable, 2).tolist(),
    )

    return MarkovResult(
        tmax=tmax,
        rows=rows,
        cols=cols,
        transition=mat,
        stage_counts=stage_counts,
        history=recorder.history,
        final_grid=grid,
        stable_stage=stable,
        dominant_eigenvalue=eigenvalue,
    )
