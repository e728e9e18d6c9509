"""Successional niche model (Pacala & Rees 1998), mean-field version.

Two species share a landscape of patches: an early-successional inferior
competitor (fast colonizer) and a late-successional superior competitor.
Every patch is in one NicheState; each step, patches are partitioned by
state and each partition is redrawn from weights set by the landscape-wide
counts of the previous step:

  p_col1 = c1 · (n_susceptible + n_mixed + n_resistant) / N
  p_col2 = c2 · (n_early + n_mixed) / N

  FREE        → {FREE, EARLY, SUSCEPTIBLE}         {1-p_col1-p_col2, p_col2, p_col1}
  EARLY       → {FREE, EARLY, MIXED}               {dst, 1-(dst+p_col1), p_col1}
  SUSCEPTIBLE → {FREE, SUSCEPTIBLE, MIXED, RES.}   {dst, 1-(dst+p_col2+ec), p_col2, ec}
  MIXED       → {FREE, MIXED, RESISTANT}           {dst, 1-(dst+ec), ec}
  RESISTANT   → {FREE, RESISTANT}                  {dst, 1-dst}

Negative "stay"/"no colonization" weights are clamped to zero (see
patchdyn.sampling for the clamp policy).

References:
  - Pacala, S. & Rees, M. 1998. Am. Nat. 152(2): 729–737.
  - Stevens, M.H.H. 2009. A Primer of Ecology with R. Springer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from patchdyn.errors import InvalidInitialDistributionError, SuccessionValidationError
from patchdyn.rng import create_rng_hierarchy, get_partition_rng
from patchdyn.sampling import (
    ClampLog,
    categorical_resample,
    clamp_probabilities,
    occupancy_counts,
)
from patchdyn.snapshots import GridRecorder
from patchdyn.types import N_NICHE_STATES, PATCH_DTYPE, NicheState, validate_landscape

logger = logging.getLogger(__name__)

# Free fraction may come out as -1e-16 from float subtraction
_FRACTION_TOL = 1e-12

F, E, S, M, R = (int(s) for s in NicheState)


# ═══════════════════════════════════════════════════════════════════════
# PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class NicheParams:
    """Rates and initial fractions for the successional niche model."""
    c1: float = 0.2     # Colonization rate, late-successional (superior)
    c2: float = 0.8     # Colonization rate, early-successional (inferior)
    ec: float = 0.5     # Competitive exclusion rate (→ RESISTANT)
    dst: float = 0.04   # Disturbance rate (any state → FREE)
    er: float = 0.08    # Initial EARLY fraction
    sc: float = 0.02    # Initial SUSCEPTIBLE fraction
    mx: float = 0.0     # Initial MIXED fraction
    rs: float = 0.0     # Initial RESISTANT fraction

    def initial_fractions(self) -> np.ndarray:
        """Initial weights in NicheState order; FREE is the remainder."""
        free = 1.0 - (self.er + self.sc + self.mx + self.rs)
        return np.array(
            [max(free, 0.0), self.er, self.sc, self.mx, self.rs],
            dtype=np.float64,
        )


def validate_niche_params(params: NicheParams) -> None:
    """Raise before any allocation if the niche parameters are unusable."""
    for name in ('c1', 'c2', 'ec', 'dst'):
        value = getattr(params, name)
        if not np.isfinite(value) or value < 0:
            raise SuccessionValidationError(
                f"{name} must be a non-negative rate, got {value}"
            )
    for name in ('ec', 'dst'):
        if getattr(params, name) > 1:
            raise SuccessionValidationError(
                f"{name} is a per-step probability and must be ≤ 1, "
                f"got {getattr(params, name)}"
            )

    for name in ('er', 'sc', 'mx', 'rs'):
        value = getattr(params, name)
        if not np.isfinite(value) or value < 0:
            raise InvalidInitialDistributionError(
                f"initial fraction {name} must be ≥ 0, got {value}"
            )
    occupied = params.er + params.sc + params.mx + params.rs
    if occupied > 1.0 + _FRACTION_TOL:
        raise InvalidInitialDistributionError(
            f"initial fractions er+sc+mx+rs sum to {occupied:.6g} > 1; "
            f"free fraction would be negative"
        )


# ═══════════════════════════════════════════════════════════════════════
# TRANSITION WEIGHTS
# ═══════════════════════════════════════════════════════════════════════

def colonization_pressures(counts: np.ndarray, params: NicheParams) -> Tuple[float, float]:
    """Landscape-wide colonization probabilities (p_col1, p_col2)."""
    n = counts.sum()
    p_col1 = params.c1 * (counts[S] + counts[M] + counts[R]) / n
    p_col2 = params.c2 * (counts[E] + counts[M]) / n
    return float(p_col1), float(p_col2)


def niche_transition_weights(
    counts: np.ndarray,
    params: NicheParams,
    log: Optional[ClampLog] = None,
    step: Optional[int] = None,
) -> Dict[NicheState, Tuple[np.ndarray, np.ndarray]]:
    """Destination states and clamped weights for every source state.

    Args:
        counts: (5,) patch counts of the previous step, NicheState order.
        params: Model rates.
        log: Optional ClampLog for clamp events.
        step: Step index, for the clamp record.

    Returns:
        {source_state: (destination_codes, weights)}; all weights ≥ 0.
    """
    p_col1, p_col2 = colonization_pressures(counts, params)
    dst, ec = params.dst, params.ec

    table = {
        NicheState.FREE: (
            (F, E, S),
            clamp_probabilities(
                [1.0 - p_col1 - p_col2, p_col2, p_col1],
                ('p_ncol', 'p_col2', 'p_col1'), log, step),
        ),
        NicheState.EARLY: (
            (F, E, M),
            clamp_probabilities(
                [dst, 1.0 - (dst + p_col1), p_col1],
                ('dst', 'p_permer', 'p_col1'), log, step),
        ),
        NicheState.SUSCEPTIBLE: (
            (F, S, M, R),
            clamp_probabilities(
                [dst, 1.0 - (dst + p_col2 + ec), p_col2, ec],
                ('dst', 'p_permsc', 'p_col2', 'ec'), log, step),
        ),
        NicheState.MIXED: (
            (F, M, R),
            clamp_probabilities(
                [dst, 1.0 - (dst + ec), ec],
                ('dst', 'p_permmx', 'ec'), log, step),
        ),
        NicheState.RESISTANT: (
            (F, R),
            clamp_probabilities([dst, 1.0 - dst], ('dst', 'p_permrs'), log, step),
        ),
    }
    return {k: (np.asarray(o, dtype=PATCH_DTYPE), w) for k, (o, w) in table.items()}


# ═══════════════════════════════════════════════════════════════════════
# STEP
# ═══════════════════════════════════════════════════════════════════════

def niche_step(
    grid: np.ndarray,
    params: NicheParams,
    rngs: Dict[str, np.random.Generator],
    log: Optional[ClampLog] = None,
    step: Optional[int] = None,
) -> np.ndarray:
    """Advance the landscape one step. Returns a new grid.

    Each state partition is redrawn from its own RNG stream and written only
    to its own cells, so every cell is written exactly once.
    """
    counts = occupancy_counts(grid, N_NICHE_STATES)
    table = niche_transition_weights(counts, params, log=log, step=step)

    new = np.empty_like(grid)
    for state, (outcomes, weights) in table.items():
        mask = grid == state
        new[mask] = categorical_resample(
            int(counts[state]), outcomes, weights,
            get_partition_rng(rngs, state), dtype=grid.dtype,
        )
    return new


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class NicheResult:
    """Output of a successional niche run."""
    tmax: int = 0
    rows: int = 0
    cols: int = 0
    params: NicheParams = field(default_factory=NicheParams)
    occupancy: Optional[np.ndarray] = None    # (tmax, 5) fractions
    history: Optional[np.ndarray] = None      # (tmax, rows, cols) or None
    final_grid: Optional[np.ndarray] = None   # (rows, cols)
    clamp_events: Dict[str, int] = field(default_factory=dict)

    @property
    def n_patches(self) -> int:
        return self.rows * self.cols

    @property
    def counts(self) -> np.ndarray:
        """(tmax, 5) patch counts recovered from the fractions."""
        return np.rint(self.occupancy * self.n_patches).astype(np.int64)


def run_niche_simulation(
    tmax: int = 50,
    rows: int = 100,
    cols: int = 100,
    params: Optional[NicheParams] = None,
    seed: int = 42,
    record_history: bool = True,
) -> NicheResult:
    """Run the successional niche model.

    Step 0 is the initial landscape, drawn by categorical sampling with the
    initial fractions as weights. Steps 1..tmax-1 each apply niche_step to
    the previous step.

    Args:
        tmax: Number of recorded steps (including the initial one).
        rows, cols: Landscape dimensions; N = rows · cols patches.
        params: NicheParams; defaults if None.
        seed: Master RNG seed.
        record_history: Keep every grid (True) or aggregates only (False).

    Returns:
        NicheResult with the occupancy table and, optionally, grid history.

    Raises:
        SuccessionValidationError: Bad dimensions or rates.
        InvalidInitialDistributionError: Initial fractions exceed 1.
    """
    if params is None:
        params = NicheParams()
    validate_landscape(tmax, rows, cols)
    validate_niche_params(params)

    n_patches = rows * cols
    logger.info(
        "niche run: tmax=%d, %dx%d patches, c1=%g c2=%g ec=%g dst=%g, seed=%d",
        tmax, rows, cols, params.c1, params.c2, params.ec, params.dst, seed,
    )

    rngs = create_rng_hierarchy(seed, n_partitions=N_NICHE_STATES)
    recorder = GridRecorder(tmax, (rows, cols), enabled=record_history)
    if record_history:
        logger.info("grid history: %.1f MB", recorder.memory_estimate_mb())
    log = ClampLog()
    occupancy = np.zeros((tmax, N_NICHE_STATES), dtype=np.float64)

    init_p = params.initial_fractions()
    grid = rngs['init'].choice(
        np.arange(N_NICHE_STATES, dtype=PATCH_DTYPE),
        size=(rows, cols),
        p=init_p / init_p.sum(),
    )
    recorder.record(0, grid)
    occupancy[0] = occupancy_counts(grid, N_NICHE_STATES) / n_patches

    for t in range(1, tmax):
        grid = niche_step(grid, params, rngs, log=log, step=t)
        recorder.record(t, grid)
        occupancy[t] = occupancy_counts(grid, N_NICHE_STATES) / n_patches

    log.warn_if_clamped("niche model")
    logger.info("niche run finished: final occupancy %s", np.round(occupancy[-1], 4))

    return NicheResult(
        tmax=tmax,
        rows=rows,
        cols=cols,
        params=params,
        occupancy=occupancy,
        history=recorder.history,
        final_grid=grid,
        clamp_events=dict(log.events),
    )

