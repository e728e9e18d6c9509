"""Multispecies competition–colonization trade-off (Tilman 1994).

S species are ranked by competitive ability: rank 1 is the best competitor
and the worst colonizer. Colonization ability grows with rank,

  c_i = pe / (1 - fsp1)^(2·i - 1)

where pe is the per-step mortality and fsp1 the equilibrium abundance of
the best competitor. Each patch is EMPTY or holds exactly one species.

Per-step resolution (ordered priority, on a snapshot of step t-1):

  for rank i = S, S-1, ..., 1:
    1. patches held by i at t-1 die (→ EMPTY) with probability pe
    2. every patch that was EMPTY or held by a worse competitor (rank > i)
       at t-1 is colonized by i with probability min(c_i · p_i(t-1), 0.999)

The best competitor resolves LAST, so its colonization overwrites any claim
a worse competitor made on the same patch in the same step. On scheduled
disturbance steps a fixed number of patches is then cleared at random.

Only the per-species occupancy fractions are kept; the spatial layout has
no meaning beyond patch counts in this model.

References:
  - Tilman, D. 1994. Competition and biodiversity in spatially structured
    habitats. Ecology 75: 2–16.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Union

import numpy as np

from patchdyn.errors import InvalidInitialDistributionError, SuccessionValidationError
from patchdyn.rng import create_rng_hierarchy, get_partition_rng
from patchdyn.sampling import (
    ClampLog,
    categorical_resample,
    occupancy_counts,
    place_counts,
    rounded_counts,
)
from patchdyn.types import EMPTY, PATCH_DTYPE, species_ranks, validate_landscape

logger = logging.getLogger(__name__)

MAX_COLONIZATION_PROB = 0.999


# ═══════════════════════════════════════════════════════════════════════
# DERIVED QUANTITIES
# ═══════════════════════════════════════════════════════════════════════

def colonization_abilities(n_species: int, fsp1: float, pe: float) -> np.ndarray:
    """Per-rank colonization ability c_i, increasing in rank."""
    rank = species_ranks(n_species).astype(np.float64)
    # Large ranks underflow the denominator to 0; those abilities are inf
    with np.errstate(divide='ignore', over='ignore', invalid='ignore'):
        abilities = pe / (1.0 - fsp1) ** (2.0 * rank - 1.0)
    return np.where(pe > 0, abilities, 0.0)


def disturbance_schedule(tmax: int, fr: float, intensity: float) -> np.ndarray:
    """Boolean (tmax,) mask of steps that end with a clearing pulse.

    ceil(fr · tmax) points are spread evenly over [0, tmax]; the first point
    is dropped and the rest are rounded to 1-based step numbers. The initial
    step can never be disturbed, so a schedule with fewer than two points
    clears nothing.
    """
    schedule = np.zeros(tmax, dtype=bool)
    if fr <= 0 or intensity <= 0:
        return schedule

    n_points = int(np.ceil(fr * tmax - 1e-9))
    if n_points < 2:
        return schedule
    times = np.round(np.linspace(0.0, tmax, n_points))[1:].astype(np.int64)
    steps = times - 1
    schedule[steps[steps >= 1]] = True
    return schedule


def colonization_probabilities(
    abilities: np.ndarray,
    previous_occupancy: np.ndarray,
    log: Optional[ClampLog] = None,
    step: Optional[int] = None,
) -> np.ndarray:
    """p_i = c_i · occupancy_i(t-1), capped at MAX_COLONIZATION_PROB.

    Absent species have p_i = 0 even when c_i is infinite.
    """
    with np.errstate(invalid='ignore', over='ignore'):
        p = np.where(previous_occupancy > 0, abilities * previous_occupancy, 0.0)
    over = p > MAX_COLONIZATION_PROB
    if over.any() and log is not None:
        for i in np.flatnonzero(over):
            log.record(f'p_col[{i + 1}]', step=step, value=p[i])
    return np.minimum(p, MAX_COLONIZATION_PROB)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION & INITIALIZATION
# ═══════════════════════════════════════════════════════════════════════

def validate_competition_params(
    n_species: int,
    fi: Union[float, Sequence[float]],
    fsp1: float,
    pe: float,
    fr: float = 0.0,
    intensity: float = 0.0,
) -> None:
    """Raise before any allocation if the trade-off parameters are unusable."""
    if int(n_species) != n_species or n_species < 1:
        raise SuccessionValidationError(
            f"n_species must be a positive integer, got {n_species}"
        )
    if not (0.0 <= fsp1 < 1.0):
        raise SuccessionValidationError(f"fsp1 must be in [0, 1), got {fsp1}")
    for name, value in (('pe', pe), ('fr', fr), ('intensity', intensity)):
        if not (0.0 <= value <= 1.0):
            raise SuccessionValidationError(f"{name} must be in [0, 1], got {value}")

    fi_arr = np.atleast_1d(np.asarray(fi, dtype=np.float64))
    if fi_arr.ndim != 1 or fi_arr.size not in (1, n_species):
        raise InvalidInitialDistributionError(
            f"fi must be a scalar or have one entry per species ({n_species}), "
            f"got {fi_arr.size} entries"
        )
    if np.any(fi_arr < 0) or not np.all(np.isfinite(fi_arr)):
        raise InvalidInitialDistributionError(
            f"initial occupied fractions must be ≥ 0, got {fi_arr.tolist()}"
        )
    if fi_arr.sum() > 1.0 + 1e-12:
        raise InvalidInitialDistributionError(
            f"initial occupied fractions sum to {fi_arr.sum():.6g} > 1"
        )


def initial_occupancy(
    n_patches: int,
    n_species: int,
    fi: Union[float, Sequence[float]],
    rng: np.random.Generator,
) -> np.ndarray:
    """Initial (N,) landscape of EMPTY / species codes.

    Vector fi: species i holds round(fi[i] · N) patches, with the rounding
    settled against the empty remainder so the total is exactly N.
    Scalar fi: round(fi · N) occupied patches. When there are at least S of
    them every species gets one, the rest are assigned uniformly at random;
    otherwise the occupants are distinct species chosen at random.
    """
    ranks = species_ranks(n_species)
    fi_arr = np.atleast_1d(np.asarray(fi, dtype=np.float64))

    if fi_arr.size == n_species and not (n_species == 1 and np.ndim(fi) == 0):
        free = max(1.0 - fi_arr.sum(), 0.0)
        counts = rounded_counts(np.concatenate([[free], fi_arr]), n_patches)
        return place_counts(
            counts,
            np.concatenate([[EMPTY], ranks]),
            rng,
            dtype=PATCH_DTYPE,
        )

    n_occupied = int(round(float(fi_arr[0]) * n_patches))
    if n_occupied >= n_species:
        extra = rng.integers(1, n_species + 1, size=n_occupied - n_species)
        occupants = np.concatenate([ranks, extra.astype(PATCH_DTYPE)])
    else:
        occupants = rng.choice(ranks, size=n_occupied, replace=False)
    landscape = np.concatenate([
        occupants.astype(PATCH_DTYPE),
        np.full(n_patches - n_occupied, EMPTY, dtype=PATCH_DTYPE),
    ])
    return rng.permutation(landscape)


# ═══════════════════════════════════════════════════════════════════════
# STEP
# ═══════════════════════════════════════════════════════════════════════

def competition_step(
    previous: np.ndarray,
    colonization_prob: np.ndarray,
    pe: float,
    rngs: Dict[str, np.random.Generator],
) -> np.ndarray:
    """Resolve one step of mortality and rank-ordered colonization.

    Ranks resolve from S down to 1 against the unchanged `previous`
    snapshot, writing into a fresh buffer. A later (better) rank overwrites
    an earlier (worse) rank's colonization of the same patch.

    Args:
        previous: (N,) landscape at t-1.
        colonization_prob: (S,) per-rank colonization probabilities.
        pe: Mortality probability.
        rngs: Stream hierarchy; rank i draws from partition i-1.

    Returns:
        New (N,) landscape for step t (before any disturbance pulse).
    """
    n_species = len(colonization_prob)
    new = np.full_like(previous, EMPTY)

    for rank in range(n_species, 0, -1):
        rng = get_partition_rng(rngs, rank - 1)

        held = previous == rank
        new[held] = categorical_resample(
            int(held.sum()), (EMPTY, rank), (pe, 1.0 - pe), rng,
            dtype=previous.dtype,
        )

        p = float(colonization_prob[rank - 1])
        target = np.flatnonzero((previous > rank) | (previous == EMPTY))
        draws = categorical_resample(
            target.size, (EMPTY, rank), (1.0 - p, p), rng, dtype=previous.dtype,
        )
        new[target[draws == rank]] = rank

    return new


def clear_patches(
    landscape: np.ndarray,
    intensity: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Return a copy with round(intensity · N) random patches set EMPTY."""
    cleared = landscape.copy()
    n_clear = int(round(intensity * landscape.size))
    if n_clear > 0:
        cleared[rng.choice(landscape.size, size=n_clear, replace=False)] = EMPTY
    return cleared


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class CompetitionResult:
    """Output and run metadata of a competition–colonization run."""
    tmax: int = 0
    n_species: int = 0
    n_patches: int = 0
    initial_fraction: Union[float, np.ndarray] = 0.0
    fsp1: float = 0.0
    pe: float = 0.0
    disturbance_frequency: float = 0.0
    disturbance_intensity: float = 0.0
    colonization: Optional[np.ndarray] = None         # (S,) c_i
    disturbance_steps: Optional[np.ndarray] = None    # (tmax,) bool
    occupancy: Optional[np.ndarray] = None            # (S, tmax) fractions
    empty: Optional[np.ndarray] = None                # (tmax,) EMPTY fraction
    clamp_events: Dict[str, int] = field(default_factory=dict)

    @property
    def timeseries(self) -> np.ndarray:
        """(tmax, S) occupancy table, one row per step."""
        return self.occupancy.T

    @property
    def richness(self) -> np.ndarray:
        """(tmax,) number of species present at each step."""
        return (self.occupancy > 0).sum(axis=0)


def run_competition_simulation(
    rows: int = 100,
    cols: int = 100,
    n_species: int = 10,
    fi: Union[float, Sequence[float]] = 1.0,
    fsp1: float = 0.2,
    pe: float = 0.01,
    fr: float = 0.0,
    intensity: float = 0.0,
    tmax: int = 1000,
    seed: int = 42,
) -> CompetitionResult:
    """Run the competition–colonization trade-off model.

    Args:
        rows, cols: Landscape dimensions; N = rows · cols patches.
        n_species: Number of ranked species S.
        fi: Initial occupied fraction (scalar) or per-species fractions (S,).
        fsp1: Abundance of the best competitor.
        pe: Per-step mortality probability.
        fr: Disturbance frequency (fraction of steps that are pulses).
        intensity: Fraction of patches cleared by each pulse.
        tmax: Number of recorded steps (including the initial one).
        seed: Master RNG seed.

    Returns:
        CompetitionResult with the (S, tmax) occupancy matrix.

    Raises:
        SuccessionValidationError: Bad dimensions or rates.
        InvalidInitialDistributionError: Bad fi.
    """
    validate_landscape(tmax, rows, cols)
    validate_competition_params(n_species, fi, fsp1, pe, fr, intensity)

    n_patches = rows * cols
    abilities = colonization_abilities(n_species, fsp1, pe)
    schedule = disturbance_schedule(tmax, fr, intensity)
    logger.info(
        "competition run: S=%d, N=%d, fsp1=%g pe=%g, %d disturbance pulses, seed=%d",
        n_species, n_patches, fsp1, pe, int(schedule.sum()), seed,
    )

    rngs = create_rng_hierarchy(seed, n_partitions=n_species)
    log = ClampLog()
    occupancy = np.zeros((n_species, tmax), dtype=np.float64)
    empty = np.zeros(tmax, dtype=np.float64)

    landscape = initial_occupancy(n_patches, n_species, fi, rngs['init'])
    counts = occupancy_counts(landscape, n_species + 1)
    empty[0] = counts[EMPTY] / n_patches
    occupancy[:, 0] = counts[1:] / n_patches

    for t in range(1, tmax):
        p = colonization_probabilities(abilities, occupancy[:, t - 1], log=log, step=t)
        landscape = competition_step(landscape, p, pe, rngs)
        if schedule[t]:
            landscape = clear_patches(landscape, intensity, rngs['disturbance'])
        counts = occupancy_counts(landscape, n_species + 1)
        empty[t] = counts[EMPTY] / n_patches
        occupancy[:, t] = counts[1:] / n_patches

    log.warn_if_clamped("competition model")
    logger.info(
        "competition run finished: %d species persist",
        int((occupancy[:, -1] > 0).sum()),
    )

    return CompetitionResult(
        tmax=tmax,
        n_species=n_species,
        n_patches=n_patches,
        initial_fraction=fi if np.ndim(fi) == 0 else np.asarray(fi, dtype=np.float64),
        fsp1=fsp1,
        pe=pe,
        disturbance_frequency=fr,
        disturbance_intensity=intensity,
        colonization=abilities,
        disturbance_steps=schedule,
        occupancy=occupancy,
        empty=empty,
        clamp_events=dict(log.events),
    )
