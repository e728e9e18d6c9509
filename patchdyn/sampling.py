"""Categorical resampling and probability clamping shared by all engines.

Every engine follows the same partition-and-resample pattern: patches are
grouped by their previous state, a weight vector over destination states is
derived for each group from landscape-wide counts, negative components are
clamped to zero, and each group is redrawn with `categorical_resample`.

Clamp policy: a negative weight is truncated to 0 and the mass is NOT moved
anywhere else. The sampler divides the surviving weights by their total, as
a categorical draw requires. Every clamp is recorded in a ClampLog so that
callers can tell when a parameter set leaves the model's valid range.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np

from patchdyn.errors import InvalidProbabilityMassError, NegativeProbabilityWarning

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CLAMP BOOKKEEPING
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ClampLog:
    """Counts of clamp events per derived probability, for one run."""
    events: Dict[str, int] = field(default_factory=dict)

    def record(self, label: str, step: Optional[int] = None, value: float = 0.0) -> None:
        self.events[label] = self.events.get(label, 0) + 1
        logger.debug("clamped %s=%.6g at step %s", label, value, step)

    @property
    def total(self) -> int:
        return sum(self.events.values())

    def warn_if_clamped(self, model: str) -> None:
        """Emit one NegativeProbabilityWarning summarising the run's clamps."""
        if not self.events:
            return
        detail = ", ".join(f"{k}×{v}" for k, v in sorted(self.events.items()))
        msg = (
            f"{model}: {self.total} derived probabilities were clamped "
            f"({detail}); parameters may be outside the model's valid range"
        )
        logger.warning(msg)
        warnings.warn(msg, NegativeProbabilityWarning, stacklevel=3)


def clamp_probabilities(
    weights: Sequence[float],
    labels: Sequence[str],
    log: Optional[ClampLog] = None,
    step: Optional[int] = None,
) -> np.ndarray:
    """Truncate negative components of a weight vector to zero.

    Args:
        weights: Candidate transition weights (may contain negatives).
        labels: Name of each component, used for clamp bookkeeping.
        log: Optional ClampLog receiving one event per clamped component.
        step: Time step, for the debug record only.

    Returns:
        New float64 array with all components ≥ 0. Positive components are
        returned unchanged.
    """
    w = np.array(weights, dtype=np.float64)
    negative = w < 0.0
    if negative.any():
        if log is not None:
            for i in np.flatnonzero(negative):
                log.record(labels[i], step=step, value=w[i])
        w[negative] = 0.0
    return w


# ═══════════════════════════════════════════════════════════════════════
# CATEGORICAL DRAWS
# ═══════════════════════════════════════════════════════════════════════

def categorical_resample(
    n: int,
    outcomes: Sequence[int],
    weights: Sequence[float],
    rng: np.random.Generator,
    dtype=np.int16,
) -> np.ndarray:
    """Draw a destination state for each of `n` patches.

    Args:
        n: Number of patches in the partition.
        outcomes: Destination codes, aligned with weights.
        weights: Non-negative weights (clamp first). Divided by their total.
        rng: Generator for this partition.
        dtype: dtype of the returned codes.

    Returns:
        (n,) array of destination codes.

    Raises:
        InvalidProbabilityMassError: If weights are negative, non-finite,
            or all zero while n > 0.
    """
    outcomes = np.asarray(outcomes, dtype=dtype)
    if n == 0:
        return np.empty(0, dtype=dtype)

    w = np.asarray(weights, dtype=np.float64)
    if w.shape != outcomes.shape:
        raise InvalidProbabilityMassError(
            f"{len(outcomes)} outcomes but {w.size} weights"
        )
    if not np.all(np.isfinite(w)) or np.any(w < 0.0):
        raise InvalidProbabilityMassError(
            f"weights must be finite and non-negative, got {w.tolist()}"
        )
    total = w.sum()
    if total <= 0.0:
        raise InvalidProbabilityMassError(
            f"weights {w.tolist()} carry no probability mass for {n} patches"
        )
    return rng.choice(outcomes, size=n, p=w / total)


def place_counts(
    counts: Sequence[int],
    codes: Sequence[int],
    rng: np.random.Generator,
    dtype=np.int16,
) -> np.ndarray:
    """Random permutation holding exactly counts[k] copies of codes[k]."""
    counts = np.asarray(counts, dtype=np.int64)
    if np.any(counts < 0):
        raise ValueError(f"counts must be non-negative, got {counts.tolist()}")
    flat = np.repeat(np.asarray(codes, dtype=dtype), counts)
    return rng.permutation(flat)


def occupancy_counts(grid: np.ndarray, n_categories: int) -> np.ndarray:
    """Number of patches in each category 0..n_categories-1."""
    return np.bincount(np.asarray(grid).ravel(), minlength=n_categories)[:n_categories]


def rounded_counts(fractions: Sequence[float], n_total: int) -> np.ndarray:
    """round(fractions · n_total), corrected so the counts sum to n_total.

    Rounding alone can over- or under-shoot (e.g. 3 patches split 0.5/0.5).
    The shortfall or excess is settled one unit at a time on the categories
    with the largest rounding residuals. `fractions` must sum to 1.
    """
    exact = np.asarray(fractions, dtype=np.float64) * n_total
    counts = np.rint(exact).astype(np.int64)
    diff = n_total - counts.sum()
    if diff != 0:
        residual = exact - counts
        if diff > 0:
            order = np.argsort(-residual, kind='stable')
        else:
            order = np.argsort(residual, kind='stable')
            order = order[counts[order] > 0]
        counts[order[:abs(diff)]] += np.sign(diff)
    return counts
