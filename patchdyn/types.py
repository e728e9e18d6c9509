"""Core state types for patchdyn.

This module is the single home for:
  - NicheState: the five patch states of the successional niche model
  - Patch codes for the competition–colonization model (EMPTY, ranks 1..S)

Integer codes are the array representation only; engines build masks and
probability tables from these enums rather than from bare literals.

References:
  - Pacala, S. & Rees, M. 1998. Am. Nat. 152(2): 729–737.
  - Tilman, D. 1994. Ecology 75: 2–16.
"""

from enum import IntEnum

import numpy as np

from patchdyn.errors import SuccessionValidationError


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class NicheState(IntEnum):
    """Patch states of the successional niche model.

    FREE        → EARLY / SUSCEPTIBLE  (colonization by inferior / superior)
    EARLY       → MIXED                (superior competitor arrives)
    SUSCEPTIBLE → MIXED / RESISTANT    (inferior arrives / exclusion)
    MIXED       → RESISTANT            (competitive exclusion)
    any         → FREE                 (disturbance)
    """
    FREE        = 0   # Open, unoccupied space
    EARLY       = 1   # Early-successional (inferior competitor) only
    SUSCEPTIBLE = 2   # Late-successional only, still invadable
    MIXED       = 3   # Both species present
    RESISTANT   = 4   # Late-successional only, closed to invasion


N_NICHE_STATES = len(NicheState)

NICHE_LABELS = tuple(s.name.lower() for s in NicheState)


# ═══════════════════════════════════════════════════════════════════════
# COMPETITION–COLONIZATION PATCH CODES
# ═══════════════════════════════════════════════════════════════════════

EMPTY = 0  # Unoccupied patch; species occupy codes 1..S by competitive rank

# Landscape arrays are small integers; int16 leaves room for S up to 32767
PATCH_DTYPE = np.int16


def species_ranks(n_species: int) -> np.ndarray:
    """Rank vector 1..S (rank 1 = best competitor, worst colonizer)."""
    return np.arange(1, n_species + 1, dtype=PATCH_DTYPE)


def validate_landscape(tmax: int, rows: int, cols: int) -> None:
    """Check run horizon and grid dimensions are positive integers."""
    if int(tmax) != tmax or tmax < 1:
        raise SuccessionValidationError(f"tmax must be a positive integer, got {tmax}")
    if int(rows) != rows or int(cols) != cols or rows < 1 or cols < 1:
        raise SuccessionValidationError(
            f"grid dimensions must be positive integers, got {rows}x{cols}"
        )
