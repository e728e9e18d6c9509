"""Error and warning kinds raised by the succession engines.

Structural problems are ValueError subclasses raised before any grid is
allocated or any random number is drawn. Negative derived probabilities are
not errors: they are clamped and reported with NegativeProbabilityWarning.
"""


class SuccessionValidationError(ValueError):
    """A model parameter is structurally invalid (shape, range, type)."""


class InvalidProbabilityMassError(SuccessionValidationError):
    """A probability set does not sum to 1 (or has no usable mass)."""


class InvalidInitialDistributionError(SuccessionValidationError):
    """Initial proportions are negative, too long/short, or do not fit in 1."""


class NegativeProbabilityWarning(UserWarning):
    """One or more derived transition probabilities were clamped to zero."""
