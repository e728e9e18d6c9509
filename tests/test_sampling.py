"""Tests for patchdyn.sampling — clamping and categorical resampling."""

import logging
import warnings

import numpy as np
import pytest

from patchdyn.errors import InvalidProbabilityMassError, NegativeProbabilityWarning
from patchdyn.sampling import (
    ClampLog,
    categorical_resample,
    clamp_probabilities,
    occupancy_counts,
    place_counts,
    rounded_counts,
)


# ═══════════════════════════════════════════════════════════════════════
# CLAMP
# ═══════════════════════════════════════════════════════════════════════

class TestClampProbabilities:
    def test_positive_weights_unchanged(self):
        w = clamp_probabilities([0.2, 0.3, 0.5], ('a', 'b', 'c'))
        np.testing.assert_array_equal(w, [0.2, 0.3, 0.5])

    def test_negative_truncated_not_redistributed(self):
        w = clamp_probabilities([0.6, -0.3, 0.7], ('dst', 'stay', 'col'))
        np.testing.assert_array_equal(w, [0.6, 0.0, 0.7])

    def test_events_recorded(self):
        log = ClampLog()
        clamp_probabilities([-0.1, 0.5, -0.2], ('x', 'y', 'z'), log, step=3)
        clamp_probabilities([-0.1, 0.5, 0.0], ('x', 'y', 'z'), log, step=4)
        assert log.events == {'x': 2, 'z': 1}
        assert log.total == 3

    def test_input_not_mutated(self):
        src = np.array([-0.5, 1.5])
        clamp_probabilities(src, ('a', 'b'))
        assert src[0] == -0.5


class TestClampLogWarning:
    def test_warns_once_with_summary(self, caplog):
        log = ClampLog()
        log.record('p_permer')
        log.record('p_permer')
        with caplog.at_level(logging.WARNING, logger='patchdyn.sampling'):
            with pytest.warns(NegativeProbabilityWarning, match="p_permer×2"):
                log.warn_if_clamped("niche model")
        assert any("clamped" in rec.message for rec in caplog.records)

    def test_silent_without_events(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            ClampLog().warn_if_clamped("niche model")


# ═══════════════════════════════════════════════════════════════════════
# CATEGORICAL DRAWS
# ═══════════════════════════════════════════════════════════════════════

class TestCategoricalResample:
    def test_zero_weight_outcome_never_drawn(self):
        rng = np.random.default_rng(1)
        draws = categorical_resample(5000, (0, 1, 3), (0.5, 0.0, 0.5), rng)
        assert 1 not in set(draws.tolist())
        assert set(draws.tolist()) <= {0, 3}

    def test_frequencies_follow_weights(self):
        rng = np.random.default_rng(2)
        draws = categorical_resample(20000, (0, 1), (0.25, 0.75), rng)
        assert abs((draws == 1).mean() - 0.75) < 0.02

    def test_weights_divided_by_total(self):
        """Weights summing to 2 behave like the same weights halved."""
        rng = np.random.default_rng(3)
        draws = categorical_resample(20000, (0, 1), (0.5, 1.5), rng)
        assert abs((draws == 1).mean() - 0.75) < 0.02

    def test_empty_partition(self):
        rng = np.random.default_rng(0)
        before = rng.bit_generator.state
        out = categorical_resample(0, (0, 1), (0.0, 0.0), rng)
        assert out.size == 0
        assert rng.bit_generator.state == before

    def test_dtype(self):
        rng = np.random.default_rng(0)
        out = categorical_resample(10, (0, 4), (0.5, 0.5), rng, dtype=np.int16)
        assert out.dtype == np.int16

    def test_all_zero_weights_raise(self):
        with pytest.raises(InvalidProbabilityMassError):
            categorical_resample(3, (0, 1), (0.0, 0.0), np.random.default_rng(0))

    def test_negative_weights_raise(self):
        with pytest.raises(InvalidProbabilityMassError):
            categorical_resample(3, (0, 1), (-0.1, 1.1), np.random.default_rng(0))

    def test_length_mismatch_raises(self):
        with pytest.raises(InvalidProbabilityMassError):
            categorical_resample(3, (0, 1, 2), (0.5, 0.5), np.random.default_rng(0))


class TestPlaceCounts:
    def test_exact_counts(self):
        rng = np.random.default_rng(5)
        out = place_counts([3, 0, 7], [0, 1, 2], rng)
        assert out.size == 10
        np.testing.assert_array_equal(np.bincount(out, minlength=3), [3, 0, 7])

    def test_is_shuffled(self):
        rng = np.random.default_rng(5)
        out = place_counts([500, 500], [0, 1], rng)
        assert not np.array_equal(out, np.repeat([0, 1], 500))

    def test_negative_count_raises(self):
        with pytest.raises(ValueError):
            place_counts([-1, 2], [0, 1], np.random.default_rng(0))


class TestOccupancyCounts:
    def test_counts_include_absent_categories(self):
        grid = np.array([[0, 0], [2, 2]], dtype=np.int16)
        np.testing.assert_array_equal(occupancy_counts(grid, 4), [2, 0, 2, 0])


class TestRoundedCounts:
    def test_exact(self):
        np.testing.assert_array_equal(rounded_counts([0.4, 0.1, 0.2, 0.3], 100),
                                      [40, 10, 20, 30])

    def test_half_splits_never_exceed_total(self):
        counts = rounded_counts([0.0, 0.5, 0.5], 3)
        assert counts.sum() == 3
        assert counts[0] == 0
        assert np.all(counts[1:] >= 1)

    def test_shortfall_filled(self):
        assert rounded_counts([1 / 3, 1 / 3, 1 / 3], 7).sum() == 7
