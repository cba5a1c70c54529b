"""Tests for annotlearn.learning.naive_bayes module."""

import math

import numpy as np
import pytest

from annotlearn.learning.naive_bayes import (
    BayesianModel,
    ModelLearner,
    ROCCurve,
    build_model,
    determine_thresholds,
)

BUILD_ROWS = [[1, 2, 3, 5, 6], [1, 4], [1, 4], [1, 4, 5, 6], [1, 2, 4, 5, 6]]
BUILD_ACTIVE = [False, True, True, True, False]

LEARN_ROWS = [[1, 2, 6, 5, 7], [1, 7, 2, 3, 5], [1, 7, 2, 3, 4]]
LEARN_ACTIVE = [False, True, True]


class TestModelLearner:
    """Tests for fingerprint counting and contributions."""

    def test_counts(self):
        """Test total and active counts per fingerprint."""
        learner = ModelLearner(LEARN_ROWS, LEARN_ACTIVE)

        assert learner.num_data == 3
        assert learner.num_active == 2
        assert learner.fp_count[1] == 3
        assert learner.fp_count[3] == 2
        assert learner.fp_active[3] == 2
        assert learner.fp_active[6] == 0

    def test_relevant_fingerprints_drop_ubiquitous(self):
        """Test fingerprints present in every row are excluded and the rest sorted."""
        learner = ModelLearner(LEARN_ROWS, LEARN_ACTIVE)
        assert learner.relevant_fingerprints() == [3, 4, 5, 6]

    def test_contributions(self):
        """Test smoothed log-odds contributions."""
        fps, contribs = ModelLearner(LEARN_ROWS, LEARN_ACTIVE).learn()

        assert fps.tolist() == [3, 4, 5, 6]
        assert contribs == pytest.approx(
            [0.25131442, 0.18232155, -0.1541506, -0.5108256], abs=1e-6
        )

    def test_none_rows_count_as_empty(self):
        """Test None rows count towards the total but hold no fingerprints."""
        learner = ModelLearner([[1], None], [True, False])
        assert learner.num_data == 2
        assert learner.fp_count[1] == 1

    def test_mismatched_lengths(self):
        """Test differing row and label counts raise ValueError."""
        with pytest.raises(ValueError):
            ModelLearner([[1], [2]], [True])


class TestPredict:
    """Tests for raw score prediction."""

    def test_estimates(self):
        """Test training rows are scored by summing contributions."""
        fps, contribs = ModelLearner(LEARN_ROWS, LEARN_ACTIVE).learn()
        model = BayesianModel(fps, contribs)

        estimates = model.predict(LEARN_ROWS)
        assert estimates == pytest.approx([-0.66497630, 0.097163748, 0.433635985], abs=1e-6)

    def test_unknown_fingerprints_ignored(self):
        """Test fingerprints outside the model contribute nothing."""
        model = BayesianModel(np.array([2, 4]), np.array([0.5, -1.0]))

        assert model.predict_row([1, 2, 3, 99]) == pytest.approx(0.5)
        assert model.predict_row([]) == 0.0
        assert model.predict_row(None) == 0.0

    def test_duplicate_fingerprints_counted_once(self):
        """Test a repeated fingerprint in a row is counted once."""
        model = BayesianModel(np.array([2]), np.array([0.5]))
        assert model.predict_row([2, 2]) == pytest.approx(0.5)


class TestThresholds:
    """Tests for ROC threshold placement."""

    def test_midpoints_and_sentinels(self):
        """Test thresholds for the learner estimates."""
        thresholds = determine_thresholds([-0.66497630, 0.097163748, 0.433635985])
        assert thresholds == pytest.approx(
            [-0.67596243, -0.28390628, 0.26539987, 0.44462211], abs=1e-6
        )

    def test_unsorted_input(self):
        """Test input is sorted unless marked as sorted."""
        thresholds = determine_thresholds([1.0, 0.0])
        assert thresholds == pytest.approx([-0.01, 0.5, 1.01])

    def test_close_values_share_threshold(self):
        """Test values closer than the epsilon get no midpoint."""
        thresholds = determine_thresholds([0.0, 1e-8, 1.0])
        assert len(thresholds) == 3

    def test_empty(self):
        """Test empty input gives no thresholds."""
        assert determine_thresholds([]).size == 0


class TestROCCurve:
    """Tests for ROC curve, AUC and calibration."""

    def test_case_with_ties(self):
        """Test a curve with tied estimates across classes."""
        active = [False] * 7 + [True] * 6
        estimates = [0, 0.1, 0.6, 0.6, 0.7, 0.8, 0.9, 0.6, 0.7, 0.8, 0.9, 0.9, 1.0]

        roc = ROCCurve(estimates, active)

        assert roc.roc_t == pytest.approx([1.01, 0.95, 0.85, 0.75, 0.65, 0.35, 0.05, -0.01], abs=1e-6)
        assert roc.roc_x == pytest.approx(
            [0, 0, 0.142857, 0.285714, 0.428571, 0.714285, 0.857142, 1], abs=1e-5
        )
        assert roc.roc_y == pytest.approx(
            [0, 0.166666, 0.5, 0.666666, 0.833333, 1, 1, 1], abs=1e-5
        )
        assert roc.roc_auc == pytest.approx(0.78571426, abs=1e-6)
        assert roc.calib_mid == pytest.approx(0.65, abs=1e-6)
        assert roc.calib_low == pytest.approx(0.45, abs=1e-6)
        assert roc.calib_high == pytest.approx(0.85, abs=1e-6)

    def test_perfect_separation(self):
        """Test a perfectly separable curve."""
        active = [False] * 6 + [True] * 5
        estimates = [i / 10 for i in range(11)]

        roc = ROCCurve(estimates, active)

        assert roc.roc_t == pytest.approx(
            [1.01, 0.95, 0.85, 0.75, 0.65, 0.55, 0.45, 0.35, 0.25, 0.15, 0.05, -0.01], abs=1e-6
        )
        assert roc.roc_x == pytest.approx(
            [0, 0, 0, 0, 0, 0, 0.1667, 0.3333, 0.5, 0.6667, 0.8333, 1], abs=1e-4
        )
        assert roc.roc_y == pytest.approx([0, 0.2, 0.4, 0.6, 0.8, 1, 1, 1, 1, 1, 1, 1], abs=1e-6)
        assert roc.roc_auc == pytest.approx(1.0)
        assert roc.calib_mid == pytest.approx(0.55, abs=1e-6)
        assert roc.calib_low == pytest.approx(0.45, abs=1e-6)
        assert roc.calib_high == pytest.approx(0.65, abs=1e-6)

    def test_mismatched_lengths(self):
        """Test differing estimate and label counts raise ValueError."""
        with pytest.raises(ValueError):
            ROCCurve([0.1, 0.2, 0.3], [True, False])

    def test_single_class_is_empty(self):
        """Test a curve with no negatives has no points."""
        roc = ROCCurve([0.1, 0.2], [True, True])
        assert len(roc.roc_x) == 0
        assert roc.roc_auc == 0.0

    def test_constant_estimates(self):
        """Test identical estimates collapse to a single point."""
        roc = ROCCurve([0.0, 0.0, 0.0], [True, False, False])

        assert len(roc.roc_x) == 1
        assert roc.roc_auc == 0.0
        assert roc.calib_low == roc.calib_mid == roc.calib_high == 0.0


class TestBuildModel:
    """Tests for build_model."""

    def test_reference_model(self):
        """Test contributions, calibration band and AUC of a known model."""
        model = build_model(BUILD_ROWS, BUILD_ACTIVE)

        assert model is not None
        assert model.fplist.tolist() == [2, 3, 4, 5, 6]
        expected = [
            math.log(1 / 2.2),
            math.log(1 / 1.6),
            math.log(4 / 3.4),
            math.log(2 / 2.8),
            math.log(2 / 2.8),
        ]
        assert model.contribs == pytest.approx(expected, abs=1e-6)
        assert model.calib_low == pytest.approx(-1.6151441, abs=1e-5)
        assert model.calib_high == pytest.approx(-0.1941643, abs=1e-5)
        assert model.roc_auc == pytest.approx(1.0)

    def test_degenerate_inputs_return_none(self):
        """Test empty, all-active and all-inactive inputs give no model."""
        rows = [[1, 2], [2, 3], [3]]

        assert build_model([], []) is None
        assert build_model(rows, [True, True, True]) is None
        assert build_model(rows, [False, False, False]) is None

    def test_mismatched_lengths(self):
        """Test differing row and label counts raise ValueError."""
        with pytest.raises(ValueError):
            build_model([[1], [2]], [True, False, True])

    def test_deterministic(self):
        """Test identical inputs give identical results."""
        first = build_model(BUILD_ROWS, BUILD_ACTIVE)
        second = build_model(BUILD_ROWS, BUILD_ACTIVE)

        assert np.array_equal(first.fplist, second.fplist)
        assert np.array_equal(first.contribs, second.contribs)
        assert first.roc_auc == second.roc_auc
        assert first.calib_low == second.calib_low
        assert first.calib_high == second.calib_high

    def test_uninformative_fingerprint_excluded(self):
        """Test a fingerprint in both rows is dropped and the others oppose."""
        model = build_model([[1, 2], [2, 3]], [True, False])

        assert model.fplist.tolist() == [1, 3]
        contrib_1, contrib_3 = model.contribs
        assert contrib_1 > 0
        assert contrib_3 < 0

    def test_separable_data_has_full_auc(self):
        """Test a fingerprint present only in positive rows gives AUC 1."""
        rows = [[1, 10], [1, 11], [1, 12], [10, 11], [12], [11, 13]]
        active = [True, True, True, False, False, False]

        model = build_model(rows, active)
        assert model.roc_auc == pytest.approx(1.0)

    def test_random_data_properties(self):
        """Test ROC monotonicity, AUC bounds and band ordering on random data."""
        rng = np.random.default_rng(42)
        for _ in range(20):
            rows = [
                sorted(set(rng.integers(0, 30, size=rng.integers(1, 8)).tolist()))
                for _ in range(25)
            ]
            active = rng.random(25) < 0.4
            active[0], active[1] = True, False

            model = build_model(rows, active.tolist())
            roc = model.roc

            assert np.all(np.diff(roc.roc_x) >= 0)
            assert np.all(np.diff(roc.roc_y) >= 0)
            assert 0.0 <= model.roc_auc <= 1.0
            assert model.calib_low <= model.calib_mid <= model.calib_high
