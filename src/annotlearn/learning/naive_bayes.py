"""Laplace-smoothed Naive Bayes with self-evaluated calibration.

Each model predicts a single binary label (is a given annotation present)
from a set of integer fingerprints. A fingerprint's contribution is its
smoothed log-odds of co-occurring with the label:

    contrib(f) = ln((nA + 1) / (nT * pAT + 1))

where nA counts labelled rows containing f, nT counts all rows containing f
and pAT is the fraction of labelled rows. The raw score of a row is the sum
of the contributions of its fingerprints.

Models are then evaluated on their own training rows. The resulting ROC
curve yields the AUC and a calibration band [calib_low, calib_high] that
maps raw scores onto probabilities. There is no held-out split.
"""

import logging
import math
from collections import Counter
from typing import Optional, Sequence

import numpy as np
from sklearn.metrics import auc

from annotlearn.constants import (
    ROC_POINT_EPSILON,
    THRESHOLD_EPSILON,
    THRESHOLD_SENTINEL_FRACTION,
)

logger = logging.getLogger(__name__)

Row = Optional[Sequence[int]]


class ModelLearner:
    """Accumulates fingerprint statistics and derives contributions.

    Rows that are None are treated as empty: they still count towards the
    row total but contain no fingerprints.
    """

    def __init__(self, fplist: Sequence[Row], active: Sequence[bool]):
        if len(fplist) != len(active):
            raise ValueError(
                f"Fingerprint rows ({len(fplist)}) and labels ({len(active)}) differ in length"
            )
        self.fplist = fplist
        self.active = [bool(a) for a in active]
        self.num_data = len(fplist)
        self.num_active = sum(self.active)
        self.fp_count: Counter[int] = Counter()
        self.fp_active: Counter[int] = Counter()
        self.determine_fp_counts()

    def determine_fp_counts(self) -> None:
        """Count total and labelled occurrences of every fingerprint."""
        self.fp_count.clear()
        self.fp_active.clear()
        for row, is_active in zip(self.fplist, self.active):
            if row is None:
                continue
            for fp in set(row):
                self.fp_count[fp] += 1
                if is_active:
                    self.fp_active[fp] += 1

    def relevant_fingerprints(self) -> list[int]:
        """Fingerprints that carry signal, in ascending order.

        A fingerprint present in every row cannot separate the classes.
        """
        return sorted(fp for fp, n in self.fp_count.items() if n < self.num_data)

    def learn(self) -> tuple[np.ndarray, np.ndarray]:
        """Compute the contribution of each relevant fingerprint.

        Returns:
            Tuple of (sorted fingerprint ids, contributions)
        """
        fps = self.relevant_fingerprints()
        p_active = self.num_active / self.num_data
        contribs = [
            math.log((self.fp_active[fp] + 1) / (self.fp_count[fp] * p_active + 1))
            for fp in fps
        ]
        return np.asarray(fps, dtype=np.int64), np.asarray(contribs, dtype=np.float64)


def determine_thresholds(values: Sequence[float], is_sorted: bool = False) -> np.ndarray:
    """Pick the thresholds at which an ROC curve is sampled.

    One threshold sits halfway between each pair of consecutive distinct
    values, plus one just below the smallest and one just above the largest.

    Args:
        values: Estimates to split
        is_sorted: Skip sorting when the caller already sorted ascending

    Returns:
        Ascending array of thresholds (empty for empty input)
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return np.empty(0, dtype=np.float64)
    if not is_sorted:
        arr = np.sort(arr, kind="stable")

    margin = (arr[-1] - arr[0]) * THRESHOLD_SENTINEL_FRACTION
    thresholds = [arr[0] - margin]
    for prev, cur in zip(arr[:-1], arr[1:]):
        if cur - prev >= THRESHOLD_EPSILON:
            thresholds.append(0.5 * (prev + cur))
    thresholds.append(arr[-1] + margin)
    return np.asarray(thresholds, dtype=np.float64)


class ROCCurve:
    """ROC curve, AUC and calibration band for a set of scored rows.

    Attributes:
        roc_x: False positive rate per point, ascending
        roc_y: True positive rate per point, ascending
        roc_t: Threshold per point, descending
        roc_auc: Trapezoidal area under the curve
        calib_low: Lower edge of the calibration band
        calib_mid: Threshold with the largest y - x separation
        calib_high: Upper edge of the calibration band
    """

    def __init__(self, estimates: Sequence[float], active: Sequence[bool]):
        if len(estimates) != len(active):
            raise ValueError(
                f"Estimates ({len(estimates)}) and labels ({len(active)}) differ in length"
            )
        self.estimates = np.asarray(estimates, dtype=np.float64)
        self.active = np.asarray(active, dtype=bool)
        self.roc_x = np.empty(0)
        self.roc_y = np.empty(0)
        self.roc_t = np.empty(0)
        self.roc_auc = 0.0
        self.calib_low = 0.0
        self.calib_mid = 0.0
        self.calib_high = 0.0

        self._compute_curve()
        self._compute_auc()
        self._compute_calibration()

    def _compute_curve(self) -> None:
        n = len(self.estimates)
        num_pos = int(self.active.sum())
        num_neg = n - num_pos
        if num_pos == 0 or num_neg == 0:
            return

        # ties keep their original relative order
        order = np.argsort(self.estimates, kind="stable")
        values = self.estimates[order]
        labels = self.active[order]
        cum_pos = np.cumsum(labels)
        cum_neg = np.cumsum(~labels)

        points: list[tuple[float, float, float]] = []
        last: Optional[tuple[float, float]] = None
        for th in determine_thresholds(values, is_sorted=True):
            k = int(np.searchsorted(values, th, side="right"))
            pos_true = int(cum_pos[k - 1]) if k > 0 else 0
            pos_false = int(cum_neg[k - 1]) if k > 0 else 0
            x = pos_false / num_neg
            y = pos_true / num_pos
            if (
                last is not None
                and abs(x - last[0]) < ROC_POINT_EPSILON
                and abs(y - last[1]) < ROC_POINT_EPSILON
            ):
                continue
            last = (x, y)
            points.append((1.0 - x, 1.0 - y, float(th)))

        points.reverse()
        self.roc_x = np.array([p[0] for p in points], dtype=np.float64)
        self.roc_y = np.array([p[1] for p in points], dtype=np.float64)
        self.roc_t = np.array([p[2] for p in points], dtype=np.float64)

    def _compute_auc(self) -> None:
        if len(self.roc_x) < 2:
            self.roc_auc = 0.0
            return
        self.roc_auc = float(auc(self.roc_x, self.roc_y))

    def _compute_calibration(self) -> None:
        n = len(self.roc_t)
        if n == 0:
            return

        mid = int(np.argmax(self.roc_y - self.roc_x))
        mid_t = float(self.roc_t[mid])

        idx_x = 0
        while idx_x < mid - 1 and self.roc_x[idx_x] <= 0:
            idx_x += 1
        idx_y = n - 1
        while idx_y > mid + 1 and self.roc_y[idx_y] >= 1:
            idx_y -= 1

        delta = min(float(self.roc_t[idx_x]) - mid_t, mid_t - float(self.roc_t[idx_y]))
        self.calib_mid = mid_t
        self.calib_low = mid_t - delta
        self.calib_high = mid_t + delta


class BayesianModel:
    """A trained set of fingerprint contributions.

    Attributes:
        fplist: Sorted fingerprint ids
        contribs: Contribution for each fingerprint
        roc: Self-evaluation curve, set by evaluate()
    """

    def __init__(self, fplist: np.ndarray, contribs: np.ndarray):
        self.fplist = np.asarray(fplist, dtype=np.int64)
        self.contribs = np.asarray(contribs, dtype=np.float64)
        self.roc: Optional[ROCCurve] = None

    def predict_row(self, row: Row) -> float:
        """Raw score for one row; unknown fingerprints contribute nothing."""
        if row is None or len(row) == 0 or self.fplist.size == 0:
            return 0.0
        fps = np.unique(np.asarray(row, dtype=np.int64))
        idx = np.searchsorted(self.fplist, fps)
        idx = np.minimum(idx, self.fplist.size - 1)
        hits = self.fplist[idx] == fps
        return float(self.contribs[idx[hits]].sum())

    def predict(self, rows: Sequence[Row]) -> np.ndarray:
        return np.array([self.predict_row(row) for row in rows], dtype=np.float64)

    def evaluate(self, rows: Sequence[Row], active: Sequence[bool]) -> ROCCurve:
        """Score the given rows and build the ROC curve from them."""
        self.roc = ROCCurve(self.predict(rows), active)
        return self.roc

    @property
    def roc_auc(self) -> float:
        return self.roc.roc_auc if self.roc else 0.0

    @property
    def calib_low(self) -> float:
        return self.roc.calib_low if self.roc else 0.0

    @property
    def calib_mid(self) -> float:
        return self.roc.calib_mid if self.roc else 0.0

    @property
    def calib_high(self) -> float:
        return self.roc.calib_high if self.roc else 0.0


def build_model(fplist: Sequence[Row], active: Sequence[bool]) -> Optional[BayesianModel]:
    """Train and self-evaluate a model for one binary label.

    Args:
        fplist: One fingerprint set per training row
        active: Label for each row

    Returns:
        Trained model, or None when the rows cannot separate anything
        (no rows, no labelled rows, or every row labelled)

    Raises:
        ValueError: If fplist and active differ in length
    """
    learner = ModelLearner(fplist, active)
    if learner.num_data == 0 or learner.num_active == 0:
        return None
    if learner.num_active == learner.num_data:
        return None

    fps, contribs = learner.learn()
    model = BayesianModel(fps, contribs)
    model.evaluate(fplist, learner.active)
    logger.debug(
        f"Built model: {learner.num_active}/{learner.num_data} active, "
        f"{len(fps)} fingerprints, AUC {model.roc_auc:.3f}"
    )
    return model
