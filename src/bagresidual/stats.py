"""Running residual statistics.

RunningStats is updated once per valid cell during the row scan and only
read after the scan completes. summarize() turns the sums into the values
printed in the report.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return math.nan
    return numerator / denominator


def _relative_percent(stddev: float, mean_depth: float) -> float:
    """stddev as a percentage of mean depth; +/-inf over a zero mean depth."""
    if mean_depth == 0:
        if math.isnan(stddev) or stddev == 0:
            return math.nan
        return math.copysign(math.inf, stddev)
    return stddev / mean_depth * 100.0


def _running_sum(start: float, values: np.ndarray) -> float:
    return float(np.cumsum(np.concatenate(([start], values)))[-1])


def nint(value: float) -> int:
    """Round half away from zero."""
    if math.isnan(value):
        return 0
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


@dataclass(frozen=True)
class ResidualSummary:
    """Statistics derived from a completed scan."""

    count: int
    sum_diff: float
    sum_diff_squared: float
    neg_count: int
    pos_count: int
    mean_diff: float
    mean_depth: float
    corrected_ss: float
    variance: float
    stddev: float
    relative_stddev_percent: float
    rms: float
    neg_percent: float
    pos_percent: float
    min_abs_diff: float
    max_abs_diff: float
    min_depth: float
    max_depth: float

    @property
    def neg_percent_rounded(self) -> int:
        return nint(self.neg_percent)

    @property
    def pos_percent_rounded(self) -> int:
        return nint(self.pos_percent)

    @property
    def has_bias(self) -> bool:
        """True when the summed residual is nonzero; gates the report line."""
        return self.sum_diff != 0.0


@dataclass
class RunningStats:
    """
    Accumulator for residuals and depths.

    ``count == neg_count + pos_count`` holds after every update. Extrema start
    at +/- infinity so that accumulators can be merged by comparison.
    """

    count: int = 0
    sum_diff: float = 0.0
    sum_diff_squared: float = 0.0
    neg_count: int = 0
    pos_count: int = 0
    min_abs_diff: float = math.inf
    max_abs_diff: float = -math.inf
    min_depth: float = math.inf
    max_depth: float = -math.inf
    depth_total: float = 0.0

    def update(self, diff: float, depth: float) -> None:
        """Add one valid cell."""
        diff = float(diff)
        depth = float(depth)

        if depth < self.min_depth:
            self.min_depth = depth
        if depth > self.max_depth:
            self.max_depth = depth

        self.depth_total += depth
        self.sum_diff += diff
        self.sum_diff_squared += diff * diff
        self.count += 1

        if diff < 0.0:
            self.neg_count += 1
        else:
            self.pos_count += 1

        abs_diff = abs(diff)
        if abs_diff < self.min_abs_diff:
            self.min_abs_diff = abs_diff
        if abs_diff > self.max_abs_diff:
            self.max_abs_diff = abs_diff

    def update_many(self, diffs: Iterable[float], depths: Iterable[float]) -> None:
        """
        Add a row of valid cells.

        Sums are accumulated cell by cell in column order, matching a
        sequence of update() calls exactly.
        """
        diffs = np.asarray(diffs, dtype=np.float64)
        depths = np.asarray(depths, dtype=np.float64)
        if diffs.shape != depths.shape:
            raise ValueError(f"diffs and depths differ in shape: {diffs.shape} vs {depths.shape}")
        if diffs.size == 0:
            return

        # cumsum adds strictly left to right, unlike np.sum's pairwise reduction.
        self.depth_total = _running_sum(self.depth_total, depths)
        self.sum_diff = _running_sum(self.sum_diff, diffs)
        self.sum_diff_squared = _running_sum(self.sum_diff_squared, diffs * diffs)

        negative = int(np.count_nonzero(diffs < 0.0))
        self.neg_count += negative
        self.pos_count += diffs.size - negative
        self.count += diffs.size

        abs_diffs = np.abs(diffs)
        self.min_abs_diff = min(self.min_abs_diff, float(abs_diffs.min()))
        self.max_abs_diff = max(self.max_abs_diff, float(abs_diffs.max()))
        self.min_depth = min(self.min_depth, float(depths.min()))
        self.max_depth = max(self.max_depth, float(depths.max()))

    def merge(self, other: "RunningStats") -> "RunningStats":
        """
        Combine two accumulators built over disjoint cells.

        Sums and counts add, extrema compare. Summation order differs from a
        single sequential scan, so the floating point sums may differ in the
        last bits.
        """
        return RunningStats(
            count=self.count + other.count,
            sum_diff=self.sum_diff + other.sum_diff,
            sum_diff_squared=self.sum_diff_squared + other.sum_diff_squared,
            neg_count=self.neg_count + other.neg_count,
            pos_count=self.pos_count + other.pos_count,
            min_abs_diff=min(self.min_abs_diff, other.min_abs_diff),
            max_abs_diff=max(self.max_abs_diff, other.max_abs_diff),
            min_depth=min(self.min_depth, other.min_depth),
            max_depth=max(self.max_depth, other.max_depth),
            depth_total=self.depth_total + other.depth_total,
        )

    def summarize(self) -> ResidualSummary:
        """
        Derive mean, sample standard deviation, RMS and sign percentages.

        Values that need at least one point (or two, for the variance) are NaN
        when there are too few; nothing here raises.
        """
        count = self.count
        mean_diff = _ratio(self.sum_diff, count)
        mean_depth = _ratio(self.depth_total, count)
        corrected_ss = self.sum_diff_squared - self.sum_diff * mean_diff
        variance = _ratio(corrected_ss, count - 1) if count > 1 else math.nan
        # Rounding can leave a tiny negative corrected sum for constant residuals.
        stddev = math.sqrt(variance) if variance >= 0.0 else math.nan
        relative = _relative_percent(stddev, mean_depth)
        mean_square = _ratio(self.sum_diff_squared, count)
        rms = math.sqrt(mean_square) if not math.isnan(mean_square) else math.nan

        return ResidualSummary(
            count=count,
            sum_diff=self.sum_diff,
            sum_diff_squared=self.sum_diff_squared,
            neg_count=self.neg_count,
            pos_count=self.pos_count,
            mean_diff=mean_diff,
            mean_depth=mean_depth,
            corrected_ss=corrected_ss,
            variance=variance,
            stddev=stddev,
            relative_stddev_percent=relative,
            rms=rms,
            neg_percent=_ratio(self.neg_count, count) * 100.0,
            pos_percent=_ratio(self.pos_count, count) * 100.0,
            min_abs_diff=self.min_abs_diff,
            max_abs_diff=self.max_abs_diff,
            min_depth=self.min_depth,
            max_depth=self.max_depth,
        )
