"""
Statistics primitives for entropy-based detection.

Pure functions over text and sample series:
- Shannon entropy (bits per symbol) of a str or bytes slice
- Mean and sample standard deviation with a near-zero variance floor
- Z-scores that report "no signal" instead of NaN or infinity
- Prefix moments, so baseline statistics over any set of ranges of a
  sample series cost O(1) after an O(n) build
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from itertools import accumulate
from typing import NamedTuple

# Variances below this are treated as a perfectly flat baseline
VARIANCE_EPSILON = 1e-12

# Z-scores are clamped to this magnitude
Z_SCORE_LIMIT = 1e6


class EntropyStats(NamedTuple):
    """Summary of a baseline sample set."""

    mean: float
    stddev: float
    sample_count: int


def shannon_entropy(data: str | bytes) -> float:
    """
    Calculate Shannon entropy of a string or byte string.

    For ``str`` the symbols are code points, for ``bytes`` they are byte values.

    Args:
        data: Slice to analyze

    Returns:
        Entropy in bits per symbol, between 0 and log2(alphabet size)
    """
    if not data:
        return 0.0

    length = len(data)
    counts = Counter(data)
    if len(counts) == 1:
        return 0.0

    entropy = 0.0
    for count in counts.values():
        p = count / length
        entropy -= p * math.log2(p)
    return entropy


def _variance_to_stddev(variance: float) -> float:
    if variance < VARIANCE_EPSILON:
        return 0.0
    return math.sqrt(variance)


def mean_and_stddev(samples: Iterable[float]) -> tuple[float, float]:
    """
    Mean and Bessel-corrected sample standard deviation.

    A single sample (or none) has no spread, and variances below
    VARIANCE_EPSILON collapse to exactly 0.0.
    """
    values = list(samples)
    n = len(values)
    if n == 0:
        return 0.0, 0.0

    mean = math.fsum(values) / n
    if n == 1:
        return mean, 0.0

    variance = math.fsum((x - mean) ** 2 for x in values) / (n - 1)
    return mean, _variance_to_stddev(variance)


def z_score(value: float, mean: float, stddev: float) -> float:
    """
    Standard score of ``value`` against a baseline.

    A flat baseline (stddev ~ 0) carries no information, so it yields 0.0
    rather than an arbitrarily large score. The result is always finite.
    """
    if math.isnan(value) or math.isnan(mean) or math.isnan(stddev):
        return 0.0
    if stddev < math.sqrt(VARIANCE_EPSILON):
        return 0.0
    z = (value - mean) / stddev
    if math.isnan(z):
        return 0.0
    return max(-Z_SCORE_LIMIT, min(Z_SCORE_LIMIT, z))


class PrefixMoments:
    """
    Prefix sums of the first two moments of a sample series.

    Samples are shifted by their mean before summing, which keeps the
    ``sum(x^2) - sum(x)^2 / n`` variance formula numerically stable.
    """

    def __init__(self, samples: Sequence[float]):
        n = len(samples)
        self._shift = math.fsum(samples) / n if n else 0.0
        shifted = [x - self._shift for x in samples]
        self._first = [0.0, *accumulate(shifted)]
        self._second = [0.0, *accumulate(d * d for d in shifted)]

    def __len__(self) -> int:
        return len(self._first) - 1

    def stats(self, ranges: Iterable[tuple[int, int]]) -> EntropyStats:
        """
        Statistics over the union of disjoint half-open index ranges.

        Empty or inverted ranges contribute nothing.
        """
        count = 0
        first = 0.0
        second = 0.0
        for lo, hi in ranges:
            lo = max(lo, 0)
            hi = min(hi, len(self))
            if hi <= lo:
                continue
            count += hi - lo
            first += self._first[hi] - self._first[lo]
            second += self._second[hi] - self._second[lo]

        if count == 0:
            return EntropyStats(0.0, 0.0, 0)

        mean = self._shift + first / count
        if count == 1:
            return EntropyStats(mean, 0.0, 1)

        variance = (second - first * first / count) / (count - 1)
        return EntropyStats(mean, _variance_to_stddev(variance), count)
