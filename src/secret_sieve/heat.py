"""
Per-position entropy "heat" for visualization.

Unlike the locator, the heat provider never applies a threshold: every
position gets the entropy of a window centered on it and a z-score against
the positions around it (leaving out positions whose windows overlap its
own). Callers render the series however they like.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import NamedTuple

from .config import DEFAULT_HEAT_BASELINE_RADIUS, DEFAULT_HEAT_WINDOW
from .errors import ConfigurationError
from .stats import VARIANCE_EPSILON, PrefixMoments, z_score
from .utils import ensure_text


class HeatScore(NamedTuple):
    """Entropy and local z-score at one code-point position."""

    position: int
    entropy: float
    z_score: float


def _clog(count: int) -> float:
    return count * math.log2(count) if count > 1 else 0.0


def centered_entropies(text: str, window: int) -> list[float]:
    """
    Entropy of the window centered on every position of ``text``.

    Windows are clipped at the edges of the text. Symbol counts are updated
    incrementally as the window slides, so the cost is O(n) overall.
    """
    n = len(text)
    half = window // 2
    counts: Counter[str] = Counter()
    clog_sum = 0.0
    length = 0

    def add(ch: str) -> None:
        nonlocal clog_sum, length
        c = counts[ch]
        clog_sum += _clog(c + 1) - _clog(c)
        counts[ch] = c + 1
        length += 1

    def remove(ch: str) -> None:
        nonlocal clog_sum, length
        c = counts[ch]
        clog_sum += _clog(c - 1) - _clog(c)
        if c == 1:
            del counts[ch]
        else:
            counts[ch] = c - 1
        length -= 1

    for ch in text[:min(n, window - half)]:
        add(ch)

    entropies = []
    for pos in range(n):
        if len(counts) <= 1:
            entropies.append(0.0)
        else:
            h = math.log2(length) - clog_sum / length
            entropies.append(h if h > VARIANCE_EPSILON else 0.0)

        left = pos - half
        right = pos - half + window
        if left >= 0:
            remove(text[left])
        if right < n:
            add(text[right])
    return entropies


def heat_scores(
    text: str | bytes,
    window: int = DEFAULT_HEAT_WINDOW,
    step: int = 1,
    baseline_radius: int = DEFAULT_HEAT_BASELINE_RADIUS,
) -> list[HeatScore]:
    """
    Compute the heat series for ``text``.

    Args:
        text: UTF-8 text (bytes are decoded strictly)
        window: Width of the entropy window centered on each position
        step: Report every ``step``-th position
        baseline_radius: Positions on each side considered for the z-score

    Returns:
        One HeatScore per reported position, in order
    """
    for name, value in (("window", window), ("step", step), ("baseline_radius", baseline_radius)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

    text = ensure_text(text)
    n = len(text)
    if n == 0:
        return []

    entropies = centered_entropies(text, window)
    moments = PrefixMoments(entropies)

    scores = []
    for pos in range(0, n, step):
        lo = max(0, pos - baseline_radius)
        hi = min(n, pos + baseline_radius + 1)
        excluded_lo = max(lo, pos - window + 1)
        excluded_hi = min(hi, pos + window)
        stats = moments.stats([(lo, excluded_lo), (excluded_hi, hi)])
        z = z_score(entropies[pos], stats.mean, stats.stddev)
        scores.append(HeatScore(pos, entropies[pos], z))
    return scores


def average_entropy(scores: list[HeatScore]) -> float:
    """Mean entropy over a heat series (0.0 when empty)."""
    if not scores:
        return 0.0
    return math.fsum(score.entropy for score in scores) / len(scores)


def heat_level(entropy: float) -> str:
    """Bucket an entropy value for display: critical, high, moderate or low."""
    if entropy > 4.5:
        return "critical"
    if entropy > 3.5:
        return "high"
    if entropy > 2.5:
        return "moderate"
    return "low"
