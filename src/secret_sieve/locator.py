"""
Statistical locator: finds windows of text whose entropy stands out.

Works in two passes over the input:

1. Tile the text into ``window_size`` chunks, compute each tile's entropy
   once and fold the series into prefix moments.
2. Split the text into whitespace-delimited tokens. Tokens no longer than
   the window are candidates as-is. Longer tokens are covered by sliding
   sub-windows (stride of half a window, plus one end-aligned window).
   Each candidate is scored against the tiles around it *minus the tiles it
   overlaps*. A window never contributes to its own baseline, so a lone
   secret in a short input is not averaged away.

Confidence is ``clamp(z / 5, 0, 1)`` plus a bonus when a credential-like
word precedes the window, capped at MAX_CONFIDENCE. Windows are emitted
when confidence exceeds the configured threshold; overlapping windows are
all reported and left for the backend to coalesce.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

from .config import (
    CONTEXT_BONUS,
    ENTROPY_PLACEHOLDER,
    ENTROPY_RULE_NAME,
    MAX_CONFIDENCE,
    Z_SCORE_SCALE,
    Z_SCORE_WEIGHT,
    CandidateMatch,
    EngineConfig,
    MatchSource,
    Window,
)
from .context import ContextMatcher
from .stats import EntropyStats, PrefixMoments, shannon_entropy, z_score
from .utils import ensure_text

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"\S+")


def confidence_score(z: float, has_context: bool) -> float:
    """Map a z-score and context flag onto the shared confidence scale."""
    statistical = min(max(z / Z_SCORE_SCALE, 0.0), 1.0) * Z_SCORE_WEIGHT
    bonus = CONTEXT_BONUS if has_context else 0.0
    return min(statistical + bonus, MAX_CONFIDENCE)


class _TileBaseline:
    """Entropies of fixed-size tiles, queried with leave-one-out exclusion."""

    def __init__(self, text: str, tile_size: int, radius: int):
        self.tile_size = tile_size
        self.radius = radius
        entropies = [
            shannon_entropy(text[i:i + tile_size]) for i in range(0, len(text), tile_size)
        ]
        self.tile_count = len(entropies)
        self.moments = PrefixMoments(entropies)

    def stats_for(self, start: int, end: int, leave_one_out: bool = True) -> EntropyStats:
        first = start // self.tile_size
        last = (end - 1) // self.tile_size + 1
        lo = max(0, first - self.radius)
        hi = min(self.tile_count, last + self.radius)
        if leave_one_out:
            return self.moments.stats([(lo, first), (last, hi)])
        return self.moments.stats([(lo, hi)])


class EntropyLocator:
    """
    Scores windows of text against a local entropy baseline.

    Attributes:
        config: Engine tunables (threshold, window size, gates)
        context: Trigger-word matcher used for the confidence bonus
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        context: ContextMatcher | None = None,
    ):
        self.config = config or EngineConfig()
        self.context = context or ContextMatcher()

    def iter_windows(self, text: str) -> Iterator[Window]:
        """
        Yield candidate windows in order of start offset.

        Tokens shorter than ``min_token_length`` are skipped.
        """
        size = self.config.window_size
        step = max(1, size // 2)
        for token in _TOKEN_PATTERN.finditer(text):
            t_start, t_end = token.span()
            if t_end - t_start < self.config.min_token_length:
                continue
            if t_end - t_start <= size:
                yield Window(t_start, t_end)
                continue

            last_start = t_start
            for start in range(t_start, t_end - size + 1, step):
                last_start = start
                yield Window(start, start + size)
            if last_start + size < t_end:
                yield Window(t_end - size, t_end)

    def _baseline(self, text: str) -> _TileBaseline:
        return _TileBaseline(text, self.config.window_size, self.config.baseline_radius)

    def z_score_for(
        self,
        text: str,
        start: int,
        end: int,
        *,
        leave_one_out: bool = True,
    ) -> float:
        """
        Z-score of ``text[start:end]`` against the surrounding tiles.

        With ``leave_one_out=False`` the window's own tiles stay in the
        baseline, which dampens the score of the very outlier being measured.
        """
        text = ensure_text(text)
        stats = self._baseline(text).stats_for(start, end, leave_one_out)
        return z_score(shannon_entropy(text[start:end]), stats.mean, stats.stddev)

    def _score_window(
        self, text: str, window: Window, baseline: _TileBaseline
    ) -> CandidateMatch | None:
        entropy = shannon_entropy(text[window.start:window.end])
        if entropy == 0.0:
            return None

        stats = baseline.stats_for(window.start, window.end)
        z = z_score(entropy, stats.mean, stats.stddev)
        if z < self.config.min_z_score:
            return None

        has_context = self.context.scan_preceding(
            text, window.start, self.config.context_lookback
        )
        confidence = confidence_score(z, has_context)
        if confidence <= self.config.confidence_threshold:
            return None

        return CandidateMatch(
            start=window.start,
            end=window.end,
            confidence=confidence,
            source=MatchSource.ENTROPY,
            rule_name=ENTROPY_RULE_NAME,
            replacement=ENTROPY_PLACEHOLDER,
            entropy=entropy,
            z_score=z,
        )

    def scan(self, text: str | bytes) -> list[CandidateMatch]:
        """
        Find high-entropy windows.

        Args:
            text: UTF-8 text (bytes are decoded strictly)

        Returns:
            Candidate matches sorted by start offset; may overlap
        """
        text = ensure_text(text)
        if not text:
            return []

        baseline = self._baseline(text)
        candidates = []
        evaluated = 0
        for window in self.iter_windows(text):
            evaluated += 1
            match = self._score_window(text, window, baseline)
            if match is not None:
                candidates.append(match)

        candidates.sort(key=lambda m: (m.start, m.end))
        logger.debug(
            "Evaluated %d windows over %d tiles, %d above threshold %.2f",
            evaluated,
            baseline.tile_count,
            len(candidates),
            self.config.confidence_threshold,
        )
        return candidates


def scan(text: str | bytes, config: EngineConfig | None = None) -> list[CandidateMatch]:
    """Run the statistical locator over ``text`` with ``config``."""
    return EntropyLocator(config).scan(text)
