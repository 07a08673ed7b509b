"""
Detection backends.

A backend turns text into candidate matches on the shared confidence
scale. The aggregator does not care how a backend works, only that every
match it returns lies inside the text and is non-empty.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace

from .config import ENTROPY_PLACEHOLDER, CandidateMatch, EngineConfig, MatchSource
from .context import ContextMatcher
from .extractor import HeatSeeker
from .locator import EntropyLocator
from .utils import ensure_text

logger = logging.getLogger(__name__)


class DetectionEngine(ABC):
    """Abstract base class for detection backends."""

    name: str = "engine"
    source: MatchSource

    @abstractmethod
    def find_matches(self, text: str) -> list[CandidateMatch]:
        """
        Find candidate matches in text.

        Args:
            text: Decoded input text

        Returns:
            Candidate matches, sorted by start offset
        """
        pass


def coalesce_candidates(candidates: list[CandidateMatch]) -> list[CandidateMatch]:
    """
    Merge overlapping candidates into their union.

    The merged match keeps the highest confidence and z-score of its parts.
    Input must be sorted by start offset.
    """
    merged: list[CandidateMatch] = []
    for candidate in candidates:
        if merged and candidate.overlaps(merged[-1]):
            current = merged[-1]
            merged[-1] = current.with_span(
                current.start,
                max(current.end, candidate.end),
                confidence=max(current.confidence, candidate.confidence),
                z_score=max(current.z_score or 0.0, candidate.z_score or 0.0),
            )
        else:
            merged.append(candidate)
    return merged


class EntropyEngine(DetectionEngine):
    """
    Statistical backend: locator, then coalescing, then Heat-Seeker refinement.

    Every match is reported under the ``high_entropy_secret`` rule and is
    replaced with a fixed placeholder.
    """

    name = "entropy"
    source = MatchSource.ENTROPY

    def __init__(
        self,
        config: EngineConfig | None = None,
        context: ContextMatcher | None = None,
        seeker: HeatSeeker | None = None,
        placeholder: str = ENTROPY_PLACEHOLDER,
    ):
        self.locator = EntropyLocator(config, context)
        self.seeker = seeker or HeatSeeker()
        self.placeholder = placeholder

    @property
    def config(self) -> EngineConfig:
        return self.locator.config

    def find_matches(self, text: str) -> list[CandidateMatch]:
        text = ensure_text(text)
        windows = self.locator.scan(text)
        coarse = coalesce_candidates(windows)
        matches = [
            replace(self.seeker.refine(text, match), replacement=self.placeholder)
            for match in coarse
        ]
        logger.debug(
            "Entropy engine: %d windows coalesced into %d matches", len(windows), len(matches)
        )
        return matches
