"""Tests for the detection backends."""

import pytest

from secret_sieve.config import (
    ENTROPY_PLACEHOLDER,
    ENTROPY_RULE_NAME,
    CandidateMatch,
    EngineConfig,
    MatchSource,
)
from secret_sieve.engines import DetectionEngine, EntropyEngine, coalesce_candidates


def entropy_match(start: int, end: int, confidence: float = 1.0, z: float = 5.0) -> CandidateMatch:
    return CandidateMatch(
        start=start,
        end=end,
        confidence=confidence,
        source=MatchSource.ENTROPY,
        rule_name=ENTROPY_RULE_NAME,
        z_score=z,
    )


class TestCoalesce:
    """Tests for merging overlapping windows."""

    def test_overlapping_windows_merge(self):
        merged = coalesce_candidates(
            [entropy_match(0, 16, 0.4, 2.0), entropy_match(8, 24, 0.9, 4.5)]
        )
        assert len(merged) == 1
        assert merged[0].span == (0, 24)
        assert merged[0].confidence == 0.9
        assert merged[0].z_score == 4.5

    def test_touching_windows_stay_apart(self):
        merged = coalesce_candidates([entropy_match(0, 8), entropy_match(8, 16)])
        assert [m.span for m in merged] == [(0, 8), (8, 16)]

    def test_contained_window(self):
        merged = coalesce_candidates([entropy_match(0, 20), entropy_match(4, 10)])
        assert [m.span for m in merged] == [(0, 20)]

    def test_empty(self):
        assert coalesce_candidates([]) == []


class TestEntropyEngine:
    """Tests for the statistical backend."""

    def test_is_abstract_base(self):
        with pytest.raises(TypeError):
            DetectionEngine()

    def test_refines_coalesced_window(self):
        config = EngineConfig(confidence_threshold=0.1, window_size=16, min_z_score=0.0)
        text = "auth_key=8x9#bF2!kL0Z@mN9_extra_padding"
        matches = EntropyEngine(config).find_matches(text)

        assert len(matches) == 1
        assert matches[0].span == (9, 25)
        assert matches[0].replacement == ENTROPY_PLACEHOLDER
        assert matches[0].source is MatchSource.ENTROPY

    def test_custom_placeholder(self):
        config = EngineConfig(confidence_threshold=0.1, window_size=16, min_z_score=0.0)
        engine = EntropyEngine(config, placeholder="<secret>")
        matches = engine.find_matches("auth_key=8x9#bF2!kL0Z@mN9_extra_padding")
        assert all(m.replacement == "<secret>" for m in matches)

    def test_config_property(self):
        config = EngineConfig(window_size=24)
        assert EntropyEngine(config).config is config

    def test_plain_prose_has_no_matches(self):
        text = "the quick brown fox jumps over the lazy dog " * 10
        assert EntropyEngine().find_matches(text) == []
