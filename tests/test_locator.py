"""Tests for the statistical locator."""

import pytest

from secret_sieve.config import (
    ENTROPY_PLACEHOLDER,
    ENTROPY_RULE_NAME,
    MAX_CONFIDENCE,
    EngineConfig,
    MatchSource,
)
from secret_sieve.errors import InvalidInputError
from secret_sieve.locator import EntropyLocator, confidence_score, scan

# Two low-entropy 32-character tiles and one random-looking token
TILE_A = "aaaaaaaaaaaaaaa bbbbbbbbbbbbbbb "
TILE_B = "aaaaaaa bbbbbbb ccccccc ddddddd "
SECRET = "Zx8Qw3Lp9TnB4vRm7YcK2hJ5dF6gS1t"


def make_text(token: str) -> str:
    """Eight background tiles with ``token`` (31 chars + space) in the middle."""
    background = TILE_A + TILE_B
    return background * 2 + token + " " + background * 2


class TestConfidenceScore:
    """Tests for the shared confidence mapping."""

    def test_negative_z_is_zero(self):
        assert confidence_score(-3.0, False) == 0.0

    def test_linear_in_z(self):
        assert confidence_score(2.5, False) == pytest.approx(0.5)

    def test_saturates(self):
        assert confidence_score(10.0, False) == pytest.approx(1.0)

    def test_context_bonus(self):
        assert confidence_score(0.0, True) == pytest.approx(2.0)
        assert confidence_score(10.0, True) == pytest.approx(MAX_CONFIDENCE)


class TestWindows:
    """Tests for window generation."""

    def test_short_tokens_skipped(self):
        locator = EntropyLocator(EngineConfig())
        assert list(locator.iter_windows("a bb ccc dddd")) == []

    def test_token_within_window_is_one_window(self):
        locator = EntropyLocator(EngineConfig())
        windows = list(locator.iter_windows("hello Xq7ZkP2mW9aB world"))
        assert [(w.start, w.end) for w in windows] == [(6, 18)]

    def test_long_token_gets_half_stride_and_tail_window(self):
        config = EngineConfig(window_size=16)
        text = "auth_key=8x9#bF2!kL0Z@mN9_extra_padding"
        windows = list(EntropyLocator(config).iter_windows(text))
        assert [(w.start, w.end) for w in windows] == [(0, 16), (8, 24), (16, 32), (23, 39)]

    def test_exact_multiple_has_no_extra_window(self):
        config = EngineConfig(window_size=16)
        windows = list(EntropyLocator(config).iter_windows("x" * 32))
        assert [(w.start, w.end) for w in windows] == [(0, 16), (8, 24), (16, 32)]


class TestLocatorScan:
    """Tests for EntropyLocator.scan."""

    def test_finds_secret_in_low_entropy_text(self):
        text = make_text(SECRET)
        matches = EntropyLocator().scan(text)

        assert len(matches) == 1
        match = matches[0]
        assert match.span == (128, 159)
        assert text[match.start:match.end] == SECRET
        assert match.source is MatchSource.ENTROPY
        assert match.rule_name == ENTROPY_RULE_NAME
        assert match.replacement == ENTROPY_PLACEHOLDER
        assert match.confidence == pytest.approx(1.0)
        assert match.z_score > 5.0

    def test_flat_token_not_reported(self):
        assert EntropyLocator().scan(make_text("a" * 31)) == []

    @pytest.mark.parametrize("threshold", [0.5, 1.0, 2.0, 2.9])
    def test_repeated_character_never_reported(self, threshold):
        """Zero entropy is never a candidate, whatever the threshold or context."""
        config = EngineConfig(confidence_threshold=threshold)
        assert scan("aaaaaaaa", config) == []
        assert scan("password: aaaaaaaa", config) == []
        assert scan(make_text("a" * 31), config) == []

    def test_threshold_is_strict(self):
        """A window whose confidence equals the threshold is not emitted."""
        config = EngineConfig(confidence_threshold=1.0)
        assert EntropyLocator(config).scan(make_text(SECRET)) == []

    def test_context_raises_confidence(self):
        text = make_text(SECRET)
        # Put a trigger word in the tile just before the secret
        text = text[:120] + "token:  " + text[128:]
        matches = EntropyLocator().scan(text)
        assert len(matches) == 1
        assert matches[0].confidence > 2.0

    def test_short_input_has_no_baseline(self):
        """With nothing to compare against, nothing stands out."""
        assert EntropyLocator().scan(SECRET) == []

    def test_empty_input(self):
        assert EntropyLocator().scan("") == []

    def test_accepts_bytes(self):
        text = make_text(SECRET)
        assert EntropyLocator().scan(text.encode("utf-8")) == EntropyLocator().scan(text)

    def test_rejects_invalid_utf8(self):
        with pytest.raises(InvalidInputError):
            EntropyLocator().scan(b"\xff\xfe\xfd invalid")

    def test_module_level_scan(self):
        assert [m.span for m in scan(make_text(SECRET))] == [(128, 159)]

    def test_results_sorted(self):
        text = make_text(SECRET) + make_text(SECRET)
        matches = scan(text)
        assert matches == sorted(matches, key=lambda m: (m.start, m.end))
        assert len(matches) == 2


class TestLeaveOneOut:
    """A candidate never contributes to its own baseline."""

    def test_leave_one_out_scores_higher(self):
        text = make_text(SECRET)
        locator = EntropyLocator()
        loo = locator.z_score_for(text, 128, 159)
        inclusive = locator.z_score_for(text, 128, 159, leave_one_out=False)
        assert loo > 5.0
        assert inclusive < loo

    def test_baseline_excludes_every_overlapping_tile(self):
        """A window straddling two tiles leaves both out of its baseline."""
        text = make_text(SECRET)
        locator = EntropyLocator()
        # [120, 152) overlaps tiles 3 and 4
        straddling = locator.z_score_for(text, 120, 152)
        inclusive = locator.z_score_for(text, 120, 152, leave_one_out=False)
        assert straddling > inclusive
