"""Tests for match aggregation and plan application."""

import json
import random

import pytest

from secret_sieve.aggregator import (
    MatchAggregator,
    apply_plan,
    build_plan,
    expand_replacement,
    verify_plan,
)
from secret_sieve.config import (
    ENTROPY_PLACEHOLDER,
    MAX_CONFIDENCE,
    CandidateMatch,
    MatchSource,
    PlanEntry,
    RedactionPlan,
    SessionOverrides,
)
from secret_sieve.errors import InternalInvariantViolation
from secret_sieve.utils import canonical_sample_hash


def pattern_match(start, end, rule="rule", replacement="[X]", groups=()):
    return CandidateMatch(
        start=start,
        end=end,
        confidence=MAX_CONFIDENCE,
        source=MatchSource.PATTERN,
        rule_name=rule,
        replacement=replacement,
        groups=groups,
    )


def entropy_match(start, end, confidence=1.0):
    return CandidateMatch(
        start=start,
        end=end,
        confidence=confidence,
        source=MatchSource.ENTROPY,
        rule_name="high_entropy_secret",
    )


TEXT = "0123456789abcdefghijklmnopqrstuvwxyz"


class TestExpandReplacement:
    """Tests for back-reference expansion."""

    def test_numbered_reference(self):
        assert expand_replacement(r"\1=[X]", ("api_key",)) == "api_key=[X]"

    def test_g_reference(self):
        assert expand_replacement(r"\g<2>-\g<1>", ("a", "b")) == "b-a"

    def test_unmatched_group_is_empty(self):
        assert expand_replacement(r"\1[X]", (None,)) == "[X]"

    def test_missing_group_raises(self):
        with pytest.raises(InternalInvariantViolation):
            expand_replacement(r"\2", ("only",))

    def test_plain_template(self):
        assert expand_replacement("[REDACTED]", ()) == "[REDACTED]"


class TestOverlapResolution:
    """Tests for deterministic overlap resolution."""

    def test_earlier_start_wins(self):
        plan, report = build_plan(TEXT, [[pattern_match(5, 15)], [entropy_match(8, 20)]])

        assert plan.spans() == [(5, 15)]
        assert len(report.superseded) == 1
        assert report.superseded[0].match.span == (8, 20)
        assert report.superseded[0].superseded_by.span == (5, 15)
        assert report.rules["high_entropy_secret"].superseded == [(8, 20)]

    def test_longer_span_wins_at_same_start(self):
        plan, _ = build_plan(TEXT, [[pattern_match(5, 10, "short"), pattern_match(5, 20, "long")]])
        assert [entry.match.rule_name for entry in plan] == ["long"]

    def test_pattern_beats_entropy_on_identical_span(self):
        plan, _ = build_plan(TEXT, [[entropy_match(5, 15)], [pattern_match(5, 15)]])
        assert plan.entries[0].match.source is MatchSource.PATTERN

    def test_source_priority_configurable(self):
        plan, _ = build_plan(
            TEXT,
            [[pattern_match(5, 15)], [entropy_match(5, 15)]],
            source_priority={MatchSource.ENTROPY: 0, MatchSource.PATTERN: 1},
        )
        assert plan.entries[0].match.source is MatchSource.ENTROPY

    def test_rule_name_breaks_remaining_ties(self):
        plan, _ = build_plan(TEXT, [[pattern_match(5, 15, "zeta"), pattern_match(5, 15, "alpha")]])
        assert plan.entries[0].match.rule_name == "alpha"

    def test_disjoint_matches_all_accepted(self):
        plan, report = build_plan(TEXT, [[pattern_match(0, 5), pattern_match(5, 10)]])
        assert plan.spans() == [(0, 5), (5, 10)]
        assert report.superseded == []

    def test_input_order_does_not_matter(self):
        candidates = [
            pattern_match(0, 6, "a"),
            pattern_match(4, 12, "b"),
            entropy_match(10, 20),
            pattern_match(18, 25, "c"),
            entropy_match(18, 25),
        ]
        expected, _ = build_plan(TEXT, [candidates])
        rng = random.Random(42)
        for _ in range(10):
            shuffled = candidates[:]
            rng.shuffle(shuffled)
            plan, _ = build_plan(TEXT, [shuffled[:2], shuffled[2:]])
            assert plan == expected

    def test_plan_is_sorted_and_disjoint(self):
        plan, _ = build_plan(
            TEXT, [[pattern_match(20, 30), pattern_match(0, 10), entropy_match(5, 25)]]
        )
        spans = plan.spans()
        assert spans == sorted(spans)
        assert all(a[1] <= b[0] for a, b in zip(spans, spans[1:]))


class TestCandidateValidation:
    """Tests for rejecting malformed candidates."""

    def test_out_of_bounds(self):
        with pytest.raises(InternalInvariantViolation):
            build_plan("short", [[pattern_match(2, 10)]])

    def test_empty_span(self):
        with pytest.raises(InternalInvariantViolation):
            build_plan(TEXT, [[pattern_match(3, 3)]])

    def test_verify_plan_rejects_overlap(self):
        plan = RedactionPlan(
            (PlanEntry(pattern_match(0, 10), "[X]"), PlanEntry(pattern_match(5, 15), "[Y]"))
        )
        with pytest.raises(InternalInvariantViolation):
            verify_plan(plan, len(TEXT))

    def test_verify_plan_rejects_out_of_bounds(self):
        plan = RedactionPlan((PlanEntry(pattern_match(0, 50), "[X]"),))
        with pytest.raises(InternalInvariantViolation):
            verify_plan(plan, len(TEXT))


class TestReplacements:
    """Tests for the text each plan entry writes."""

    def test_entropy_always_gets_placeholder(self):
        match = CandidateMatch(
            start=0,
            end=5,
            confidence=1.0,
            source=MatchSource.ENTROPY,
            rule_name="high_entropy_secret",
            replacement=r"\1 something else",
        )
        plan, _ = build_plan(TEXT, [[match]])
        assert plan.entries[0].replacement == ENTROPY_PLACEHOLDER

    def test_custom_entropy_placeholder(self):
        aggregator = MatchAggregator(entropy_placeholder="<hidden>")
        plan, _ = aggregator.build_plan(TEXT, [[entropy_match(0, 5)]])
        assert apply_plan(TEXT, plan) == "<hidden>" + TEXT[5:]

    def test_back_references_expanded(self):
        text = "api_key=abcdefghijklmnop"
        match = pattern_match(0, len(text), replacement=r"\1=[SECRET]", groups=("api_key", "abc"))
        plan, _ = build_plan(text, [[match]])
        assert apply_plan(text, plan) == "api_key=[SECRET]"

    def test_missing_group_in_template(self):
        match = pattern_match(0, 5, replacement=r"\3", groups=("a",))
        with pytest.raises(InternalInvariantViolation):
            build_plan(TEXT, [[match]])


class TestApplyPlan:
    """Tests for rebuilding the output."""

    def test_gaps_copied_verbatim(self):
        plan, _ = build_plan(TEXT, [[pattern_match(2, 4), pattern_match(10, 12)]])
        assert apply_plan(TEXT, plan) == "01[X]456789[X]cdefghijklmnopqrstuvwxyz"

    def test_empty_plan_is_identity(self):
        assert apply_plan(TEXT, RedactionPlan()) == TEXT

    def test_unicode_text(self):
        text = "clé=日本語の秘密 end"
        plan, _ = build_plan(text, [[pattern_match(4, 10)]])
        assert apply_plan(text, plan) == "clé=[X] end"


class TestOverrides:
    """Tests for session overrides."""

    def test_ignored_rule(self):
        overrides = SessionOverrides(ignored_rules=frozenset({"rule"}))
        plan, report = build_plan(TEXT, [[pattern_match(0, 5)]], overrides)
        assert len(plan) == 0
        assert [m.span for m in report.excluded] == [(0, 5)]
        assert report.rules["rule"].excluded == [(0, 5)]

    def test_ignored_span(self):
        overrides = SessionOverrides(ignored_spans=frozenset({(0, 5)}))
        plan, _ = build_plan(TEXT, [[pattern_match(0, 5), pattern_match(10, 15)]], overrides)
        assert plan.spans() == [(10, 15)]

    def test_allowed_value(self):
        overrides = SessionOverrides(allowed_values=frozenset({"01234"}))
        plan, _ = build_plan(TEXT, [[pattern_match(0, 5)]], overrides)
        assert len(plan) == 0

    def test_excluded_match_cannot_supersede(self):
        """Overrides apply before resolution, so a kept value frees its span."""
        overrides = SessionOverrides(ignored_rules=frozenset({"wide"}))
        plan, report = build_plan(
            TEXT, [[pattern_match(0, 20, "wide"), pattern_match(5, 10, "narrow")]], overrides
        )
        assert plan.spans() == [(5, 10)]
        assert report.superseded == []

    def test_aggregator_and_call_overrides_combine(self):
        aggregator = MatchAggregator(overrides=SessionOverrides(ignored_rules=frozenset({"a"})))
        plan, _ = aggregator.build_plan(
            TEXT,
            [[pattern_match(0, 5, "a"), pattern_match(10, 15, "b")]],
            SessionOverrides(ignored_rules=frozenset({"b"})),
        )
        assert len(plan) == 0


class TestReport:
    """Tests for the audit report."""

    def test_counts_and_bytes(self):
        text = "key=é€ and key=abc"
        plan, report = build_plan(
            text, [[pattern_match(4, 6, "unicode"), pattern_match(15, 18, "ascii")]]
        )
        assert report.rules["unicode"].redacted_bytes == 5
        assert report.rules["ascii"].redacted_bytes == 3
        assert report.total_redacted_bytes == 8
        assert report.accepted_count == 2

    def test_sample_hashes(self):
        plan, report = build_plan(TEXT, [[pattern_match(0, 5)]])
        assert report.rules["rule"].sample_hashes == [canonical_sample_hash("rule", "01234")]

    def test_counts_sorted_by_frequency(self):
        _, report = build_plan(
            TEXT,
            [[pattern_match(0, 2, "b"), pattern_match(3, 5, "a"), pattern_match(6, 8, "b")]],
        )
        assert list(report.counts().items()) == [("b", 2), ("a", 1)]

    def test_report_never_contains_matched_text(self):
        text = "token=SuperSecretValue123"
        _, report = build_plan(text, [[pattern_match(6, len(text))], [entropy_match(8, 20)]])
        serialized = json.dumps(report.to_dict())
        assert "SuperSecretValue123" not in serialized
        assert report.to_dict()["schema_version"]
