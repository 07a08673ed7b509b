"""
Match aggregation: turns per-backend candidate lists into one redaction plan.

Steps:
1. Validate every candidate span against the text.
2. Drop candidates the session overrides exclude (ignored rules, ignored
   spans, allowed values).
3. Order the rest by (start, longest first, source priority, confidence,
   rule name) and accept greedily; a candidate overlapping an accepted one
   is recorded as superseded.
4. Expand replacement templates and rebuild the output, copying every
   unmatched region verbatim.

The plan is deterministic for a given input, whatever order the backends
produced their candidates in.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from .config import (
    DEFAULT_SOURCE_PRIORITY,
    ENTROPY_PLACEHOLDER,
    CandidateMatch,
    MatchSource,
    PlanEntry,
    RedactionPlan,
    RedactionReport,
    SessionOverrides,
    SupersededMatch,
)
from .errors import InternalInvariantViolation
from .utils import canonical_sample_hash, ensure_text, redact_sensitive, utf8_length

logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"\\g<(\d+)>|\\(\d{1,2})")


def expand_replacement(template: str, groups: tuple[str | None, ...]) -> str:
    """
    Expand ``\\N`` and ``\\g<N>`` references against captured groups.

    Groups that did not participate in the match expand to an empty string.

    Raises:
        InternalInvariantViolation: If the template references a group that
            was never captured
    """

    def expand(match: re.Match[str]) -> str:
        index = int(match.group(1) if match.group(1) is not None else match.group(2))
        if not 1 <= index <= len(groups):
            raise InternalInvariantViolation(
                f"Replacement references group {index}, match captured {len(groups)}"
            )
        return groups[index - 1] or ""

    return _REFERENCE.sub(expand, template)


class MatchAggregator:
    """
    Resolves overlapping candidates from several backends.

    Args:
        source_priority: Lower value wins when two candidates cover the
            same span. Defaults to pattern before entropy.
        overrides: Session decisions applied to every plan
        entropy_placeholder: Fixed replacement for statistical matches
    """

    def __init__(
        self,
        source_priority: Mapping[MatchSource, int] | None = None,
        overrides: SessionOverrides | None = None,
        entropy_placeholder: str = ENTROPY_PLACEHOLDER,
    ):
        self.source_priority = dict(DEFAULT_SOURCE_PRIORITY)
        if source_priority:
            self.source_priority.update(
                {MatchSource(source): int(value) for source, value in source_priority.items()}
            )
        self.overrides = overrides or SessionOverrides()
        self.entropy_placeholder = entropy_placeholder

    def _sort_key(self, match: CandidateMatch) -> tuple:
        return (
            match.start,
            -match.length,
            self.source_priority.get(match.source, len(self.source_priority)),
            -match.confidence,
            match.rule_name,
        )

    def _replacement_for(self, match: CandidateMatch) -> str:
        if match.source is MatchSource.ENTROPY:
            return self.entropy_placeholder
        return expand_replacement(match.replacement, match.groups)

    @staticmethod
    def _check_bounds(match: CandidateMatch, text_length: int) -> None:
        if not 0 <= match.start < match.end <= text_length:
            raise InternalInvariantViolation(
                f"Rule '{match.rule_name}' produced span [{match.start}, {match.end}) "
                f"outside text of length {text_length} or empty"
            )

    def build_plan(
        self,
        text: str | bytes,
        candidate_sets: Iterable[Iterable[CandidateMatch]],
        overrides: SessionOverrides | None = None,
    ) -> tuple[RedactionPlan, RedactionReport]:
        """
        Resolve candidates from every backend into a disjoint plan.

        Args:
            text: The text all candidates refer to
            candidate_sets: One candidate list per backend
            overrides: Extra session overrides for this call only

        Returns:
            Tuple of (plan, report)
        """
        text = ensure_text(text)
        active = self.overrides.merged(overrides)
        report = RedactionReport()

        candidates = []
        for candidate_set in candidate_sets:
            for match in candidate_set:
                self._check_bounds(match, len(text))
                if active and active.excludes(match, text):
                    report.excluded.append(match)
                    report.rule(match).excluded.append(match.span)
                    continue
                candidates.append(match)

        candidates.sort(key=self._sort_key)

        accepted: list[PlanEntry] = []
        for match in candidates:
            if accepted and match.start < accepted[-1].end:
                winner = accepted[-1].match
                report.superseded.append(SupersededMatch(match, winner))
                report.rule(match).superseded.append(match.span)
                logger.debug(
                    "%s [%d, %d) superseded by %s [%d, %d)",
                    match.rule_name, match.start, match.end,
                    winner.rule_name, winner.start, winner.end,
                )
                continue

            accepted.append(PlanEntry(match, self._replacement_for(match)))
            matched_text = text[match.start:match.end]
            rule_report = report.rule(match)
            rule_report.accepted.append(match.span)
            rule_report.redacted_bytes += utf8_length(matched_text)
            rule_report.sample_hashes.append(canonical_sample_hash(match.rule_name, matched_text))
            logger.debug(
                "%s accepted at [%d, %d): %s",
                match.rule_name, match.start, match.end, redact_sensitive(matched_text),
            )

        plan = RedactionPlan(tuple(accepted))
        verify_plan(plan, len(text))
        return plan, report


def verify_plan(plan: RedactionPlan, text_length: int) -> None:
    """
    Check a plan is sorted, disjoint and inside the text.

    Raises:
        InternalInvariantViolation: On the first broken guarantee
    """
    previous_end = 0
    for entry in plan:
        if not 0 <= entry.start < entry.end <= text_length:
            raise InternalInvariantViolation(
                f"Plan entry [{entry.start}, {entry.end}) is empty or outside the text"
            )
        if entry.start < previous_end:
            raise InternalInvariantViolation(
                f"Plan entry [{entry.start}, {entry.end}) overlaps the previous entry"
            )
        previous_end = entry.end


def apply_plan(text: str, plan: RedactionPlan) -> str:
    """Rebuild ``text`` with every plan entry replaced; gaps copied verbatim."""
    verify_plan(plan, len(text))
    parts = []
    cursor = 0
    for entry in plan:
        parts.append(text[cursor:entry.start])
        parts.append(entry.replacement)
        cursor = entry.end
    parts.append(text[cursor:])
    return "".join(parts)


def build_plan(
    text: str | bytes,
    candidate_sets: Iterable[Iterable[CandidateMatch]],
    overrides: SessionOverrides | None = None,
    source_priority: Mapping[MatchSource, int] | None = None,
) -> tuple[RedactionPlan, RedactionReport]:
    """Aggregate ``candidate_sets`` with a one-off MatchAggregator."""
    return MatchAggregator(source_priority=source_priority).build_plan(
        text, candidate_sets, overrides
    )
