"""
Configuration models, scoring constants and shared data types for secret-sieve.

Every detection backend reports confidence on the same scale:

    statistical:  clamp(z / Z_SCORE_SCALE, 0, 1) * Z_SCORE_WEIGHT  (+ CONTEXT_BONUS)
    pattern:      MAX_CONFIDENCE

so a single threshold and a single aggregator can compare them directly.
All offsets are code-point indices into the decoded ``str``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum

from .errors import ConfigurationError

# Current report schema version
REPORT_SCHEMA_VERSION = "1.0.0"

# Confidence scale
Z_SCORE_WEIGHT = 1.0
Z_SCORE_SCALE = 5.0
CONTEXT_BONUS = 2.0
MAX_CONFIDENCE = Z_SCORE_WEIGHT + CONTEXT_BONUS

# Engine defaults
DEFAULT_CONFIDENCE_THRESHOLD = 0.5
DEFAULT_WINDOW_SIZE = 32
DEFAULT_MIN_TOKEN_LENGTH = 8
DEFAULT_MIN_Z_SCORE = 1.0
DEFAULT_CONTEXT_LOOKBACK = 48
DEFAULT_BASELINE_RADIUS = 64

# Heat provider defaults
DEFAULT_HEAT_WINDOW = 32
DEFAULT_HEAT_BASELINE_RADIUS = 256

# Statistical backend output
ENTROPY_RULE_NAME = "high_entropy_secret"
ENTROPY_PLACEHOLDER = "[ENTROPY_REDACTED]"

if not 0.0 < DEFAULT_CONFIDENCE_THRESHOLD < MAX_CONFIDENCE:
    raise ConfigurationError(
        f"Default confidence threshold {DEFAULT_CONFIDENCE_THRESHOLD} "
        f"is outside (0, {MAX_CONFIDENCE})"
    )


class EngineMode(str, Enum):
    """Which detection backends to run."""

    PATTERN = "pattern"
    ENTROPY = "entropy"
    HYBRID = "hybrid"


class MatchSource(str, Enum):
    """Which detection backend produced a match."""

    PATTERN = "pattern"
    ENTROPY = "entropy"


# Lower value wins when two matches cover exactly the same span
DEFAULT_SOURCE_PRIORITY: dict[MatchSource, int] = {
    MatchSource.PATTERN: 0,
    MatchSource.ENTROPY: 1,
}


def _require_int(name: str, value: object, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _require_finite(name: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value}")
    return float(value)


@dataclass(frozen=True)
class EngineConfig:
    """
    Tunables for the statistical locator.

    Validated on construction: a threshold outside ``(0, MAX_CONFIDENCE)``
    could either never fire or always fire, and a non-positive window has
    no meaning, so both are rejected with ConfigurationError.
    """

    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    window_size: int = DEFAULT_WINDOW_SIZE
    min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH
    min_z_score: float = DEFAULT_MIN_Z_SCORE
    context_lookback: int = DEFAULT_CONTEXT_LOOKBACK
    baseline_radius: int = DEFAULT_BASELINE_RADIUS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        threshold = _require_finite("confidence_threshold", self.confidence_threshold)
        if not 0.0 < threshold < MAX_CONFIDENCE:
            raise ConfigurationError(
                f"confidence_threshold must be in (0, {MAX_CONFIDENCE}), got {threshold}"
            )
        _require_int("window_size", self.window_size, 1)
        _require_int("min_token_length", self.min_token_length, 1)
        if self.window_size < self.min_token_length:
            raise ConfigurationError(
                f"window_size ({self.window_size}) must be >= "
                f"min_token_length ({self.min_token_length})"
            )
        _require_finite("min_z_score", self.min_z_score)
        _require_int("context_lookback", self.context_lookback, 0)
        _require_int("baseline_radius", self.baseline_radius, 1)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "baseline_radius": self.baseline_radius,
            "confidence_threshold": self.confidence_threshold,
            "context_lookback": self.context_lookback,
            "min_token_length": self.min_token_length,
            "min_z_score": self.min_z_score,
            "window_size": self.window_size,
        }


@dataclass(frozen=True)
class Window:
    """A span of text evaluated by the locator."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class CandidateMatch:
    """A span some backend believes should be redacted."""

    start: int
    end: int
    confidence: float
    source: MatchSource
    rule_name: str
    replacement: str = ENTROPY_PLACEHOLDER  # Template; may hold \N back-references
    groups: tuple[str | None, ...] = ()
    entropy: float | None = None
    z_score: float | None = None

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def span(self) -> tuple[int, int]:
        return (self.start, self.end)

    def overlaps(self, other: CandidateMatch) -> bool:
        """Check if two half-open spans share at least one position."""
        return self.start < other.end and other.start < self.end

    def with_span(self, start: int, end: int, **changes: object) -> CandidateMatch:
        """Copy of this match covering a different span."""
        return replace(self, start=start, end=end, **changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization (no matched text)."""
        result = {
            "confidence": round(self.confidence, 4),
            "end": self.end,
            "rule": self.rule_name,
            "source": self.source.value,
            "start": self.start,
        }
        if self.entropy is not None:
            result["entropy"] = round(self.entropy, 4)
        if self.z_score is not None:
            result["z_score"] = round(self.z_score, 4)
        return result


@dataclass(frozen=True)
class PlanEntry:
    """An accepted match and the exact text that will replace it."""

    match: CandidateMatch
    replacement: str

    @property
    def start(self) -> int:
        return self.match.start

    @property
    def end(self) -> int:
        return self.match.end


@dataclass(frozen=True)
class RedactionPlan:
    """Accepted matches, sorted by start and pairwise disjoint."""

    entries: tuple[PlanEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def spans(self) -> list[tuple[int, int]]:
        return [(entry.start, entry.end) for entry in self.entries]


@dataclass(frozen=True)
class SupersededMatch:
    """A match that lost overlap resolution, and the match that won."""

    match: CandidateMatch
    superseded_by: CandidateMatch


@dataclass
class RuleReport:
    """Per-rule outcome of one aggregation pass."""

    rule_name: str
    source: MatchSource
    accepted: list[tuple[int, int]] = field(default_factory=list)
    superseded: list[tuple[int, int]] = field(default_factory=list)
    excluded: list[tuple[int, int]] = field(default_factory=list)
    redacted_bytes: int = 0
    sample_hashes: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        """Number of accepted (actually redacted) matches."""
        return len(self.accepted)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "accepted": [list(span) for span in self.accepted],
            "count": self.count,
            "excluded": [list(span) for span in self.excluded],
            "redacted_bytes": self.redacted_bytes,
            "sample_hashes": sorted(set(self.sample_hashes)),
            "source": self.source.value,
            "superseded": [list(span) for span in self.superseded],
        }


@dataclass
class RedactionReport:
    """
    Audit record for one aggregation pass.

    Holds spans, counts and sample hashes only. The matched text itself is
    never stored here, so reports are safe to write to disk.
    """

    rules: dict[str, RuleReport] = field(default_factory=dict)
    superseded: list[SupersededMatch] = field(default_factory=list)
    excluded: list[CandidateMatch] = field(default_factory=list)

    def rule(self, match: CandidateMatch) -> RuleReport:
        """Get or create the report for the rule that produced ``match``."""
        report = self.rules.get(match.rule_name)
        if report is None:
            report = RuleReport(rule_name=match.rule_name, source=match.source)
            self.rules[match.rule_name] = report
        return report

    @property
    def accepted_count(self) -> int:
        return sum(report.count for report in self.rules.values())

    @property
    def total_redacted_bytes(self) -> int:
        return sum(report.redacted_bytes for report in self.rules.values())

    def counts(self) -> dict[str, int]:
        """Accepted count per rule, most frequent first."""
        counts = {name: report.count for name, report in self.rules.items() if report.count}
        return dict(sorted(counts.items(), key=lambda x: (-x[1], x[0])))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization.

        Output is deterministic: all dicts are sorted by key for stable JSON.
        """
        return {
            "accepted_count": self.accepted_count,
            "excluded_count": len(self.excluded),
            "rules": {name: self.rules[name].to_dict() for name in sorted(self.rules)},
            "schema_version": REPORT_SCHEMA_VERSION,
            "superseded": [
                {
                    "match": item.match.to_dict(),
                    "superseded_by": item.superseded_by.to_dict(),
                }
                for item in self.superseded
            ],
            "total_redacted_bytes": self.total_redacted_bytes,
        }


@dataclass(frozen=True)
class SessionOverrides:
    """
    Decisions a user made earlier in a session (for example in an
    interactive review) that the aggregator must respect.

    Matches from an ignored rule, at an ignored span, or whose text is an
    allowed value are dropped before overlap resolution.
    """

    ignored_rules: frozenset[str] = frozenset()
    ignored_spans: frozenset[tuple[int, int]] = frozenset()
    allowed_values: frozenset[str] = frozenset()

    def __bool__(self) -> bool:
        return bool(self.ignored_rules or self.ignored_spans or self.allowed_values)

    def excludes(self, match: CandidateMatch, text: str) -> bool:
        """Check if the user has asked to keep this match's text."""
        if match.rule_name in self.ignored_rules:
            return True
        if match.span in self.ignored_spans:
            return True
        return bool(self.allowed_values) and text[match.start:match.end] in self.allowed_values

    def merged(self, other: SessionOverrides | None) -> SessionOverrides:
        """Union of two override sets."""
        if other is None:
            return self
        return SessionOverrides(
            ignored_rules=self.ignored_rules | other.ignored_rules,
            ignored_spans=self.ignored_spans | other.ignored_spans,
            allowed_values=self.allowed_values | other.allowed_values,
        )
