"""
Secret redaction orchestrator for secret-sieve.

Runs the enabled detection backends over a piece of text, aggregates their
candidates into a single non-overlapping plan and applies it.

Features:
- Pattern backend with 30+ built-in rules and custom rules via config
- Statistical backend (entropy locator + Heat-Seeker refinement)
- Deterministic overlap resolution with an audit report
- Session overrides: ignored rules, ignored spans, allowlisted values
- Line-at-a-time redaction for streaming callers
- Colored terminal output: detection ignores ANSI escape sequences
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .aggregator import MatchAggregator, apply_plan
from .ansi import StrippedText
from .config import (
    DEFAULT_SOURCE_PRIORITY,
    ENTROPY_PLACEHOLDER,
    EngineConfig,
    MatchSource,
    RedactionPlan,
    RedactionReport,
    SessionOverrides,
)
from .engines import DetectionEngine, EntropyEngine
from .errors import ConfigurationError
from .heat import HeatScore, heat_scores
from .patterns import SECRET_PATTERNS, PatternEngine, PatternRule
from .utils import ensure_text

logger = logging.getLogger(__name__)

KNOWN_ENGINES = ("pattern", "entropy")

# CLI shorthand for engine selections
ENGINE_PRESETS: dict[str, tuple[str, ...]] = {
    "pattern": ("pattern",),
    "entropy": ("entropy",),
    "hybrid": ("pattern", "entropy"),
}

_ENTROPY_KEYS = (
    "confidence_threshold",
    "window_size",
    "min_token_length",
    "min_z_score",
    "context_lookback",
    "baseline_radius",
)


def parse_engines(value: str | list | tuple) -> tuple[str, ...]:
    """
    Normalize an engine selection.

    Accepts a preset name (``pattern``, ``entropy``, ``hybrid``) or a list
    of engine names.
    """
    if isinstance(value, str):
        key = value.strip().lower()
        if key in ENGINE_PRESETS:
            return ENGINE_PRESETS[key]
        names = [part.strip().lower() for part in key.split(",") if part.strip()]
    else:
        names = [str(part).strip().lower() for part in value]

    unknown = sorted(set(names) - set(KNOWN_ENGINES))
    if unknown or not names:
        raise ConfigurationError(
            f"Unknown engine selection {value!r}; choose from "
            f"{', '.join(ENGINE_PRESETS)} or a list of {', '.join(KNOWN_ENGINES)}"
        )
    return tuple(name for name in KNOWN_ENGINES if name in names)


def _name_set(key: str, value: object) -> set[str]:
    """A single string or a list of strings from a config file, as a set."""
    if isinstance(value, str):
        return {value}
    if not isinstance(value, (list, tuple, set)):
        raise ConfigurationError(f"'{key}' must be a string or a list of strings")
    return {str(item) for item in value}


def engine_config_from_dict(data: dict, base: EngineConfig | None = None) -> EngineConfig:
    """
    Build an EngineConfig from a config-file ``entropy`` section.

    ``threshold`` is accepted as a short alias for ``confidence_threshold``.
    Values are validated by EngineConfig itself.
    """
    values = (base or EngineConfig()).to_dict()
    if "threshold" in data:
        values["confidence_threshold"] = data["threshold"]
    for key in _ENTROPY_KEYS:
        if key in data:
            values[key] = data[key]
    return EngineConfig(**values)


@dataclass
class RedactionConfig:
    """
    Configuration for a Redactor.

    Loaded from config file or set programmatically.
    """

    # Detection backends to run
    engines: tuple[str, ...] = KNOWN_ENGINES

    # Statistical backend tunables
    entropy: EngineConfig = field(default_factory=EngineConfig)
    entropy_placeholder: str = ENTROPY_PLACEHOLDER

    # Pattern backend rule selection
    custom_rules: list[PatternRule] = field(default_factory=list)
    enable_rules: set[str] = field(default_factory=set)
    disable_rules: set[str] = field(default_factory=set)

    # Specific strings to never redact (false positive list)
    allowlist_strings: set[str] = field(default_factory=set)

    # Detect on text with terminal escape sequences removed
    strip_ansi: bool = True

    # Tie-break between backends on identical spans (lower wins)
    source_priority: dict[MatchSource, int] = field(
        default_factory=lambda: dict(DEFAULT_SOURCE_PRIORITY)
    )

    def __post_init__(self) -> None:
        self.engines = parse_engines(self.engines)

    @classmethod
    def from_dict(cls, data: dict) -> RedactionConfig:
        """
        Create RedactionConfig from a dictionary (e.g., from config file).

        Raises:
            ConfigurationError: If any rule, engine or entropy value is invalid
        """
        config = cls()

        if "engines" in data:
            config.engines = parse_engines(data["engines"])

        if "entropy" in data:
            entropy = data["entropy"]
            if not isinstance(entropy, dict):
                raise ConfigurationError("'entropy' section must be a table/mapping")
            config.entropy = engine_config_from_dict(entropy)
            if "placeholder" in entropy:
                config.entropy_placeholder = str(entropy["placeholder"])

        custom_rules = data.get("custom_rules", [])
        if not isinstance(custom_rules, list) or not all(
            isinstance(rule_data, dict) for rule_data in custom_rules
        ):
            raise ConfigurationError("'custom_rules' must be a list of tables/mappings")
        config.custom_rules = [PatternRule.from_dict(rule_data) for rule_data in custom_rules]

        rules = data.get("rules", {})
        if not isinstance(rules, dict):
            raise ConfigurationError("'rules' section must be a table/mapping")
        config.enable_rules = _name_set(
            "enable", rules.get("enable", data.get("enable_rules", []))
        )
        config.disable_rules = _name_set(
            "disable", rules.get("disable", data.get("disable_rules", []))
        )

        config.allowlist_strings = _name_set(
            "allowlist_strings", data.get("allowlist_strings", [])
        )

        if "strip_ansi" in data:
            config.strip_ansi = bool(data["strip_ansi"])

        if "source_priority" in data:
            priorities = data["source_priority"]
            if not isinstance(priorities, dict):
                raise ConfigurationError("'source_priority' must be a table/mapping")
            try:
                config.source_priority.update(
                    {MatchSource(k): int(v) for k, v in priorities.items()}
                )
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Invalid source_priority: {e}") from None

        return config


@dataclass
class RedactionResult:
    """Output of one Redactor.scan call."""

    output: str
    plan: RedactionPlan
    report: RedactionReport

    @property
    def changed(self) -> bool:
        return len(self.plan) > 0


class Redactor:
    """
    Redacts secrets from text content.

    Attributes:
        enabled: When False, text passes through untouched
        config: Backend selection and tunables
        engines: Instantiated detection backends, in run order
        redaction_counts: Running accepted-match count per rule
    """

    def __init__(
        self,
        enabled: bool = True,
        config: RedactionConfig | None = None,
        overrides: SessionOverrides | None = None,
        engines: list[DetectionEngine] | None = None,
    ):
        """
        Initialize the redactor.

        Args:
            enabled: Whether redaction is enabled
            config: Redaction configuration
            overrides: Session overrides applied to every scan
            engines: Explicit backends (replaces those named in config)
        """
        self.enabled = enabled
        self.config = config or RedactionConfig()
        self.engines = engines if engines is not None else self._build_engines()

        session = SessionOverrides(allowed_values=frozenset(self.config.allowlist_strings))
        self.aggregator = MatchAggregator(
            source_priority=self.config.source_priority,
            overrides=session.merged(overrides),
            entropy_placeholder=self.config.entropy_placeholder,
        )

        # Track redaction stats
        self.redaction_counts: dict[str, int] = {}

    def _build_engines(self) -> list[DetectionEngine]:
        engines: list[DetectionEngine] = []
        if "pattern" in self.config.engines:
            engines.append(
                PatternEngine(
                    rules=[*SECRET_PATTERNS, *self.config.custom_rules],
                    enable_rules=self.config.enable_rules,
                    disable_rules=self.config.disable_rules,
                )
            )
        if "entropy" in self.config.engines:
            engines.append(
                EntropyEngine(
                    self.config.entropy, placeholder=self.config.entropy_placeholder
                )
            )
        return engines

    def scan(
        self,
        content: str | bytes,
        overrides: SessionOverrides | None = None,
    ) -> RedactionResult:
        """
        Detect, resolve and apply redactions.

        Args:
            content: UTF-8 text (bytes are decoded strictly)
            overrides: Extra session overrides for this call only

        Returns:
            RedactionResult with the sanitized text, plan and report
        """
        text = ensure_text(content)
        if not self.enabled or not text:
            return RedactionResult(text, RedactionPlan(), RedactionReport())

        if self.config.strip_ansi:
            stripped = StrippedText(text)
            candidate_sets = [
                [stripped.map_match(match) for match in engine.find_matches(stripped.text)]
                for engine in self.engines
            ]
        else:
            candidate_sets = [engine.find_matches(text) for engine in self.engines]
        plan, report = self.aggregator.build_plan(text, candidate_sets, overrides)

        for name, count in report.counts().items():
            self.redaction_counts[name] = self.redaction_counts.get(name, 0) + count

        logger.debug(
            "Redacted %d spans (%d bytes); %d superseded, %d excluded",
            len(plan),
            report.total_redacted_bytes,
            len(report.superseded),
            len(report.excluded),
        )
        return RedactionResult(apply_plan(text, plan), plan, report)

    def redact(self, content: str | bytes) -> str:
        """
        Redact secrets from content.

        Args:
            content: Text content to redact

        Returns:
            Redacted content
        """
        return self.scan(content).output

    def redact_line(self, line: str | bytes) -> str:
        """
        Redact secrets from a single line.

        Each line is analyzed on its own, so a streaming caller can emit
        output as soon as a line arrives.
        """
        return self.scan(line).output

    def heat_scores(self, content: str | bytes) -> list[HeatScore]:
        """Per-position entropy heat for ``content``."""
        return heat_scores(content)

    def get_stats(self) -> dict[str, int]:
        """Get redaction statistics."""
        return dict(sorted(self.redaction_counts.items(), key=lambda x: (-x[1], x[0])))

    def reset_stats(self) -> None:
        """Reset redaction statistics."""
        self.redaction_counts.clear()


def create_redactor(
    enabled: bool = True,
    config: RedactionConfig | None = None,
    overrides: SessionOverrides | None = None,
) -> Redactor:
    """Factory function to create a redactor instance."""
    return Redactor(enabled=enabled, config=config, overrides=overrides)
