"""Exception hierarchy for secret-sieve."""

from __future__ import annotations


class SieveError(Exception):
    """Base class for all secret-sieve errors."""


class InvalidInputError(SieveError):
    """Input could not be treated as UTF-8 text."""


class ConfigurationError(SieveError):
    """An engine, rule or config-file value is out of range or malformed."""


class InternalInvariantViolation(SieveError):
    """
    A detection backend or caller handed the aggregator data that breaks
    its guarantees (out-of-bounds or empty spans, overlapping plan entries,
    back-references to groups that were never captured).

    This signals a programming error, not bad user input.
    """
