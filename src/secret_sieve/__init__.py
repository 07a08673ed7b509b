"""secret-sieve: statistical secret detection and surgical redaction."""

from .aggregator import build_plan
from .config import CandidateMatch, EngineConfig, MatchSource
from .errors import (
    ConfigurationError,
    InternalInvariantViolation,
    InvalidInputError,
    SieveError,
)
from .heat import HeatScore, heat_scores
from .locator import scan
from .redactor import RedactionConfig, Redactor, create_redactor

__version__ = "0.1.0"

__all__ = [
    "CandidateMatch",
    "ConfigurationError",
    "EngineConfig",
    "HeatScore",
    "InternalInvariantViolation",
    "InvalidInputError",
    "MatchSource",
    "RedactionConfig",
    "Redactor",
    "SieveError",
    "__version__",
    "build_plan",
    "create_redactor",
    "heat_scores",
    "scan",
]
