"""
Pattern backend: known secret and PII formats matched by regular expression.

Features:
- Built-in rules for cloud and SaaS credentials (AWS, GitHub, Stripe, ...)
- Context rules for assignments, env exports, connection strings and
  Authorization headers, with back-reference templates that keep the label
- PII rules with programmatic validation (email, US SSN, Luhn-checked cards)
- Opt-in rules, enable/disable lists and custom rules from config

Pattern matches are verifiable formats, so they carry MAX_CONFIDENCE.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .config import MAX_CONFIDENCE, CandidateMatch, MatchSource
from .engines import DetectionEngine
from .errors import ConfigurationError
from .utils import redact_sensitive

logger = logging.getLogger(__name__)

MAX_PATTERN_LENGTH = 500

_TEMPLATE_REFERENCE = re.compile(r"\\g<(\w+)>|\\(\d{1,2})")


def _normalize_template(name: str, pattern: re.Pattern[str], template: str) -> str:
    """Rewrite named references to numbered ones and check every group exists."""

    def check(match: re.Match[str]) -> str:
        ref = match.group(1) if match.group(1) is not None else match.group(2)
        if ref.isdigit():
            index = int(ref)
        elif ref in pattern.groupindex:
            index = pattern.groupindex[ref]
        else:
            raise ConfigurationError(f"Rule '{name}' references unknown group '{ref}'")
        if not 1 <= index <= pattern.groups:
            raise ConfigurationError(
                f"Rule '{name}' references group {index}, pattern has {pattern.groups}"
            )
        return f"\\g<{index}>"

    return _TEMPLATE_REFERENCE.sub(check, template)


@dataclass
class PatternRule:
    """A rule for detecting and redacting a known secret format."""

    name: str
    pattern: re.Pattern[str]
    replacement: str = "[REDACTED]"
    description: str = ""
    # Optional validator for the full match, for reducing false positives
    validator: Callable[[str], bool] | None = None
    # Opt-in rules only run when named in an enable list
    opt_in: bool = False

    def __post_init__(self) -> None:
        self.replacement = _normalize_template(self.name, self.pattern, self.replacement)

    @classmethod
    def from_dict(cls, data: dict) -> PatternRule:
        """
        Create a rule from a config-file mapping.

        Raises:
            ConfigurationError: If the pattern is missing, too long or invalid
        """
        name = str(data.get("name") or "custom")
        source = data.get("pattern")
        if not source:
            raise ConfigurationError(f"Rule '{name}' has no pattern")
        if len(source) > MAX_PATTERN_LENGTH:
            raise ConfigurationError(
                f"Rule '{name}' pattern is {len(source)} characters, limit is {MAX_PATTERN_LENGTH}"
            )

        flags = 0
        if data.get("multiline"):
            flags |= re.MULTILINE
        if data.get("dot_matches_new_line"):
            flags |= re.DOTALL
        if data.get("ignore_case"):
            flags |= re.IGNORECASE
        try:
            pattern = re.compile(source, flags)
        except re.error as e:
            raise ConfigurationError(f"Rule '{name}' has an invalid pattern: {e}") from None

        return cls(
            name=name,
            pattern=pattern,
            replacement=str(
                data.get("replacement", data.get("replace_with", "[CUSTOM_REDACTED]"))
            ),
            description=str(data.get("description", "")),
            opt_in=bool(data.get("opt_in", False)),
        )


def is_valid_ssn(value: str) -> bool:
    """Reject SSNs with a never-issued area, group or serial number."""
    parts = value.split("-")
    if len(parts) != 3 or [len(p) for p in parts] != [3, 2, 4]:
        return False
    if not all(p.isdigit() for p in parts):
        return False
    area, group, serial = (int(p) for p in parts)
    return not (area == 0 or area == 666 or area >= 800 or group == 0 or serial == 0)


def is_valid_luhn(digits: str) -> bool:
    """Luhn checksum over a string of decimal digits."""
    if not digits or not digits.isdigit():
        return False
    total = 0
    for i, ch in enumerate(reversed(digits)):
        digit = int(ch)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def is_valid_card_number(value: str) -> bool:
    """Strip separators, then require 13-19 digits passing the Luhn check."""
    digits = "".join(ch for ch in value if ch.isdigit())
    return 13 <= len(digits) <= 19 and is_valid_luhn(digits)


def _rule(name: str, pattern: str, replacement: str, description: str, **kwargs) -> PatternRule:
    return PatternRule(
        name=name,
        pattern=re.compile(pattern),
        replacement=replacement,
        description=description,
        **kwargs,
    )


# Built-in rules. Overlaps between rules are settled by the aggregator
# (earliest start, then longest span), not by list order.
SECRET_PATTERNS: list[PatternRule] = [
    # AWS
    _rule(
        "aws_access_key",
        r"\b(AKIA[0-9A-Z]{16})\b",
        "[AWS_ACCESS_KEY_REDACTED]",
        "AWS access key ID",
    ),
    _rule(
        "aws_secret_key",
        r"(?i)(aws[_\-]?secret[_\-]?(?:access[_\-]?)?key)['\"]?\s*[:=]\s*['\"]?([A-Za-z0-9/+=]{40})['\"]?",
        r"\1=[AWS_SECRET_REDACTED]",
        "AWS secret access key assignment",
    ),
    # GitHub
    _rule("github_token", r"\b(ghp_[A-Za-z0-9]{36})\b", "[GITHUB_TOKEN_REDACTED]",
          "GitHub personal access token"),
    _rule("github_oauth", r"\b(gho_[A-Za-z0-9]{36})\b", "[GITHUB_OAUTH_REDACTED]",
          "GitHub OAuth token"),
    _rule("github_app_token", r"\b(ghu_[A-Za-z0-9]{36})\b", "[GITHUB_APP_TOKEN_REDACTED]",
          "GitHub app user token"),
    _rule("github_refresh_token", r"\b(ghr_[A-Za-z0-9]{36})\b",
          "[GITHUB_REFRESH_TOKEN_REDACTED]", "GitHub refresh token"),
    # GitLab
    _rule("gitlab_token", r"\b(glpat-[A-Za-z0-9\-_]{20,})\b", "[GITLAB_TOKEN_REDACTED]",
          "GitLab personal access token"),
    # Slack
    _rule("slack_token", r"\b(xox[baprs]-[0-9A-Za-z\-]{10,})\b", "[SLACK_TOKEN_REDACTED]",
          "Slack bot, user or app token"),
    _rule(
        "slack_webhook",
        r"(https://hooks\.slack\.com/services/T[A-Z0-9]+/B[A-Z0-9]+/[A-Za-z0-9]+)",
        "[SLACK_WEBHOOK_REDACTED]",
        "Slack incoming webhook URL",
    ),
    # Stripe
    _rule("stripe_key", r"\b(sk_live_[A-Za-z0-9]{24,})\b", "[STRIPE_SECRET_KEY_REDACTED]",
          "Stripe live secret key"),
    _rule("stripe_test_key", r"\b(sk_test_[A-Za-z0-9]{24,})\b", "[STRIPE_TEST_KEY_REDACTED]",
          "Stripe test secret key"),
    # Twilio, SendGrid, Mailchimp
    _rule("twilio_api_key", r"\b(SK[0-9a-fA-F]{32})\b", "[TWILIO_KEY_REDACTED]",
          "Twilio API key SID"),
    _rule(
        "sendgrid_key",
        r"\b(SG\.[A-Za-z0-9\-_]{22,}\.[A-Za-z0-9\-_]{22,})\b",
        "[SENDGRID_KEY_REDACTED]",
        "SendGrid API key",
    ),
    _rule("mailchimp_key", r"\b([a-f0-9]{32}-us[0-9]{1,2})\b", "[MAILCHIMP_KEY_REDACTED]",
          "Mailchimp API key"),
    # Google, Firebase
    _rule("google_api_key", r"\b(AIza[0-9A-Za-z\-_]{35})\b", "[GOOGLE_API_KEY_REDACTED]",
          "Google API key"),
    _rule(
        "google_oauth",
        r"\b([0-9]+-[a-z0-9_]{32}\.apps\.googleusercontent\.com)\b",
        "[GOOGLE_OAUTH_REDACTED]",
        "Google OAuth client ID",
    ),
    _rule(
        "firebase_key",
        r"\b(AAAA[A-Za-z0-9_-]{7,}:[A-Za-z0-9_-]{140,})\b",
        "[FIREBASE_KEY_REDACTED]",
        "Firebase Cloud Messaging server key",
    ),
    # Heroku, npm, PyPI
    _rule(
        "heroku_api_key",
        r"(?i)(heroku[_\-]?api[_\-]?key)['\"]?\s*[:=]\s*['\"]?"
        r"([a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})['\"]?",
        r"\1=[HEROKU_KEY_REDACTED]",
        "Heroku API key assignment",
    ),
    _rule("npm_token", r"\b(npm_[A-Za-z0-9]{36})\b", "[NPM_TOKEN_REDACTED]",
          "npm access token"),
    _rule("pypi_token", r"\b(pypi-[A-Za-z0-9\-_]{50,})\b", "[PYPI_TOKEN_REDACTED]",
          "PyPI upload token"),
    # Key material
    _rule(
        "private_key_header",
        r"(-----BEGIN\s+(?:RSA\s+|DSA\s+|EC\s+|OPENSSH\s+)?PRIVATE\s+KEY-----[\s\S]*?"
        r"-----END\s+(?:RSA\s+|DSA\s+|EC\s+|OPENSSH\s+)?PRIVATE\s+KEY-----)",
        "[PRIVATE_KEY_REDACTED]",
        "PEM private key block",
    ),
    _rule(
        "jwt_token",
        r"\b(eyJ[A-Za-z0-9\-_]+\.eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+)\b",
        "[JWT_TOKEN_REDACTED]",
        "JSON Web Token",
    ),
    # Assignments: key="value", key: "value", "key": "value", key = value
    _rule(
        "generic_secret",
        r"(?i)((?:api[_\-]?key|apikey|secret[_\-]?key|secretkey|auth[_\-]?token|authtoken"
        r"|access[_\-]?token|accesstoken|password|passwd|pwd|credentials?|bearer))"
        r"(['\"]?\s*[:=]\s*['\"]?)([A-Za-z0-9\-_./+=]{16,})(['\"]?)",
        r"\1\2[SECRET_REDACTED]\4",
        "Secret-looking value assigned to a credential-named key",
    ),
    _rule(
        "env_secret",
        r"(?i)(export\s+(?:API_KEY|SECRET_KEY|AUTH_TOKEN|ACCESS_TOKEN|PASSWORD|DATABASE_URL"
        r"|PRIVATE_KEY)[=])([^\s\n]+)",
        r"\1[SECRET_REDACTED]",
        "Shell export of a credential variable",
    ),
    _rule(
        "connection_string",
        r"((?:postgres|mysql|mongodb|redis|amqp)(?:ql)?://[^:\s]+:)([^@\s]+)(@)",
        r"\1[PASSWORD_REDACTED]\3",
        "Password inside a database or broker URL",
    ),
    _rule(
        "url_auth",
        r"(https?://[^:\s/]+:)([^@\s]+)(@[^\s]+)",
        r"\1[PASSWORD_REDACTED]\3",
        "Basic-auth password inside an HTTP URL",
    ),
    # Headers
    _rule(
        "auth_bearer",
        r"(?i)(Authorization:\s*Bearer\s+)([A-Za-z0-9\-_./+=]{20,})",
        r"\1[BEARER_TOKEN_REDACTED]",
        "Bearer token in an Authorization header",
    ),
    _rule(
        "auth_basic",
        r"(?i)(Authorization:\s*Basic\s+)([A-Za-z0-9+/=]{20,})",
        r"\1[BASIC_AUTH_REDACTED]",
        "Basic credentials in an Authorization header",
    ),
    _rule(
        "x_api_key_header",
        r"(?i)(X-API-Key:\s*)([A-Za-z0-9\-_./+=]{16,})",
        r"\1[API_KEY_REDACTED]",
        "X-API-Key header value",
    ),
    # PII
    _rule(
        "email",
        r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}\b",
        "[EMAIL_REDACTED]",
        "Email address",
    ),
    _rule(
        "us_ssn",
        r"\b\d{3}-\d{2}-\d{4}\b",
        "[SSN_REDACTED]",
        "US Social Security number",
        validator=is_valid_ssn,
    ),
    _rule(
        "credit_card",
        r"\b\d(?:[ -]?\d){12,18}\b",
        "[CREDIT_CARD_REDACTED]",
        "Payment card number (Luhn-checked)",
        validator=is_valid_card_number,
    ),
    _rule(
        "ipv4_address",
        r"\b(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)\b",
        "[IPV4_REDACTED]",
        "IPv4 address",
        opt_in=True,
    ),
]


def select_rules(
    rules: Iterable[PatternRule],
    enable_rules: Iterable[str] = (),
    disable_rules: Iterable[str] = (),
) -> list[PatternRule]:
    """
    Resolve the active rule set.

    Later rules replace earlier ones with the same name, so custom rules can
    override built-ins. Opt-in rules need to be enabled by name; disabled
    rules are dropped. Unknown names are logged and otherwise ignored.
    """
    by_name: dict[str, PatternRule] = {}
    for rule in rules:
        by_name[rule.name] = rule

    enabled = set(enable_rules)
    disabled = set(disable_rules)
    for unknown in sorted((enabled | disabled) - by_name.keys()):
        logger.warning("Rule '%s' in enable/disable list does not exist", unknown)

    return [
        rule
        for name, rule in by_name.items()
        if name not in disabled and (not rule.opt_in or name in enabled)
    ]


class PatternEngine(DetectionEngine):
    """
    Regex backend over a resolved rule set.

    Every match records its capture groups so the aggregator can expand
    back-references in the rule's replacement template.
    """

    name = "pattern"
    source = MatchSource.PATTERN

    def __init__(
        self,
        rules: Iterable[PatternRule] | None = None,
        enable_rules: Iterable[str] = (),
        disable_rules: Iterable[str] = (),
    ):
        self.rules = select_rules(
            SECRET_PATTERNS if rules is None else rules, enable_rules, disable_rules
        )

    def find_matches(self, text: str) -> list[CandidateMatch]:
        matches = []
        for rule in self.rules:
            for m in rule.pattern.finditer(text):
                if m.end() == m.start():
                    continue
                if rule.validator is not None and not rule.validator(m.group(0)):
                    logger.debug(
                        "Rule %s: %s failed validation", rule.name, redact_sensitive(m.group(0))
                    )
                    continue
                matches.append(
                    CandidateMatch(
                        start=m.start(),
                        end=m.end(),
                        confidence=MAX_CONFIDENCE,
                        source=MatchSource.PATTERN,
                        rule_name=rule.name,
                        replacement=rule.replacement,
                        groups=m.groups(),
                    )
                )
        matches.sort(key=lambda m: (m.start, -m.length, m.rule_name))
        return matches
