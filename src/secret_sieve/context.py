"""
Context trigger detection.

Looks for credential-flavoured words ("key", "token", "password", ...) in
the text just before a candidate window. A hit is evidence that the window
holds a secret and earns the candidate a confidence bonus.

The vocabulary is compiled into a single case-insensitive named list, so a
scan costs one pass over the window however many triggers are configured.
Triggers only count on ASCII word boundaries: the characters on either side
must not be letters or digits. ``_``, ``=``, quotes and punctuation all
count as boundaries, so ``AUTH_KEY=`` fires on both "auth" and "key" while
``monkey`` and ``tokenizer`` do not fire at all.
"""

from __future__ import annotations

from collections.abc import Iterable

import regex

from .errors import ConfigurationError

DEFAULT_TRIGGERS: tuple[str, ...] = (
    "key",
    "api",
    "apikey",
    "token",
    "secret",
    "password",
    "passwd",
    "pwd",
    "auth",
    "bearer",
    "access",
    "id",
    "credential",
    "credentials",
    "private",
    "client",
    "aws",
    "gcp",
    "azure",
    "stripe",
    "ghp",
)


class ContextMatcher:
    """Multi-word trigger search over short windows of text."""

    def __init__(self, triggers: Iterable[str] = DEFAULT_TRIGGERS):
        words = sorted({str(t).strip().lower() for t in triggers if str(t).strip()})
        for word in words:
            if not word.isascii():
                raise ConfigurationError(f"Context trigger must be ASCII: {word!r}")
        self.triggers: tuple[str, ...] = tuple(words)
        self._pattern = (
            regex.compile(
                r"(?<![A-Za-z0-9])\L<triggers>(?![A-Za-z0-9])",
                regex.IGNORECASE,
                triggers=list(words),
            )
            if words
            else None
        )

    def scan(self, window: str) -> frozenset[str]:
        """Return the (lowercased) triggers present in ``window``."""
        if self._pattern is None or not window:
            return frozenset()
        return frozenset(
            m.group(0).lower() for m in self._pattern.finditer(window, overlapped=True)
        )

    def has_trigger(self, window: str) -> bool:
        """Check if any trigger appears in ``window``."""
        if self._pattern is None or not window:
            return False
        return self._pattern.search(window) is not None

    def scan_preceding(self, text: str, start: int, lookback: int) -> bool:
        """Check the ``lookback`` characters before ``start`` for a trigger."""
        if self._pattern is None or lookback <= 0 or start <= 0:
            return False
        # pos/endpos rather than a slice, so the boundary check can see
        # the character just before the lookback window
        return self._pattern.search(text, max(0, start - lookback), start) is not None
