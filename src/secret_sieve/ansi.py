"""
Terminal escape sequences.

Colored log output wraps values in SGR codes (``\\x1b[32m...\\x1b[0m``), which
breaks word boundaries and inflates entropy. Detection runs on the text with
escapes removed; ``StrippedText`` maps the resulting spans back onto the
original so the escapes themselves are written out untouched.
"""

from __future__ import annotations

import re

from .config import CandidateMatch

ANSI_ESCAPE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"  # CSI, including SGR colors
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"  # OSC, ended by BEL or ST
    r"|\x1b[@-Z\\-_]"  # two-character escapes
)


class StrippedText:
    """
    Text with ANSI escapes removed, plus offsets back into the original.

    Attributes:
        original: Text as received
        text: ``original`` without escape sequences
    """

    def __init__(self, original: str):
        self.original = original
        self._offsets: list[int] | None = None
        if "\x1b" not in original:
            self.text = original
            return

        parts = []
        offsets: list[int] = []
        cursor = 0
        for escape in ANSI_ESCAPE.finditer(original):
            parts.append(original[cursor:escape.start()])
            offsets.extend(range(cursor, escape.start()))
            cursor = escape.end()
        parts.append(original[cursor:])
        offsets.extend(range(cursor, len(original)))
        offsets.append(len(original))

        self.text = "".join(parts)
        if len(self.text) != len(original):
            self._offsets = offsets

    @property
    def has_escapes(self) -> bool:
        return self._offsets is not None

    def original_span(self, start: int, end: int) -> tuple[int, int]:
        """
        Map ``[start, end)`` of the stripped text onto the original.

        The end maps to just past the last kept character, so escapes that
        follow a span stay outside it.
        """
        if self._offsets is None:
            return start, end
        if end <= start:
            return self._offsets[start], self._offsets[start]
        return self._offsets[start], self._offsets[end - 1] + 1

    def map_match(self, match: CandidateMatch) -> CandidateMatch:
        if self._offsets is None:
            return match
        start, end = self.original_span(match.start, match.end)
        if (start, end) == match.span:
            return match
        return match.with_span(start, end)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from ``text``."""
    return ANSI_ESCAPE.sub("", text)
