"""
Heat-Seeker: narrows a coarse high-entropy span to the secret itself.

Statistical windows are blunt: they start wherever a tile started and end
wherever the token ended, so they tend to swallow the label before a secret
(``api_key=``) and any natural-language suffix after it (``_backup``,
``.json``). Refinement runs in two steps:

1. Semantic anchoring: look left from the span start to the beginning of
   its token, read one ``label`` + delimiter run such as ``auth_key=`` or
   ``"token":"`` and snap the start just past it. Anchoring happens once,
   so an ``=`` inside the value itself is never taken for a second label.
2. Decay walk: walk back from the end while the tail is "cold", dropping
   trailing punctuation, ``_word`` segments of plain lowercase, file
   extensions and long lowercase runs. The walk stops at the first "hot"
   character. An underscore is a hard stop for character-level trimming,
   so a lowercase tail never bleeds across it into the secret.

A refined span always lies inside the original one. When refinement would
leave nothing, the original candidate is returned unchanged.
"""

from __future__ import annotations

import re

from .config import CandidateMatch
from .stats import shannon_entropy

# Characters that separate a label from its value
ANCHOR_DELIMITERS = frozenset("=:\"'`")
ASSIGNMENT_OPERATORS = frozenset("=:")

# Characters that may open a token before its label
OPENING_CHARACTERS = frozenset("\"'`([{")

# Characters dropped from the tail of a span
TRAILING_PUNCTUATION = frozenset(".,;:!?)]}>\"'`")

_FILE_EXTENSION = re.compile(r"\.[a-z][a-z0-9]{0,4}$")

# One identifier word: lowercase, UPPERCASE, or camel humps of real words
_LABEL_WORD = re.compile(
    r"[a-z]+[0-9]*"
    r"|[A-Z][A-Z0-9]*"
    r"|[A-Z]?[a-z]{2,}(?:[A-Z][a-z]{2,})*[0-9]*"
    r"|[a-z]+(?:[A-Z][a-z]{2,})+[0-9]*"
)
_LABEL_SEPARATORS = re.compile(r"[-_.]")


def _is_label_char(ch: str) -> bool:
    return (ch.isascii() and ch.isalnum()) or ch in "_-."


def looks_like_label(candidate: str) -> bool:
    """Check if ``candidate`` reads as an identifier rather than random data."""
    words = [word for word in _LABEL_SEPARATORS.split(candidate) if word]
    return bool(words) and all(_LABEL_WORD.fullmatch(word) for word in words)


def _is_punctuation_only(segment: str) -> bool:
    return all(ch in TRAILING_PUNCTUATION or ch in ANCHOR_DELIMITERS for ch in segment)


def _trailing_lowercase(segment: str) -> int:
    count = 0
    for ch in reversed(segment):
        if "a" <= ch <= "z":
            count += 1
        else:
            break
    return count


class HeatSeeker:
    """
    Span refiner for statistical candidates.

    Args:
        max_label_length: Longest label that anchoring may skip
        min_cold_word: Shortest lowercase ``_word`` suffix treated as prose
        min_cold_run: Shortest bare lowercase tail treated as prose
    """

    def __init__(
        self,
        max_label_length: int = 64,
        min_cold_word: int = 3,
        min_cold_run: int = 5,
    ):
        self.max_label_length = max_label_length
        self.min_cold_word = min_cold_word
        self.min_cold_run = min_cold_run

    def _is_cold_word(self, segment: str) -> bool:
        return (
            len(segment) >= self.min_cold_word
            and segment.isascii()
            and segment.isalpha()
            and segment.islower()
        )

    @staticmethod
    def token_origin(text: str, start: int) -> int:
        """Start of the whitespace-delimited token holding ``start``."""
        pos = start
        while pos > 0 and not text[pos - 1].isspace():
            pos -= 1
        return pos

    def anchor_start(self, text: str, start: int, end: int) -> int:
        """Snap ``start`` past the label of the token it sits in."""
        i = self.token_origin(text, start)
        while i < end and text[i] in OPENING_CHARACTERS:
            i += 1
        value_start = i

        j = i
        while j < end and _is_label_char(text[j]):
            j += 1
        k = j
        while k < end and text[k] in ANCHOR_DELIMITERS:
            k += 1

        # A label needs an assignment operator; a bare quote after a
        # label is the closing quote of a value
        if (
            0 < j - i <= self.max_label_length
            and ASSIGNMENT_OPERATORS.intersection(text[j:k])
            and looks_like_label(text[i:j])
        ):
            value_start = k

        if value_start <= start:
            return start
        # Padding or punctuation closing a value is not an assignment
        if _is_punctuation_only(text[value_start:end]):
            return start
        return value_start

    def decay_end(self, text: str, start: int, end: int) -> int:
        """Walk back from ``end`` over cold characters; never below ``start``."""
        pos = end
        while pos > start:
            if text[pos - 1] in TRAILING_PUNCTUATION:
                pos -= 1
                continue

            underscore = text.rfind("_", start, pos)
            segment_start = underscore + 1 if underscore >= 0 else start
            segment = text[segment_start:pos]

            if underscore >= 0 and self._is_cold_word(segment):
                pos = underscore
                continue

            extension = _FILE_EXTENSION.search(segment)
            if extension is not None and extension.start() > 0:
                pos = segment_start + extension.start()
                continue

            run = _trailing_lowercase(segment)
            if run >= self.min_cold_run:
                pos -= run
                continue

            break
        return pos

    def refine(self, text: str, candidate: CandidateMatch) -> CandidateMatch:
        """
        Narrow ``candidate`` to the secret it most likely contains.

        Idempotent: refining a refined match returns it unchanged.
        """
        start = self.anchor_start(text, candidate.start, candidate.end)
        end = self.decay_end(text, start, candidate.end)
        if end <= start:
            return candidate
        if (start, end) == candidate.span:
            return candidate
        return candidate.with_span(start, end, entropy=shannon_entropy(text[start:end]))


_default_seeker = HeatSeeker()


def refine(text: str, candidate: CandidateMatch) -> CandidateMatch:
    """Refine ``candidate`` with the default Heat-Seeker settings."""
    return _default_seeker.refine(text, candidate)
