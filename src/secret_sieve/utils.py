"""
Utility functions for secret-sieve.

Includes strict UTF-8 decoding with encoding hints, input reading,
audit hashing and log-safe masking of sensitive values.
"""

from __future__ import annotations

import hashlib
import os
import re
import sys
from pathlib import Path

import chardet

from .errors import InvalidInputError

# Environment switch that lets debug logs show raw matched text
ALLOW_DEBUG_PII_ENV = "SECRET_SIEVE_ALLOW_DEBUG_PII"

_WHITESPACE_RUN = re.compile(r"\s+")


def guess_encoding(data: bytes, sample_size: int = 8192) -> str | None:
    """
    Best guess at the encoding of a byte string.

    Strategy:
    1. Check for BOM markers first
    2. Fall back to chardet on a sample

    Only used to make decode errors actionable; input is never decoded
    with the guessed encoding.
    """
    sample = data[:sample_size]
    if sample.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if sample.startswith(b"\xff\xfe"):
        return "utf-16-le"
    if sample.startswith(b"\xfe\xff"):
        return "utf-16-be"

    result = chardet.detect(sample)
    encoding = result.get("encoding")
    return encoding.lower() if encoding else None


def decode_utf8(data: bytes) -> str:
    """
    Decode bytes as strict UTF-8.

    Raises:
        InvalidInputError: If the bytes are not valid UTF-8
    """
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        guess = guess_encoding(data)
        hint = f" (looks like {guess})" if guess else ""
        raise InvalidInputError(
            f"Input is not valid UTF-8 at byte {e.start}{hint}"
        ) from None


def ensure_text(data: str | bytes) -> str:
    """
    Normalize input to a ``str`` that round-trips through UTF-8.

    Bytes are decoded strictly. Strings carrying lone surrogates (as
    produced by ``surrogateescape``) are rejected because they have no
    UTF-8 encoding.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        return decode_utf8(bytes(data))
    if not isinstance(data, str):
        raise InvalidInputError(f"Expected str or bytes, got {type(data).__name__}")
    try:
        data.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidInputError(
            f"Input contains a character with no UTF-8 encoding at offset {e.start}"
        ) from None
    return data


def utf8_length(s: str) -> int:
    """Length of ``s`` in UTF-8 bytes."""
    return len(s.encode("utf-8"))


def read_input(path: Path | None) -> bytes:
    """
    Read raw input bytes from a file, or from stdin when ``path`` is None
    or ``-``.
    """
    if path is None or str(path) == "-":
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


def canonical_sample_hash(rule_name: str, snippet: str) -> str:
    """
    Stable audit hash for a matched sample.

    The snippet is trimmed, lowercased and whitespace-collapsed first, so
    trivially different renderings of the same value hash identically.
    """
    normalized = _WHITESPACE_RUN.sub(" ", snippet.strip().lower())
    hash_input = f"{rule_name}:{normalized}"
    return hashlib.sha256(hash_input.encode("utf-8")).hexdigest()


def debug_pii_allowed() -> bool:
    """Check if raw matched text may appear in debug logs."""
    return os.environ.get(ALLOW_DEBUG_PII_ENV, "").strip().lower() in {"1", "true", "yes"}


def redact_sensitive(s: str) -> str:
    """
    Mask a value for logging.

    Short values collapse to ``[REDACTED]``; longer ones keep only their
    length. Returns ``s`` unchanged when debug PII logging is enabled.
    """
    if debug_pii_allowed():
        return s
    if len(s) <= 8:
        return "[REDACTED]"
    return f"[REDACTED: {len(s)} chars]"


def truncate_string(s: str, max_length: int, suffix: str = "...") -> str:
    """Truncate a string to max length, adding suffix if truncated."""
    if len(s) <= max_length:
        return s
    return s[:max_length - len(suffix)] + suffix
