"""
Text Normalizer
===============
Unicode-stable canonicalization shared by the parsers, the corruption
fixers and the duplicate key builder.

Two flavours are provided:
    - canonicalize(): parsing-side cleanup. Keeps case and line structure.
    - normalize(): comparison key. Lower-cased, single-spaced, trimmed.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

from .models import IMAGE_PLACEHOLDER

# ─── Character Tables ─────────────────────────────────────────────────────────

# Zero-width space/non-joiner/joiner, word joiner, BOM, soft hyphen
INVISIBLE_PATTERN = re.compile("[\u200b-\u200d\u2060\ufeff\u00ad]")

WHITESPACE_PATTERN = re.compile(r"\s+")

BENGALI_PATTERN = re.compile("[\u0980-\u09ff]")

BENGALI_DIGITS = str.maketrans("০১২৩৪৫৬৭৮৯", "0123456789")

LABEL_MAP: dict[str, str] = {
    "a": "a", "b": "b", "c": "c", "d": "d",
    "ক": "a", "খ": "b", "গ": "c", "ঘ": "d",
    "1": "a", "2": "b", "3": "c", "4": "d",
    "১": "a", "২": "b", "৩": "c", "৪": "d",
    "①": "a", "②": "b", "③": "c", "④": "d",
    "❶": "a", "❷": "b", "❸": "c", "❹": "d",
}

PLACEHOLDER_PATTERNS = [
    re.compile(r"^\[?\s*there\s+is\s+a\s+picture\s*\]?$", re.IGNORECASE),
    re.compile(r"^\[?\s*ছবি\s*আছে\s*\]?$"),
    re.compile(r"^\[\s*(?:picture|image|ছবি|চিত্র)[^\]]*\]$", re.IGNORECASE),
]

BOLD_EDGE_PATTERN = re.compile(r"^\*+\s*|\s*\*+$")


# ─── Public API ───────────────────────────────────────────────────────────────


def normalize(text: Optional[str]) -> str:
    """
    Comparison form of `text`.

    Lower-cases, strips invisible code points, applies NFC (so both
    encodings of Bengali য় compare equal), collapses whitespace and trims.
    Idempotent.
    """
    if not text:
        return ""
    text = text.lower()
    text = INVISIBLE_PATTERN.sub("", text)
    text = unicodedata.normalize("NFC", text)
    text = WHITESPACE_PATTERN.sub(" ", text)
    return text.strip()


def canonicalize(text: Optional[str]) -> str:
    """NFC + invisible stripping. Case and newlines are preserved."""
    if not text:
        return ""
    text = INVISIBLE_PATTERN.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return unicodedata.normalize("NFC", text)


def normalize_label(raw: Optional[str]) -> Optional[str]:
    """
    Map any supported option/part label to one of a-d.

    Accepts Latin letters (any case), Bengali letters, Latin and Bengali
    digits 1-4 and circled digits, optionally wrapped in brackets or
    followed by a dot. Returns None for anything else.
    """
    if not raw:
        return None
    key = raw.strip().strip("()[].)").strip().lower()
    return LABEL_MAP.get(key)


def to_ascii_digits(text: str) -> str:
    return text.translate(BENGALI_DIGITS)


def strip_bold(line: str) -> str:
    """Remove markdown bold/italic asterisks at both edges of a line."""
    return BOLD_EDGE_PATTERN.sub("", line.strip())


def contains_bengali(text: Optional[str]) -> bool:
    return bool(text) and bool(BENGALI_PATTERN.search(text))


def is_placeholder(text: Optional[str]) -> bool:
    """True if `text` is only an image placeholder phrase."""
    if not text:
        return False
    stripped = canonicalize(text).strip()
    if stripped == IMAGE_PLACEHOLDER:
        return True
    return any(p.match(stripped) for p in PLACEHOLDER_PATTERNS)
