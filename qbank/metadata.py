"""
Metadata Extractor
==================
Recognizes bilingual metadata tokens inside a block:

    [Subject: Chemistry]      **[বিষয়: রসায়ন]**      *[Board: Dhaka]*
    Chapter: Acids             অধ্যায়ঃ ৩

Bracketed tokens may carry any key; unknown keys are consumed and ignored.
The bare `Key: value` form is accepted for known keys only, so ordinary
body lines containing a colon pass through untouched.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from pydantic import BaseModel

from .models import Diagnostic, SkipReason
from .normalizer import canonicalize, normalize

logger = logging.getLogger(__name__)

# ─── Patterns ─────────────────────────────────────────────────────────────────

BRACKETED_PATTERN = re.compile(
    r"^\s*\*{0,2}\s*\[\s*([^\]:ঃ]+?)\s*[:ঃ]\s*([^\]]*?)\s*\]\s*\*{0,2}\s*$"
)

BARE_PATTERN = re.compile(
    r"^\s*\*{0,2}\s*([^:ঃ*]{2,20}?)\s*\*{0,2}\s*[:ঃ]"
    r"\s*\*{0,2}\s*(.+?)\s*\*{0,2}\s*$"
)

_ALIASES = {
    "subject": ["subject", "topic", "বিষয়"],
    "chapter": ["chapter", "অধ্যায়"],
    "lesson": ["lesson", "পাঠ"],
    "board": ["board", "বোর্ড"],
}

KEY_ALIASES: dict[str, str] = {
    normalize(alias): field
    for field, aliases in _ALIASES.items()
    for alias in aliases
}


# ─── Models ───────────────────────────────────────────────────────────────────


class MetadataEntry(BaseModel):
    """One recognized metadata line. `field` is None for unknown keys."""
    key: str
    value: str
    field: Optional[str] = None


class RecordMetadata(BaseModel):
    subject: str = ""
    chapter: str = ""
    lesson: str = ""
    board: str = ""

    def update(self, entry: MetadataEntry) -> bool:
        """Apply `entry`; returns False for unknown keys."""
        if entry.field is None:
            return False
        setattr(self, entry.field, entry.value)
        return True

    def as_fields(self) -> dict:
        return self.model_dump()


# ─── Line Recognition ─────────────────────────────────────────────────────────


def parse_metadata_line(line: str) -> Optional[MetadataEntry]:
    """
    Recognize a single metadata line.

    Returns a MetadataEntry (field set for known keys, None for unknown
    bracketed keys), or None when the line is not metadata at all.
    """
    line = canonicalize(line).strip()
    if not line:
        return None

    match = BRACKETED_PATTERN.match(line)
    if match:
        key, value = match.group(1).strip(), match.group(2).strip()
        return MetadataEntry(
            key=key, value=value, field=KEY_ALIASES.get(normalize(key))
        )

    match = BARE_PATTERN.match(line)
    if match:
        field = KEY_ALIASES.get(normalize(match.group(1)))
        if field:
            return MetadataEntry(
                key=match.group(1).strip(),
                value=match.group(2).strip(),
                field=field,
            )

    return None


class MetadataExtractor:
    """Separates metadata lines from body lines within one block."""

    def __init__(self, diagnostics: Optional[list[Diagnostic]] = None):
        self.diagnostics = diagnostics

    def extract(self, lines: list[str]) -> tuple[RecordMetadata, list[str]]:
        metadata = RecordMetadata()
        body: list[str] = []

        for line in lines:
            entry = parse_metadata_line(line)
            if entry is None:
                body.append(line)
                continue
            if not metadata.update(entry):
                self.report_unknown(entry)

        return metadata, body

    def report_unknown(self, entry: MetadataEntry):
        logger.debug(f"Ignoring unknown metadata key: {entry.key!r}")
        if self.diagnostics is not None:
            self.diagnostics.append(Diagnostic(
                reason=SkipReason.UNKNOWN_METADATA_KEY,
                message=f"Unknown metadata key '{entry.key}'",
                context={"key": entry.key, "value": entry.value},
            ))
