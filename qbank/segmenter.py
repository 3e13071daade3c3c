"""
Block Segmenter
===============
Splits a raw multi-question paste into per-question text blocks.

Two modes:
    - Separator mode: used whenever the paste contains at least one
      separator line (three or more dashes, or a ### heading).
    - Header mode: otherwise, a block starts before each recognized
      question header (localized "Question N" or a bold "**N.**" marker),
      pulling along the metadata lines right above it.

Every non-blank, non-separator input line lands in exactly one block,
in input order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .metadata import parse_metadata_line
from .normalizer import canonicalize

logger = logging.getLogger(__name__)

# ─── Boundary Patterns ────────────────────────────────────────────────────────

SEPARATOR_PATTERN = re.compile(r"^\s*(?:-{3,}\s*|#{3}.*)$")

# "Question 3", "Creative Question 3", "প্রশ্ন ৩", "সৃজনশীল প্রশ্ন ৩"
QUESTION_HEADER_PATTERN = re.compile(
    r"^\s*\*{0,2}\s*(?:creative\s+question|question|সৃজনশীল\s+প্রশ্ন|প্রশ্ন)"
    r"\s*(?:no\.?|নং)?\s*[:\-–]?\s*[\d০-৯]+",
    re.IGNORECASE,
)

# "**15.**", "**১৫।**"
BOLD_NUMBER_PATTERN = re.compile(r"^\s*\*{1,2}\s*[\d০-৯]+\s*[.।]\s*\*{1,2}")


@dataclass
class TextBlock:
    """One question's worth of raw lines."""
    index: int
    start_line: int
    text: str

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")


def is_separator(line: str) -> bool:
    return bool(SEPARATOR_PATTERN.match(line))


def is_question_header(line: str) -> bool:
    return bool(
        QUESTION_HEADER_PATTERN.match(line) or BOLD_NUMBER_PATTERN.match(line)
    )


def segment(raw: str) -> list[TextBlock]:
    """
    Split `raw` into non-empty blocks.

    In header mode only bold numbered markers ("**15.**") and localized
    question headers open a block. A plain "15." line does not: numeric
    MCQ options and numbered answer lines share that shape, so plain
    numbered questions stay in one block and the body parsers split them
    into records.
    """
    lines = canonicalize(raw).split("\n")

    if any(is_separator(line) for line in lines):
        spans = _split_on_separators(lines)
        mode = "separator"
    else:
        spans = _split_on_headers(lines)
        mode = "header"

    blocks: list[TextBlock] = []
    for start, chunk in spans:
        # Trim leading/trailing blank lines, keep interior structure
        while chunk and not chunk[0].strip():
            chunk = chunk[1:]
            start += 1
        while chunk and not chunk[-1].strip():
            chunk = chunk[:-1]
        if not chunk:
            continue
        blocks.append(TextBlock(
            index=len(blocks),
            start_line=start + 1,
            text="\n".join(chunk),
        ))

    logger.debug(f"Segmented input into {len(blocks)} blocks ({mode} mode)")
    return blocks


# ─── Split Strategies ─────────────────────────────────────────────────────────


def _split_on_separators(lines: list[str]) -> list[tuple[int, list[str]]]:
    spans: list[tuple[int, list[str]]] = []
    start = 0
    current: list[str] = []

    for i, line in enumerate(lines):
        if is_separator(line):
            spans.append((start, current))
            start = i + 1
            current = []
            continue
        current.append(line)

    spans.append((start, current))
    return spans


def _split_on_headers(lines: list[str]) -> list[tuple[int, list[str]]]:
    """
    Cut before each header line, moving the cut up over a contiguous run
    of metadata lines (blank lines allowed inside the run). A metadata run
    that follows body content also starts a new block.
    """
    cuts = {0}
    has_body = False
    meta_run_start = None

    for i, line in enumerate(lines):
        stripped = line.strip()
        if not stripped:
            continue

        if parse_metadata_line(stripped) is not None:
            if meta_run_start is None:
                meta_run_start = i
                if has_body:
                    cuts.add(i)
                    has_body = False
            continue

        if is_question_header(stripped):
            cuts.add(meta_run_start if meta_run_start is not None else i)

        meta_run_start = None
        has_body = True

    ordered = sorted(cuts)
    spans = []
    for n, start in enumerate(ordered):
        end = ordered[n + 1] if n + 1 < len(ordered) else len(lines)
        spans.append((start, lines[start:end]))
    return spans
