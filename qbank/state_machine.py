"""
Line State Machine
==================
Shared machinery for the MCQ, CQ and SQ body parsers.

Each parser declares:
    - an enumerated `State` and its `INITIAL_STATE`
    - `classify(line)`, mapping a line to a (LineKind, payload) pair
    - a single `TRANSITIONS` table: (state, line kind) -> handler

A handler may return `REPROCESS` to have the same line fed again after it
changed state (lookback-by-one, used when a line both closes the current
record and opens the next). Lines with no transition are skipped and
reported as `unrecognized_line` diagnostics.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional

from .metadata import MetadataEntry, RecordMetadata
from .models import Diagnostic, Language, SkipReason
from .normalizer import canonicalize, contains_bengali

logger = logging.getLogger(__name__)

# Returned by a handler to feed the current line again
REPROCESS = object()

# A line can bounce at most this many times before it is dropped
MAX_REPROCESS = 3


class LineKind(Enum):
    """Line classes recognized across the body grammars."""
    METADATA = "METADATA"
    NOISE = "NOISE"
    IMAGE = "IMAGE"
    HEADER = "HEADER"
    OPTION = "OPTION"
    ANSWER = "ANSWER"
    EXPLANATION = "EXPLANATION"
    STIMULUS_HEADER = "STIMULUS_HEADER"
    QUESTIONS_HEADER = "QUESTIONS_HEADER"
    ANSWERS_HEADER = "ANSWERS_HEADER"
    PART = "PART"
    BULLET = "BULLET"
    TEXT = "TEXT"


Handler = Callable[[Any, str, Any], Any]


class LineStateMachine:
    """
    Base class for table-driven line parsers.

    Subclasses set `State`, `INITIAL_STATE` and `TRANSITIONS` and
    implement `classify()` and `finalize_record()`.
    """

    State: type[Enum]
    INITIAL_STATE: Enum
    TRANSITIONS: dict[tuple[Enum, LineKind], Handler] = {}
    name = "parser"

    def __init__(
        self,
        language: Optional[Language] = None,
        diagnostics: Optional[list[Diagnostic]] = None,
    ):
        self.language = language
        self.diagnostics = diagnostics
        self.reset()

    def reset(self):
        """Reset the state machine for a fresh block."""
        self.state = self.INITIAL_STATE
        self.metadata = RecordMetadata()
        self.records: list = []
        self.line_number = 0

    # ─── Driver ───────────────────────────────────────────────────────────

    def parse(self, text: str) -> list:
        """Parse one block of text into records."""
        self.reset()
        lines = canonicalize(text).split("\n")
        self.scan(lines)

        for number, raw in enumerate(lines, start=1):
            line = raw.strip()
            if not line:
                continue
            self.line_number = number
            self.feed(line)

        self.finalize_record()
        return self.records

    def feed(self, line: str):
        """Dispatch one non-blank line through the transition table."""
        for _ in range(MAX_REPROCESS):
            kind, payload = self.classify(line)
            if kind == LineKind.NOISE:
                return

            handler = self.TRANSITIONS.get((self.state, kind))
            if handler is None:
                self.skip(
                    SkipReason.UNRECOGNIZED_LINE,
                    f"No transition for {kind.value} in {self.state.value}",
                    line=line,
                )
                return

            if handler(self, line, payload) is not REPROCESS:
                return

        self.skip(
            SkipReason.UNRECOGNIZED_LINE,
            "Line reprocessed too many times",
            line=line,
        )

    # ─── Subclass Hooks ───────────────────────────────────────────────────

    def classify(self, line: str) -> tuple[LineKind, Any]:
        """Return the line kind and a kind-specific payload."""
        raise NotImplementedError

    def scan(self, lines: list[str]):
        """Look at the whole block before the first line is fed."""

    def finalize_record(self):
        """Close the record in progress, emitting it if well-formed."""
        raise NotImplementedError

    # ─── Shared Helpers ───────────────────────────────────────────────────

    def apply_metadata(self, entry: MetadataEntry):
        if not self.metadata.update(entry):
            self.skip(
                SkipReason.UNKNOWN_METADATA_KEY,
                f"Unknown metadata key '{entry.key}'",
                key=entry.key,
            )

    def detect_language(self, *texts: Optional[str]) -> Language:
        if self.language is not None:
            return self.language
        if any(contains_bengali(t) for t in texts):
            return Language.BN
        return Language.EN

    def emit(self, record):
        if record.is_well_formed:
            logger.debug(
                f"{self.name}: emitted {record.kind} record "
                f"(line {self.line_number})"
            )
            self.records.append(record)
        else:
            self.skip(
                SkipReason.INCOMPLETE_RECORD,
                f"Discarded malformed {record.kind} record",
                question_text=record.body_text[:80],
            )

    def skip(self, reason: SkipReason, message: str, **context):
        context.setdefault("line_number", self.line_number)
        logger.debug(f"{self.name}: {message} {context}")
        if self.diagnostics is not None:
            self.diagnostics.append(Diagnostic(
                reason=reason,
                message=message,
                context=context,
            ))


def append_text(current: str, text: str, sep: str = " ") -> str:
    """Join `text` onto an accumulating buffer."""
    if not text:
        return current
    return f"{current}{sep}{text}" if current else text
