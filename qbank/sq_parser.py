"""
SQ Body Parser
==============
Turns a block of short-answer text into SQRecord values.

Supported layouts:

    1. What is osmosis?               Question 2: Define pH.
    Answer: Diffusion of water...     Ans: The negative log of...

    3. What is a cell? Ans: The basic unit of life.

Grouped layout (one record per letter):

    a. Define mole. (1)
    b. State Avogadro's law. (2)
    Answer:
    a. The amount of substance...
    b. Equal volumes of gases...
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional

from .cq_parser import split_marks
from .metadata import parse_metadata_line
from .models import IMAGE_PLACEHOLDER, SkipReason, SQRecord
from .normalizer import is_placeholder, normalize_label, strip_bold
from .state_machine import LineKind, LineStateMachine, append_text

logger = logging.getLogger(__name__)

# ─── Anchor Patterns ──────────────────────────────────────────────────────────

NUMBERED_PATTERN = re.compile(r"^\[?([\d০-৯]+)\]?\s*[.।)](?!\d)\s*(.*)$")

QUESTION_WORD_PATTERN = re.compile(
    r"^(?:question|q\.?|প্রশ্ন|সৃজনশীল\s+প্রশ্ন)\s*(?:no\.?|নং)?\s*"
    r"[\d০-৯]+\s*[:ঃ.।)]?\s*(.*)$",
    re.IGNORECASE,
)
MAX_HEADER_LENGTH = 50

ANSWER_PATTERN = re.compile(
    r"^(?:answer|ans|উত্তর)\s*(?:[:=ঃ]\s*(.*)|)$", re.IGNORECASE
)

INLINE_ANSWER_PATTERN = re.compile(
    r"(?:\|\s*|(?<!\S))(?:answer|ans|উত্তর)\s*[:=ঃ]\s*(.*)$", re.IGNORECASE
)

PART_PATTERN = re.compile(r"^\(?([a-dA-Dক-ঘ])[.)]\s*(.+)$")

# Cognitive-level headings printed above groups of questions
IGNORE_PATTERNS = [
    re.compile(r"^(?:প্রয়োগী|জ্ঞানমূলক|বোধমূলক|উচ্চতর\s*দক্ষতা)"),
    re.compile(
        r"^(?:knowledge|comprehension|application)[\s-]*based", re.IGNORECASE
    ),
]


class SQState(Enum):
    SEEK_QUESTION = "SEEK_QUESTION"
    IN_QUESTION = "IN_QUESTION"
    IN_ANSWER = "IN_ANSWER"
    IN_GROUP_QUESTIONS = "IN_GROUP_QUESTIONS"
    IN_GROUP_ANSWERS = "IN_GROUP_ANSWERS"


def split_inline_answer(text: str) -> tuple[str, Optional[str]]:
    """Split 'question Ans: answer' into its two halves."""
    m = INLINE_ANSWER_PATTERN.search(text)
    if not m:
        return text.strip(), None
    return text[:m.start()].strip(), m.group(1).strip()


class SQParser(LineStateMachine):
    """State machine for short-answer blocks."""

    State = SQState
    INITIAL_STATE = SQState.SEEK_QUESTION
    name = "sq"

    def reset(self):
        super().reset()
        self.current: Optional[SQRecord] = None
        self.group: list[SQRecord] = []
        self.group_letters: list[str] = []
        self.group_answer: Optional[SQRecord] = None
        self.uses_question_prefix = False

    def scan(self, lines: list[str]):
        self.uses_question_prefix = any(
            QUESTION_WORD_PATTERN.match(strip_bold(line.strip()))
            for line in lines
        )

    # ─── Classification ───────────────────────────────────────────────────

    def classify(self, line: str):
        clean = strip_bold(line)

        if any(p.match(clean) for p in IGNORE_PATTERNS):
            return LineKind.NOISE, None

        if is_placeholder(clean):
            return LineKind.IMAGE, None

        entry = parse_metadata_line(line)
        if entry is not None:
            return LineKind.METADATA, entry

        m = ANSWER_PATTERN.match(clean)
        if m:
            return LineKind.ANSWER, (m.group(1) or "").strip()

        m = QUESTION_WORD_PATTERN.match(clean)
        if m and len(clean) < MAX_HEADER_LENGTH:
            return LineKind.HEADER, m.group(1)

        m = NUMBERED_PATTERN.match(clean)
        if m and not self._inside_prefixed_answer():
            return LineKind.HEADER, m.group(2)

        m = PART_PATTERN.match(clean)
        if m:
            return LineKind.PART, (normalize_label(m.group(1)), m.group(2))

        return LineKind.TEXT, clean

    def _inside_prefixed_answer(self) -> bool:
        """Numbered lists inside an answer are not new questions."""
        return self.uses_question_prefix and self.state == SQState.IN_ANSWER

    # ─── Single-Question Handlers ─────────────────────────────────────────

    def _on_metadata(self, line, entry):
        self.apply_metadata(entry)

    def _on_header(self, line, remainder):
        self.finalize_record()
        question, answer = split_inline_answer(strip_bold(remainder))
        self.current = SQRecord(question_text=question, answer=answer or "")
        if answer is not None:
            self.state = SQState.IN_ANSWER
        else:
            self.state = SQState.IN_QUESTION

    def _on_trailing_metadata(self, line, entry):
        # Metadata after an answer opens the next record
        self.finalize_record()
        self.state = SQState.SEEK_QUESTION
        self.apply_metadata(entry)

    def _on_question_text(self, line, text):
        self.current.question_text = append_text(
            self.current.question_text, text, sep="\n"
        )

    def _on_answer(self, line, text):
        self.current.answer = append_text(self.current.answer, text, sep="\n")
        self.state = SQState.IN_ANSWER

    def _on_answer_text(self, line, text):
        self.current.answer = append_text(self.current.answer, text, sep="\n")

    def _on_image(self, line, payload):
        if self.current is not None:
            self.current.image = IMAGE_PLACEHOLDER

    # ─── Grouped-Layout Handlers ──────────────────────────────────────────

    def _on_group_question(self, line, payload):
        letter, text = payload
        if letter in self.group_letters:
            self.skip(
                SkipReason.DUPLICATE_LABEL,
                f"Duplicate sub-question letter '{letter}'",
                line=line,
            )
            return
        question, _ = split_marks(text)
        self.group.append(SQRecord(question_text=question))
        self.group_letters.append(letter)
        self.state = SQState.IN_GROUP_QUESTIONS

    def _on_group_question_text(self, line, text):
        last = self.group[-1]
        last.question_text, _ = split_marks(append_text(last.question_text, text))

    def _on_group_divider(self, line, text):
        self.state = SQState.IN_GROUP_ANSWERS
        self.group_answer = None
        if text:
            self.feed(text)

    def _on_group_answer(self, line, payload):
        letter, text = payload
        if letter not in self.group_letters:
            self.group_answer = None
            self.skip(
                SkipReason.UNRECOGNIZED_LINE,
                f"Answer for unknown sub-question '{letter}'",
                line=line,
            )
            return
        self.group_answer = self.group[self.group_letters.index(letter)]
        self.group_answer.answer = text.strip()

    def _on_group_answer_text(self, line, text):
        if self.group_answer is None:
            self.skip(SkipReason.UNRECOGNIZED_LINE, "Orphan answer text", line=line)
            return
        self.group_answer.answer = append_text(
            self.group_answer.answer, text, sep="\n"
        )

    def _on_group_header(self, line, remainder):
        self._flush_group()
        self.state = SQState.SEEK_QUESTION
        self._on_header(line, remainder)

    # ─── Record Assembly ──────────────────────────────────────────────────

    def _finish(self, record: SQRecord):
        record.question_text = record.question_text.strip()
        record.answer = record.answer.strip()
        for field, value in self.metadata.as_fields().items():
            setattr(record, field, value)
        record.language = self.detect_language(
            record.question_text, record.answer
        )
        self.emit(record)

    def _flush_group(self):
        group, self.group, self.group_letters = self.group, [], []
        self.group_answer = None
        for record in group:
            self._finish(record)

    def finalize_record(self):
        if self.group:
            self._flush_group()
        if self.current is not None:
            record, self.current = self.current, None
            self._finish(record)

    # ─── Transition Table ─────────────────────────────────────────────────

    S, K = SQState, LineKind
    TRANSITIONS = {
        (S.SEEK_QUESTION, K.METADATA): _on_metadata,
        (S.SEEK_QUESTION, K.HEADER): _on_header,
        (S.SEEK_QUESTION, K.PART): _on_group_question,

        (S.IN_QUESTION, K.METADATA): _on_metadata,
        (S.IN_QUESTION, K.HEADER): _on_header,
        (S.IN_QUESTION, K.TEXT): _on_question_text,
        (S.IN_QUESTION, K.PART): _on_question_text,
        (S.IN_QUESTION, K.ANSWER): _on_answer,
        (S.IN_QUESTION, K.IMAGE): _on_image,

        (S.IN_ANSWER, K.METADATA): _on_trailing_metadata,
        (S.IN_ANSWER, K.HEADER): _on_header,
        (S.IN_ANSWER, K.TEXT): _on_answer_text,
        (S.IN_ANSWER, K.PART): _on_answer_text,
        (S.IN_ANSWER, K.ANSWER): _on_answer,
        (S.IN_ANSWER, K.IMAGE): _on_image,

        (S.IN_GROUP_QUESTIONS, K.METADATA): _on_metadata,
        (S.IN_GROUP_QUESTIONS, K.PART): _on_group_question,
        (S.IN_GROUP_QUESTIONS, K.TEXT): _on_group_question_text,
        (S.IN_GROUP_QUESTIONS, K.ANSWER): _on_group_divider,
        (S.IN_GROUP_QUESTIONS, K.HEADER): _on_group_header,

        (S.IN_GROUP_ANSWERS, K.METADATA): _on_trailing_metadata,
        (S.IN_GROUP_ANSWERS, K.PART): _on_group_answer,
        (S.IN_GROUP_ANSWERS, K.TEXT): _on_group_answer_text,
        (S.IN_GROUP_ANSWERS, K.HEADER): _on_group_header,
    }
    del S, K


def parse_sq(text: str, language=None, diagnostics=None) -> list[SQRecord]:
    """Parse one block of SQ text."""
    return SQParser(language=language, diagnostics=diagnostics).parse(text)
