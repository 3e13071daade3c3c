"""
CQ Body Parser
==============
Turns a block of creative-question text into CQRecord values.

Headed layout:

    Stimulus:                     উদ্দীপক:
    > Rahim mixed two salts...    ...
    Questions:                    প্রশ্ন:
    a. What is a salt? (1)        ক. ... (১)
    b. Explain... (2)             খ. ... (২)
    Answers:                      উত্তর:
    a. A salt is...               ক. ...

Un-headed layout (previously exported blocks): metadata, a stimulus
paragraph, lettered part lines, then a trailing `Answer:` section.
Bullet answers (`· ...`) fill the next unanswered part in order.

States:
    METADATA -> STIMULUS -> QUESTIONS -> ANSWERS
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional

from .metadata import parse_metadata_line
from .models import IMAGE_PLACEHOLDER, CQPart, CQRecord, SkipReason
from .normalizer import (
    is_placeholder,
    normalize_label,
    strip_bold,
    to_ascii_digits,
)
from .state_machine import REPROCESS, LineKind, LineStateMachine, append_text

logger = logging.getLogger(__name__)

# ─── Anchor Patterns ──────────────────────────────────────────────────────────

STIMULUS_HEADER_PATTERN = re.compile(
    r"^(?:stimulus|উদ্দীপক)\s*[:ঃ]\s*(.*)$", re.IGNORECASE
)

QUESTIONS_HEADER_PATTERN = re.compile(
    r"^(?:questions?|প্রশ্ন(?:সমূহ)?)\s*[:ঃ]\s*$", re.IGNORECASE
)

ANSWERS_HEADER_PATTERN = re.compile(
    r"^(?:answers?|ans|উত্তর(?:সমূহ)?)\s*[:=ঃ]\s*(.*)$", re.IGNORECASE
)

# "Question 3", "Creative Question 3", "Q.3", "সৃজনশীল প্রশ্ন ৩"
RECORD_HEADER_PATTERN = re.compile(
    r"^(?:creative\s+question|question|q\.?|সৃজনশীল\s+প্রশ্ন|প্রশ্ন)"
    r"\s*(?:no\.?|নং)?\s*[:.\-]?\s*[\d০-৯]+",
    re.IGNORECASE,
)
MAX_HEADER_LENGTH = 50

# "a. text (2)", "ক) text [১]"
PART_PATTERN = re.compile(r"^\(?([a-dA-Dক-ঘ])[.)]\s*(.+)$")

MARKS_PATTERN = re.compile(r"\s*[(\[]\s*([\d০-৯]+)\s*[)\]]\s*$")

BULLET_PATTERN = re.compile(r"^·\s*(.*)$")

QUOTE_PATTERN = re.compile(r"^>\s*")


class CQState(Enum):
    METADATA = "METADATA"
    STIMULUS = "STIMULUS"
    QUESTIONS = "QUESTIONS"
    ANSWERS = "ANSWERS"


def split_marks(text: str) -> tuple[str, int]:
    """Strip a trailing `(n)`/`[n]` marks token; returns (text, marks)."""
    m = MARKS_PATTERN.search(text)
    if not m or not text[:m.start()].strip():
        return text.strip(), 0
    return text[:m.start()].strip(), int(to_ascii_digits(m.group(1)))


class CQParser(LineStateMachine):
    """State machine for creative-question blocks."""

    State = CQState
    INITIAL_STATE = CQState.METADATA
    name = "cq"

    def reset(self):
        super().reset()
        self._reset_record()

    def _reset_record(self):
        self.stimulus_lines: list[str] = []
        self.stimulus_headed = False
        self.parts: list[CQPart] = []
        self.image: Optional[str] = None
        self.answer_part: Optional[CQPart] = None
        self.bullet_mode = False

    @property
    def has_content(self) -> bool:
        return bool(self.stimulus_lines or self.parts or self.image)

    # ─── Classification ───────────────────────────────────────────────────

    def classify(self, line: str):
        clean = strip_bold(line)

        if is_placeholder(clean):
            return LineKind.IMAGE, None

        entry = parse_metadata_line(line)
        if entry is not None:
            return LineKind.METADATA, entry

        m = STIMULUS_HEADER_PATTERN.match(clean)
        if m:
            return LineKind.STIMULUS_HEADER, m.group(1).strip()

        if QUESTIONS_HEADER_PATTERN.match(clean):
            return LineKind.QUESTIONS_HEADER, None

        m = ANSWERS_HEADER_PATTERN.match(clean)
        if m:
            return LineKind.ANSWERS_HEADER, m.group(1).strip()

        if RECORD_HEADER_PATTERN.match(clean) and len(clean) < MAX_HEADER_LENGTH:
            return LineKind.HEADER, None

        m = BULLET_PATTERN.match(clean)
        if m:
            return LineKind.BULLET, m.group(1).strip()

        m = PART_PATTERN.match(clean)
        if m:
            return LineKind.PART, (normalize_label(m.group(1)), m.group(2))

        return LineKind.TEXT, clean

    # ─── Section Handlers ─────────────────────────────────────────────────

    def _on_metadata(self, line, entry):
        self.apply_metadata(entry)

    def _on_header(self, line, payload):
        self.finalize_record()
        self.state = CQState.METADATA

    def _close_and_reprocess(self, line, payload):
        self.finalize_record()
        self.state = CQState.METADATA
        return REPROCESS

    def _on_stimulus_header(self, line, remainder):
        self.state = CQState.STIMULUS
        self.stimulus_headed = True
        if remainder:
            self._on_stimulus_text(line, remainder)

    def _on_questions_header(self, line, payload):
        self.state = CQState.QUESTIONS

    def _on_answers_header(self, line, remainder):
        self.state = CQState.ANSWERS
        self.answer_part = None
        if remainder:
            # Inline content after the header is an ordinary answer line
            self.feed(remainder)

    # ─── Stimulus / Question Handlers ─────────────────────────────────────

    def _on_stimulus_text(self, line, text):
        if self.state == CQState.METADATA:
            self.state = CQState.STIMULUS
        text = QUOTE_PATTERN.sub("", text).strip()
        if text:
            self.stimulus_lines.append(text)

    def _on_stimulus_part(self, line, payload):
        """A lettered line inside an explicit stimulus stays stimulus text."""
        if self.stimulus_headed:
            self._on_stimulus_text(line, strip_bold(line))
            return None
        self.state = CQState.QUESTIONS
        return REPROCESS

    def _on_part(self, line, payload):
        letter, text = payload
        self.state = CQState.QUESTIONS
        if any(part.letter == letter for part in self.parts):
            self.skip(
                SkipReason.DUPLICATE_LABEL,
                f"Duplicate part letter '{letter}'",
                line=line,
            )
            return
        text, marks = split_marks(text)
        self.parts.append(CQPart(letter=letter, text=text, marks=marks))

    def _on_question_text(self, line, text):
        if not self.parts:
            self._on_stimulus_text(line, text)
            return
        last = self.parts[-1]
        text, marks = split_marks(append_text(last.text, text))
        last.text = text
        if marks:
            last.marks = marks

    def _on_image(self, line, payload):
        if self.state == CQState.QUESTIONS and self.parts:
            self.parts[-1].image = IMAGE_PLACEHOLDER
        else:
            self.image = IMAGE_PLACEHOLDER

    # ─── Answer Handlers ──────────────────────────────────────────────────

    def _on_answer_part(self, line, payload):
        letter, text = payload
        part = next((p for p in self.parts if p.letter == letter), None)
        if part is None:
            self.skip(
                SkipReason.UNRECOGNIZED_LINE,
                f"Answer for unknown part '{letter}'",
                line=line,
            )
            self.answer_part = None
            return
        part.answer = text.strip()
        self.answer_part = part

    def _on_bullet_answer(self, line, text):
        self.bullet_mode = True
        part = next((p for p in self.parts if not p.answer), None)
        if part is None:
            self.skip(
                SkipReason.UNRECOGNIZED_LINE,
                "Bullet answer with no unanswered part",
                line=line,
            )
            return
        part.answer = text
        self.answer_part = part

    def _on_answer_text(self, line, text):
        if self.answer_part is not None:
            sep = " " if self.bullet_mode else "\n"
            self.answer_part.answer = append_text(
                self.answer_part.answer, text, sep=sep
            )
        elif self.parts and not self.bullet_mode:
            self.answer_part = self.parts[-1]
            self.answer_part.answer = append_text(
                self.answer_part.answer, text, sep="\n"
            )
        else:
            self.skip(SkipReason.UNRECOGNIZED_LINE, "Orphan answer text", line=line)

    def _on_answers_metadata(self, line, entry):
        # Metadata after the answers belongs to the next record
        if self.parts:
            return self._close_and_reprocess(line, entry)
        self.apply_metadata(entry)

    # ─── Record Assembly ──────────────────────────────────────────────────

    def finalize_record(self):
        if not self.has_content:
            self._reset_record()
            return

        stimulus = "\n".join(self.stimulus_lines).strip()
        parts = [p for p in self.parts if p.text.strip()]
        for part in parts:
            part.answer = part.answer.strip()

        record = CQRecord(
            question_text=stimulus,
            stimulus=stimulus,
            parts=parts,
            image=self.image,
            language=self.detect_language(
                stimulus, *(p.text for p in parts)
            ),
            **self.metadata.as_fields(),
        )
        self._reset_record()
        self.emit(record)

    # ─── Transition Table ─────────────────────────────────────────────────

    S, K = CQState, LineKind
    TRANSITIONS = {
        (S.METADATA, K.METADATA): _on_metadata,
        (S.METADATA, K.HEADER): _on_header,
        (S.METADATA, K.IMAGE): _on_image,
        (S.METADATA, K.STIMULUS_HEADER): _on_stimulus_header,
        (S.METADATA, K.QUESTIONS_HEADER): _on_questions_header,
        (S.METADATA, K.TEXT): _on_stimulus_text,
        (S.METADATA, K.BULLET): _on_stimulus_text,
        (S.METADATA, K.PART): _on_part,

        (S.STIMULUS, K.METADATA): _on_metadata,
        (S.STIMULUS, K.STIMULUS_HEADER): _on_stimulus_header,
        (S.STIMULUS, K.HEADER): _on_header,
        (S.STIMULUS, K.IMAGE): _on_image,
        (S.STIMULUS, K.TEXT): _on_stimulus_text,
        (S.STIMULUS, K.BULLET): _on_stimulus_text,
        (S.STIMULUS, K.PART): _on_stimulus_part,
        (S.STIMULUS, K.QUESTIONS_HEADER): _on_questions_header,
        (S.STIMULUS, K.ANSWERS_HEADER): _on_answers_header,

        (S.QUESTIONS, K.METADATA): _on_answers_metadata,
        (S.QUESTIONS, K.HEADER): _on_header,
        (S.QUESTIONS, K.IMAGE): _on_image,
        (S.QUESTIONS, K.PART): _on_part,
        (S.QUESTIONS, K.TEXT): _on_question_text,
        (S.QUESTIONS, K.BULLET): _on_question_text,
        (S.QUESTIONS, K.ANSWERS_HEADER): _on_answers_header,
        (S.QUESTIONS, K.QUESTIONS_HEADER): _on_questions_header,
        (S.QUESTIONS, K.STIMULUS_HEADER): _close_and_reprocess,

        (S.ANSWERS, K.METADATA): _on_answers_metadata,
        (S.ANSWERS, K.HEADER): _on_header,
        (S.ANSWERS, K.IMAGE): _on_image,
        (S.ANSWERS, K.PART): _on_answer_part,
        (S.ANSWERS, K.BULLET): _on_bullet_answer,
        (S.ANSWERS, K.TEXT): _on_answer_text,
        (S.ANSWERS, K.ANSWERS_HEADER): _on_answers_header,
        (S.ANSWERS, K.STIMULUS_HEADER): _close_and_reprocess,
        (S.ANSWERS, K.QUESTIONS_HEADER): _close_and_reprocess,
    }
    del S, K


def parse_cq(text: str, language=None, diagnostics=None) -> list[CQRecord]:
    """Parse one block of CQ text."""
    return CQParser(language=language, diagnostics=diagnostics).parse(text)
