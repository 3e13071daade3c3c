"""
MCQ Body Parser
===============
Turns a block of pasted multiple-choice text into MCQRecord values.

    [Subject: Chemistry]
    15. What is X?
    a) A            ক) ...
    b) B            খ) ...
    Correct: a      সঠিক: গ
    Explanation: because

States:
    SEEK_HEADER -> IN_QUESTION_TEXT -> IN_OPTIONS -> AWAITING_ANSWER
    -> IN_EXPLANATION

A header or metadata line after the options closes the current record
and is reprocessed as the start of the next one.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional

from .metadata import parse_metadata_line
from .models import IMAGE_PLACEHOLDER, MCQOption, MCQRecord, SkipReason
from .normalizer import is_placeholder, normalize, normalize_label, strip_bold
from .state_machine import REPROCESS, LineKind, LineStateMachine, append_text

logger = logging.getLogger(__name__)

# ─── Anchor Patterns ──────────────────────────────────────────────────────────

# "15.", "**15.**", "১৫।", "15. What is X?"; never "1.5"
NUMBERED_PATTERN = re.compile(
    r"^\*{0,2}\s*([\d০-৯]+)\s*[.।](?!\d)\s*\*{0,2}\s*(.*)$"
)

# "Question 3:", "প্রশ্ন ৩."
QUESTION_WORD_PATTERN = re.compile(
    r"^\*{0,2}\s*(?:question|প্রশ্ন)\s*(?:no\.?|নং)?\s*[:.]?\s*([\d০-৯]+)"
    r"\s*[:.।)]?\s*\*{0,2}\s*(.*)$",
    re.IGNORECASE,
)

# "a) text", "(a) text", "ক) text", "**b)** text"
OPTION_PATTERN = re.compile(r"^\*{0,2}\(?([a-dA-Dক-ঘ])\)\*{0,2}\s*(.*)$")

# "Correct: a", "Correct Answer = b", "Ans: c", "সঠিক উত্তর: গ"
ANSWER_PATTERN = re.compile(
    r"^\*{0,2}\s*(correct(?:\s+answer)?|ans(?:wer)?|সঠিক(?:\s*উত্তর)?)"
    r"\s*\*{0,2}\s*[:=ঃ：]\s*\*{0,2}\s*(.*?)\s*\*{0,2}$",
    re.IGNORECASE,
)

# "Explanation: ...", "Exp: ...", "Bekkha: ...", "ব্যাখ্যা: ..."
EXPLANATION_PATTERN = re.compile(
    r"^\*{0,2}\s*(explanation|explain|exp|bekkha|ব্যাখ্যা)"
    r"\s*\*{0,2}\s*[:=ঃ：]\s*\*{0,2}\s*(.*?)\s*$",
    re.IGNORECASE,
)

# Same markers, found mid-line after an inline answer
INLINE_EXPLANATION_PATTERN = re.compile(
    r"\s*\*{0,2}(?:explanation|bekkha|ব্যাখ্যা)\s*[:ঃ]\s*",
    re.IGNORECASE,
)

ANSWER_TOKEN_PATTERN = re.compile(r"^[(\[]?\s*([^\s)\].,:।]+)")

IGNORE_PATTERNS = [
    re.compile(r"^\*{0,2}\s*question\s+set\s*[\d০-৯]*\s*\*{0,2}$", re.IGNORECASE),
    re.compile(r"^\*{0,2}\s*প্রশ্ন\s*সেট\s*[\d০-৯]*\s*\*{0,2}$"),
]


class MCQState(Enum):
    SEEK_HEADER = "SEEK_HEADER"
    IN_QUESTION_TEXT = "IN_QUESTION_TEXT"
    IN_OPTIONS = "IN_OPTIONS"
    AWAITING_ANSWER = "AWAITING_ANSWER"
    IN_EXPLANATION = "IN_EXPLANATION"


class MCQParser(LineStateMachine):
    """State machine for multiple-choice blocks."""

    State = MCQState
    INITIAL_STATE = MCQState.SEEK_HEADER
    name = "mcq"

    def reset(self):
        super().reset()
        self.current: Optional[MCQRecord] = None
        self.current_option: Optional[MCQOption] = None

    # ─── Classification ───────────────────────────────────────────────────

    def classify(self, line: str):
        if any(p.match(line) for p in IGNORE_PATTERNS):
            return LineKind.NOISE, None

        if is_placeholder(strip_bold(line)):
            return LineKind.IMAGE, None

        entry = parse_metadata_line(line)
        if entry is not None:
            return LineKind.METADATA, entry

        m = ANSWER_PATTERN.match(line)
        if m:
            return LineKind.ANSWER, m.group(2)

        m = EXPLANATION_PATTERN.match(line)
        if m:
            return LineKind.EXPLANATION, m.group(2)

        m = OPTION_PATTERN.match(line)
        if m:
            return LineKind.OPTION, (normalize_label(m.group(1)), m.group(2))

        m = NUMBERED_PATTERN.match(line)
        if m:
            label = self._numeric_option_label(m.group(1))
            if label:
                return LineKind.OPTION, (label, m.group(2))
            return LineKind.HEADER, strip_bold(m.group(2))

        m = QUESTION_WORD_PATTERN.match(line)
        if m:
            return LineKind.HEADER, strip_bold(m.group(2))

        return LineKind.TEXT, None

    def _numeric_option_label(self, number: str) -> Optional[str]:
        """
        `1.`-`4.` is an option only while a question is open, no answer was
        recorded and the number continues the option sequence.
        """
        if self.current is None or self.current.correct_answer is not None:
            return None
        if self.state not in (MCQState.IN_QUESTION_TEXT, MCQState.IN_OPTIONS):
            return None
        label = normalize_label(number)
        if label is None:
            return None
        if "abcd".index(label) != len(self.current.options):
            return None
        return label

    # ─── Handlers ─────────────────────────────────────────────────────────

    def _on_metadata(self, line, entry):
        self.apply_metadata(entry)

    def _on_header(self, line, remainder):
        self.finalize_record()
        self.current = MCQRecord(question_text=remainder.strip())
        self.current_option = None
        self.state = MCQState.IN_QUESTION_TEXT

    def _close_and_reprocess(self, line, payload):
        self.finalize_record()
        self.state = MCQState.SEEK_HEADER
        return REPROCESS

    def _on_question_text(self, line, payload):
        self.current.question_text = append_text(
            self.current.question_text, strip_bold(line)
        )

    def _on_option(self, line, payload):
        label, text = payload
        self.state = MCQState.IN_OPTIONS

        if any(opt.label == label for opt in self.current.options):
            self.current_option = None
            self.skip(
                SkipReason.DUPLICATE_LABEL,
                f"Duplicate option label '{label}'",
                line=line,
            )
            return

        self.current_option = MCQOption(label=label, text=strip_bold(text))
        self.current.options.append(self.current_option)

    def _on_option_continuation(self, line, payload):
        if self.current_option is None:
            self.skip(SkipReason.UNRECOGNIZED_LINE, "Orphan option text", line=line)
            return
        self.current_option.text = append_text(self.current_option.text, line)

    def _on_answer(self, line, value):
        explanation = None
        parts = INLINE_EXPLANATION_PATTERN.split(value, maxsplit=1)
        if len(parts) == 2:
            value, explanation = parts[0], parts[1].strip()

        self.current.correct_answer = self._resolve_answer(value)
        self.current_option = None
        self.state = MCQState.AWAITING_ANSWER

        if explanation:
            self.current.explanation = explanation
            self.state = MCQState.IN_EXPLANATION

    def _on_explanation(self, line, text):
        self.current.explanation = append_text(
            self.current.explanation or "", text, sep="\n"
        )
        self.current_option = None
        self.state = MCQState.IN_EXPLANATION

    def _on_implicit_explanation(self, line, payload):
        self._on_explanation(line, line)

    def _on_explanation_text(self, line, payload):
        self.current.explanation = append_text(
            self.current.explanation or "", line, sep="\n"
        )

    def _on_image(self, line, payload):
        if self.state == MCQState.IN_OPTIONS and self.current_option:
            self.current_option.image = IMAGE_PLACEHOLDER
        else:
            self.current.image = IMAGE_PLACEHOLDER

    # ─── Record Assembly ──────────────────────────────────────────────────

    def _resolve_answer(self, value: str) -> Optional[str]:
        """Map an answer value (label or option text) to a-d."""
        value = strip_bold(value)
        m = ANSWER_TOKEN_PATTERN.match(value)
        if m:
            label = normalize_label(m.group(1))
            if label:
                return label

        wanted = normalize(value)
        for opt in self.current.options:
            if wanted and normalize(opt.text) == wanted:
                return opt.label

        if value:
            self.skip(
                SkipReason.UNRECOGNIZED_LINE,
                f"Unrecognized answer '{value}'",
            )
        return None

    def finalize_record(self):
        q = self.current
        if q is None:
            return
        self.current = None
        self.current_option = None

        # Remove ghost options (no text and no image)
        q.options = [
            opt for opt in q.options
            if opt.text.strip() or opt.image
        ]
        for opt in q.options:
            opt.text = opt.text.strip()

        q.question_text = q.question_text.strip()
        if q.explanation is not None:
            q.explanation = q.explanation.strip() or None

        for field, value in self.metadata.as_fields().items():
            setattr(q, field, value)
        q.language = self.detect_language(
            q.question_text, *(opt.text for opt in q.options)
        )

        self.emit(q)

    # ─── Transition Table ─────────────────────────────────────────────────

    S, K = MCQState, LineKind
    TRANSITIONS = {
        (S.SEEK_HEADER, K.METADATA): _on_metadata,
        (S.SEEK_HEADER, K.HEADER): _on_header,

        (S.IN_QUESTION_TEXT, K.METADATA): _on_metadata,
        (S.IN_QUESTION_TEXT, K.HEADER): _on_header,
        (S.IN_QUESTION_TEXT, K.TEXT): _on_question_text,
        (S.IN_QUESTION_TEXT, K.OPTION): _on_option,
        (S.IN_QUESTION_TEXT, K.IMAGE): _on_image,
        (S.IN_QUESTION_TEXT, K.ANSWER): _on_answer,
        (S.IN_QUESTION_TEXT, K.EXPLANATION): _on_explanation,

        (S.IN_OPTIONS, K.OPTION): _on_option,
        (S.IN_OPTIONS, K.TEXT): _on_option_continuation,
        (S.IN_OPTIONS, K.IMAGE): _on_image,
        (S.IN_OPTIONS, K.ANSWER): _on_answer,
        (S.IN_OPTIONS, K.EXPLANATION): _on_explanation,
        (S.IN_OPTIONS, K.HEADER): _close_and_reprocess,
        (S.IN_OPTIONS, K.METADATA): _close_and_reprocess,

        (S.AWAITING_ANSWER, K.ANSWER): _on_answer,
        (S.AWAITING_ANSWER, K.EXPLANATION): _on_explanation,
        (S.AWAITING_ANSWER, K.TEXT): _on_implicit_explanation,
        (S.AWAITING_ANSWER, K.IMAGE): _on_image,
        (S.AWAITING_ANSWER, K.HEADER): _close_and_reprocess,
        (S.AWAITING_ANSWER, K.METADATA): _close_and_reprocess,

        (S.IN_EXPLANATION, K.TEXT): _on_explanation_text,
        (S.IN_EXPLANATION, K.OPTION): _on_explanation_text,
        (S.IN_EXPLANATION, K.EXPLANATION): _on_explanation,
        (S.IN_EXPLANATION, K.ANSWER): _on_answer,
        (S.IN_EXPLANATION, K.IMAGE): _on_image,
        (S.IN_EXPLANATION, K.HEADER): _close_and_reprocess,
        (S.IN_EXPLANATION, K.METADATA): _close_and_reprocess,
    }
    del S, K


def parse_mcq(text: str, language=None, diagnostics=None) -> list[MCQRecord]:
    """Parse one block of MCQ text."""
    return MCQParser(language=language, diagnostics=diagnostics).parse(text)
