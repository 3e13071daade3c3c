"""
Corruption Fixers
=================
Pure functions that recognize a stored record whose text was flattened
into a single-line "corrupted" encoding and recover its structure.

Each fixer takes a record and returns RepairedFields, or None when its
pattern is absent. Fixers never mutate the record; `apply_repair()`
derives a new one.

Priority (first non-empty result wins):
    MCQ: pipe dump -> Bengali inline dump -> merged options
    CQ:  pipe dump
    SQ:  answer-marker / board recovery
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from .cq_parser import split_marks
from .models import (
    CQPart,
    Diagnostic,
    MCQOption,
    QuestionKind,
    QuestionRecord,
    Repair,
    RepairedFields,
    SkipReason,
)
from .normalizer import (
    canonicalize,
    normalize,
    normalize_label,
    to_ascii_digits,
)

logger = logging.getLogger(__name__)

Fixer = Callable[[QuestionRecord], Optional[RepairedFields]]

# ─── Shared Patterns ──────────────────────────────────────────────────────────

# First "|a:" style dump marker
PIPE_MARKER_PATTERN = re.compile(r"\|\s*[a-dA-D]\s*:")

PIPE_OPTION_PATTERN = re.compile(r"^([a-dA-D])\s*:\s*(.*)$", re.DOTALL)
PIPE_ANSWER_PATTERN = re.compile(r"^ans(?:wer)?\s*:\s*(.+)$", re.IGNORECASE)

QUESTION_PREFIX_PATTERN = re.compile(r"^\s*question\s*:\s*", re.IGNORECASE)
EMPTY_BOARD_PATTERN = re.compile(r"^\s*\((?:n/a|-)\)\s*", re.IGNORECASE)
BOARD_PREFIX_PATTERN = re.compile(r"^\s*\(([^()]+)\)\s*")
KIND_PREFIX_PATTERN = re.compile(r"^\s*(?:mcq|sq|cq)\s*:\s*", re.IGNORECASE)

# "(i)", "(iv)", "(xii)": list numbering, never a board
ROMAN_NUMERAL_PATTERN = re.compile(
    r"^(?=[ivxlcdm])m*(?:c[md]|d?c{0,3})(?:x[cl]|l?x{0,3})(?:i[xv]|v?i{0,3})$",
    re.IGNORECASE,
)

MIN_BOARD_LETTERS = 2

TRAILING_MARKS_PATTERN = re.compile(r"\s*[\[(][\d০-৯]+[\])]\s*$")

ANSWER_TOKEN_PATTERN = re.compile(r"^[(\[]?\s*([^\s)\].,:।]+)")

# Bengali (or mixed) inline dump: "... ক) x খ) y গ) z ঘ) w সঠিক: খ ব্যাখ্যা: ..."
INLINE_MARKER_PATTERN = re.compile(
    r"(?<!\S)(?:(?P<opt>[ক-ঘ])\)"
    r"|(?P<ans>(?:correct|সঠিক)(?:\s*(?:answer|উত্তর))?\s*[:ঃ])"
    r"|(?P<exp>(?:explanation|ব্যাখ্যা)\s*[:ঃ]))",
    re.IGNORECASE,
)

CIRCLED = "①-⑳❶-❿"
CIRCLED_OPTION_PATTERN = re.compile(
    rf"([{CIRCLED}])\s*(.*?)"
    rf"(?=\s*[{CIRCLED}]|\s*(?:correct|সঠিক|ans(?:wer)?)\s*(?:answer|উত্তর)?\s*[:=ঃ]|$)",
    re.IGNORECASE | re.DOTALL,
)

ALPHA_LABEL = r"\(?[a-dক-ঘ1-4১-৪][).।](?!\d)"
ALPHA_OPTION_PATTERN = re.compile(
    rf"(?:^|(?<=\s))\(?([a-dক-ঘ1-4১-৪])[).।](?!\d)\s*(.*?)"
    rf"(?=\s+{ALPHA_LABEL}|\s*(?:correct|সঠিক|ans(?:wer)?)\s*(?:answer|উত্তর)?\s*[:=ঃ]|$)",
    re.IGNORECASE | re.DOTALL,
)

MERGED_ANSWER_PATTERN = re.compile(
    r"(?:correct(?:\s+answer)?|সঠিক(?:\s*উত্তর)?|ans(?:wer)?)\s*[:=ঃ]\s*"
    r"([①-④❶-❹a-dক-ঘ1-4১-৪])",
    re.IGNORECASE,
)

SQ_ANSWER_SPLIT_PATTERN = re.compile(
    r"\|\s*(?:ans(?:wer)?|উত্তর)\s*[:ঃ]\s*|(?<!\S)উত্তর\s*[:ঃ]\s*",
    re.IGNORECASE,
)

# "'Question A' (1):'Answer A' [2]"
CQ_DUMP_PART_PATTERN = re.compile(
    r"^(?P<text>.*?)\s*[(\[](?P<marks>[\d০-৯]+)[)\]]\s*:\s*(?P<answer>.*)$",
    re.DOTALL,
)

MIN_MERGED_TEXT_LENGTH = 10


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _clean_prefix(text: str) -> tuple[str, Optional[str]]:
    """
    Strip dump boilerplate from the front of a question text.
    Returns (text, board) where board is a recovered "(Board)" prefix.
    """
    text = QUESTION_PREFIX_PATTERN.sub("", text)
    text = EMPTY_BOARD_PATTERN.sub("", text)
    board = None
    m = BOARD_PREFIX_PATTERN.match(text)
    if m and _looks_like_board(m.group(1)):
        board = m.group(1).strip()
        text = text[m.end():]
    text = KIND_PREFIX_PATTERN.sub("", text)
    return text.strip(), board


def _looks_like_board(token: str) -> bool:
    """
    "(Dhaka-24)", "(Rajshahi)", "(ঢাকা বোর্ড)" are boards. Sub-item labels
    such as "(a)", "(ক)", "(1)" or "(iv)" are not.
    """
    token = token.strip()
    if normalize_label(token) is not None:
        return False
    if ROMAN_NUMERAL_PATTERN.match(token):
        return False
    return sum(ch.isalpha() for ch in token) >= MIN_BOARD_LETTERS


def _resolve_label(value: str, options: list[MCQOption]) -> Optional[str]:
    value = value.strip().strip("*").strip()
    m = ANSWER_TOKEN_PATTERN.match(value)
    if m:
        label = normalize_label(m.group(1))
        if label:
            return label
    wanted = normalize(value)
    for opt in options:
        if wanted and normalize(opt.text) == wanted:
            return opt.label
    return None


def _unique_options(pairs: list[tuple[str, str]]) -> list[MCQOption]:
    """Normalize labels, keep the first occurrence, drop unmappable ones."""
    options: list[MCQOption] = []
    seen: set[str] = set()
    for raw_label, text in pairs:
        label = normalize_label(raw_label)
        if label is None or label in seen:
            continue
        seen.add(label)
        options.append(MCQOption(label=label, text=text.strip()))
    return options


def _is_kind(record: QuestionRecord, kind: QuestionKind) -> bool:
    return record.kind == kind.value


# ─── MCQ Fixers ───────────────────────────────────────────────────────────────


def fix_pipe_dump(record: QuestionRecord) -> Optional[RepairedFields]:
    """
    "Question: (Dhaka-24) MCQ:What is x?|a:1|b:2|c:3|d:4|Ans:b"
    """
    if not _is_kind(record, QuestionKind.MCQ):
        return None
    text = canonicalize(record.question_text)
    m = PIPE_MARKER_PATTERN.search(text)
    if not m:
        return None

    question, board = _clean_prefix(text[:m.start()])

    pairs: list[tuple[str, str]] = []
    answer_value = None
    for segment in text[m.start():].split("|"):
        segment = segment.strip()
        if not segment:
            continue
        opt = PIPE_OPTION_PATTERN.match(segment)
        if opt:
            pairs.append((opt.group(1), opt.group(2)))
            continue
        ans = PIPE_ANSWER_PATTERN.match(segment)
        if ans:
            answer_value = ans.group(1)

    options = _unique_options(pairs)
    if not options:
        return None

    return RepairedFields(
        question_text=question,
        options=options,
        correct_answer=(
            _resolve_label(answer_value, options) if answer_value else None
        ),
        board=board,
    )


def fix_bengali_inline(record: QuestionRecord) -> Optional[RepairedFields]:
    """
    Option, answer and explanation markers interleaved in one paragraph.
    Needs at least two option markers plus an answer or explanation marker.
    """
    if not _is_kind(record, QuestionKind.MCQ):
        return None
    text = canonicalize(record.question_text)
    markers = list(INLINE_MARKER_PATTERN.finditer(text))

    option_markers = [mk for mk in markers if mk.group("opt")]
    if len(option_markers) < 2:
        return None
    if not any(mk.group("ans") or mk.group("exp") for mk in markers):
        return None

    question, board = _clean_prefix(text[:option_markers[0].start()])

    # Markers before the first option belong to the question text
    markers = [mk for mk in markers if mk.start() >= option_markers[0].start()]

    pairs: list[tuple[str, str]] = []
    answer_value = None
    explanation = None
    for i, mk in enumerate(markers):
        end = markers[i + 1].start() if i + 1 < len(markers) else len(text)
        segment = text[mk.end():end].strip()
        if mk.group("opt"):
            pairs.append((mk.group("opt"), segment))
        elif mk.group("ans"):
            answer_value = segment
        else:
            explanation = segment

    options = _unique_options(pairs)
    if len(options) < 2:
        return None

    return RepairedFields(
        question_text=question,
        options=options,
        correct_answer=(
            _resolve_label(answer_value, options) if answer_value else None
        ),
        explanation=explanation or None,
        board=board,
    )


def fix_merged_options(record: QuestionRecord) -> Optional[RepairedFields]:
    """
    Options merged into the question text of an otherwise structured
    record with no options: "What is x? ① 1 ② 2 ③ 3 ④ 4" or
    "What is x? a) 1 b) 2 c) 3 d) 4".
    """
    if not _is_kind(record, QuestionKind.MCQ) or record.options:
        return None
    text = canonicalize(record.question_text)
    if len(text.strip()) < MIN_MERGED_TEXT_LENGTH:
        return None

    matches = list(CIRCLED_OPTION_PATTERN.finditer(text))
    if len(matches) < 2:
        matches = list(ALPHA_OPTION_PATTERN.finditer(text))
    if len(matches) < 2:
        return None

    options = _unique_options([(m.group(1), m.group(2)) for m in matches])
    if len(options) < 2:
        return None

    question, board = _clean_prefix(text[:matches[0].start()])

    correct = None
    ans = MERGED_ANSWER_PATTERN.search(text)
    if ans:
        correct = normalize_label(ans.group(1))

    return RepairedFields(
        question_text=question,
        options=options,
        correct_answer=correct,
        board=board,
    )


# ─── SQ / CQ Fixers ───────────────────────────────────────────────────────────


def fix_sq_corruption(record: QuestionRecord) -> Optional[RepairedFields]:
    """
    "(Rajshahi-23) What is osmosis?|Ans: Movement of water..."
    Recovers a leading board name and/or splits off the answer.
    """
    if not _is_kind(record, QuestionKind.SQ):
        return None
    text = canonicalize(record.question_text)

    answer = None
    m = SQ_ANSWER_SPLIT_PATTERN.search(text)
    if m:
        answer = text[m.end():].strip()
        text = text[:m.start()]

    question, board = _clean_prefix(text)
    if board is None and answer is None:
        return None

    return RepairedFields(
        question_text=question,
        answer=answer or None,
        board=board,
    )


def fix_cq_pipe_dump(record: QuestionRecord) -> Optional[RepairedFields]:
    """
    "Stimulus... [2]|a:'Question A' (1):'Answer A' [2]|b:..."
    Truncates the stimulus at the first dump marker and drops the dangling
    marks token. Parts are recovered from the dump only when the record
    has none.
    """
    if not _is_kind(record, QuestionKind.CQ):
        return None
    text = canonicalize(record.stimulus or record.question_text)
    m = PIPE_MARKER_PATTERN.search(text)
    if not m:
        return None

    stimulus = TRAILING_MARKS_PATTERN.sub("", text[:m.start()]).strip()
    if not stimulus:
        return None

    parts = None
    if not record.parts:
        parts = _parse_cq_dump(text[m.start():]) or None

    return RepairedFields(stimulus=stimulus, question_text=stimulus, parts=parts)


def _parse_cq_dump(dump: str) -> list[CQPart]:
    parts: list[CQPart] = []
    seen: set[str] = set()
    for segment in dump.split("|"):
        opt = PIPE_OPTION_PATTERN.match(segment.strip())
        if not opt:
            continue
        letter = normalize_label(opt.group(1))
        if letter in seen:
            continue
        seen.add(letter)

        body = opt.group(2).strip()
        m = CQ_DUMP_PART_PATTERN.match(body)
        if m:
            text = m.group("text")
            marks = int(to_ascii_digits(m.group("marks")))
            answer, _ = split_marks(m.group("answer"))
        else:
            text, marks = split_marks(body)
            answer = ""
        parts.append(CQPart(
            letter=letter,
            text=text.strip().strip("'\"").strip(),
            marks=marks,
            answer=answer.strip().strip("'\"").strip(),
        ))
    return parts


# ─── Repair Driver ────────────────────────────────────────────────────────────

FIXERS: dict[str, list[Fixer]] = {
    QuestionKind.MCQ.value: [
        fix_pipe_dump,
        fix_bengali_inline,
        fix_merged_options,
    ],
    QuestionKind.CQ.value: [fix_cq_pipe_dump],
    QuestionKind.SQ.value: [fix_sq_corruption],
}


def apply_repair(record: QuestionRecord, fields: RepairedFields) -> QuestionRecord:
    """Derive a new record with the repaired fields; never mutates `record`."""
    updates = fields.updates()
    # Field names valid for this kind only
    updates = {k: v for k, v in updates.items() if k in type(record).model_fields}
    data = record.model_dump()
    data.update({
        k: [item.model_dump() for item in v] if isinstance(v, list) else v
        for k, v in updates.items()
    })
    return type(record).model_validate(data)


def repair(
    record: QuestionRecord,
    diagnostics: Optional[list[Diagnostic]] = None,
) -> Optional[Repair]:
    """Try the fixers for the record's kind in priority order."""
    for fixer in FIXERS.get(record.kind, []):
        fields = fixer(record)
        if fields is None or not fields.updates():
            continue
        logger.info(
            f"Record {record.id or '(unsaved)'} repaired by {fixer.__name__}"
        )
        return Repair(
            fixer=fixer.__name__,
            fields=fields,
            record=apply_repair(record, fields),
        )

    logger.debug(f"No fixer applicable to record {record.id or '(unsaved)'}")
    if diagnostics is not None:
        diagnostics.append(Diagnostic(
            reason=SkipReason.FIXER_INAPPLICABLE,
            message="No corruption pattern recognized",
            context={"id": record.id, "kind": record.kind},
        ))
    return None
