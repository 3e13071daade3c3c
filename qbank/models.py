"""
Data Models
===========
Pydantic models for structured question records.
All models are serializable to JSON for the external question store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, computed_field

# Sentinel stored in place of an image that is referenced but not attached.
IMAGE_PLACEHOLDER = "[There is a picture]"


# ─── Enums ────────────────────────────────────────────────────────────────────


class QuestionKind(str, Enum):
    """Supported question formats."""
    MCQ = "mcq"
    CQ = "cq"
    SQ = "sq"


class Language(str, Enum):
    EN = "en"
    BN = "bn"


class SkipReason(str, Enum):
    """Why a line, record or candidate was dropped."""
    UNRECOGNIZED_LINE = "unrecognized_line"
    INCOMPLETE_RECORD = "incomplete_record"
    DUPLICATE_LABEL = "duplicate_label"
    UNKNOWN_METADATA_KEY = "unknown_metadata_key"
    FIXER_INAPPLICABLE = "fixer_inapplicable"
    PLACEHOLDER_RECORD = "placeholder_record"
    UNCONFIRMED_DUPLICATE = "unconfirmed_duplicate"
    FETCH_FAILED = "fetch_failed"
    MISSING_FULL_RECORD = "missing_full_record"


# ─── Diagnostics ──────────────────────────────────────────────────────────────


class Diagnostic(BaseModel):
    """A silently skipped input, made observable."""
    reason: SkipReason
    message: str
    context: Optional[dict] = None


# ─── Record Payloads ──────────────────────────────────────────────────────────


class MCQOption(BaseModel):
    label: str = Field(description="Normalized option label, a-d")
    text: str = ""
    image: Optional[str] = None


class CQPart(BaseModel):
    letter: str = Field(description="Normalized part letter, a-d")
    text: str = ""
    marks: int = 0
    answer: str = ""
    image: Optional[str] = None


# ─── Question Records ─────────────────────────────────────────────────────────


class QuestionBase(BaseModel):
    """Fields shared by every question kind."""
    id: Optional[str] = None
    subject: str = ""
    chapter: str = ""
    lesson: str = ""
    board: str = ""
    language: Language = Language.EN
    question_text: str = ""
    image: Optional[str] = None

    @property
    def body_text(self) -> str:
        """The prompt text used to identify the question."""
        return self.question_text


class MCQRecord(QuestionBase):
    """A multiple-choice question."""
    kind: Literal["mcq"] = "mcq"
    options: list[MCQOption] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None

    @computed_field
    @property
    def is_well_formed(self) -> bool:
        return len(self.options) >= 2 and bool(self.question_text.strip())


class CQRecord(QuestionBase):
    """
    A creative question: a stimulus followed by lettered parts,
    each carrying its own marks and answer.
    """
    kind: Literal["cq"] = "cq"
    stimulus: str = ""
    parts: list[CQPart] = Field(default_factory=list)

    @property
    def body_text(self) -> str:
        return self.stimulus or self.question_text

    @computed_field
    @property
    def is_well_formed(self) -> bool:
        return bool(self.stimulus.strip()) and len(self.parts) >= 1


class SQRecord(QuestionBase):
    """A short-answer question."""
    kind: Literal["sq"] = "sq"
    answer: str = ""

    @computed_field
    @property
    def is_well_formed(self) -> bool:
        return bool(self.question_text.strip()) and bool(self.answer.strip())


QuestionRecord = Annotated[
    Union[MCQRecord, CQRecord, SQRecord],
    Field(discriminator="kind"),
]

RECORD_LIST_ADAPTER = TypeAdapter(list[QuestionRecord])


def load_records(data: list[dict]) -> list[QuestionRecord]:
    """Validate a list of plain dicts into typed records."""
    return RECORD_LIST_ADAPTER.validate_python(data)


def dump_records(records: list[QuestionRecord]) -> list[dict]:
    return RECORD_LIST_ADAPTER.dump_python(records, mode="json")


# ─── Repair / Dedup Models ────────────────────────────────────────────────────


class RepairedFields(BaseModel):
    """
    Fields recovered by a corruption fixer.
    Only fields that are not None replace the stored record's values.
    """
    question_text: Optional[str] = None
    stimulus: Optional[str] = None
    options: Optional[list[MCQOption]] = None
    parts: Optional[list[CQPart]] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    board: Optional[str] = None
    answer: Optional[str] = None

    def updates(self) -> dict:
        return {
            name: getattr(self, name)
            for name in type(self).model_fields
            if getattr(self, name) is not None
        }


class Repair(BaseModel):
    """A fixer's result together with the derived record."""
    fixer: str
    fields: RepairedFields
    record: QuestionRecord


class DuplicateGroup(BaseModel):
    """Records confirmed (or provisionally grouped) as copies of `original`."""
    original: QuestionRecord
    duplicates: list[QuestionRecord] = Field(default_factory=list)


# ─── Import Result Models ─────────────────────────────────────────────────────


class ParseVersion(BaseModel):
    """Version tracking for a parse run."""
    parser_version: str = "1.0.0"
    parse_timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    block_count: int = 0
    record_count: int = 0


class ValidationReport(BaseModel):
    """Post-parse completeness report."""
    total_records: int = 0
    records_by_kind: dict[str, int] = Field(default_factory=dict)
    missing_metadata: list[int] = Field(default_factory=list)
    missing_correct_answer: list[int] = Field(default_factory=list)
    answer_not_in_options: list[int] = Field(default_factory=list)
    missing_explanation: list[int] = Field(default_factory=list)
    parts_missing_answer: list[int] = Field(default_factory=list)
    parts_missing_marks: list[int] = Field(default_factory=list)
    complete_records: int = 0
    skip_breakdown: dict[str, int] = Field(default_factory=dict)

    @computed_field
    @property
    def success_rate(self) -> float:
        if self.total_records == 0:
            return 0.0
        return round(self.complete_records / self.total_records * 100, 2)


class ParseResult(BaseModel):
    """
    Complete output of an import run.
    This is the top-level JSON structure handed to the question store.
    """
    kind: QuestionKind
    parse_version: ParseVersion = Field(default_factory=ParseVersion)
    records: list[QuestionRecord] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    validation: ValidationReport = Field(default_factory=ValidationReport)
