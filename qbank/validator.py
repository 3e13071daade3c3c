"""
Validation Engine
=================
Post-parse validation and reporting.

After each import run, generates a completeness report:
    - Total records, per kind
    - Records missing subject or chapter
    - MCQs without a correct answer, or whose answer is not an option label
    - MCQs without an explanation
    - CQ parts without an answer or marks
    - Diagnostic breakdown by skip reason

Findings are indices into the record list. Never raises.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from .models import (
    CQRecord,
    Diagnostic,
    MCQRecord,
    QuestionRecord,
    ValidationReport,
)

logger = logging.getLogger(__name__)


class ValidationEngine:
    """
    Validates parsed records and produces a completeness report.
    """

    def validate(
        self,
        records: list[QuestionRecord],
        diagnostics: Optional[list[Diagnostic]] = None,
    ) -> ValidationReport:
        """
        Run full validation on parsed records.

        Args:
            records: Records produced by the body parsers or the store.
            diagnostics: Skips collected while producing them.

        Returns:
            ValidationReport with all detected issues.
        """
        report = ValidationReport()

        if diagnostics:
            report.skip_breakdown = dict(
                Counter(d.reason.value for d in diagnostics)
            )

        if not records:
            logger.warning("No records to validate")
            return report

        report.total_records = len(records)
        report.records_by_kind = dict(Counter(r.kind for r in records))

        complete = 0
        for index, record in enumerate(records):
            findings = 0

            if not record.subject.strip() or not record.chapter.strip():
                report.missing_metadata.append(index)
                findings += 1

            if isinstance(record, MCQRecord):
                findings += self._check_mcq(index, record, report)
            elif isinstance(record, CQRecord):
                findings += self._check_cq(index, record, report)

            if findings == 0:
                complete += 1

        report.complete_records = complete

        # Log summary
        logger.info("=" * 60)
        logger.info("VALIDATION REPORT")
        logger.info("=" * 60)
        logger.info(f"Total Records: {report.total_records}")
        for kind, count in sorted(report.records_by_kind.items()):
            logger.info(f"  • {kind}: {count}")
        logger.info(
            f"Complete Records: {report.complete_records} "
            f"({report.success_rate}%)"
        )
        logger.info(f"Missing Metadata: {len(report.missing_metadata)}")
        logger.info(
            f"Missing Correct Answer: {len(report.missing_correct_answer)}"
        )
        logger.info(
            f"Answer Not In Options: {len(report.answer_not_in_options)}"
        )
        logger.info(f"Missing Explanation: {len(report.missing_explanation)}")
        logger.info(f"Parts Missing Answer: {len(report.parts_missing_answer)}")
        logger.info(f"Parts Missing Marks: {len(report.parts_missing_marks)}")

        if report.skip_breakdown:
            logger.info("Skip Breakdown:")
            for reason, count in sorted(report.skip_breakdown.items()):
                logger.info(f"  • {reason}: {count}")

        logger.info("=" * 60)

        return report

    def _check_mcq(
        self, index: int, record: MCQRecord, report: ValidationReport
    ) -> int:
        findings = 0
        answer = (record.correct_answer or "").strip().lower()
        if not answer:
            report.missing_correct_answer.append(index)
            findings += 1
        elif answer not in {o.label for o in record.options}:
            report.answer_not_in_options.append(index)
            findings += 1

        if not (record.explanation or "").strip():
            report.missing_explanation.append(index)
            findings += 1
        return findings

    def _check_cq(
        self, index: int, record: CQRecord, report: ValidationReport
    ) -> int:
        findings = 0
        if any(not p.answer.strip() for p in record.parts):
            report.parts_missing_answer.append(index)
            findings += 1
        if any(p.marks <= 0 for p in record.parts):
            report.parts_missing_marks.append(index)
            findings += 1
        return findings
