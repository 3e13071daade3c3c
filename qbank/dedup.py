"""
Duplicate Reconciliation Engine
===============================
Finds true duplicates in a record corpus.

Step 1 (candidates): group records by
    (kind, normalize(subject), normalize(body text without a trailing "[n]"))
skipping placeholder-only records. Groups with more than one member are
candidates; the first-seen member is the original.

Step 2 (confirmation): local copies may be partial, so full records are
fetched through the caller-supplied `fetch_full_records_by_ids` and each
duplicate is kept only if it is deeply equal to the original.

Each candidate group is confirmed independently: a failed fetch drops that
group only. Nothing is ever deleted; the caller acts on the returned groups.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .cache import CachedFetcher, FetchFn, RecordCache
from .models import (
    CQRecord,
    Diagnostic,
    DuplicateGroup,
    MCQRecord,
    QuestionRecord,
    SkipReason,
    SQRecord,
)
from .normalizer import is_placeholder, normalize

logger = logging.getLogger(__name__)

# One trailing "[12]" / "(১২)" numbering suffix
NUMERIC_SUFFIX_PATTERN = re.compile(r"\s*[\[(]\s*[\d০-৯]+\s*[\])]\s*$")


# ─── Step 1: Candidate Grouping ───────────────────────────────────────────────


def strip_numeric_suffix(text: str) -> str:
    """
    Remove exactly one trailing bracketed number, and only when some text
    remains in front of it.
    """
    m = NUMERIC_SUFFIX_PATTERN.search(text)
    if not m or not text[:m.start()].strip():
        return text
    return text[:m.start()]


def duplicate_key(record: QuestionRecord) -> Optional[tuple[str, str, str]]:
    """Composite grouping key, or None for records that are never grouped."""
    body = record.body_text
    if is_placeholder(body) or not normalize(body):
        return None
    return (
        record.kind,
        normalize(record.subject),
        normalize(strip_numeric_suffix(body)),
    )


def find_candidate_groups(
    records: list[QuestionRecord],
    diagnostics: Optional[list[Diagnostic]] = None,
) -> list[DuplicateGroup]:
    buckets: dict[tuple, list[QuestionRecord]] = {}

    for record in records:
        key = duplicate_key(record)
        if key is None:
            if diagnostics is not None:
                diagnostics.append(Diagnostic(
                    reason=SkipReason.PLACEHOLDER_RECORD,
                    message="Record has no comparable body text",
                    context={"id": record.id},
                ))
            continue
        buckets.setdefault(key, []).append(record)

    return [
        DuplicateGroup(original=members[0], duplicates=members[1:])
        for members in buckets.values()
        if len(members) > 1
    ]


# ─── Step 2: Deep Equality ────────────────────────────────────────────────────


def records_equal(a: QuestionRecord, b: QuestionRecord) -> bool:
    """Strict structural equality on trimmed text."""
    if a.kind != b.kind:
        return False
    if a.body_text.strip() != b.body_text.strip():
        return False

    if isinstance(a, MCQRecord):
        if len(a.options) != len(b.options):
            return False
        for x, y in zip(a.options, b.options):
            if x.label != y.label or x.text.strip() != y.text.strip():
                return False
        return (
            (a.correct_answer or "").strip().lower()
            == (b.correct_answer or "").strip().lower()
        )

    if isinstance(a, CQRecord):
        if len(a.parts) != len(b.parts):
            return False
        return all(
            x.letter == y.letter and x.text.strip() == y.text.strip()
            for x, y in zip(a.parts, b.parts)
        )

    if isinstance(a, SQRecord):
        return a.answer.strip() == b.answer.strip()

    return False


class DuplicateReconciler:
    """
    Candidate grouping plus per-group confirmation.

    Args:
        fetch_full_records_by_ids: Callable returning full records for ids.
            When omitted, the records passed in are trusted as complete.
        cache: Optional RecordCache placed in front of the fetcher.
        diagnostics: Optional list collecting dropped candidates.
    """

    def __init__(
        self,
        fetch_full_records_by_ids: Optional[FetchFn] = None,
        cache: Optional[RecordCache] = None,
        diagnostics: Optional[list[Diagnostic]] = None,
    ):
        self.fetch = (
            CachedFetcher(fetch_full_records_by_ids, cache)
            if fetch_full_records_by_ids is not None
            else None
        )
        self.diagnostics = diagnostics

    def candidates(self, records: list[QuestionRecord]) -> list[DuplicateGroup]:
        groups = find_candidate_groups(records, self.diagnostics)
        logger.info(
            f"Found {len(groups)} candidate duplicate groups "
            f"among {len(records)} records"
        )
        return groups

    def confirm(self, groups: list[DuplicateGroup]) -> list[DuplicateGroup]:
        confirmed: list[DuplicateGroup] = []

        for group in groups:
            try:
                result = self._confirm_group(group)
            except Exception as e:
                logger.warning(
                    f"Confirmation failed for group of {group.original.id}: {e}"
                )
                self._report(
                    SkipReason.FETCH_FAILED,
                    f"Could not fetch full records: {e}",
                    id=group.original.id,
                )
                continue
            if result is not None:
                confirmed.append(result)

        logger.info(
            f"Confirmed {len(confirmed)} of {len(groups)} duplicate groups"
        )
        return confirmed

    def reconcile(self, records: list[QuestionRecord]) -> list[DuplicateGroup]:
        return self.confirm(self.candidates(records))

    def _confirm_group(self, group: DuplicateGroup) -> Optional[DuplicateGroup]:
        members = [group.original, *group.duplicates]
        full: dict[str, QuestionRecord] = {}

        ids = [m.id for m in members if m.id]
        if self.fetch is not None and ids:
            full = {r.id: r for r in self.fetch(ids) if r.id}

        original = self._resolve(group.original, full)
        if original is None:
            return None

        duplicates = []
        for member in group.duplicates:
            candidate = self._resolve(member, full)
            if candidate is None:
                continue
            if records_equal(original, candidate):
                duplicates.append(candidate)
            else:
                self._report(
                    SkipReason.UNCONFIRMED_DUPLICATE,
                    "Candidate differs from the original",
                    id=member.id,
                    original_id=original.id,
                )

        if not duplicates:
            return None
        return DuplicateGroup(original=original, duplicates=duplicates)

    def _resolve(
        self, record: QuestionRecord, full: dict[str, QuestionRecord]
    ) -> Optional[QuestionRecord]:
        """Full copy of `record`; local copy when it has no id or no fetcher."""
        if self.fetch is None or not record.id:
            return record
        resolved = full.get(record.id)
        if resolved is None:
            self._report(
                SkipReason.MISSING_FULL_RECORD,
                f"Store returned no record for id {record.id}",
                id=record.id,
            )
        return resolved

    def _report(self, reason: SkipReason, message: str, **context):
        logger.debug(message)
        if self.diagnostics is not None:
            self.diagnostics.append(Diagnostic(
                reason=reason, message=message, context=context
            ))


def reconcile(
    records: list[QuestionRecord],
    fetch_full_records_by_ids: Optional[FetchFn] = None,
    diagnostics: Optional[list[Diagnostic]] = None,
) -> list[DuplicateGroup]:
    """One-shot convenience wrapper around DuplicateReconciler."""
    return DuplicateReconciler(
        fetch_full_records_by_ids, diagnostics=diagnostics
    ).reconcile(records)
