"""
Test Suite for the Corruption Fixers
====================================
"""

from __future__ import annotations

import pytest

from qbank.fixers import (
    FIXERS,
    apply_repair,
    fix_bengali_inline,
    fix_cq_pipe_dump,
    fix_merged_options,
    fix_pipe_dump,
    fix_sq_corruption,
    repair,
)
from qbank.models import (
    CQPart,
    CQRecord,
    Diagnostic,
    MCQOption,
    MCQRecord,
    RepairedFields,
    SkipReason,
    SQRecord,
)


# ═══════════════════════════════════════════════════════════════════════════════
# MCQ FIXERS
# ═══════════════════════════════════════════════════════════════════════════════


class TestPipeDump:
    """Test the MCQ pipe-dump fixer."""

    def test_bare_dump(self):
        record = MCQRecord(question_text="Question:|a:1/3|b:1/2|c:3/2|d:2|Ans:b")
        fields = fix_pipe_dump(record)
        assert fields is not None
        assert len(fields.options) == 4
        assert [o.text for o in fields.options] == ["1/3", "1/2", "3/2", "2"]
        assert fields.correct_answer == "b"
        assert fields.question_text == ""

    def test_board_and_kind_prefix(self):
        record = MCQRecord(
            question_text="Question: (Dhaka-24) MCQ:What is x?|a:1|b:2|c:3|d:4|Ans:c"
        )
        fields = fix_pipe_dump(record)
        assert fields.question_text == "What is x?"
        assert fields.board == "Dhaka-24"
        assert fields.correct_answer == "c"

    def test_empty_board_dropped(self):
        record = MCQRecord(question_text="(N/A) Pick one|a:x|b:y")
        fields = fix_pipe_dump(record)
        assert fields.question_text == "Pick one"
        assert fields.board is None

    def test_duplicate_labels_first_wins(self):
        record = MCQRecord(question_text="Q|a:first|a:second|b:y")
        fields = fix_pipe_dump(record)
        assert [(o.label, o.text) for o in fields.options] == [
            ("a", "first"), ("b", "y")
        ]

    def test_wrong_kind(self):
        assert fix_pipe_dump(SQRecord(question_text="Q|a:x|b:y")) is None


class TestBengaliInline:
    """Test the inline-marker fixer."""

    TEXT = (
        "বাংলাদেশের রাজধানী কোনটি? ক) রাজশাহী খ) ঢাকা গ) খুলনা ঘ) সিলেট "
        "সঠিক: খ ব্যাখ্যা: ঢাকা রাজধানী।"
    )

    def test_recovers_structure(self):
        fields = fix_bengali_inline(MCQRecord(question_text=self.TEXT))
        assert fields is not None
        assert fields.question_text == "বাংলাদেশের রাজধানী কোনটি?"
        assert [o.label for o in fields.options] == ["a", "b", "c", "d"]
        assert fields.options[1].text == "ঢাকা"
        assert fields.correct_answer == "b"
        assert fields.explanation == "ঢাকা রাজধানী।"

    def test_needs_answer_or_explanation_marker(self):
        record = MCQRecord(question_text="প্রশ্ন? ক) এক খ) দুই গ) তিন")
        assert fix_bengali_inline(record) is None

    def test_needs_two_option_markers(self):
        record = MCQRecord(question_text="প্রশ্ন? ক) এক সঠিক: ক")
        assert fix_bengali_inline(record) is None


class TestMergedOptions:
    """Test the merged-options fixer."""

    def test_circled_labels(self):
        record = MCQRecord(
            question_text="Which is a noble gas? ① Neon ② Oxygen ③ Nitrogen ④ Carbon"
        )
        fields = fix_merged_options(record)
        assert fields.question_text == "Which is a noble gas?"
        assert [o.text for o in fields.options] == [
            "Neon", "Oxygen", "Nitrogen", "Carbon"
        ]

    def test_alpha_labels_with_answer(self):
        record = MCQRecord(
            question_text="Capital of France? a) Paris b) Rome c) Madrid d) Berlin Correct: a"
        )
        fields = fix_merged_options(record)
        assert [o.text for o in fields.options] == [
            "Paris", "Rome", "Madrid", "Berlin"
        ]
        assert fields.correct_answer == "a"

    def test_skips_records_with_options(self):
        record = MCQRecord(
            question_text="Which? ① x ② y",
            options=[MCQOption(label="a", text="x"), MCQOption(label="b", text="y")],
        )
        assert fix_merged_options(record) is None

    def test_short_text_ignored(self):
        assert fix_merged_options(MCQRecord(question_text="① x ② y")) is None

    def test_numbered_list_counts_as_options(self):
        record = MCQRecord(question_text="Which is inert? 1. Neon 2. Oxygen 3. Iron")
        fields = fix_merged_options(record)
        assert fields.question_text == "Which is inert?"
        assert [o.label for o in fields.options] == ["a", "b", "c"]


# ═══════════════════════════════════════════════════════════════════════════════
# SQ / CQ FIXERS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSQCorruption:
    """Test the SQ fixer."""

    def test_board_and_answer(self):
        record = SQRecord(
            question_text="(Rajshahi-23) What is osmosis?|Ans: Movement of water"
        )
        fields = fix_sq_corruption(record)
        assert fields.question_text == "What is osmosis?"
        assert fields.answer == "Movement of water"
        assert fields.board == "Rajshahi-23"

    def test_board_only(self):
        fields = fix_sq_corruption(SQRecord(question_text="(Comilla) What is pH?"))
        assert fields.board == "Comilla"
        assert fields.answer is None

    def test_bengali_answer_marker(self):
        fields = fix_sq_corruption(SQRecord(question_text="কোষ কী? উত্তর: একক"))
        assert fields.question_text == "কোষ কী?"
        assert fields.answer == "একক"

    def test_bengali_board(self):
        fields = fix_sq_corruption(SQRecord(question_text="(ঢাকা বোর্ড ২০২৩) কোষ কী?"))
        assert fields.board == "ঢাকা বোর্ড ২০২৩"
        assert fields.question_text == "কোষ কী?"

    @pytest.mark.parametrize("prefix", ["(a)", "(ক)", "(1)", "(i)", "(iv)", "(e)"])
    def test_item_label_is_not_a_board(self, prefix):
        record = SQRecord(question_text=f"{prefix} What is osmosis?|Ans: Water movement")
        fields = fix_sq_corruption(record)
        assert fields.board is None
        assert fields.question_text == f"{prefix} What is osmosis?"
        assert fields.answer == "Water movement"


class TestCQPipeDump:
    """Test the CQ pipe-dump fixer."""

    DUMP = (
        "Rahim mixed two salts. [2]|a:'What is a salt?' (1):'An ionic compound' [2]"
        "|b:'Explain.' (2):'Because.'"
    )

    def test_truncates_stimulus_and_recovers_parts(self):
        fields = fix_cq_pipe_dump(CQRecord(stimulus=self.DUMP))
        assert fields.stimulus == "Rahim mixed two salts."
        assert fields.question_text == "Rahim mixed two salts."
        assert [(p.letter, p.text, p.marks, p.answer) for p in fields.parts] == [
            ("a", "What is a salt?", 1, "An ionic compound"),
            ("b", "Explain.", 2, "Because."),
        ]

    def test_existing_parts_kept(self):
        record = CQRecord(
            stimulus=self.DUMP,
            parts=[CQPart(letter="a", text="What is a salt?", marks=1)],
        )
        fields = fix_cq_pipe_dump(record)
        assert fields.parts is None
        assert fields.stimulus == "Rahim mixed two salts."


# ═══════════════════════════════════════════════════════════════════════════════
# REPAIR DRIVER
# ═══════════════════════════════════════════════════════════════════════════════


CLEAN_RECORDS = [
    MCQRecord(
        question_text="What is 2 + 2?",
        options=[MCQOption(label="a", text="3"), MCQOption(label="b", text="4")],
        correct_answer="b",
    ),
    MCQRecord(question_text="What is the boiling point of water?"),
    CQRecord(stimulus="Rahim mixed salts.", parts=[CQPart(letter="a", text="Q")]),
    SQRecord(question_text="What is a cell?", answer="Unit of life."),
    SQRecord(question_text="(a) Define osmosis.", answer="Movement of water."),
    SQRecord(question_text="(i) Define osmosis in plants.", answer="x"),
    SQRecord(question_text="(iv) Name the gas plants release.", answer="Oxygen"),
    SQRecord(question_text="(1) What is a cell?", answer="Unit of life."),
    SQRecord(question_text="(ক) কোষ কাকে বলে?", answer="একক"),
    MCQRecord(question_text="(a) Define osmosis in plants."),
    MCQRecord(question_text="(1) Which gas is inert?"),
    CQRecord(
        stimulus="(i) A car moves at 20 m/s.",
        parts=[CQPart(letter="a", text="What is speed?")],
    ),
]


class TestRepair:
    """Test fixer precedence and purity."""

    def test_priority_order(self):
        assert [f.__name__ for f in FIXERS["mcq"]] == [
            "fix_pipe_dump", "fix_bengali_inline", "fix_merged_options"
        ]

    def test_pipe_dump_wins_over_merged_options(self):
        record = MCQRecord(question_text="Pick: a) x b) y|a:1|b:2|Ans:a")
        result = repair(record)
        assert result.fixer == "fix_pipe_dump"
        assert [o.text for o in result.record.options] == ["1", "2"]

    def test_repair_derives_new_record(self):
        record = MCQRecord(
            id="q1",
            subject="Math",
            question_text="Question:|a:1/3|b:1/2|c:3/2|d:2|Ans:b",
        )
        result = repair(record)
        assert result.record is not record
        assert result.record.id == "q1"
        assert result.record.subject == "Math"
        assert result.record.correct_answer == "b"
        # Original untouched
        assert record.options == []
        assert record.question_text.startswith("Question:")

    @pytest.mark.parametrize("record", CLEAN_RECORDS)
    def test_no_markers_is_inapplicable(self, record):
        for fixer in FIXERS[record.kind]:
            assert fixer(record) is None
        diagnostics: list[Diagnostic] = []
        assert repair(record, diagnostics) is None
        assert [d.reason for d in diagnostics] == [SkipReason.FIXER_INAPPLICABLE]

    def test_apply_repair_ignores_foreign_fields(self):
        record = SQRecord(question_text="Q", answer="A")
        fixed = apply_repair(record, RepairedFields(
            question_text="Q2",
            options=[MCQOption(label="a", text="x")],
        ))
        assert fixed.question_text == "Q2"
        assert not hasattr(fixed, "options")
