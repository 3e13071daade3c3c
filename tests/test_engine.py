"""
Test Suite for the Engine, Validation and CLI
=============================================
"""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from qbank.cli import cli
from qbank.engine import ParserConfig, ParserEngine, parse_questions
from qbank.models import (
    CQPart,
    CQRecord,
    Diagnostic,
    Language,
    MCQOption,
    MCQRecord,
    ParseResult,
    QuestionKind,
    SkipReason,
    SQRecord,
    ValidationReport,
    dump_records,
    load_records,
)
from qbank.validator import ValidationEngine


MCQ_PASTE = """[Subject: Chemistry]
[Chapter: Acids]
**1.** What is X?
a) A
b) B
c) C
d) D
Correct: a
Explanation: because

[Subject: Chemistry]
[Chapter: Acids]
**2.** What is Y?
a) P
b) Q
Correct: b
"""


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestRecordModels:
    """Test the tagged record union."""

    def test_well_formedness(self):
        assert not MCQRecord(question_text="Q", options=[
            MCQOption(label="a", text="x")
        ]).is_well_formed
        assert CQRecord(stimulus="S", parts=[CQPart(letter="a", text="Q")]).is_well_formed
        assert not SQRecord(question_text="Q").is_well_formed

    def test_union_dispatches_on_kind(self):
        records = load_records([
            {"kind": "mcq", "question_text": "Q", "options": []},
            {"kind": "cq", "stimulus": "S"},
            {"kind": "sq", "question_text": "Q", "answer": "A"},
        ])
        assert [type(r) for r in records] == [MCQRecord, CQRecord, SQRecord]

    def test_dump_is_json_ready(self):
        data = dump_records([SQRecord(question_text="Q", answer="A", language=Language.BN)])
        assert data[0]["kind"] == "sq"
        assert data[0]["language"] == "bn"
        assert data[0]["is_well_formed"] is True

    def test_success_rate(self):
        assert ValidationReport().success_rate == 0.0
        assert ValidationReport(total_records=4, complete_records=3).success_rate == 75.0


# ═══════════════════════════════════════════════════════════════════════════════
# VALIDATION ENGINE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestValidationEngine:
    """Test the completeness report."""

    def test_empty(self):
        report = ValidationEngine().validate([])
        assert report.total_records == 0
        assert report.success_rate == 0.0

    def test_complete_mcq(self):
        record = MCQRecord(
            subject="Math", chapter="1", question_text="Q",
            options=[MCQOption(label="a", text="x"), MCQOption(label="b", text="y")],
            correct_answer="a", explanation="e",
        )
        report = ValidationEngine().validate([record])
        assert report.complete_records == 1
        assert report.success_rate == 100.0
        assert report.records_by_kind == {"mcq": 1}

    def test_mcq_findings(self):
        options = [MCQOption(label="a", text="x"), MCQOption(label="b", text="y")]
        records = [
            MCQRecord(question_text="Q", options=options),
            MCQRecord(subject="M", chapter="1", question_text="Q",
                      options=options, correct_answer="d", explanation="e"),
        ]
        report = ValidationEngine().validate(records)
        assert report.missing_metadata == [0]
        assert report.missing_correct_answer == [0]
        assert report.missing_explanation == [0]
        assert report.answer_not_in_options == [1]
        assert report.complete_records == 0

    def test_cq_findings(self):
        record = CQRecord(
            subject="P", chapter="2", stimulus="S",
            parts=[
                CQPart(letter="a", text="Q1", marks=1, answer="A1"),
                CQPart(letter="b", text="Q2", marks=0, answer=""),
            ],
        )
        report = ValidationEngine().validate([record])
        assert report.parts_missing_answer == [0]
        assert report.parts_missing_marks == [0]

    def test_skip_breakdown(self):
        diagnostics = [
            Diagnostic(reason=SkipReason.UNRECOGNIZED_LINE, message="x"),
            Diagnostic(reason=SkipReason.UNRECOGNIZED_LINE, message="y"),
            Diagnostic(reason=SkipReason.INCOMPLETE_RECORD, message="z"),
        ]
        report = ValidationEngine().validate([], diagnostics)
        assert report.skip_breakdown == {
            "unrecognized_line": 2, "incomplete_record": 1
        }


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestParseQuestions:
    """Test the segment-then-parse convenience function."""

    def test_two_questions_in_order(self):
        records = parse_questions(MCQ_PASTE, "mcq")
        assert [r.question_text for r in records] == ["What is X?", "What is Y?"]

    def test_kind_dispatch(self):
        records = parse_questions(
            "1. What is osmosis?\nAnswer: Diffusion of water.", QuestionKind.SQ
        )
        assert isinstance(records[0], SQRecord)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            parse_questions("text", "essay")

    def test_noise_never_raises(self):
        diagnostics: list[Diagnostic] = []
        records = parse_questions("???\n:::\n)))", "cq", diagnostics=diagnostics)
        assert records == []


class TestParserEngine:
    """Test the full import pipeline."""

    def test_parse_text(self):
        engine = ParserEngine(ParserConfig(kind=QuestionKind.MCQ, save_output=False))
        result = engine.parse_text(MCQ_PASTE)
        assert isinstance(result, ParseResult)
        assert result.kind == QuestionKind.MCQ
        assert result.parse_version.block_count == 2
        assert result.parse_version.record_count == 2
        assert result.validation.total_records == 2
        # Second question has no explanation
        assert result.validation.missing_explanation == [1]

    def test_diagnostics_collected(self):
        engine = ParserEngine(ParserConfig(save_output=False))
        result = engine.parse_text("intro line\n1. Q?\na) only")
        assert {d.reason for d in result.diagnostics} == {
            SkipReason.UNRECOGNIZED_LINE, SkipReason.INCOMPLETE_RECORD
        }
        assert result.validation.skip_breakdown["incomplete_record"] == 1

    def test_forced_language(self):
        config = ParserConfig(language=Language.BN, save_output=False)
        result = ParserEngine(config).parse_text("1. Q?\na) x\nb) y")
        assert result.records[0].language == Language.BN

    def test_parse_file_missing(self, tmp_path):
        engine = ParserEngine(ParserConfig(save_output=False))
        with pytest.raises(FileNotFoundError):
            engine.parse_file(str(tmp_path / "nope.txt"))

    def test_parse_file_saves_output(self, tmp_path):
        source = tmp_path / "chem.txt"
        source.write_text(MCQ_PASTE, encoding="utf-8")
        out_dir = tmp_path / "out"
        engine = ParserEngine(ParserConfig(output_dir=str(out_dir)))
        result = engine.parse_file(str(source))

        saved = out_dir / "chem_parsed.json"
        assert saved.exists()
        data = json.loads(saved.read_text(encoding="utf-8"))
        assert data["kind"] == "mcq"
        assert len(data["records"]) == len(result.records) == 2
        assert ParseResult.model_validate(data).records == result.records


# ═══════════════════════════════════════════════════════════════════════════════
# CLI TESTS
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def runner():
    return CliRunner()


def write_records(path, records):
    path.write_text(
        json.dumps(dump_records(records), ensure_ascii=False), encoding="utf-8"
    )
    return str(path)


class TestCLI:
    """Test the click commands."""

    def test_parse_json_output(self, runner, tmp_path):
        source = tmp_path / "paste.txt"
        source.write_text(MCQ_PASTE, encoding="utf-8")
        result = runner.invoke(cli, [
            "parse", str(source), "--kind", "mcq", "--json-output", "--no-save",
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [r["correct_answer"] for r in data["records"]] == ["a", "b"]

    def test_parse_table_output(self, runner, tmp_path):
        source = tmp_path / "paste.txt"
        source.write_text(MCQ_PASTE, encoding="utf-8")
        result = runner.invoke(cli, [
            "parse", str(source), "-o", str(tmp_path / "out"), "--log-level", "ERROR",
        ])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "out" / "paste_parsed.json").exists()

    def test_fix_writes_repaired_records(self, runner, tmp_path):
        source = write_records(tmp_path / "records.json", [
            MCQRecord(id="1", question_text="Question:|a:1/3|b:1/2|c:3/2|d:2|Ans:b"),
            SQRecord(id="2", question_text="What is a cell?", answer="Unit."),
        ])
        output = tmp_path / "fixed.json"
        result = runner.invoke(cli, ["fix", source, "-o", str(output)])
        assert result.exit_code == 0, result.output
        fixed = load_records(json.loads(output.read_text(encoding="utf-8")))
        assert fixed[0].correct_answer == "b"
        assert len(fixed[0].options) == 4
        assert fixed[1].question_text == "What is a cell?"

    def test_dedup_json(self, runner, tmp_path):
        options = [MCQOption(label="a", text="x"), MCQOption(label="b", text="y")]
        source = write_records(tmp_path / "records.json", [
            MCQRecord(id="1", subject="Bio", question_text="Q?", options=options),
            MCQRecord(id="2", subject="bio", question_text="Q?", options=options),
            MCQRecord(id="3", subject="Bio", question_text="Other?", options=options),
        ])
        result = runner.invoke(cli, ["dedup", source, "--json-output"])
        assert result.exit_code == 0, result.output
        groups = json.loads(result.stdout)
        assert len(groups) == 1
        assert [d["id"] for d in groups[0]["duplicates"]] == ["2"]

    def test_dedup_against_store(self, runner, tmp_path):
        options = [MCQOption(label="a", text="x"), MCQOption(label="b", text="y")]
        records = [
            MCQRecord(id="1", subject="Bio", question_text="Q?", options=options),
            MCQRecord(id="2", subject="Bio", question_text="Q?", options=options),
        ]
        source = write_records(tmp_path / "records.json", records)
        db = str(tmp_path / "store.sqlite")

        result = runner.invoke(cli, ["import-db", source, "--db", db])
        assert result.exit_code == 0, result.output

        partial = write_records(tmp_path / "partial.json", [
            MCQRecord(id="1", subject="Bio", question_text="Q?"),
            MCQRecord(id="2", subject="Bio", question_text="Q?"),
        ])
        result = runner.invoke(cli, ["dedup", partial, "--db", db, "--json-output"])
        assert result.exit_code == 0, result.output
        groups = json.loads(result.stdout)
        assert groups[0]["original"]["id"] == "1"
        assert [d["id"] for d in groups[0]["duplicates"]] == ["2"]

    def test_validate_records_file(self, runner, tmp_path):
        source = write_records(tmp_path / "records.json", [
            SQRecord(question_text="Q", answer="A"),
        ])
        result = runner.invoke(cli, ["validate", source])
        assert result.exit_code == 0, result.output
        assert "Validation Report" in result.output

    def test_bad_records_file_exits_1(self, runner, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("[{\"kind\": \"essay\"}]", encoding="utf-8")
        result = runner.invoke(cli, ["fix", str(bad)])
        assert result.exit_code == 1
