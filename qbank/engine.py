"""
Question Import Engine
======================
Main orchestrator that combines segmentation, the body parsers,
validation, and output formatting into a complete import pipeline.

Usage:
    engine = ParserEngine(ParserConfig(kind=QuestionKind.CQ))
    result = engine.parse_file("path/to/paste.txt")
    # result is a ParseResult with structured JSON output

Architecture:
    text → segment() → TextBlocks → MCQ/CQ/SQ parser →
    QuestionRecords → ValidationEngine → ParseResult (JSON)
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from . import __version__
from .cq_parser import parse_cq
from .mcq_parser import parse_mcq
from .models import (
    Diagnostic,
    Language,
    ParseResult,
    ParseVersion,
    QuestionKind,
    QuestionRecord,
)
from .segmenter import segment
from .sq_parser import parse_sq
from .validator import ValidationEngine

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

BODY_PARSERS: dict[QuestionKind, Callable[..., list]] = {
    QuestionKind.MCQ: parse_mcq,
    QuestionKind.CQ: parse_cq,
    QuestionKind.SQ: parse_sq,
}


@dataclass
class ParserConfig:
    """Configuration for the import engine."""

    # Parsing
    kind: QuestionKind = QuestionKind.MCQ
    language: Optional[Language] = None  # None = detect per record

    # Output settings
    output_dir: str = "output"
    save_output: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


def parse_questions(
    text: str,
    kind: Union[QuestionKind, str],
    language: Optional[Language] = None,
    diagnostics: Optional[list[Diagnostic]] = None,
) -> list[QuestionRecord]:
    """
    Segment `text` and run the body parser for `kind` over every block.
    Records come back in input order. Never raises on malformed text.
    """
    parse_block = BODY_PARSERS[QuestionKind(kind)]
    records: list[QuestionRecord] = []
    for block in segment(text):
        records.extend(
            parse_block(block.text, language=language, diagnostics=diagnostics)
        )
    return records


class ParserEngine:
    """
    Main import engine.

    Orchestrates the full pipeline:
        1. Segmentation into blocks
        2. Body parsing per block (state machine per kind)
        3. Validation
        4. Output formatting
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        self.config = config or ParserConfig()
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        # Configure root logger for the qbank package
        package_logger = logging.getLogger("qbank")
        package_logger.setLevel(log_level)

        # Console handler
        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            package_logger.addHandler(console)

        # File handler
        if self.config.log_file:
            log_dir = Path(self.config.log_file).parent
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(
                self.config.log_file, encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            package_logger.addHandler(file_handler)

    def parse_text(self, text: str) -> ParseResult:
        """
        Parse pasted text into structured question records.

        Args:
            text: Raw text, possibly holding many questions.

        Returns:
            ParseResult containing records, diagnostics and validation.
        """
        start_time = time.time()
        kind = QuestionKind(self.config.kind)
        diagnostics: list[Diagnostic] = []

        # ── Step 1: Segmentation ──────────────────────────────────────
        blocks = segment(text)
        logger.info(f"Phase 1: Segmented input into {len(blocks)} blocks")

        # ── Step 2: Body parsing ──────────────────────────────────────
        logger.info(f"Phase 2: Parsing {kind.value.upper()} blocks")
        parse_block = BODY_PARSERS[kind]
        records: list[QuestionRecord] = []
        for block in blocks:
            parsed = parse_block(
                block.text,
                language=self.config.language,
                diagnostics=diagnostics,
            )
            if not parsed:
                logger.debug(
                    f"Block {block.index} (line {block.start_line}) "
                    f"produced no records"
                )
            records.extend(parsed)

        # ── Step 3: Validation ────────────────────────────────────────
        logger.info("Phase 3: Validation")
        validation = ValidationEngine().validate(records, diagnostics)

        # ── Step 4: Build result ──────────────────────────────────────
        result = ParseResult(
            kind=kind,
            parse_version=ParseVersion(
                parser_version=__version__,
                block_count=len(blocks),
                record_count=len(records),
            ),
            records=records,
            diagnostics=diagnostics,
            validation=validation,
        )

        elapsed = time.time() - start_time
        logger.info(
            f"Parse complete in {elapsed:.2f}s: "
            f"{len(records)} records, {len(diagnostics)} diagnostics"
        )
        return result

    def parse_file(self, path: str) -> ParseResult:
        """
        Parse a UTF-8 text file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
        """
        source = Path(path)
        if not source.is_file():
            raise FileNotFoundError(f"Input not found: {source}")

        logger.info(f"Starting parse of: {source}")
        result = self.parse_text(source.read_text(encoding="utf-8"))

        if self.config.save_output:
            output_dir = Path(self.config.output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            self._save_json(result, output_dir / f"{source.stem}_parsed.json")

        return result

    def _save_json(self, result: ParseResult, filepath: Path):
        """Save ParseResult to JSON file."""
        try:
            data = result.model_dump(mode="json")
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            logger.info(f"Saved JSON output: {filepath}")
        except OSError as e:
            logger.error(f"Failed to save JSON: {e}")
