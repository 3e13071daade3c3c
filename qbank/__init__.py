"""
Question Bank Importer
======================
Turns pasted exam text into structured question records.

Architecture:
    - Segmenter: Splits raw text into per-question blocks
    - Body Parsers: Table-driven state machines for MCQ, CQ and SQ
    - Corruption Fixers: Recover records stored in known broken shapes
    - Duplicate Reconciliation: Groups and confirms duplicate records
    - Validator: Completeness report for an import run

Version: 1.0.0
"""

__version__ = "1.0.0"
