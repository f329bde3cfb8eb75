"""Utilities for extracting resume text from PDF uploads."""

from __future__ import annotations

import re
from pathlib import Path

import pymupdf4llm

_BLANK_RUN = re.compile(r"\n{3,}")


def extract_resume_text(pdf_path: str | Path) -> str:
    """Return plain-ish markdown text extracted from a PDF resume.

    Page-break rules (``-----``) emitted by the converter are dropped and runs
    of blank lines collapse to one.
    """

    pdf_path = Path(pdf_path)
    if not pdf_path.exists():
        raise FileNotFoundError(pdf_path)

    markdown = pymupdf4llm.to_markdown(str(pdf_path))
    lines = [line.rstrip() for line in markdown.splitlines() if line.strip() != "-----"]
    return _BLANK_RUN.sub("\n\n", "\n".join(lines)).strip()


__all__ = ["extract_resume_text"]
