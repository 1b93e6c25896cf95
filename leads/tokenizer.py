"""
CSV tokenizer for lead uploads.

Each non-blank line is tokenized on its own, so a quoted field never spans
lines. The first non-blank line is the header row.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .models import CSVParseError

logger = logging.getLogger(__name__)

MAX_IMPORT_LEADS = 100

_LINE_BREAK = re.compile(r"\r?\n|\r")


@dataclass
class ParsedCSV:
    """Header row plus the data rows that follow it."""
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)


def parse_csv_line(line: str) -> List[str]:
    """
    Split one line into trimmed cells, honoring double quotes.

    Any quote toggles quoting, wherever it sits in the cell, and is dropped.
    Inside quotes a doubled quote ("") stands for one literal quote.
    """
    cells: List[str] = []
    current: List[str] = []
    in_quotes = False

    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and line[i + 1:i + 2] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    cells.append("".join(current).strip())
    return cells


def parse_csv_text(text: str, max_rows: int = MAX_IMPORT_LEADS) -> ParsedCSV:
    """
    Parse uploaded CSV text into a header and data rows.

    Raises:
        CSVParseError: on an empty file, a header-only file, or more data
            rows than ``max_rows``.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    if not text or not text.strip():
        raise CSVParseError("CSV file is empty")

    lines = [line for line in _LINE_BREAK.split(text) if line.strip()]
    if len(lines) < 2:
        raise CSVParseError("CSV file must contain a header row and at least one data row")

    parsed = [parse_csv_line(line) for line in lines]
    headers = parsed[0]
    rows = [row for row in parsed[1:] if any(cell.strip() for cell in row)]

    if not rows:
        raise CSVParseError("No valid data rows found in CSV file")

    if len(rows) > max_rows:
        raise CSVParseError(
            f"Maximum {max_rows} leads can be imported at once. "
            f"Your file has {len(rows)} rows."
        )

    logger.debug("Parsed CSV: %d columns, %d data rows", len(headers), len(rows))
    return ParsedCSV(headers=headers, rows=rows)


def read_csv_file(
    filepath: str,
    encoding: str = "utf-8-sig",  # Handles BOM from Excel exports
    max_rows: int = MAX_IMPORT_LEADS,
) -> ParsedCSV:
    """Read and parse a CSV file from disk."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"CSV file not found: {filepath}")

    text = filepath.read_text(encoding=encoding)
    return parse_csv_text(text, max_rows=max_rows)
