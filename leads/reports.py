"""
Downloadable artifacts around an import: the error report and the template.
"""

from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from .models import ImportResult, RowError

TEMPLATE_FILENAME = "prospects_import_template.csv"

TEMPLATE_CSV = (
    "Company Name,Contact Name,Phone,Email,Status,Probability,Deal Value,Source,"
    "Company Size,Current CRM,Pain Points,Decision Maker,Notes\n"
    "Elite Roofing Co.,John Smith,(555) 123-4567,john@eliteroofing.com,qualified,75,199,"
    "website,10-50 employees,None,\"Lead management, Follow-up tracking\",yes,"
    "Interested in comprehensive training program\n"
    "Apex Roofing Solutions,Jane Doe,(555) 987-6543,jane@apexroofing.com,lead,60,299,"
    "referral,51-200 employees,HubSpot,\"Team training, Sales process\",no,"
    "Needs approval from owner"
)


def error_report_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"import_errors_{today.isoformat()}.csv"


def _error_cells(error: RowError, width: int) -> List[str]:
    if isinstance(error.data, (list, tuple)):
        cells = [str(cell) for cell in error.data]
    else:
        # Store-level details have no original row to show
        cells = [str(error.data)] if error.data else []
    cells = cells[:width]
    return cells + [""] * (width - len(cells))


def build_error_report(result: ImportResult, headers: Sequence[str]) -> str:
    """
    Render rejected rows as CSV text.

    Columns are "Row Number", "Error", then the original CSV headers.
    """
    columns = ["Row Number", "Error", *headers]
    records = [
        [error.row, error.error, *_error_cells(error, len(headers))]
        for error in result.errors
    ]
    frame = pd.DataFrame(records, columns=columns)
    return frame.to_csv(index=False, lineterminator="\n")


def write_error_report(path: str, result: ImportResult, headers: Sequence[str]) -> Path:
    """Persist the error report to disk."""
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(build_error_report(result, headers), encoding="utf-8")
    return destination


def write_template(path: str) -> Path:
    """Write the sample import file; a directory gets the default filename."""
    destination = Path(path)
    if destination.is_dir():
        destination = destination / TEMPLATE_FILENAME
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(TEMPLATE_CSV, encoding="utf-8")
    return destination


def results_dataframe(result: ImportResult) -> pd.DataFrame:
    """Errors as a DataFrame, one row per rejected line."""
    return pd.DataFrame(
        [error.as_dict() for error in result.errors],
        columns=["row", "error", "data"],
    )
