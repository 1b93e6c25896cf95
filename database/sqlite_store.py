"""
Local SQLite prospect store.

Implements the same bulk import contract as the Supabase client so imports
can run offline. Phone identity is enforced with a UNIQUE column.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional

from leads.models import BulkImportError, BulkImportResult, NormalizedRecord
from leads.normalize import phone_identity

logger = logging.getLogger(__name__)

_COLUMNS = (
    "name",
    "contact_name",
    "company_name",
    "phone",
    "email",
    "address",
    "status",
    "score",
    "probability",
    "estimated_value",
    "deal_value",
    "roof_type",
    "source",
    "company_size",
    "current_crm",
    "pain_points",
    "decision_maker",
    "notes",
)


class SQLiteProspectStore:
    """Prospects table in a local SQLite file."""

    def __init__(self, db_path: str = "prospects.db"):
        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        """Initialize SQLite database for prospect storage."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS prospects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                phone_digits TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                contact_name TEXT,
                company_name TEXT,
                phone TEXT NOT NULL,
                email TEXT,
                address TEXT,
                status TEXT DEFAULT 'new',
                score INTEGER DEFAULT 50,
                probability INTEGER,
                estimated_value INTEGER,
                deal_value INTEGER,
                roof_type TEXT,
                source TEXT DEFAULT 'import',
                company_size TEXT,
                current_crm TEXT,
                pain_points TEXT,
                decision_maker INTEGER,
                notes TEXT,
                created_at TIMESTAMP
            )
        """)

        conn.commit()
        conn.close()

    def _row_values(self, record: NormalizedRecord) -> tuple:
        values = []
        for column in _COLUMNS:
            value = record.get(column)
            if column == "pain_points" and value is not None:
                value = json.dumps(value)
            elif column == "decision_maker" and value is not None:
                value = int(bool(value))
            values.append(value)
        return tuple(values)

    def bulk_import(self, records: List[NormalizedRecord]) -> BulkImportResult:
        """Insert records, reporting phones that are already stored as duplicates."""
        result = BulkImportResult()
        placeholders = ", ".join("?" for _ in range(len(_COLUMNS) + 2))
        sql = (
            f"INSERT INTO prospects (phone_digits, {', '.join(_COLUMNS)}, created_at) "
            f"VALUES ({placeholders})"
        )

        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise BulkImportError(f"Could not open {self.db_path}: {e}") from e

        try:
            cursor = conn.cursor()
            for record in records:
                key = phone_identity(record.get("phone", ""))
                try:
                    cursor.execute(sql, (key, *self._row_values(record), datetime.now().isoformat()))
                except sqlite3.IntegrityError as e:
                    if "phone_digits" in str(e):
                        result.duplicates.append(record)
                    else:
                        result.failed.append({"record": record, "error": str(e)})
                    continue
                result.success.append(record)
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise BulkImportError(f"SQLite import failed: {e}") from e
        finally:
            conn.close()

        logger.info(
            "SQLite import: %d inserted, %d duplicates, %d failed",
            len(result.success),
            len(result.duplicates),
            len(result.failed),
        )
        return result

    def count(self) -> int:
        conn = sqlite3.connect(self.db_path)
        try:
            return conn.execute("SELECT COUNT(*) FROM prospects").fetchone()[0]
        finally:
            conn.close()

    def get_prospect_by_phone(self, phone: str) -> Optional[Dict]:
        """Fetch prospect by phone number (any formatting)."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            row = conn.execute(
                "SELECT * FROM prospects WHERE phone_digits = ?",
                (phone_identity(phone),),
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        prospect = dict(row)
        if prospect.get("pain_points"):
            prospect["pain_points"] = json.loads(prospect["pain_points"])
        return prospect
