"""
Lead Importer - CSV import with validation and deduplication.

Pipeline:
    1. Tokenize the uploaded text (header + up to 100 data rows)
    2. Auto-detect a field for each column; caller may override
    3. Normalize/validate each row in file order
    4. Skip phone numbers already seen earlier in the file
    5. Hand all surviving rows to the persistence gateway in one call
    6. Merge the gateway's outcome into a single ImportResult

Usage:
    from leads import LeadImporter
    from database import SQLiteProspectStore

    importer = LeadImporter(SQLiteProspectStore("prospects.db"))
    result = importer.import_csv("leads.csv")

    print(f"Imported: {result.success}")
    print(f"Skipped duplicates: {result.duplicates + result.db_duplicates}")
    print(f"Invalid rows: {result.failed}")
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from .mapping import check_mappings, detect_mappings, set_mapping
from .models import (
    BulkImportError,
    BulkImportResult,
    ColumnMapping,
    ImportResult,
    NormalizedRecord,
    PersistenceGateway,
    RowError,
    ValidationError,
)
from .normalize import normalize_row, phone_identity
from .tokenizer import MAX_IMPORT_LEADS, ParsedCSV, parse_csv_text, read_csv_file

# =========================================
# Logging
# =========================================

logger = logging.getLogger(__name__)

DUPLICATE_IN_FILE = "Duplicate phone number in CSV"
DUPLICATE_IN_STORE = "Phone number already exists"


# =========================================
# Configuration
# =========================================


@dataclass
class ImportConfig:
    """
    Limits and defaults for an import run.

    Can be initialized from environment variables:
        config = ImportConfig.from_env()
    """

    max_rows: int = MAX_IMPORT_LEADS
    encoding: str = "utf-8-sig"

    @classmethod
    def from_env(cls) -> "ImportConfig":
        """
        Load configuration from environment variables.

        Environment variables:
            LEADS_IMPORT_MAX_ROWS: Optional row cap (default: 100)
            LEADS_IMPORT_ENCODING: Optional file encoding (default: utf-8-sig)
        """
        max_rows = int(os.environ.get("LEADS_IMPORT_MAX_ROWS", str(MAX_IMPORT_LEADS)))
        if max_rows < 1:
            raise ValueError("LEADS_IMPORT_MAX_ROWS must be a positive integer")

        encoding = os.environ.get("LEADS_IMPORT_ENCODING", "utf-8-sig")
        return cls(max_rows=max_rows, encoding=encoding)


# =========================================
# In-file deduplication
# =========================================


class PhoneDeduplicator:
    """Remembers which phone identities this run has already accepted."""

    def __init__(self):
        self._seen: Set[str] = set()

    def seen(self, phone: str) -> bool:
        return phone_identity(phone) in self._seen

    def add(self, phone: str) -> None:
        self._seen.add(phone_identity(phone))

    def check_and_add(self, phone: str) -> bool:
        """Return True if ``phone`` is a repeat; otherwise record it."""
        if self.seen(phone):
            return True
        self.add(phone)
        return False

    def __len__(self) -> int:
        return len(self._seen)


@dataclass
class Candidate:
    """A row that passed validation and is waiting to be persisted."""
    row: int
    record: NormalizedRecord
    data: List[str]


@dataclass
class RowPass:
    """Output of the per-row pass, before the gateway is involved."""
    candidates: List[Candidate] = field(default_factory=list)
    result: ImportResult = field(default_factory=ImportResult)


# =========================================
# Importer
# =========================================


class LeadImporter:
    """
    Imports and validates leads from CSV files.

    Features:
    - Auto-detects column mappings from header names
    - Validates phone (required) and email (optional) format
    - Deduplicates by digits-only phone, first row wins
    - Tracks invalid rows with reasons and original row numbers
    - Persists everything valid in a single gateway call
    """

    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        config: Optional[ImportConfig] = None,
    ):
        """
        Initialize the importer.

        Args:
            gateway: Bulk persistence backend (required for import_* calls)
            config: Row cap and file encoding; defaults are used if None
        """
        self.gateway = gateway
        self.config = config or ImportConfig()

    def parse(self, text: str) -> ParsedCSV:
        """Tokenize uploaded text, enforcing the configured row cap."""
        return parse_csv_text(text, max_rows=self.config.max_rows)

    def process_rows(
        self,
        rows: Sequence[Sequence[str]],
        mappings: Sequence[ColumnMapping],
    ) -> RowPass:
        """
        Validate and deduplicate rows without touching the store.

        Row numbers are 1-based file lines, so the first data row is 2.
        """
        outcome = RowPass()
        result = outcome.result
        dedup = PhoneDeduplicator()

        for row_num, row in enumerate(rows, start=2):  # Start at 2 (header is 1)
            data = list(row)
            try:
                record = normalize_row(row, mappings)
            except ValidationError as e:
                result.failed += 1
                result.errors.append(RowError(row=row_num, error=str(e), data=data))
                logger.debug("Row %d rejected: %s", row_num, e)
                continue

            if dedup.check_and_add(record["phone"]):
                result.duplicates += 1
                result.errors.append(RowError(row=row_num, error=DUPLICATE_IN_FILE, data=data))
                logger.debug("Row %d skipped: duplicate phone", row_num)
                continue

            outcome.candidates.append(Candidate(row=row_num, record=record, data=data))

        logger.info(
            "Processed %d rows: %d valid, %d invalid, %d duplicates in file",
            len(rows),
            len(outcome.candidates),
            result.failed,
            result.duplicates,
        )
        return outcome

    def import_rows(
        self,
        rows: Sequence[Sequence[str]],
        mappings: Sequence[ColumnMapping],
    ) -> ImportResult:
        """
        Run the full pipeline over already-tokenized data rows.

        Raises:
            MappingError: if the mapping is incomplete or ambiguous
        """
        check_mappings(mappings)

        if self.gateway is None:
            raise ValueError("A persistence gateway is required to import leads")

        outcome = self.process_rows(rows, mappings)
        result = outcome.result

        if outcome.candidates:
            self._persist(outcome.candidates, result)
        else:
            logger.warning("No valid leads to import")

        result.errors.sort(key=lambda error: error.row)
        logger.info(result.summary())
        return result

    def import_text(
        self,
        text: str,
        mappings: Optional[Sequence[ColumnMapping]] = None,
    ) -> ImportResult:
        """
        Import leads from CSV text.

        Args:
            text: Full file contents
            mappings: Column mappings; auto-detected from the header if None
        """
        parsed = self.parse(text)
        if mappings is None:
            mappings = detect_mappings(parsed.headers, parsed.rows[0])
        return self.import_rows(parsed.rows, mappings)

    def import_csv(
        self,
        filepath: str,
        mappings: Optional[Sequence[ColumnMapping]] = None,
    ) -> ImportResult:
        """
        Import leads from a CSV file.

        Args:
            filepath: Path to CSV file
            mappings: Column mappings; auto-detected from the header if None

        Returns:
            ImportResult with counts and per-row errors
        """
        parsed = read_csv_file(filepath, encoding=self.config.encoding, max_rows=self.config.max_rows)
        if mappings is None:
            mappings = detect_mappings(parsed.headers, parsed.rows[0])
        return self.import_rows(parsed.rows, mappings)

    def _persist(self, candidates: List[Candidate], result: ImportResult) -> None:
        """Send candidates to the gateway and fold its outcome into ``result``."""
        records = [candidate.record for candidate in candidates]
        logger.info("Sending %d leads to the database", len(records))

        try:
            bulk = self.gateway.bulk_import(records)
        except BulkImportError as e:
            logger.error("Bulk import failed: %s", e.message)
            self._record_gateway_failure(candidates, result, e.message, e.import_results, e.details)
            return
        except Exception as e:
            logger.error("Bulk import failed: %s", e)
            self._record_gateway_failure(candidates, result, str(e), None, getattr(e, "details", None))
            return

        self._merge(candidates, result, bulk)

    def _merge(self, candidates: List[Candidate], result: ImportResult, bulk: BulkImportResult) -> None:
        by_identity: Dict[str, Candidate] = {
            phone_identity(candidate.record["phone"]): candidate for candidate in candidates
        }

        result.success += len(bulk.success)
        result.db_duplicates += len(bulk.duplicates)
        result.failed += len(bulk.failed)

        for record in bulk.duplicates:
            result.errors.append(self._store_error(by_identity, record, DUPLICATE_IN_STORE))

        for item in bulk.failed:
            record = item.get("record") or {}
            message = str(item.get("error") or "Unknown error")
            result.errors.append(self._store_error(by_identity, record, message))

    @staticmethod
    def _store_error(by_identity: Dict[str, Candidate], record: NormalizedRecord, message: str) -> RowError:
        candidate = by_identity.get(phone_identity(record.get("phone", "")))
        if candidate is None:
            return RowError(row=0, error=message, data=[str(value) for value in record.values()])
        return RowError(row=candidate.row, error=message, data=candidate.data)

    def _record_gateway_failure(
        self,
        candidates: List[Candidate],
        result: ImportResult,
        message: str,
        partial: Optional[BulkImportResult],
        details,
    ) -> None:
        result.gateway_error = message

        unreported = candidates
        if partial is not None:
            # Keep whatever the store reported before failing
            self._merge(candidates, result, partial)
            reported = {
                phone_identity(record.get("phone", ""))
                for record in [*partial.success, *partial.duplicates]
            }
            reported.update(
                phone_identity((item.get("record") or {}).get("phone", ""))
                for item in partial.failed
            )
            unreported = [
                candidate for candidate in candidates
                if phone_identity(candidate.record["phone"]) not in reported
            ]

        result.failed += len(unreported)
        for candidate in unreported:
            result.errors.append(RowError(
                row=candidate.row,
                error=f"Database error: {message}",
                data=candidate.data,
            ))

        if details:
            result.errors.append(RowError(row=0, error=f"Database error: {message}", data=details))


# =========================================
# Interactive session
# =========================================


class ImportState(Enum):
    """Stages of an interactive import."""
    IDLE = "idle"
    PARSED = "parsed"
    MAPPING_PENDING = "mapping_pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


class InvalidStateError(RuntimeError):
    """Raised when a session action is not allowed in the current state."""
    pass


class ImportSession:
    """
    Caller-driven import workflow: load a file, adjust the mapping, run.

    Usage:
        session = ImportSession(LeadImporter(gateway))
        session.load_file("leads.csv")
        session.set_mapping(2, "phone")
        result = session.run()
        session.reset()
    """

    def __init__(self, importer: LeadImporter):
        self.importer = importer
        self.state = ImportState.IDLE
        self.headers: List[str] = []
        self.rows: List[List[str]] = []
        self.mappings: List[ColumnMapping] = []
        self.result: Optional[ImportResult] = None

    def _require(self, *states: ImportState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidStateError(f"Cannot do that while {self.state.value} (expected {allowed})")

    def _clear(self) -> None:
        self.state = ImportState.IDLE
        self.headers = []
        self.rows = []
        self.mappings = []
        self.result = None

    def load_text(self, text: str) -> List[ColumnMapping]:
        """Parse text and detect mappings; a parse error leaves the session idle."""
        self._require(ImportState.IDLE)
        parsed = self.importer.parse(text)

        self.state = ImportState.PARSED
        self.headers = parsed.headers
        self.rows = parsed.rows
        self.mappings = detect_mappings(parsed.headers, parsed.rows[0])
        self.state = ImportState.MAPPING_PENDING

        logger.info(
            "CSV file loaded successfully with %d row%s",
            len(self.rows),
            "s" if len(self.rows) > 1 else "",
        )
        return self.mappings

    def load_file(self, filepath: str) -> List[ColumnMapping]:
        self._require(ImportState.IDLE)
        path = Path(filepath)
        if path.suffix.lower() != ".csv":
            raise ValidationError("Please select a CSV file")
        if not path.exists():
            raise FileNotFoundError(f"CSV file not found: {path}")
        return self.load_text(path.read_text(encoding=self.importer.config.encoding))

    def set_mapping(self, index: int, field) -> ColumnMapping:
        self._require(ImportState.MAPPING_PENDING)
        return set_mapping(self.mappings, index, field)

    def cancel(self) -> None:
        """Abandon the upload before any row is processed."""
        self._require(ImportState.MAPPING_PENDING)
        self._clear()

    def run(self) -> ImportResult:
        """
        Commit the mapping and import.

        A rejected mapping raises MappingError and keeps the session in
        MAPPING_PENDING so the caller can fix it.
        """
        self._require(ImportState.MAPPING_PENDING)
        check_mappings(self.mappings)

        self.state = ImportState.PROCESSING
        try:
            self.result = self.importer.import_rows(self.rows, self.mappings)
        except Exception:
            self._clear()
            raise

        self.state = ImportState.COMPLETED
        return self.result

    def reset(self) -> None:
        self._require(ImportState.COMPLETED)
        self._clear()


# =========================================
# CLI
# =========================================


def _parse_overrides(values: List[str]) -> Dict[str, str]:
    overrides = {}
    for value in values:
        header, sep, field_name = value.partition("=")
        if not sep:
            raise ValueError(f"Expected HEADER=FIELD, got {value!r}")
        overrides[header.strip()] = field_name.strip()
    return overrides


def _cli():
    """Import a CSV of leads from the command line."""
    import argparse
    import json

    from .mapping import set_mapping_by_header
    from .reports import error_report_filename, write_error_report, write_template

    parser = argparse.ArgumentParser(description="Import leads from CSV")
    parser.add_argument("filepath", nargs="?", help="Path to CSV file")
    parser.add_argument("--map", action="append", default=[], metavar="HEADER=FIELD",
                        help="Override the detected field for a column (FIELD may be 'skip')")
    parser.add_argument("--dry-run", action="store_true", help="Validate rows, don't write to the database")
    parser.add_argument("--sqlite", metavar="PATH", help="Store leads in a local SQLite file instead of Supabase")
    parser.add_argument("--errors-out", metavar="PATH", help="Write rejected rows to this CSV")
    parser.add_argument("--template", metavar="PATH", help="Write a sample import CSV and exit")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    if args.template:
        print(f"Template written to {write_template(args.template)}")
        return 0

    if not args.filepath:
        parser.error("filepath is required unless --template is given")

    try:
        config = ImportConfig.from_env()
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    gateway = None
    if not args.dry_run:
        if args.sqlite:
            from database import SQLiteProspectStore
            gateway = SQLiteProspectStore(args.sqlite)
        else:
            from database import get_client
            try:
                gateway = get_client()
            except ValueError as e:
                print(f"Error: {e}")
                print("Set SUPABASE_URL and SUPABASE_KEY or use --sqlite")
                return 1

    importer = LeadImporter(gateway, config)
    session = ImportSession(importer)

    try:
        session.load_file(args.filepath)
        for header, field_name in _parse_overrides(args.map).items():
            set_mapping_by_header(session.mappings, header, field_name)

        print("Column mapping:")
        for mapping in session.mappings:
            target = mapping.mapped_field.value if mapping.mapped_field else "(skip)"
            print(f"  {mapping.csv_header} -> {target}")

        if args.dry_run:
            check_mappings(session.mappings)
            outcome = importer.process_rows(session.rows, session.mappings)
            result = outcome.result
            print(f"Dry run: {len(outcome.candidates)} rows ready to import")
        else:
            result = session.run()
    except (ValidationError, KeyError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}")
        return 1

    if args.json:
        print(json.dumps(result.as_dict(), indent=2))
    else:
        print(result.summary())

    if result.gateway_error:
        print(f"Failed to import leads: {result.gateway_error}")

    if result.errors:
        print("\nFirst 5 errors:")
        for error in result.errors[:5]:
            print(f"  Row {error.row}: {error.error}")

        if args.errors_out:
            destination = Path(args.errors_out)
            if destination.is_dir():
                destination = destination / error_report_filename()
            write_error_report(destination, result, session.headers)
            print(f"Error report written to {destination}")

    return 0 if result.gateway_error is None else 1


if __name__ == "__main__":
    exit(_cli())
