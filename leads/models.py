"""
Data models shared by the lead import pipeline.

Covers the semantic field keys a CSV column can map to, the editable column
mapping, the per-row error records and the final import report, plus the
contract expected from the persistence gateway.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol


NormalizedRecord = Dict[str, Any]


class FieldKey(Enum):
    """Fields a CSV column can be mapped to."""
    NAME = "name"
    CONTACT_NAME = "contact_name"
    COMPANY_NAME = "company_name"
    PHONE = "phone"
    EMAIL = "email"
    ADDRESS = "address"
    STATUS = "status"
    SCORE = "score"
    PROBABILITY = "probability"
    ESTIMATED_VALUE = "estimated_value"
    DEAL_VALUE = "deal_value"
    ROOF_TYPE = "roof_type"
    SOURCE = "source"
    COMPANY_SIZE = "company_size"
    CURRENT_CRM = "current_crm"
    PAIN_POINTS = "pain_points"
    DECISION_MAKER = "decision_maker"
    NOTES = "notes"

    @classmethod
    def parse(cls, value) -> Optional["FieldKey"]:
        """
        Coerce user input into a FieldKey.

        None, "" and "skip" all mean the column is skipped.
        """
        if value is None or isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text in ("", "skip"):
            return None
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Unknown field: {value!r}") from None


REQUIRED_FIELDS = (FieldKey.NAME, FieldKey.PHONE)


class ValidationError(Exception):
    """Raised when lead validation fails."""
    pass


class CSVParseError(ValidationError):
    """Raised when the uploaded file cannot be turned into rows."""
    pass


class MappingError(ValidationError):
    """
    Raised when a column mapping cannot be committed.

    Attributes:
        missing: Required fields with no column mapped to them
        duplicated: Fields mapped from more than one column
    """

    def __init__(self, missing: List[str], duplicated: List[str]):
        self.missing = missing
        self.duplicated = duplicated
        parts = []
        if missing:
            parts.append(f"Please map required fields: {', '.join(missing)}")
        if duplicated:
            parts.append(f"Each field can only be mapped once: {', '.join(duplicated)}")
        super().__init__("; ".join(parts))


class BulkImportError(RuntimeError):
    """
    Raised by a persistence gateway when the bulk insert fails as a whole.

    Attributes:
        message: Human-readable error description
        import_results: Partial counts already committed (if known)
        details: Raw error details from the store (if any)
    """

    def __init__(
        self,
        message: str,
        import_results: Optional["BulkImportResult"] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.import_results = import_results
        self.details = details


@dataclass
class ColumnMapping:
    """One input column and the field it feeds."""
    csv_header: str
    mapped_field: Optional[FieldKey] = None
    sample_value: str = ""

    def as_dict(self) -> Dict:
        return {
            "csvHeader": self.csv_header,
            "mappedField": self.mapped_field.value if self.mapped_field else None,
            "sampleData": self.sample_value,
        }


@dataclass
class RowError:
    """A row that did not make it into the store, and why."""
    row: int
    error: str
    data: Any = field(default_factory=list)

    def as_dict(self) -> Dict:
        return {"row": self.row, "error": self.error, "data": self.data}


@dataclass
class BulkImportResult:
    """What the persistence gateway reports back for one bulk call."""
    success: List[NormalizedRecord] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    duplicates: List[NormalizedRecord] = field(default_factory=list)


@dataclass
class ImportResult:
    """Results from a lead import operation."""
    success: int = 0
    failed: int = 0
    duplicates: int = 0
    db_duplicates: int = 0
    errors: List[RowError] = field(default_factory=list)
    gateway_error: Optional[str] = None

    @property
    def total_processed(self) -> int:
        return self.success + self.failed + self.duplicates + self.db_duplicates

    def summary(self) -> str:
        return (
            f"Import complete: {self.success} imported, "
            f"{self.failed} failed, "
            f"{self.duplicates} duplicates in file, "
            f"{self.db_duplicates} already in database"
        )

    def as_dict(self) -> Dict:
        return {
            "success": self.success,
            "failed": self.failed,
            "duplicates": self.duplicates,
            "dbDuplicates": self.db_duplicates,
            "errors": [error.as_dict() for error in self.errors],
        }


class PersistenceGateway(Protocol):
    """
    Bulk insert capability backing the importer.

    Implementations detect duplicates against what they already store
    (by digits-only phone) and must be safe to call again with the same
    records.
    """

    def bulk_import(self, records: List[NormalizedRecord]) -> BulkImportResult:
        ...
