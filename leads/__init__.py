"""
Lead management module.

Handles importing, validating, and deduplicating leads from CSV uploads.
"""

from .importer import (
    ImportConfig,
    ImportSession,
    ImportState,
    InvalidStateError,
    LeadImporter,
    PhoneDeduplicator,
)
from .mapping import detect_field, detect_mappings, validate_mappings
from .models import (
    BulkImportError,
    BulkImportResult,
    ColumnMapping,
    CSVParseError,
    FieldKey,
    ImportResult,
    MappingError,
    PersistenceGateway,
    RowError,
    ValidationError,
)
from .tokenizer import parse_csv_text

__all__ = [
    "LeadImporter",
    "ImportConfig",
    "ImportSession",
    "ImportState",
    "InvalidStateError",
    "PhoneDeduplicator",
    "FieldKey",
    "ColumnMapping",
    "ImportResult",
    "RowError",
    "BulkImportResult",
    "BulkImportError",
    "PersistenceGateway",
    "ValidationError",
    "CSVParseError",
    "MappingError",
    "detect_field",
    "detect_mappings",
    "validate_mappings",
    "parse_csv_text",
]
