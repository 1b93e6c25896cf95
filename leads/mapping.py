"""
Column auto-detection and mapping validation.

Headers are matched against an ordered list of rules; the first rule whose
predicate accepts the normalized header decides the field. Callers may
override any detected mapping before the import is committed.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .models import REQUIRED_FIELDS, ColumnMapping, FieldKey, MappingError

logger = logging.getLogger(__name__)


def _has(*words: str) -> Callable[[str], bool]:
    """Predicate: header contains every one of ``words``."""
    return lambda header: all(word in header for word in words)


def _has_any(*words: str) -> Callable[[str], bool]:
    """Predicate: header contains at least one of ``words``."""
    return lambda header: any(word in header for word in words)


# Priority order matters: "Company Name" must hit company_name before the
# generic "name" rule, "Deal Value" before "value", and so on.
HEADER_RULES: List[Tuple[Callable[[str], bool], FieldKey]] = [
    (_has("company", "name"), FieldKey.COMPANY_NAME),
    (_has("contact", "name"), FieldKey.CONTACT_NAME),
    (lambda h: "name" in h and "company" not in h, FieldKey.NAME),
    (_has_any("phone", "mobile", "tel"), FieldKey.PHONE),
    (_has_any("email", "e-mail"), FieldKey.EMAIL),
    (_has_any("address", "location"), FieldKey.ADDRESS),
    (_has("status"), FieldKey.STATUS),
    (_has_any("probability", "prob"), FieldKey.PROBABILITY),
    (_has_any("score", "rating"), FieldKey.SCORE),
    (lambda h: "deal" in h and ("value" in h or "amount" in h), FieldKey.DEAL_VALUE),
    (_has_any("value", "estimate", "price"), FieldKey.ESTIMATED_VALUE),
    (_has_any("roof", "type"), FieldKey.ROOF_TYPE),
    (_has_any("source", "origin"), FieldKey.SOURCE),
    (_has("company", "size"), FieldKey.COMPANY_SIZE),
    (_has("crm"), FieldKey.CURRENT_CRM),
    (_has("pain"), FieldKey.PAIN_POINTS),
    (_has("decision"), FieldKey.DECISION_MAKER),
    (_has("note"), FieldKey.NOTES),
]


def detect_field(header: str) -> Optional[FieldKey]:
    """Guess the field for a CSV header, or None to skip it."""
    normalized = header.lower().strip()
    for predicate, field_key in HEADER_RULES:
        if predicate(normalized):
            return field_key
    return None


def detect_mappings(
    headers: Sequence[str],
    first_row: Optional[Sequence[str]] = None,
) -> List[ColumnMapping]:
    """Build the initial column mapping from the header row."""
    first_row = first_row or []
    mappings = []
    for index, header in enumerate(headers):
        sample = first_row[index] if index < len(first_row) else ""
        mappings.append(ColumnMapping(
            csv_header=header,
            mapped_field=detect_field(header),
            sample_value=sample,
        ))

    logger.debug(
        "Detected mappings: %s",
        {m.csv_header: m.mapped_field.value if m.mapped_field else None for m in mappings},
    )
    return mappings


def set_mapping(mappings: List[ColumnMapping], index: int, field) -> ColumnMapping:
    """
    Override the field for one column.

    Args:
        mappings: Current column mappings (edited in place)
        index: Zero-based column index
        field: A FieldKey, its string value, or None/""/"skip"
    """
    if not 0 <= index < len(mappings):
        raise IndexError(f"No column at index {index}")

    mappings[index].mapped_field = FieldKey.parse(field)
    return mappings[index]


def set_mapping_by_header(mappings: List[ColumnMapping], header: str, field) -> ColumnMapping:
    """Override the field for the first column whose header matches."""
    for index, mapping in enumerate(mappings):
        if mapping.csv_header.strip().lower() == header.strip().lower():
            return set_mapping(mappings, index, field)
    raise KeyError(f"No column named {header!r}")


def validate_mappings(mappings: Sequence[ColumnMapping]) -> Tuple[List[str], List[str]]:
    """
    Check a mapping before commit.

    Returns:
        Tuple of (missing required fields, fields mapped more than once)
    """
    mapped = [m.mapped_field for m in mappings if m.mapped_field is not None]

    duplicated: List[str] = []
    for index, field_key in enumerate(mapped):
        if field_key in mapped[:index] and field_key.value not in duplicated:
            duplicated.append(field_key.value)

    missing: List[str] = []
    for required in REQUIRED_FIELDS:
        if required in mapped:
            continue
        # contact_name stands in for name when no column is mapped to name
        if required is FieldKey.NAME and FieldKey.CONTACT_NAME in mapped:
            continue
        missing.append(required.value)

    return missing, duplicated


def check_mappings(mappings: Sequence[ColumnMapping]) -> None:
    """Raise MappingError if the mapping cannot be committed."""
    missing, duplicated = validate_mappings(mappings)
    if missing or duplicated:
        raise MappingError(missing=missing, duplicated=duplicated)
