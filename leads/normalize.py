"""
Per-field normalization and validation for imported rows.

Every mapped field has a transform in FIELD_NORMALIZERS. A transform takes
the trimmed cell text and returns the normalized value, returns None to
leave the field out of the record, or raises ValidationError to reject the
whole row.
"""

import math
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from .models import ColumnMapping, FieldKey, NormalizedRecord, ValidationError

VALID_STATUSES = ("new", "contacted", "qualified", "won", "lost")

DEFAULT_STATUS = "new"
DEFAULT_SCORE = 50
DEFAULT_SOURCE = "import"

MIN_PHONE_DIGITS = 10

MISSING_REQUIRED = "Missing required fields (name or phone)"
INVALID_PHONE = "Invalid phone number format"
INVALID_EMAIL = "Invalid email format"

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_ANGLE_BRACKETS = re.compile(r"[<>]")
_PHONE_DISALLOWED = re.compile(r"[^0-9\s\-()+]")
_NON_DIGIT = re.compile(r"[^0-9]")
_WHITESPACE = re.compile(r"\s+")
_LEADING_INT = re.compile(r"^\s*[+-]?[0-9]+")
_LEADING_FLOAT = re.compile(r"^\s*[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")

# Fields that fill each other when only one of the pair is mapped
ALIASES: Dict[FieldKey, FieldKey] = {
    FieldKey.NAME: FieldKey.CONTACT_NAME,
    FieldKey.CONTACT_NAME: FieldKey.NAME,
    FieldKey.SCORE: FieldKey.PROBABILITY,
    FieldKey.PROBABILITY: FieldKey.SCORE,
    FieldKey.ESTIMATED_VALUE: FieldKey.DEAL_VALUE,
    FieldKey.DEAL_VALUE: FieldKey.ESTIMATED_VALUE,
}


def phone_identity(phone: str) -> str:
    """Digits-only phone, used as the duplicate identity key."""
    return _NON_DIGIT.sub("", phone or "")


def strip_tags(value: str) -> str:
    return _ANGLE_BRACKETS.sub("", value)


def _snake(value: str) -> str:
    return _WHITESPACE.sub("_", value.lower())


def _leading_int(value: str) -> Optional[int]:
    match = _LEADING_INT.match(value)
    return int(match.group(0)) if match else None


def _leading_float(value: str) -> Optional[float]:
    match = _LEADING_FLOAT.match(value)
    return float(match.group(0)) if match else None


# =========================================
# Field transforms
# =========================================


def normalize_name(value: str) -> str:
    cleaned = strip_tags(value).strip()
    if not cleaned:
        raise ValidationError(MISSING_REQUIRED)
    return cleaned


def normalize_phone(value: str) -> str:
    """Keep digits and common phone punctuation; require 10+ digits."""
    cleaned = _PHONE_DISALLOWED.sub("", value)
    if not cleaned or len(phone_identity(cleaned)) < MIN_PHONE_DIGITS:
        raise ValidationError(INVALID_PHONE)
    return cleaned


def normalize_email(value: str) -> Optional[str]:
    if not value:
        return None
    if not EMAIL_REGEX.match(value):
        raise ValidationError(INVALID_EMAIL)
    return value.lower()


def normalize_status(value: str) -> str:
    status = _snake(value)
    return status if status in VALID_STATUSES else DEFAULT_STATUS


def normalize_score(value: str) -> int:
    """Whole-number percentage; anything outside 0-100 becomes the default."""
    number = _leading_int(value)
    if number is None or not 0 <= number <= 100:
        return DEFAULT_SCORE
    return number


def normalize_money(value: str) -> Optional[int]:
    """
    Parse a currency amount like "$1,250.50".

    Non-positive or unparseable amounts are dropped rather than rejected.
    """
    amount = _leading_float(value.replace("$", "").replace(",", ""))
    if amount is None or amount <= 0 or math.isinf(amount):
        return None
    return int(math.floor(amount + 0.5))


def normalize_source(value: str) -> str:
    return _snake(value) or DEFAULT_SOURCE


def normalize_pain_points(value: str) -> List[str]:
    return [point.strip() for point in value.split(",") if point.strip()]


def normalize_decision_maker(value: str) -> bool:
    return value.lower() in ("true", "yes", "1")


FIELD_NORMALIZERS: Dict[FieldKey, Callable[[str], Any]] = {
    FieldKey.NAME: normalize_name,
    FieldKey.CONTACT_NAME: normalize_name,
    FieldKey.PHONE: normalize_phone,
    FieldKey.EMAIL: normalize_email,
    FieldKey.STATUS: normalize_status,
    FieldKey.SCORE: normalize_score,
    FieldKey.PROBABILITY: normalize_score,
    FieldKey.ESTIMATED_VALUE: normalize_money,
    FieldKey.DEAL_VALUE: normalize_money,
    FieldKey.SOURCE: normalize_source,
    FieldKey.PAIN_POINTS: normalize_pain_points,
    FieldKey.DECISION_MAKER: normalize_decision_maker,
}


def normalize_field(field_key: FieldKey, value: str) -> Any:
    """Run the transform registered for ``field_key`` (default: strip tags)."""
    transform = FIELD_NORMALIZERS.get(field_key, strip_tags)
    return transform(value)


# =========================================
# Row normalization
# =========================================


def normalize_row(row: Sequence[str], mappings: Sequence[ColumnMapping]) -> NormalizedRecord:
    """
    Turn one data row into a normalized lead record.

    Columns are processed left to right and empty cells are skipped. The
    first rule violation raises ValidationError.
    """
    mapped_fields = {m.mapped_field for m in mappings if m.mapped_field is not None}
    record: NormalizedRecord = {}

    for index, mapping in enumerate(mappings):
        field_key = mapping.mapped_field
        if field_key is None or index >= len(row):
            continue

        value = row[index].strip()
        if not value:
            continue

        normalized = normalize_field(field_key, value)
        if normalized is None:
            continue

        record[field_key.value] = normalized
        alias = ALIASES.get(field_key)
        if alias is not None and alias not in mapped_fields:
            record[alias.value] = normalized

    if not record.get(FieldKey.NAME.value) or not record.get(FieldKey.PHONE.value):
        raise ValidationError(MISSING_REQUIRED)

    record.setdefault(FieldKey.STATUS.value, DEFAULT_STATUS)
    record.setdefault(FieldKey.SCORE.value, DEFAULT_SCORE)
    record.setdefault(FieldKey.SOURCE.value, DEFAULT_SOURCE)
    return record
