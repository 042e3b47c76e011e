"""
Field value coercion and normalization.

Converts raw extracted text into typed values:
- NUMBER / CURRENCY: $12,345.67 -> 12345.67
- PERCENTAGE: 12.5% -> 0.125
- DATE: 01/15/2024, 2024-01-15, January 15, 2024 -> date(2024, 1, 15)
- BOOLEAN: yes / true / checked -> True
"""
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

import structlog
from dateutil import parser as date_parser
from dateutil.parser import ParserError

from docintel.pipeline.models import FieldType

logger = structlog.get_logger(__name__)

DATE_FORMATS = (
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
)

DATE_PATTERNS = (
    re.compile(r"\d{1,2}/\d{1,2}/\d{4}"),
    re.compile(r"\d{4}-\d{1,2}-\d{1,2}"),
    re.compile(r"\d{1,2}-\d{1,2}-\d{4}"),
    re.compile(r"[A-Za-z]+\.?\s+\d{1,2},?\s+\d{4}"),
)

TRUTHY_TOKENS = frozenset({"true", "yes", "1", "on", "checked"})

_NON_NUMERIC = re.compile(r"[^\d.\-]")


def parse_number(raw: Any) -> Optional[float]:
    """Strip everything but digits, '.' and '-' and parse. None when unparsable."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    cleaned = _NON_NUMERIC.sub("", str(raw))
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_date(raw: Any) -> Optional[date]:
    """
    Parse a date from common formats, then dateutil.

    Args:
        raw: Raw text (or an existing date/datetime).

    Returns:
        date, or None when nothing parses.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    text = str(raw).strip()
    if not text:
        return None

    candidates = [text]
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match and match.group(0) != text:
            candidates.append(match.group(0))

    for candidate in candidates:
        normalized = re.sub(r"\s+", " ", candidate.replace(".", ""))
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(normalized, fmt).date()
            except ValueError:
                continue

    for candidate in candidates:
        try:
            return date_parser.parse(candidate).date()
        except (ParserError, ValueError, OverflowError):
            continue

    logger.debug("date_unparsable", raw=text[:50])
    return None


def parse_boolean(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in TRUTHY_TOKENS


def process_field_value(raw: Any, field_type: FieldType) -> Any:
    """
    Convert a raw extracted value into the declared field type.

    Never raises: numeric and date failures yield None.
    """
    if field_type in (FieldType.NUMBER, FieldType.CURRENCY):
        return parse_number(raw)
    if field_type == FieldType.PERCENTAGE:
        number = parse_number(raw)
        return number / 100 if number is not None else None
    if field_type == FieldType.DATE:
        return parse_date(raw)
    if field_type == FieldType.BOOLEAN:
        return parse_boolean(raw)
    return str(raw).strip() if raw is not None else None


def infer_field_type(field_name: str) -> FieldType:
    """Guess a field's type from its name."""
    name = field_name.lower()
    if "date" in name:
        return FieldType.DATE
    if "amount" in name or "price" in name:
        return FieldType.CURRENCY
    if "quantity" in name or "shares" in name:
        return FieldType.NUMBER
    if "percentage" in name or "percent" in name:
        return FieldType.PERCENTAGE
    return FieldType.STRING


def value_matches_type(value: Any, field_type: FieldType) -> bool:
    """True when a processed value has the Python type a FieldType produces."""
    if value is None:
        return False
    if field_type in (FieldType.NUMBER, FieldType.CURRENCY, FieldType.PERCENTAGE):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field_type == FieldType.DATE:
        return isinstance(value, date)
    if field_type == FieldType.BOOLEAN:
        return isinstance(value, bool)
    return isinstance(value, str)


# =============================================================================
# Post-processing normalizers
# =============================================================================

def normalize_date(value: Any) -> Any:
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else value


def normalize_amount(value: Any) -> Any:
    number = parse_number(value)
    return round(number, 2) if number is not None else value


def normalize_phone(value: Any) -> Any:
    digits = re.sub(r"\D", "", str(value))
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return value


NORMALIZERS: Dict[str, Callable[[Any], Any]] = {
    "date": normalize_date,
    "amount": normalize_amount,
    "phone": normalize_phone,
}


def normalizer_for(field_name: str) -> Optional[Callable[[Any], Any]]:
    """Pick the normalizer whose key appears in the field name."""
    name = field_name.lower()
    for key, normalizer in NORMALIZERS.items():
        if key in name:
            return normalizer
    return None
