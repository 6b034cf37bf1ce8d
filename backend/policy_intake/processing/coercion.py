"""
Value coercion helpers used by the canonical mapper.

Extraction output is loosely typed: values arrive wrapped
(``{"value": ...}``), as JSON strings, as Brazilian-formatted money
("R$ 1.234,56"), as dd/mm/yyyy dates, or as the literal strings
"undefined"/"null".  Each helper returns ``(value, warning)`` where
``value`` is None when nothing usable was found and ``warning`` is a
human-readable note for low-confidence coercions.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from dateutil import parser as date_parser

_EMPTY_MARKERS = {"", "undefined", "null", "none", "n/a", "-"}
_CENTS = Decimal("0.01")
_THOUSANDS_DOT = re.compile(r"^-?\d{1,3}(\.\d{3})+$")
_THOUSANDS_COMMA = re.compile(r"^-?\d{1,3}(,\d{3}){2,}$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DEFAULT_A = datetime(2000, 1, 1)
_DEFAULT_B = datetime(2001, 2, 2)


def unwrap(value: Any) -> Any:
    """
    Strip extraction-service wrappers and treat empty markers as None.

    Handles ``{"value": x}``, ``{"_type": "undefined"}``, JSON-encoded
    strings and whitespace-only strings.
    """
    if isinstance(value, dict):
        if value.get("_type") == "undefined":
            return None
        if "value" in value:
            return unwrap(value["value"])
        return value

    if isinstance(value, str):
        text = value.strip()
        if text.lower() in _EMPTY_MARKERS:
            return None
        if text[:1] in ("{", "[", '"'):
            try:
                return unwrap(json.loads(text))
            except ValueError:
                return text
        return text

    return value


def pick(source: dict[str, Any], aliases: tuple[str, ...]) -> Any:
    """Return the first non-empty value found under any alias."""
    for key in aliases:
        if key in source:
            value = unwrap(source[key])
            if value is not None:
                return value
    return None


def to_text(value: Any) -> str | None:
    """Scalar → stripped string.  Containers are not text."""
    value = unwrap(value)
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def to_money(value: Any, field_name: str = "amount") -> tuple[Decimal | None, str | None]:
    """
    Parse a monetary value, rounded to cents.

    Text containing anything besides digits and separators (currency
    symbols, letters) is parsed but flagged with a warning.
    """
    value = unwrap(value)
    if value is None or isinstance(value, bool):
        return None, None

    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
        if not amount.is_finite():
            return None, f"{field_name}: non-finite value {value!r} ignored"
        try:
            return amount.quantize(_CENTS, rounding=ROUND_HALF_UP), None
        except InvalidOperation:
            return None, f"{field_name}: could not parse {value!r}"

    if not isinstance(value, str):
        return None, f"{field_name}: unsupported value {value!r} ignored"

    raw = value
    cleaned = re.sub(r"[^\d,.\-]", "", raw)
    if not re.search(r"\d", cleaned):
        return None, f"{field_name}: could not parse {raw!r}"

    if "," in cleaned and "." in cleaned:
        # whichever separator comes last is the decimal one
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        if _THOUSANDS_COMMA.match(cleaned):
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", ".")
    elif _THOUSANDS_DOT.match(cleaned):
        cleaned = cleaned.replace(".", "")

    try:
        amount = Decimal(cleaned).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None, f"{field_name}: could not parse {raw!r}"

    warning = None
    if re.search(r"[^\d,.\-\s]", raw):
        warning = f"{field_name}: parsed {raw!r} as {amount}"
    return amount, warning


def to_date(value: Any, field_name: str = "date") -> tuple[date | None, str | None]:
    """Parse ISO or day-first dates (dd/mm/yyyy)."""
    value = unwrap(value)
    if value is None:
        return None, None
    if isinstance(value, datetime):
        return value.date(), None
    if isinstance(value, date):
        return value, None
    if not isinstance(value, str):
        return None, f"{field_name}: unsupported value {value!r} ignored"

    text = value.strip()
    try:
        if _ISO_DATE.match(text):
            return date.fromisoformat(text[:10]), None
        # dateutil fills missing parts from ``default``; two different
        # defaults giving two different dates means the text was partial
        parsed = date_parser.parse(text, dayfirst=True, default=_DEFAULT_A)
        if parsed.date() != date_parser.parse(text, dayfirst=True, default=_DEFAULT_B).date():
            return None, f"{field_name}: incomplete date {text!r} ignored"
        return parsed.date(), None
    except (ValueError, OverflowError):
        return None, f"{field_name}: could not parse date {text!r}"


def to_datetime(value: Any) -> datetime | None:
    """Parse a timestamp, returning None when unparseable."""
    value = unwrap(value)
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date_parser.isoparse(value)
    except ValueError:
        return None


def to_int(value: Any, field_name: str = "number") -> tuple[int | None, str | None]:
    """Parse an integer such as an installment count or model year."""
    value = unwrap(value)
    if value is None or isinstance(value, bool):
        return None, None
    if isinstance(value, int):
        return value, None
    if isinstance(value, float) and value.is_integer():
        return int(value), None
    if isinstance(value, str):
        match = re.search(r"\d+", value)
        if match:
            number = int(match.group())
            if match.group() != value.strip():
                return number, f"{field_name}: parsed {value!r} as {number}"
            return number, None
    return None, f"{field_name}: could not parse {value!r}"


def digits_only(value: Any) -> str | None:
    """Keep only the digits of a document number."""
    text = to_text(value)
    if text is None:
        return None
    digits = re.sub(r"\D", "", text)
    return digits or None
