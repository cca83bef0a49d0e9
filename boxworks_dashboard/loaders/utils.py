"""
Shared utilities for CSV ingestion: blank detection, numeric and date
coercion, e-mail shape checks.

The coercion helpers return None for unparseable values so callers can
collect every problem on a row before deciding it failed.
"""

import logging
import re
from datetime import date, datetime
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_DATE_FORMATS = [
    "%Y-%m-%d",    # 2025-01-15
    "%Y/%m/%d",    # 2025/01/15
    "%d/%m/%Y",    # 15/01/2025
]


def is_blank(val: Any) -> bool:
    """True for None, NaN and whitespace-only strings."""
    if val is None:
        return True
    if isinstance(val, str):
        return not val.strip()
    try:
        return bool(pd.isna(val))
    except (TypeError, ValueError):
        return False


def clean_text(val: Any) -> str | None:
    """Strip a text cell, mapping blanks to None."""
    if is_blank(val):
        return None
    return str(val).strip()


def safe_float(val: Any) -> float | None:
    """Coerce a value to float, returning None for non-numeric values."""
    if is_blank(val):
        return None
    if isinstance(val, str):
        val = val.strip().replace(",", "")
    try:
        result = float(val)
    except (ValueError, TypeError):
        return None
    if pd.isna(result) or result in (float("inf"), float("-inf")):
        return None
    return result


def safe_int(val: Any) -> int | None:
    """Coerce a value to int, returning None unless it is a whole number.

    "3" and "3.0" both give 3; "3.5" gives None.
    """
    number = safe_float(val)
    if number is None or not number.is_integer():
        return None
    return int(number)


def parse_date(val: Any) -> date | None:
    """Parse a calendar date, returning None when it is not a real date."""
    if is_blank(val):
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val

    cleaned = str(val).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue

    logger.debug("Could not parse date value: %s", val)
    return None


def is_valid_email(val: Any) -> bool:
    """Basic local@domain.tld shape check."""
    if is_blank(val):
        return False
    return bool(_EMAIL_RE.match(str(val).strip()))


def format_date(val: Any) -> str:
    """Render a date-like value as YYYY-MM-DD, blank when missing."""
    if is_blank(val):
        return ""
    if isinstance(val, (date, datetime)):
        return val.strftime("%Y-%m-%d")
    parsed = parse_date(val)
    if parsed is None:
        return pd.Timestamp(val).strftime("%Y-%m-%d")
    return parsed.strftime("%Y-%m-%d")
