"""
Fiscal calendar: fiscal-year labels, fiscal-month buckets and their date ranges.

A fiscal year starts on the 1st of a configurable calendar month (default
July) and is labelled "{startYear}/{YY}", e.g. "2025/26". Fiscal months use
the calendar abbreviations ("Jul", "Aug", ...) ordered from the start month.
"""

import calendar
from datetime import date, timedelta
from typing import NamedTuple

from .config import DEFAULT_FY_START_MONTH, FISCAL_YEARS_BACK, MONTH_ABBREVIATIONS


class FiscalYear(NamedTuple):
    label: str
    start: date
    end: date


def _check_start_month(start_month: int) -> None:
    if not 1 <= start_month <= 12:
        raise ValueError(f"Fiscal year start month must be 1-12, got {start_month}")


def fiscal_label(start_year: int) -> str:
    """Return the "{startYear}/{YY}" label for a fiscal year starting in start_year."""
    return f"{start_year}/{str(start_year + 1)[-2:]}"


def parse_fiscal_label(label: str) -> int:
    """Return the start year encoded in a fiscal-year label.

    Raises ValueError for anything not shaped like "2025/26".
    """
    head, sep, tail = str(label).partition("/")
    if not sep or not head.isdigit() or not tail.isdigit():
        raise ValueError(f"Invalid fiscal year label: {label!r}")
    start_year = int(head)
    if fiscal_label(start_year) != label:
        raise ValueError(f"Invalid fiscal year label: {label!r}")
    return start_year


def _fiscal_year_starting(start_year: int, start_month: int) -> FiscalYear:
    start = date(start_year, start_month, 1)
    end = date(start_year + 1, start_month, 1) - timedelta(days=1)
    return FiscalYear(fiscal_label(start_year), start, end)


def fiscal_year_of(d: date, start_month: int = DEFAULT_FY_START_MONTH) -> FiscalYear:
    """Return the fiscal year containing d.

    Months on or after the start month belong to the fiscal year that starts
    in d's calendar year; earlier months belong to the previous one.
    """
    _check_start_month(start_month)
    start_year = d.year if d.month >= start_month else d.year - 1
    return _fiscal_year_starting(start_year, start_month)


def current_fiscal_year(
    start_month: int = DEFAULT_FY_START_MONTH,
    today: date | None = None,
) -> FiscalYear:
    """Return the fiscal year containing today."""
    return fiscal_year_of(today or date.today(), start_month)


def all_fiscal_month_names(start_month: int = DEFAULT_FY_START_MONTH) -> list[str]:
    """Return the twelve month names in fiscal order."""
    _check_start_month(start_month)
    offset = start_month - 1
    return MONTH_ABBREVIATIONS[offset:] + MONTH_ABBREVIATIONS[:offset]


def fiscal_month_of(d: date, start_month: int = DEFAULT_FY_START_MONTH) -> str:
    """Map a date to its fiscal-month name."""
    _check_start_month(start_month)
    return MONTH_ABBREVIATIONS[d.month - 1]


def fiscal_month_number(month_name: str, start_month: int = DEFAULT_FY_START_MONTH) -> int:
    """Return the 1-based position of month_name within the fiscal year."""
    names = all_fiscal_month_names(start_month)
    if month_name not in names:
        raise ValueError(f"Invalid month name: {month_name!r}")
    return names.index(month_name) + 1


def date_range_of(
    fy_label: str,
    month_name: str,
    start_month: int = DEFAULT_FY_START_MONTH,
) -> tuple[date, date]:
    """Resolve a fiscal year label and month name to an inclusive date range.

    Months whose calendar number is before the start month fall in the
    calendar year after the fiscal year's start year.
    """
    _check_start_month(start_month)
    start_year = parse_fiscal_label(fy_label)
    if month_name not in MONTH_ABBREVIATIONS:
        raise ValueError(f"Invalid month name: {month_name!r}")

    month = MONTH_ABBREVIATIONS.index(month_name) + 1
    year = start_year if month >= start_month else start_year + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def is_date_in_fiscal_month(
    d: date,
    fy_label: str,
    month_name: str,
    start_month: int = DEFAULT_FY_START_MONTH,
) -> bool:
    start, end = date_range_of(fy_label, month_name, start_month)
    return start <= d <= end


def all_fiscal_years(
    years_back: int = FISCAL_YEARS_BACK,
    start_month: int = DEFAULT_FY_START_MONTH,
    today: date | None = None,
) -> list[str]:
    """Return years_back + 1 consecutive labels ending at the current one, oldest first."""
    current_start = parse_fiscal_label(current_fiscal_year(start_month, today).label)
    return [fiscal_label(current_start - i) for i in range(years_back, -1, -1)]
