"""Calendar period keys and the full period axis of a report.

Months are keyed ``YYYY-MM`` and weeks by ISO week, ``YYYY-Www``. Both forms
sort lexically in calendar order, so plain string comparison orders them."""

import calendar
import datetime
from typing import List

from .schemas import Granularity


def month_key(value: datetime.date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def week_key(value: datetime.date) -> str:
    iso_year, iso_week, _ = value.isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def period_key(value: datetime.date, granularity: Granularity) -> str:
    """Returns the key of the period ``value`` falls in."""
    if granularity == "month":
        return month_key(value)
    if granularity == "week":
        return week_key(value)
    raise ValueError(f"Unsupported granularity: {granularity}")


def expand_periods(from_date: datetime.date, to_date: datetime.date, granularity: Granularity) -> List[str]:
    """
    Generates every period key between two dates, inclusive, in calendar order.

    The axis does not depend on which periods actually hold data: a report for
    January to March always has three monthly columns. A reversed range
    (``from_date`` after ``to_date``) gives an empty axis rather than an error.

    Args:
        from_date: First day of the report range
        to_date: Last day of the report range
        granularity: "month" or "week"

    Returns:
        List[str]: Ordered period keys
    """
    if granularity not in ("month", "week"):
        raise ValueError(f"Unsupported granularity: {granularity}")
    if from_date > to_date:
        return []

    keys: List[str] = []
    if granularity == "month":
        year, month = from_date.year, from_date.month
        while (year, month) <= (to_date.year, to_date.month):
            keys.append(f"{year:04d}-{month:02d}")
            month += 1
            if month > 12:
                year, month = year + 1, 1
    else:
        cursor = from_date - datetime.timedelta(days=from_date.weekday())
        while cursor <= to_date:
            keys.append(week_key(cursor))
            cursor += datetime.timedelta(days=7)
    return keys


def period_label(key: str) -> str:
    """Human readable label: ``2024-01`` -> ``January 2024``, ``2024-W05`` -> ``Week 5, 2024``."""
    year, _, rest = key.partition("-")
    if rest.startswith("W"):
        return f"Week {int(rest[1:])}, {year}"
    return f"{calendar.month_name[int(rest)]} {year}"
