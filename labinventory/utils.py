"""
Lab Inventory Utilities
=======================
Date helpers, pagination math and serialization shared by the services.
"""

import calendar
import math
from datetime import date, datetime
from typing import Optional, Dict, Any, Union


def add_months(start: date, months: int) -> date:
    """
    Add calendar months to a date, clamping to the last day of the target month.

    >>> add_months(date(2024, 11, 30), 3)
    datetime.date(2025, 2, 28)
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Parse an ISO date (YYYY-MM-DD) or pass through date objects. Returns None for empty input."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def isoformat(value: Union[date, datetime, None]) -> Optional[str]:
    """ISO string for a date/datetime, or None."""
    return value.isoformat() if value else None


def page_offset(page: int, limit: int) -> int:
    """Row offset for 1-based page numbers."""
    return (max(page, 1) - 1) * limit


def pagination_meta(total: int, page: int, limit: int) -> Dict[str, Any]:
    """Pagination metadata: page, limit, total and pages = ceil(total / limit)."""
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if limit > 0 else 0,
    }
