from __future__ import annotations

import re
from datetime import date
from typing import List, Optional

_YEAR_PATTERN = re.compile(r"^(\d{4})-(\d{4})$")


def validate_academic_year(value: str) -> str:
    """Return the academic year unchanged if it looks like ``2024-2025``, else raise ValueError."""
    match = _YEAR_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"academic year must look like 'YYYY-YYYY', got {value!r}")
    start, end = int(match.group(1)), int(match.group(2))
    if end != start + 1:
        raise ValueError(f"academic year must span consecutive years, got {value!r}")
    return value.strip()


def current_academic_year(today: Optional[date] = None) -> str:
    """Academic year label for the calendar year of ``today`` (``2025`` -> ``2025-2026``)."""
    today = today or date.today()
    return f"{today.year}-{today.year + 1}"


def available_academic_years(first_year: int = 2020, today: Optional[date] = None) -> List[str]:
    """Every academic year from ``first_year`` up to next year, most recent first."""
    today = today or date.today()
    years = [f"{year}-{year + 1}" for year in range(first_year, today.year + 2)]
    return sorted(years, reverse=True)
