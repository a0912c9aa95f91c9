"""Week-code calendar helpers.

Week codes look like ``2025-W07``. Week 1 starts on the Sunday on or before
January 1st, so day offsets run Sunday=0 .. Saturday=6.
"""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Optional

WEEK_CODE_RE = re.compile(r"^(\d{4})-W(\d{1,2})$")

DAY_INDEX = {
    "Sunday": 0,
    "Monday": 1,
    "Tuesday": 2,
    "Wednesday": 3,
    "Thursday": 4,
    "Friday": 5,
    "Saturday": 6,
    "ראשון": 0,
    "שני": 1,
    "שלישי": 2,
    "רביעי": 3,
    "חמישי": 4,
    "שישי": 5,
    "שבת": 6,
}


def is_week_code(value: Optional[str]) -> bool:
    if not value:
        return False
    match = WEEK_CODE_RE.match(str(value).strip())
    return bool(match) and 1 <= int(match.group(2)) <= 53


def first_sunday(year: int) -> date:
    jan1 = date(year, 1, 1)
    # date.weekday(): Monday=0 .. Sunday=6
    return jan1 - timedelta(days=(jan1.weekday() + 1) % 7)


def date_for_week_day(week_code: str, day_name: Optional[str]) -> str:
    """Return the ISO date of ``day_name`` inside ``week_code``."""
    year_part, _, week_part = str(week_code).partition("-W")
    try:
        year = int(year_part)
    except ValueError:
        year = date.today().year
    try:
        week = int(week_part) or 1
    except ValueError:
        week = 1

    day_index = DAY_INDEX.get((day_name or "").strip(), 0)
    target = first_sunday(year) + timedelta(days=(week - 1) * 7 + day_index)
    return target.isoformat()
