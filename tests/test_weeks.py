from datetime import date

import pytest

from notifications import weeks


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2025-W07", True),
        ("2025-W7", True),
        ("2025-W53", True),
        ("2025-W54", False),
        ("2025-W00", False),
        ("2025-07", False),
        ("", False),
        (None, False),
    ],
)
def test_is_week_code(value, expected):
    assert weeks.is_week_code(value) is expected


def test_first_sunday_is_on_or_before_new_year():
    assert weeks.first_sunday(2025) == date(2024, 12, 29)
    assert weeks.first_sunday(2023) == date(2023, 1, 1)


def test_date_for_week_day_english_and_hebrew():
    assert weeks.date_for_week_day("2025-W07", "Sunday") == "2025-02-09"
    assert weeks.date_for_week_day("2025-W07", "Saturday") == "2025-02-15"
    assert weeks.date_for_week_day("2025-W07", "שני") == "2025-02-10"


def test_unknown_day_name_falls_back_to_sunday():
    assert weeks.date_for_week_day("2025-W01", "Someday") == "2024-12-29"
