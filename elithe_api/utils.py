from __future__ import annotations

from datetime import date
from typing import Optional


WEEKDAY_NAMES_PT = ["segunda", "terça", "quarta", "quinta", "sexta", "sábado", "domingo"]


def anchor_birthday(birth_date: date, year: int) -> date:
    """Birthday re-anchored to ``year``; 29 Feb falls back to 28 Feb in common years."""
    try:
        return birth_date.replace(year=year)
    except ValueError:
        return date(year, 2, 28)


def birthday_distance_days(event_date: date, birth_date: date) -> int:
    # Circular-year distance: December birthdays are close to early January events
    candidates = (
        anchor_birthday(birth_date, event_date.year - 1),
        anchor_birthday(birth_date, event_date.year),
        anchor_birthday(birth_date, event_date.year + 1),
    )
    return min(abs((event_date - c).days) for c in candidates)


def in_birthday_window(event_date: date, birth_date: Optional[date], window_days: int = 3) -> bool:
    if not birth_date:
        return False
    return birthday_distance_days(event_date, birth_date) <= window_days


def next_birthday(today: date, birth_date: date) -> date:
    upcoming = anchor_birthday(birth_date, today.year)
    if upcoming < today:
        upcoming = anchor_birthday(birth_date, today.year + 1)
    return upcoming


def days_until_birthday(today: date, birth_date: date) -> int:
    return (next_birthday(today, birth_date) - today).days


def normalize_motorcycle(value: Optional[str]) -> str:
    return (value or "").strip().lower()
