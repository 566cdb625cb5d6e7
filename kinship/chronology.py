from __future__ import annotations

from datetime import date
import re

_YEAR_RE = re.compile(r"\b(\d{4})\b")


def add_years(d: date, years: int) -> date:
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        # Feb 29 -> Feb 28 in non-leap years.
        return d.replace(month=2, day=28, year=d.year + years)


def is_younger_than(birth: date, years: int, *, on: date) -> bool:
    """True if someone born on *birth* has not yet turned *years* on *on*."""
    return on < add_years(birth, years)


def age_on(birth: date, on: date) -> int:
    """Whole years completed between *birth* and *on* (negative if before birth)."""
    years = on.year - birth.year
    if (on.month, on.day) < (birth.month, birth.day):
        years -= 1
    return years


def years_between(earlier: date, later: date) -> float:
    return (later - earlier).days / 365.25


def year_from_text(s: str | None, *, today: date | None = None) -> int | None:
    """Best-effort 4-digit year from a free-text date ("abt 1850", "1850-03")."""

    if not s:
        return None
    m = _YEAR_RE.search(str(s))
    if not m:
        return None
    y = int(m.group(1))
    t = today or date.today()
    if y < 1 or y > t.year + 5:
        return None
    return y
