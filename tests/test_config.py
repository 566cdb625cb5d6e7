from __future__ import annotations

from datetime import date

import pytest

from kinship.chronology import add_years, age_on, is_younger_than, year_from_text
from kinship.config import EngineSettings
from kinship.db import get_database_url


def test_defaults() -> None:
    s = EngineSettings.from_env({})
    assert s.min_marriage_age == 13
    assert s.gestation_buffer_days == 280
    assert s.earliest_record_year == 1400
    assert s.default_max_hops is None


def test_reads_environment() -> None:
    s = EngineSettings.from_env(
        {
            "KINSHIP_MIN_MARRIAGE_AGE": "16",
            "KINSHIP_GESTATION_BUFFER_DAYS": " 300 ",
            "KINSHIP_EARLIEST_RECORD_YEAR": "1500",
            "KINSHIP_MAX_HOPS": "8",
        }
    )
    assert (s.min_marriage_age, s.gestation_buffer_days, s.earliest_record_year, s.default_max_hops) == (
        16,
        300,
        1500,
        8,
    )


def test_malformed_integer_names_variable() -> None:
    with pytest.raises(ValueError, match="KINSHIP_MAX_HOPS"):
        EngineSettings.from_env({"KINSHIP_MAX_HOPS": "lots"})


def test_rejects_out_of_range_values() -> None:
    with pytest.raises(ValueError):
        EngineSettings(default_max_hops=0)
    with pytest.raises(ValueError):
        EngineSettings(gestation_buffer_days=-1)


def test_database_url_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        get_database_url()
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/kinship")
    assert get_database_url() == "postgresql://localhost/kinship"


class TestChronology:
    def test_add_years_handles_leap_day(self) -> None:
        assert add_years(date(2000, 2, 29), 1) == date(2001, 2, 28)
        assert add_years(date(2000, 2, 29), 4) == date(2004, 2, 29)

    def test_age_on_birthday_boundary(self) -> None:
        assert age_on(date(2000, 6, 15), date(2013, 6, 14)) == 12
        assert age_on(date(2000, 6, 15), date(2013, 6, 15)) == 13
        assert is_younger_than(date(2000, 6, 15), 13, on=date(2013, 6, 14))
        assert not is_younger_than(date(2000, 6, 15), 13, on=date(2013, 6, 15))

    def test_year_from_text(self, fixed_today: date) -> None:
        assert year_from_text("abt 1850", today=fixed_today) == 1850
        assert year_from_text("1850-03", today=fixed_today) == 1850
        assert year_from_text("unknown", today=fixed_today) is None
        assert year_from_text("9999", today=fixed_today) is None
