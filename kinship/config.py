from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_ENV_MIN_MARRIAGE_AGE = "KINSHIP_MIN_MARRIAGE_AGE"
_ENV_GESTATION_BUFFER_DAYS = "KINSHIP_GESTATION_BUFFER_DAYS"
_ENV_EARLIEST_RECORD_YEAR = "KINSHIP_EARLIEST_RECORD_YEAR"
_ENV_MAX_HOPS = "KINSHIP_MAX_HOPS"


def _env_int(env: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class EngineSettings:
    """Tunable thresholds for the validator and path finder.

    Defaults follow common genealogical practice; all are advisory limits
    except where a rule explicitly hard-rejects.
    """

    min_marriage_age: int = 13
    # Roughly nine months: a father may die before his child is born.
    gestation_buffer_days: int = 280
    earliest_record_year: int = 1400
    min_parent_age: int = 12
    max_parent_age: int = 70
    max_maternal_age: int = 55
    max_sibling_gap_years: int = 30
    max_lifespan_years: int = 120
    max_living_age_years: int = 110
    default_max_hops: Optional[int] = None

    def __post_init__(self) -> None:
        if self.min_marriage_age < 0:
            raise ValueError("min_marriage_age must be >= 0")
        if self.gestation_buffer_days < 0:
            raise ValueError("gestation_buffer_days must be >= 0")
        if self.default_max_hops is not None and self.default_max_hops < 1:
            raise ValueError("default_max_hops must be >= 1")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "EngineSettings":
        e = os.environ if env is None else env
        defaults = cls()
        return cls(
            min_marriage_age=_env_int(e, _ENV_MIN_MARRIAGE_AGE, defaults.min_marriage_age),
            gestation_buffer_days=_env_int(e, _ENV_GESTATION_BUFFER_DAYS, defaults.gestation_buffer_days),
            earliest_record_year=_env_int(e, _ENV_EARLIEST_RECORD_YEAR, defaults.earliest_record_year),
            default_max_hops=_env_int(e, _ENV_MAX_HOPS, None),
        )
