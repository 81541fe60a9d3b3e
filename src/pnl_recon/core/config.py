"""
Engine settings.

All settings are configurable via environment variables with defaults that
match the dashboard's production data (budget 2026 compared against actuals
for 2025 and 2026).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class EngineSettings:
    """Immutable knobs shared by the resolver, aggregator and reconciler."""

    budget_year: int = 2026
    actual_year_a: int = 2025
    actual_year_b: int = 2026

    # Sentinel returned when a company label maps to no known country
    unknown_country_code: str = "XX"
    # Rates used when aggregating across companies with no override at all
    default_country_code: str = "UY"

    # Shorter normalized product key must be at least this long to match
    # as a substring of a longer one
    min_partial_match_length: int = 5

    # Gross Sales values that mean "price never configured"
    unpriced_gross_sales: tuple[float, ...] = field(default=(0.0, 10.0))

    rate_table_path: Path | None = None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_floats(name: str, default: tuple[float, ...]) -> tuple[float, ...]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return tuple(float(part) for part in raw.split(",") if part.strip())


def load_settings(
    env_file: Path | str | None = None, dotenv: bool = True
) -> EngineSettings:
    """
    Build settings from ``PNL_*`` environment variables.

    A .env file (``env_file``, or the nearest one found) is loaded first;
    variables already set in the environment take precedence over it.
    """
    if dotenv:
        load_dotenv(env_file)

    defaults = EngineSettings()
    rate_path = os.getenv("PNL_RATE_TABLE_PATH")

    return EngineSettings(
        budget_year=_env_int("PNL_BUDGET_YEAR", defaults.budget_year),
        actual_year_a=_env_int("PNL_ACTUAL_YEAR_A", defaults.actual_year_a),
        actual_year_b=_env_int("PNL_ACTUAL_YEAR_B", defaults.actual_year_b),
        unknown_country_code=os.getenv(
            "PNL_UNKNOWN_COUNTRY", defaults.unknown_country_code
        ),
        default_country_code=os.getenv(
            "PNL_DEFAULT_COUNTRY", defaults.default_country_code
        ),
        min_partial_match_length=_env_int(
            "PNL_MIN_PARTIAL_MATCH", defaults.min_partial_match_length
        ),
        unpriced_gross_sales=_env_floats(
            "PNL_UNPRICED_GROSS_SALES", defaults.unpriced_gross_sales
        ),
        rate_table_path=Path(rate_path).expanduser() if rate_path else None,
    )
