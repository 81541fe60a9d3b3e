"""
Budget vs actual reconciliation.

Budget rows are keyed by (country code, product name). Actual sales rows are
keyed by free-text company and product labels, so both sides are normalized
before joining:
- company label -> country code (CountryCodeParser)
- product label -> normalized key (ProductKeyNormalizer)

A budget row can pick up several actual keys ("GENOMIND" and
"GENOMINDPROFESSIONALPGX"); their units are summed.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import pandas as pd

from .budget import BudgetEntry
from .config import EngineSettings
from .errors import InvalidFilterError, validate_month
from .models import COL_COMPANY, COL_MONTH, COL_PRODUCT, COL_UNITS, COL_YEAR, sales_frame
from .parsers import CountryCodeParser, ProductMatcher
from .rates import COUNTRY_NAMES

logger = logging.getLogger(__name__)


class MatchType(Enum):
    """How a budget row found its actual sales."""

    EXACT_KEY = "exact_key"  # Only identical normalized keys
    PARTIAL_KEY = "partial_key"  # At least one substring match
    UNMATCHED = "unmatched"  # No actual sales found


SORT_COLUMNS = (
    "delta_budget_vs_actual",
    "delta_budget_vs_actual_pct",
    "delta_year_b_vs_year_a",
    "delta_year_b_vs_year_a_pct",
)


def delta_pct(value: float, base: float) -> float:
    """
    Percentage change of ``value`` against ``base``.

    A zero base reads as 100% growth when there is a value, 0% otherwise.
    """
    if base == 0:
        return 100.0 if value != 0 else 0.0
    return (value - base) / base * 100


@dataclass
class ComparisonRow:
    """One budget row with its two years of actuals and the deltas."""

    country: str
    country_code: str
    product_name: str
    product_id: str | None
    budget_units: int
    actual_year_a: int
    actual_year_b: int
    delta_budget_vs_actual: int
    delta_budget_vs_actual_pct: float
    delta_year_b_vs_year_a: int
    delta_year_b_vs_year_a_pct: float
    budget_by_month: dict[int, int] = field(default_factory=dict)
    match_type: MatchType = MatchType.UNMATCHED
    matched_keys: list[str] = field(default_factory=list)


@dataclass
class ComparisonSummary:
    """Totals for the comparison header."""

    budget_year: int
    year_a: int
    year_b: int
    budget_units: int
    actual_year_a: int
    actual_year_b: int
    delta_budget_vs_actual: int
    delta_budget_vs_actual_pct: float
    delta_year_b_vs_year_a: int
    delta_year_b_vs_year_a_pct: float


@dataclass
class ReconciliationResult:
    """Rows produced for one set of filters."""

    budget_year: int
    year_a: int
    year_b: int
    month: int | None
    rows: list[ComparisonRow] = field(default_factory=list)

    @property
    def matched_rows(self) -> int:
        return sum(1 for r in self.rows if r.match_type != MatchType.UNMATCHED)

    @property
    def match_rate(self) -> float:
        if not self.rows:
            return 0
        return self.matched_rows / len(self.rows)

    def unmatched_items(self) -> list[ComparisonRow]:
        return [r for r in self.rows if r.match_type == MatchType.UNMATCHED]

    def to_frame(self) -> pd.DataFrame:
        records = []
        for row in self.rows:
            records.append(
                {
                    "country": row.country,
                    "country_code": row.country_code,
                    "product_name": row.product_name,
                    "product_id": row.product_id,
                    f"budget_{self.budget_year}": row.budget_units,
                    f"actual_{self.year_a}": row.actual_year_a,
                    f"actual_{self.year_b}": row.actual_year_b,
                    "delta_budget_vs_actual": row.delta_budget_vs_actual,
                    "delta_budget_vs_actual_pct": row.delta_budget_vs_actual_pct,
                    "delta_year_b_vs_year_a": row.delta_year_b_vs_year_a,
                    "delta_year_b_vs_year_a_pct": row.delta_year_b_vs_year_a_pct,
                    "match_type": row.match_type.value,
                }
            )
        return pd.DataFrame(records)

    def summary(self) -> dict:
        return {
            "budget_year": self.budget_year,
            "years": f"{self.year_a} / {self.year_b}",
            "rows": len(self.rows),
            "matched": self.matched_rows,
            "unmatched": len(self.rows) - self.matched_rows,
            "match_rate": f"{self.match_rate:.1%}",
        }


class ReconciliationEngine:
    """
    Joins budget rows against two years of actual sales.

    Steps:
    1. Keep budget rows of the budget year matching country/product filters
    2. Take every actual row of year A and year B (filters apply after
       normalization, since country comes from the company label)
    3. Sum units per (country code, product key), per year
    4. For each budget row, sum all accumulator keys of its country whose
       product key matches the budget key
    5. Compute both deltas

    Usage:
        engine = ReconciliationEngine(budget_entries, sales_df)
        result = engine.compare(month=3, countries={"AR", "CL"})
    """

    def __init__(
        self,
        budget: Iterable[BudgetEntry],
        sales: pd.DataFrame | Iterable[dict],
        settings: EngineSettings | None = None,
        country_parser: CountryCodeParser | None = None,
        matcher: ProductMatcher | None = None,
        country_names: dict[str, str] | None = None,
    ):
        self.settings = settings or EngineSettings()
        self.country_parser = country_parser or CountryCodeParser(
            unknown_code=self.settings.unknown_country_code
        )
        self.matcher = matcher or ProductMatcher(self.settings.min_partial_match_length)
        self.normalizer = self.matcher.normalizer
        self.country_names = country_names or COUNTRY_NAMES
        self.budget = list(budget)

        sales_df = sales_frame(sales)
        sales_df["country_code"] = self.country_parser.parse_series(sales_df[COL_COMPANY])
        sales_df["product_key"] = self.normalizer.normalize_series(sales_df[COL_PRODUCT])
        self.sales = sales_df

    @property
    def year_a(self) -> int:
        return self.settings.actual_year_a

    @property
    def year_b(self) -> int:
        return self.settings.actual_year_b

    def _budget_rows(
        self, countries: set[str], product: str | None
    ) -> list[BudgetEntry]:
        wanted_key = self.normalizer.normalize(product) if product is not None else None
        rows = []
        for entry in self.budget:
            if entry.year != self.settings.budget_year:
                continue
            if countries and entry.country_code not in countries:
                continue
            if (
                wanted_key is not None
                and self.normalizer.normalize(entry.product_name) != wanted_key
            ):
                continue
            rows.append(entry)
        return rows

    def _actual_rows(self, year: int, month: int | None) -> pd.DataFrame:
        df = self.sales[self.sales[COL_YEAR] == year]
        if month is not None:
            df = df[df[COL_MONTH] == month]
        return df

    def accumulate(self, year: int, month: int | None = None) -> dict[tuple[str, str], int]:
        """Units per (country code, product key) for one year."""
        df = self._actual_rows(year, month)
        if df.empty:
            return {}
        totals = df.groupby(["country_code", "product_key"])[COL_UNITS].sum()
        return {key: int(units) for key, units in totals.items()}

    def _match_actuals(
        self,
        country_code: str,
        budget_key: str,
        accumulator: dict[tuple[str, str], int],
    ) -> tuple[int, list[str]]:
        # A name that normalizes to nothing ("[X]") names no product
        if not budget_key:
            return 0, []
        total = 0
        keys = []
        for (code, key), units in accumulator.items():
            if code != country_code:
                continue
            if self.matcher.keys_match(budget_key, key):
                total += units
                keys.append(key)
        return total, keys

    def compare(
        self,
        month: int | None = None,
        countries: Iterable[str] = (),
        product: str | None = None,
        sort_by: str = "delta_budget_vs_actual",
        descending: bool = True,
    ) -> ReconciliationResult:
        """
        Build one ComparisonRow per budget row matching the filters.

        Args:
            month: 1-12, or None for the whole year
            countries: Country codes to keep; empty keeps all
            product: Budget product name to keep; None keeps all
            sort_by: One of SORT_COLUMNS
        """
        month = validate_month(month)
        if sort_by not in SORT_COLUMNS:
            raise InvalidFilterError(
                f"sort_by must be one of {', '.join(SORT_COLUMNS)}, got {sort_by!r}"
            )
        wanted_countries = {c.upper() for c in countries}

        budget_rows = self._budget_rows(wanted_countries, product)
        actual_a = self.accumulate(self.year_a, month)
        actual_b = self.accumulate(self.year_b, month)

        rows = []
        for entry in budget_rows:
            budget_key = self.normalizer.normalize(entry.product_name)
            units_a, keys_a = self._match_actuals(entry.country_code, budget_key, actual_a)
            units_b, keys_b = self._match_actuals(entry.country_code, budget_key, actual_b)

            matched = list(dict.fromkeys(keys_b + keys_a))
            if not matched:
                match_type = MatchType.UNMATCHED
            elif all(k == budget_key for k in matched):
                match_type = MatchType.EXACT_KEY
            else:
                match_type = MatchType.PARTIAL_KEY

            budget_units = entry.units_for(month)
            rows.append(
                ComparisonRow(
                    country=entry.country
                    or self.country_names.get(entry.country_code, entry.country_code),
                    country_code=entry.country_code,
                    product_name=entry.product_name,
                    product_id=entry.product_id,
                    budget_units=budget_units,
                    actual_year_a=units_a,
                    actual_year_b=units_b,
                    delta_budget_vs_actual=budget_units - units_b,
                    delta_budget_vs_actual_pct=delta_pct(budget_units, units_b),
                    delta_year_b_vs_year_a=units_b - units_a,
                    delta_year_b_vs_year_a_pct=delta_pct(units_b, units_a),
                    budget_by_month=entry.by_month(),
                    match_type=match_type,
                    matched_keys=matched,
                )
            )
            if matched:
                logger.debug(
                    "Budget %s/%s matched %s", entry.country_code, budget_key, matched
                )

        # Stable sort: ties keep budget order
        rows.sort(key=lambda r: getattr(r, sort_by), reverse=descending)

        result = ReconciliationResult(
            budget_year=self.settings.budget_year,
            year_a=self.year_a,
            year_b=self.year_b,
            month=month,
            rows=rows,
        )
        logger.info("Reconciliation %s", result.summary())
        return result

    def summarize(
        self,
        month: int | None = None,
        countries: Iterable[str] = (),
        product: str | None = None,
    ) -> ComparisonSummary:
        """
        Header totals. Actuals are filtered on their own (country from the
        company label, product by the fuzzy matcher), not through the
        budget join, so actual sales with no budget row still count.
        """
        month = validate_month(month)
        wanted_countries = {c.upper() for c in countries}

        budget_total = sum(
            e.units_for(month) for e in self._budget_rows(wanted_countries, product)
        )
        wanted_key = self.normalizer.normalize(product) if product is not None else None

        def actual_total(year: int) -> int:
            df = self._actual_rows(year, month)
            if wanted_countries:
                df = df[df["country_code"].isin(wanted_countries)]
            if wanted_key == "":
                return 0
            if wanted_key is not None:
                matches = df["product_key"].apply(
                    lambda k: self.matcher.keys_match(wanted_key, k)
                )
                df = df[matches.astype(bool)]
            return int(df[COL_UNITS].sum())

        total_a = actual_total(self.year_a)
        total_b = actual_total(self.year_b)

        return ComparisonSummary(
            budget_year=self.settings.budget_year,
            year_a=self.year_a,
            year_b=self.year_b,
            budget_units=budget_total,
            actual_year_a=total_a,
            actual_year_b=total_b,
            delta_budget_vs_actual=budget_total - total_b,
            delta_budget_vs_actual_pct=delta_pct(budget_total, total_b),
            delta_year_b_vs_year_a=total_b - total_a,
            delta_year_b_vs_year_a_pct=delta_pct(total_b, total_a),
        )
