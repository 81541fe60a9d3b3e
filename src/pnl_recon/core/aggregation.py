"""
Per-product aggregation of monthly sales rows, enriched with pricing.

Two modes:
- One company: rows of that company label only, priced with the company's
  country rates and overrides.
- All companies: rows grouped by normalized product key, with a
  per-company breakdown kept alongside. There is no single country in this
  mode, so pricing uses whichever override the product has (best effort).
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

import pandas as pd

from .config import EngineSettings
from .errors import validate_month
from .models import (
    COL_AMOUNT,
    COL_COMPANY,
    COL_MONTH,
    COL_PRODUCT,
    COL_UNITS,
    COL_YEAR,
    Product,
    sales_frame,
)
from .overrides import OverrideFields, OverrideStore
from .parsers import CountryCodeParser, ProductKeyNormalizer, ProductMatcher
from .pricing import PricingResolver, PricingResult, is_price_configured, safe_ratio

logger = logging.getLogger(__name__)

COL_COUNTRY = "country_code"
COL_KEY = "product_key"


@dataclass(frozen=True)
class CompanyContribution:
    """One company's share of an all-companies product aggregate."""

    company: str
    country_code: str
    units: int
    amount: float


@dataclass
class ProductSalesAggregate:
    """Units and amount for one product over the filtered rows."""

    product_name: str
    product_key: str
    total_units: int
    total_amount: float
    product_id: str | None = None
    category: str | None = None
    subtype: str | None = None
    country_code: str | None = None
    pricing: PricingResult | None = None
    company_breakdown: list[CompanyContribution] = field(default_factory=list)

    @property
    def unit_price(self) -> float:
        return self.pricing.gross_sales.amount if self.pricing else 0.0

    @property
    def gross_sale(self) -> float:
        return self.unit_price * self.total_units

    @property
    def sales_revenue(self) -> float:
        if not self.pricing:
            return 0.0
        return self.pricing.sales_revenue.amount * self.total_units

    @property
    def gross_profit(self) -> float:
        if not self.pricing:
            return 0.0
        return self.pricing.gross_profit.amount * self.total_units

    @property
    def gross_margin(self) -> float:
        """Gross profit as a fraction of sales revenue."""
        return safe_ratio(self.gross_profit, self.sales_revenue)


class SalesAggregator:
    """
    Groups raw sales rows by product and attaches resolved pricing.

    Usage:
        aggregator = SalesAggregator(sales_df, products, store, resolver)
        rows = aggregator.aggregate(company=None, year=2025, month=3)
    """

    def __init__(
        self,
        sales: pd.DataFrame | Iterable[dict],
        products: Iterable[Product],
        overrides: OverrideStore,
        resolver: PricingResolver,
        settings: EngineSettings | None = None,
        country_parser: CountryCodeParser | None = None,
        matcher: ProductMatcher | None = None,
    ):
        self.settings = settings or EngineSettings()
        self.country_parser = country_parser or CountryCodeParser(
            unknown_code=self.settings.unknown_country_code
        )
        self.matcher = matcher or ProductMatcher(self.settings.min_partial_match_length)
        self.normalizer: ProductKeyNormalizer = self.matcher.normalizer
        self.products = list(products)
        self.overrides = overrides
        self.resolver = resolver

        self._catalog_keys = [
            (self.normalizer.normalize(p.name), p) for p in self.products
        ]
        self.sales = self._prepare(sales_frame(sales))

    def _prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        df[COL_COUNTRY] = self.country_parser.parse_series(df[COL_COMPANY])
        df[COL_KEY] = self.normalizer.normalize_series(df[COL_PRODUCT])
        return df

    def companies(self) -> list[str]:
        return sorted(self.sales[COL_COMPANY].unique().tolist())

    def periods(self, company: str | None = None) -> list[str]:
        """Distinct YYYY-MM periods, oldest first."""
        df = self.sales
        if company is not None:
            df = df[df[COL_COMPANY] == company.strip()]
        pairs = sorted(set(zip(df[COL_YEAR], df[COL_MONTH])))
        return [f"{year:04d}-{month:02d}" for year, month in pairs]

    def find_product(self, name: str) -> Product | None:
        """Catalog product for a sales label: exact key first, then fuzzy."""
        key = self.normalizer.normalize(name)
        for catalog_key, product in self._catalog_keys:
            if catalog_key == key:
                return product
        for catalog_key, product in self._catalog_keys:
            if self.matcher.keys_match(catalog_key, key):
                return product
        return None

    def filter_sales(
        self,
        company: str | None = None,
        year: int | None = None,
        month: int | None = None,
        product: str | None = None,
    ) -> pd.DataFrame:
        """Rows matching the filters. ``None`` means no filter."""
        month = validate_month(month)
        df = self.sales
        mask = pd.Series(True, index=df.index)

        if company is not None:
            mask &= df[COL_COMPANY] == company.strip()
        if year is not None:
            mask &= df[COL_YEAR] == year
        if month is not None:
            mask &= df[COL_MONTH] == month
        if product is not None:
            wanted = self.normalizer.normalize(product)
            matches = df[COL_KEY].apply(lambda k: self.matcher.keys_match(wanted, k))
            mask &= matches.astype(bool)

        return df[mask]

    def aggregate(
        self,
        company: str | None = None,
        year: int | None = None,
        month: int | None = None,
        product: str | None = None,
        priced_only: bool = True,
    ) -> list[ProductSalesAggregate]:
        """
        Per-product totals for the filters, sorted by units descending.

        Args:
            company: A company label, or None for all companies
            priced_only: Drop products whose Gross Sales is unconfigured
        """
        rows = self.filter_sales(company, year, month, product)
        if rows.empty:
            return []

        grouped = (
            rows.groupby(COL_KEY, sort=False)
            .agg(
                product_name=(COL_PRODUCT, "first"),
                total_units=(COL_UNITS, "sum"),
                total_amount=(COL_AMOUNT, "sum"),
            )
            .reset_index()
        )

        breakdowns: dict[str, list[CompanyContribution]] = {}
        if company is None:
            breakdowns = self._company_breakdowns(rows)

        company_country = (
            self.country_parser.parse(company) if company is not None else None
        )

        results = []
        for rec in grouped.itertuples(index=False):
            catalog = self.find_product(rec.product_name)
            agg = ProductSalesAggregate(
                product_name=rec.product_name,
                product_key=getattr(rec, COL_KEY),
                total_units=int(rec.total_units),
                total_amount=float(rec.total_amount),
                product_id=catalog.id if catalog else None,
                category=catalog.category if catalog else None,
                subtype=catalog.subtype if catalog else None,
                company_breakdown=breakdowns.get(getattr(rec, COL_KEY), []),
            )
            if catalog is not None:
                agg.country_code, agg.pricing = self._price(catalog, company_country)
            results.append(agg)

        if priced_only:
            before = len(results)
            results = [
                r for r in results
                if r.pricing is not None and is_price_configured(r.pricing, self.settings)
            ]
            logger.debug("Dropped %d unpriced products", before - len(results))

        results.sort(key=lambda r: r.total_units, reverse=True)
        return results

    def _company_breakdowns(
        self, rows: pd.DataFrame
    ) -> dict[str, list[CompanyContribution]]:
        per_company = (
            rows.groupby([COL_KEY, COL_COMPANY], sort=False)
            .agg(
                country_code=(COL_COUNTRY, "first"),
                units=(COL_UNITS, "sum"),
                amount=(COL_AMOUNT, "sum"),
            )
            .reset_index()
            .rename(columns={COL_COMPANY: "company"})
        )

        breakdowns: dict[str, list[CompanyContribution]] = {}
        for rec in per_company.itertuples(index=False):
            breakdowns.setdefault(getattr(rec, COL_KEY), []).append(
                CompanyContribution(
                    company=rec.company,
                    country_code=rec.country_code,
                    units=int(rec.units),
                    amount=float(rec.amount),
                )
            )
        return breakdowns

    def _price(
        self, product: Product, company_country: str | None
    ) -> tuple[str | None, PricingResult | None]:
        overrides: OverrideFields | None
        if company_country is not None:
            country = company_country
            overrides = self.overrides.get(product.id, country)
        else:
            record = self.overrides.any_for_product(product.id)
            if record is not None:
                country, overrides = record.country_code, record.overrides
            else:
                country, overrides = self.settings.default_country_code, None

        if country not in self.resolver.rate_table:
            logger.warning(
                "No rates for country %s; leaving %s unpriced", country, product.name
            )
            return country, None

        return country, self.resolver.resolve(product, country, overrides)
