"""
Loader for the dashboard's exported tables.

Expected files in ``data_dir``:
- products.json: catalog products (id, name, sku, category, tipo, base_price)
- overrides.json: rows of {product_id, country_code, overrides}
- budget.csv: one row per country/product/year with jan..dec and total_units
- ventas_mensuales.csv: the monthly sales view (producto, compañia, mes,
  año, cantidad_ventas, monto_total)

Source-specific quirks handled:
- Company labels are free text; country codes are derived, not stored
- Override blobs may hold garbage in numeric slots (read as absent)
- Budget rows breaking the total_units invariant are skipped and reported
- Budget product names are linked to catalog ids by name containment

Any I/O or parse failure surfaces as StorageUnavailable so callers can retry.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from pydantic import ValidationError

from ..core.budget import BudgetEntry, link_product_ids
from ..core.config import EngineSettings
from ..core.errors import StorageUnavailable
from ..core.models import COL_COMPANY, COL_MONTH, COL_UNITS, Product, sales_frame
from ..core.overrides import OverrideStore
from ..core.parsers import CountryCodeParser
from ..core.quality import DataQualityChecker, DataQualityReport

logger = logging.getLogger(__name__)


@dataclass
class LoadedData:
    """Container for all loaded and cleaned data sources."""

    products: list[Product]
    overrides: OverrideStore
    budget: list[BudgetEntry]
    sales: pd.DataFrame
    quality_reports: dict[str, DataQualityReport]


class DashboardDataLoader:
    """
    Loads the exported dashboard tables into engine shapes.

    Usage:
        data = DashboardDataLoader("exports/").load_all()
        engine = ReconciliationEngine(data.budget, data.sales)
    """

    PRODUCTS_FILE = "products.json"
    OVERRIDES_FILE = "overrides.json"
    BUDGET_FILE = "budget.csv"
    SALES_FILE = "ventas_mensuales.csv"

    def __init__(self, data_dir: Path | str, settings: EngineSettings | None = None):
        self.data_dir = Path(data_dir)
        self.settings = settings or EngineSettings()
        self.country_parser = CountryCodeParser(
            unknown_code=self.settings.unknown_country_code
        )

    def load_all(self) -> LoadedData:
        """Load all sources and run quality checks."""
        products = self.load_products()
        overrides = self.load_overrides()
        budget_df = self._read_csv(self.BUDGET_FILE)
        budget = link_product_ids(self._budget_entries(budget_df), products)
        sales = self.load_sales()

        quality_reports = {
            "budget": self._check_budget_quality(budget_df),
            "sales": self._check_sales_quality(sales),
        }

        return LoadedData(
            products=products,
            overrides=overrides,
            budget=budget,
            sales=sales,
            quality_reports=quality_reports,
        )

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _read_json(self, name: str) -> Any:
        path = self._path(name)
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            raise StorageUnavailable(name, str(exc)) from exc

    def _read_rows(self, name: str) -> list[Any]:
        """A JSON export that must hold a list of row objects."""
        rows = self._read_json(name)
        if not isinstance(rows, list):
            raise StorageUnavailable(
                name, f"expected a list of rows, got {type(rows).__name__}"
            )
        return rows

    def _read_csv(self, name: str) -> pd.DataFrame:
        path = self._path(name)
        try:
            return pd.read_csv(path, encoding="utf-8")
        except (OSError, ValueError) as exc:
            raise StorageUnavailable(name, str(exc)) from exc

    def load_products(self) -> list[Product]:
        rows = self._read_rows(self.PRODUCTS_FILE)
        products = []
        for row in rows:
            try:
                products.append(Product.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping malformed product row %r: %s", row, exc)
        logger.info("Loaded %d products", len(products))
        return products

    def load_overrides(self) -> OverrideStore:
        store = OverrideStore.from_records(self._read_rows(self.OVERRIDES_FILE))
        logger.info("Loaded %d country overrides", len(store))
        return store

    def load_budget(self) -> list[BudgetEntry]:
        """Budget rows with catalog links attached."""
        entries = self._budget_entries(self._read_csv(self.BUDGET_FILE))
        return link_product_ids(entries, self.load_products())

    def _budget_entries(self, df: pd.DataFrame) -> list[BudgetEntry]:
        entries = []
        for row in df.to_dict(orient="records"):
            try:
                entries.append(BudgetEntry.model_validate(row))
            except ValidationError as exc:
                logger.warning(
                    "Skipping budget row %s/%s: %s",
                    row.get("country_code"),
                    row.get("product_name"),
                    exc.errors()[0]["msg"],
                )
        return entries

    def load_sales(self) -> pd.DataFrame:
        sales = sales_frame(self._read_csv(self.SALES_FILE))
        logger.info("Loaded %d monthly sales rows", len(sales))
        return sales

    def _check_budget_quality(self, df: pd.DataFrame) -> DataQualityReport:
        checker = DataQualityChecker("Budget", check_missing=False)
        checker.check_budget_totals()
        checker.check_duplicates(["country_code", "product_name", "year"])
        return checker.run(df)

    def _check_sales_quality(self, df: pd.DataFrame) -> DataQualityReport:
        checker = DataQualityChecker("Monthly Sales")
        checker.check_unknown_countries(COL_COMPANY, self.country_parser)
        checker.check_outliers(COL_UNITS, min_val=0, severity="warning")
        checker.check_outliers(COL_MONTH, min_val=1, max_val=12, severity="critical")
        return checker.run(df)
