"""
Year-ahead unit budget rows.

A budget row is keyed by (country code, product name, year). Product identity
is by text: ``product_id`` is only a best-effort link made at import time.
"""

import logging
from typing import Any, Iterable

import pandas as pd
from pydantic import BaseModel, ConfigDict, model_validator

from .errors import validate_month
from .models import Product

logger = logging.getLogger(__name__)

MONTH_KEYS = [
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
]


class BudgetEntry(BaseModel):
    """Twelve monthly unit projections for one country/product/year."""

    model_config = ConfigDict(extra="ignore")

    country: str = ""
    country_code: str
    product_name: str
    product_id: str | None = None
    year: int

    jan: int = 0
    feb: int = 0
    mar: int = 0
    apr: int = 0
    may: int = 0
    jun: int = 0
    jul: int = 0
    aug: int = 0
    sep: int = 0
    oct: int = 0
    nov: int = 0
    dec: int = 0

    total_units: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _blank_months_are_zero(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in MONTH_KEYS:
                value = data.get(key)
                if value is None or value == "" or (
                    not isinstance(value, str) and pd.isna(value)
                ):
                    data[key] = 0
            country = data.get("country")
            if country is not None and not isinstance(country, str) and pd.isna(country):
                data["country"] = ""
            if "country_code" in data and isinstance(data["country_code"], str):
                data["country_code"] = data["country_code"].strip().upper()
            total = data.get("total_units")
            if total is not None and not isinstance(total, str) and pd.isna(total):
                data["total_units"] = None
            product_id = data.get("product_id")
            if product_id is not None and not isinstance(product_id, str):
                data["product_id"] = None if pd.isna(product_id) else str(product_id)
        return data

    @model_validator(mode="after")
    def _check_total(self) -> "BudgetEntry":
        months_sum = sum(self.monthly_units())
        if self.total_units is None:
            self.total_units = months_sum
        elif self.total_units != months_sum:
            raise ValueError(
                f"total_units {self.total_units} != sum of months {months_sum} "
                f"for {self.country_code}/{self.product_name}/{self.year}"
            )
        return self

    def monthly_units(self) -> list[int]:
        return [getattr(self, key) for key in MONTH_KEYS]

    def units_for(self, month: int | None = None) -> int:
        """The month's column when filtered, else the annual total."""
        month = validate_month(month)
        if month is None:
            return self.total_units or 0
        return getattr(self, MONTH_KEYS[month - 1])

    def by_month(self) -> dict[int, int]:
        return {i + 1: units for i, units in enumerate(self.monthly_units())}


def budget_from_rows(rows: Iterable[dict[str, Any]]) -> list[BudgetEntry]:
    return [BudgetEntry.model_validate(row) for row in rows]


def link_product_ids(
    entries: list[BudgetEntry], products: Iterable[Product]
) -> list[BudgetEntry]:
    """
    Attach a catalog product id to budget rows by name containment.

    A product links when either name contains the other (case-insensitive).
    Later catalog products win ties. Rows already linked are left alone.
    """
    products = list(products)
    names = {e.product_name for e in entries}
    links: dict[str, str] = {}

    for product in products:
        catalog_name = product.name.upper()
        for name in names:
            budget_name = name.upper()
            if not budget_name:
                continue
            if catalog_name in budget_name or budget_name in catalog_name:
                links[name] = product.id

    linked = []
    for entry in entries:
        if entry.product_id is None and entry.product_name in links:
            entry = entry.model_copy(update={"product_id": links[entry.product_name]})
        linked.append(entry)

    logger.info(
        "Linked %d of %d budget product names to catalog products",
        len(links),
        len(names),
    )
    return linked
