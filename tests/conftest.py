"""
Shared fixtures for the pnl_recon test suite.

Fixtures build small in-memory catalogs, override stores, sales views and
budget rows so every test runs without touching the filesystem.
"""

import pandas as pd
import pytest

from pnl_recon.core import (
    BudgetEntry,
    EngineSettings,
    OverrideStore,
    PricingResolver,
    Product,
    RateTable,
)
from pnl_recon.core.budget import MONTH_KEYS


def budget_row(country_code, product_name, year=2026, **months):
    """A budget row with the given months set and every other month at 0."""
    row = {key: months.get(key, 0) for key in MONTH_KEYS}
    row.update(country_code=country_code, product_name=product_name, year=year)
    return BudgetEntry.model_validate(row)


def sales_row(product, company, year, month, units, amount=None):
    return {
        "producto": product,
        "compañia": company,
        "año": year,
        "mes": month,
        "cantidad_ventas": units,
        "monto_total": amount if amount is not None else units * 100.0,
    }


# ---------------------------------------------------------------------------
# Catalog and pricing
# ---------------------------------------------------------------------------
@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def rate_table():
    return RateTable.default()


@pytest.fixture
def resolver(rate_table):
    return PricingResolver(rate_table)


@pytest.fixture
def genomind():
    return Product(
        id="p-genomind",
        name="Genomind Professional PGx",
        sku="GX-01",
        category="Pharmacogenomics",
        tipo="Test",
        base_price=4000.0,
    )


@pytest.fixture
def products(genomind):
    return [
        genomind,
        Product(id="p-brca", name="BRCA Panel", category="Oncology", base_price=1200.0),
        Product(id="p-seed", name="Carrier Screening", base_price=10.0),
    ]


@pytest.fixture
def override_store():
    return OverrideStore()


# ---------------------------------------------------------------------------
# Sales and budget
# ---------------------------------------------------------------------------
@pytest.fixture
def sales_df():
    """Monthly sales across three companies in two years."""
    rows = [
        sales_row("Genomind Professional PGx", "SouthGenetics LLC Uruguay", 2025, 3, 10),
        sales_row("Genomind Professional PGx", "SouthGenetics LLC Argentina", 2025, 3, 20),
        sales_row("[GX-01] Genomind Professional PGx", "SouthGenetics LLC Chile", 2025, 4, 5),
        sales_row("BRCA Panel", "SouthGenetics LLC Uruguay", 2025, 3, 4),
        sales_row("Carrier Screening", "SouthGenetics LLC Uruguay", 2025, 3, 50),
        sales_row("Genomind Professional PGx", "SouthGenetics LLC Uruguay", 2026, 3, 12),
        sales_row("GENOMIND", "SouthGenetics LLC Uruguay", 2026, 3, 3),
        sales_row("BRCA Panel", "SouthGenetics LLC Uruguay", 2026, 5, 6),
    ]
    return pd.DataFrame(rows)


@pytest.fixture
def budget_entries():
    return [
        budget_row("UY", "Genomind", mar=40, apr=60, dec=400),
        budget_row("UY", "BRCA Panel", mar=5, may=5),
        budget_row("AR", "Genomind", mar=25),
        budget_row("CL", "Exome Sequencing", jun=8),
        budget_row("UY", "Genomind", year=2025, mar=99),
    ]
