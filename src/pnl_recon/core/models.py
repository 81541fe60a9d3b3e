"""
Catalog and sales shapes consumed by the engine.

Sales rows arrive with the Spanish column names of the monthly sales view
(``producto``, ``compañia``, ``mes``, ``año``, ``cantidad_ventas``,
``monto_total``) and are kept that way inside DataFrames.
"""

from typing import Any, Iterable

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

# Column names of the monthly sales view
COL_PRODUCT = "producto"
COL_COMPANY = "compañia"
COL_MONTH = "mes"
COL_YEAR = "año"
COL_UNITS = "cantidad_ventas"
COL_AMOUNT = "monto_total"

SALES_COLUMNS = [COL_PRODUCT, COL_COMPANY, COL_MONTH, COL_YEAR, COL_UNITS, COL_AMOUNT]


class Product(BaseModel):
    """A catalog product. Owned by the catalog; read-only here."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    sku: str = ""
    description: str | None = None
    category: str | None = None
    subtype: str | None = Field(None, alias="tipo")
    base_price: float = 0.0


class SalesRecord(BaseModel):
    """One (product, company, period) row of historical sales."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product: str = Field(alias=COL_PRODUCT)
    company: str = Field(alias=COL_COMPANY)
    month: int = Field(alias=COL_MONTH, ge=1, le=12)
    year: int = Field(alias=COL_YEAR)
    units: int = Field(0, alias=COL_UNITS)
    amount: float | None = Field(None, alias=COL_AMOUNT)

    @property
    def period(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def sales_frame(rows: Iterable[dict[str, Any] | SalesRecord] | pd.DataFrame) -> pd.DataFrame:
    """
    Build a clean sales DataFrame.

    - Missing columns are added as empty
    - Units coerce to int with garbage as 0
    - Amounts coerce to float, keeping NaN for unknown amounts
    - Product and company labels are stripped strings
    """
    if isinstance(rows, pd.DataFrame):
        df = rows.copy()
    else:
        records = [r.to_row() if isinstance(r, SalesRecord) else dict(r) for r in rows]
        df = pd.DataFrame(records)

    for col in SALES_COLUMNS:
        if col not in df.columns:
            df[col] = pd.NA

    df[COL_PRODUCT] = df[COL_PRODUCT].fillna("").astype(str).str.strip()
    df[COL_COMPANY] = df[COL_COMPANY].fillna("").astype(str).str.strip()
    df[COL_MONTH] = pd.to_numeric(df[COL_MONTH], errors="coerce").fillna(0).astype(int)
    df[COL_YEAR] = pd.to_numeric(df[COL_YEAR], errors="coerce").fillna(0).astype(int)
    df[COL_UNITS] = pd.to_numeric(df[COL_UNITS], errors="coerce").fillna(0).astype(int)
    df[COL_AMOUNT] = pd.to_numeric(df[COL_AMOUNT], errors="coerce").astype(float)

    return df
