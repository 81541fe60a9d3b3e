"""
Dashboard analysis over aggregated sales.

Computes:
- Product rankings (units, margin, price)
- Monthly sales evolution for a year
- Consolidated P&L for a set of aggregates
- Headline metrics
"""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .aggregation import ProductSalesAggregate, SalesAggregator
from .models import COL_AMOUNT, COL_MONTH, COL_UNITS
from .pricing import safe_ratio
from .rates import COST_LINES


def top_selling(
    aggregates: list[ProductSalesAggregate], n: int = 10
) -> list[ProductSalesAggregate]:
    return sorted(aggregates, key=lambda a: a.total_units, reverse=True)[:n]


def top_margin(
    aggregates: list[ProductSalesAggregate], n: int = 10
) -> list[ProductSalesAggregate]:
    return sorted(aggregates, key=lambda a: a.gross_margin, reverse=True)[:n]


def bottom_margin(
    aggregates: list[ProductSalesAggregate], n: int = 10
) -> list[ProductSalesAggregate]:
    return sorted(aggregates, key=lambda a: a.gross_margin)[:n]


def most_expensive(
    aggregates: list[ProductSalesAggregate], n: int = 10
) -> list[ProductSalesAggregate]:
    """Highest per-unit Gross Sales first."""
    return sorted(aggregates, key=lambda a: a.unit_price, reverse=True)[:n]


def monthly_evolution(
    aggregator: SalesAggregator,
    year: int,
    company: str | None = None,
    product: str | None = None,
) -> pd.DataFrame:
    """
    Units and amount per month of ``year``.

    Returns a 12-row DataFrame (months 1-12, zero-filled) with columns:
    - month
    - units
    - amount
    """
    rows = aggregator.filter_sales(company=company, year=year, product=product)
    by_month = rows.groupby(COL_MONTH).agg(
        units=(COL_UNITS, "sum"), amount=(COL_AMOUNT, "sum")
    )
    evolution = by_month.reindex(range(1, 13), fill_value=0)
    evolution.index.name = "month"
    evolution = evolution.reset_index()
    evolution["units"] = evolution["units"].astype(int)
    evolution["amount"] = evolution["amount"].astype(float)
    return evolution


@dataclass
class ConsolidatedPnL:
    """Waterfall totals across many products (per-unit lines x units)."""

    units: int
    gross_sales: float
    commercial_discount: float
    sales_revenue: float
    cost_lines: dict[str, float] = field(default_factory=dict)
    total_cost_of_sales: float = 0.0
    gross_profit: float = 0.0

    def share_of_gross_sales(self, amount: float) -> float:
        return safe_ratio(amount, self.gross_sales)

    def as_dict(self) -> dict[str, float]:
        return {
            "units": self.units,
            "gross_sales": self.gross_sales,
            "commercial_discount": self.commercial_discount,
            "sales_revenue": self.sales_revenue,
            **self.cost_lines,
            "total_cost_of_sales": self.total_cost_of_sales,
            "gross_profit": self.gross_profit,
        }


def consolidate_pnl(aggregates: list[ProductSalesAggregate]) -> ConsolidatedPnL:
    """
    Sum each waterfall line times units over the priced aggregates.

    Revenue, totals and profit are recomputed from the summed lines so the
    waterfall identities still hold for the consolidated view.
    """
    priced = [a for a in aggregates if a.pricing is not None]

    gross = sum(a.pricing.gross_sales.amount * a.total_units for a in priced)
    discount = sum(a.pricing.discount.amount * a.total_units for a in priced)

    cost_lines = {concept.key: 0.0 for concept in COST_LINES}
    for agg in priced:
        for line in agg.pricing.cost_lines:
            cost_lines[line.key] += line.amount * agg.total_units

    revenue = gross - discount
    total_cost = sum(cost_lines.values())

    return ConsolidatedPnL(
        units=sum(a.total_units for a in priced),
        gross_sales=gross,
        commercial_discount=discount,
        sales_revenue=revenue,
        cost_lines=cost_lines,
        total_cost_of_sales=total_cost,
        gross_profit=revenue - total_cost,
    )


def compute_key_metrics(aggregates: list[ProductSalesAggregate]) -> dict:
    """Compute headline metrics for the dashboard cards."""
    if not aggregates:
        return {
            "total_units": 0,
            "total_gross_sales": 0.0,
            "total_gross_profit": 0.0,
            "avg_gross_margin": 0.0,
            "product_count": 0,
        }

    units = np.array([a.total_units for a in aggregates], dtype=float)
    gross = np.array([a.gross_sale for a in aggregates], dtype=float)
    revenue = np.array([a.sales_revenue for a in aggregates], dtype=float)
    profit = np.array([a.gross_profit for a in aggregates], dtype=float)

    margins = np.divide(profit, revenue, out=np.zeros_like(profit), where=revenue != 0)

    return {
        "total_units": int(units.sum()),
        "total_gross_sales": float(gross.sum()),
        "total_gross_profit": float(profit.sum()),
        "avg_gross_margin": float(margins.mean()),
        "product_count": len(aggregates),
    }
