"""
Profit & Loss waterfall resolution for one (product, country) pair.

Waterfall order:
    Gross Sales
    - Commercial Discount
    = Sales Revenue
    - nine Cost of Sales lines
    = Total Cost of Sales
    Gross Profit = Sales Revenue - Total Cost of Sales

Each cost field resolves independently with precedence
absolute override > percentage override > country default.
"""

import logging
from dataclasses import dataclass
from typing import Literal

from .config import EngineSettings
from .models import Product
from .overrides import OverrideFields, coerce_number
from .rates import (
    COMMERCIAL_DISCOUNT,
    COST_LINES,
    GROSS_SALES,
    CostConcept,
    CountryRates,
    RateTable,
    get_concept,
)

logger = logging.getLogger(__name__)

Source = Literal["override_usd", "override_pct", "default", "base_price", "derived"]
EditSide = Literal["usd", "pct"]


def safe_ratio(amount: float, base: float) -> float:
    """amount / base, or 0 when the base is zero."""
    if base == 0:
        return 0.0
    return amount / base


@dataclass(frozen=True)
class LineItem:
    """A waterfall line. ``pct`` is a fraction of the line's reference base."""

    key: str
    label: str
    amount: float
    pct: float
    account: str | None = None
    source: Source = "derived"


@dataclass(frozen=True)
class PricingResult:
    """Fully resolved waterfall for one unit of a product in one country."""

    product_id: str
    country_code: str
    gross_sales: LineItem
    discount: LineItem
    sales_revenue: LineItem
    cost_lines: tuple[LineItem, ...]
    total_cost_of_sales: LineItem
    gross_profit: LineItem

    def waterfall(self) -> list[LineItem]:
        return [
            self.gross_sales,
            self.discount,
            self.sales_revenue,
            *self.cost_lines,
            self.total_cost_of_sales,
            self.gross_profit,
        ]

    def line(self, key: str) -> LineItem:
        for item in self.waterfall():
            if item.key == key:
                return item
        raise KeyError(key)

    def amounts(self) -> dict[str, float]:
        return {item.key: item.amount for item in self.waterfall()}


class PricingResolver:
    """
    Merges rate-table defaults with sparse overrides.

    The resolver is pure: it never persists anything. Callers store the
    OverrideFields returned by ``apply_edit``.

    Usage:
        resolver = PricingResolver(RateTable.default())
        result = resolver.resolve(product, "UY", store.get(product.id, "UY"))
    """

    def __init__(self, rate_table: RateTable):
        self.rate_table = rate_table

    def resolve(
        self,
        product: Product,
        country_code: str,
        overrides: OverrideFields | None = None,
    ) -> PricingResult:
        rates = self.rate_table.get(country_code)
        overrides = overrides or OverrideFields()

        gross_amount = overrides.gross_sales_usd
        gross_source: Source = "override_usd"
        if gross_amount is None:
            gross_amount = product.base_price
            gross_source = "base_price"

        gross_sales = LineItem(
            key=GROSS_SALES.key,
            label=GROSS_SALES.label,
            amount=gross_amount,
            pct=1.0,
            account=rates.account_for(GROSS_SALES),
            source=gross_source,
        )

        discount = self._resolve_field(COMMERCIAL_DISCOUNT, gross_amount, overrides, rates)

        revenue_amount = gross_amount - discount.amount
        sales_revenue = LineItem(
            key="sales_revenue",
            label="Sales Revenue",
            amount=revenue_amount,
            pct=safe_ratio(revenue_amount, gross_amount),
        )

        cost_lines = tuple(
            self._resolve_field(concept, revenue_amount, overrides, rates)
            for concept in COST_LINES
        )

        total_cost = sum(line.amount for line in cost_lines)
        total_cost_of_sales = LineItem(
            key="total_cost_of_sales",
            label="Total Cost of Sales",
            amount=total_cost,
            pct=safe_ratio(total_cost, revenue_amount),
        )

        profit = revenue_amount - total_cost
        gross_profit = LineItem(
            key="gross_profit",
            label="Gross Profit",
            amount=profit,
            pct=safe_ratio(profit, revenue_amount),
        )

        return PricingResult(
            product_id=product.id,
            country_code=country_code.upper(),
            gross_sales=gross_sales,
            discount=discount,
            sales_revenue=sales_revenue,
            cost_lines=cost_lines,
            total_cost_of_sales=total_cost_of_sales,
            gross_profit=gross_profit,
        )

    def _resolve_field(
        self,
        concept: CostConcept,
        base: float,
        overrides: OverrideFields,
        rates: CountryRates,
    ) -> LineItem:
        usd = overrides.amount_for(concept)
        pct = overrides.pct_for(concept)

        if usd is not None:
            amount, ratio, source = usd, safe_ratio(usd, base), "override_usd"
        elif pct is not None:
            amount, ratio, source = base * pct, pct, "override_pct"
        else:
            default = rates.default_for(concept)
            if default.kind == "pct":
                amount, ratio = base * default.value, default.value
            elif default.kind == "usd":
                # Fixed amounts stay fixed; only their share moves with the base
                amount, ratio = default.value, safe_ratio(default.value, base)
            else:
                amount, ratio = 0.0, 0.0
            source = "default"

        if base == 0:
            ratio = 0.0

        return LineItem(
            key=concept.key,
            label=concept.label,
            amount=amount,
            pct=ratio,
            account=rates.account_for(concept),
            source=source,
        )

    def reference_base(self, result: PricingResult, concept: CostConcept) -> float:
        if concept.reference == "gross_sales":
            return result.gross_sales.amount
        return result.sales_revenue.amount

    def apply_edit(
        self,
        product: Product,
        country_code: str,
        overrides: OverrideFields | None,
        concept_key: str,
        value: float,
        side: EditSide = "usd",
    ) -> OverrideFields:
        """
        Record an edit to one side of a cost field and derive the other side.

        Both representations are stored, computed against the reference base
        as it is now. Since absolute values take precedence, a later change
        to the base leaves this amount untouched until it is edited again.
        """
        if side not in ("usd", "pct"):
            raise ValueError(f"side must be 'usd' or 'pct', got {side!r}")

        number = coerce_number(value)
        if number is None:
            raise ValueError(f"Edit value must be numeric, got {value!r}")

        concept = get_concept(concept_key)
        current = overrides or OverrideFields()

        if not concept.has_pct:
            if side == "pct":
                raise ValueError(f"{concept.label} has no percentage form")
            return current.with_values(**{f"{concept.key}_usd": number})

        result = self.resolve(product, country_code, current)
        base = self.reference_base(result, concept)

        if side == "pct":
            pct, usd = number, base * number
        else:
            usd, pct = number, safe_ratio(number, base)

        logger.debug(
            "Edit %s/%s %s: usd=%.4f pct=%.6f (base %.4f)",
            product.id,
            country_code,
            concept.key,
            usd,
            pct,
            base,
        )
        return current.with_values(
            **{f"{concept.key}_usd": usd, f"{concept.key}_pct": pct}
        )


def reset_overrides(product: Product) -> OverrideFields:
    """Every cost field zeroed on both sides; Gross Sales back to base price."""
    values: dict[str, float] = {"gross_sales_usd": product.base_price}
    for concept in (COMMERCIAL_DISCOUNT, *COST_LINES):
        values[f"{concept.key}_usd"] = 0.0
        values[f"{concept.key}_pct"] = 0.0
    return OverrideFields(**values)


def is_price_configured(
    pricing: PricingResult | float,
    settings: EngineSettings | None = None,
) -> bool:
    """
    Business rule: a product with Gross Sales of exactly 0, or of the
    placeholder amount loaded by the catalog seed (10), has no real price
    and is left out of sales reporting.
    """
    settings = settings or EngineSettings()
    gross = pricing.gross_sales.amount if isinstance(pricing, PricingResult) else pricing
    return gross not in settings.unpriced_gross_sales
