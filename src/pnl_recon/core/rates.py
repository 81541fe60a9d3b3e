"""
Per-country default cost rates.

The rate table is a process-wide constant: load it once at start-up and pass
it to the PricingResolver explicitly. Tests substitute their own tables via
``RateTable.from_mapping``.

Each country carries:
- ``accounts``: ledger account per waterfall line
- ``rules``: default per cost concept, written either as ``<concept>Pct``
  (fraction of the reference base) or ``<concept>USD`` (fixed amount)
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .errors import UnknownCountryError

logger = logging.getLogger(__name__)

ReferenceBase = Literal["gross_sales", "sales_revenue"]


@dataclass(frozen=True)
class CostConcept:
    """One editable line of the P&L waterfall."""

    key: str  # python attribute stem, e.g. "kit_cost"
    stem: str  # persisted blob stem, e.g. "kitCost"
    label: str
    reference: ReferenceBase = "sales_revenue"
    has_pct: bool = True

    @property
    def usd_alias(self) -> str:
        return f"{self.stem}USD"

    @property
    def pct_alias(self) -> str:
        return f"{self.stem}Pct"


GROSS_SALES = CostConcept(
    "gross_sales", "grossSales", "Gross Sales (excl. VAT)", has_pct=False
)
COMMERCIAL_DISCOUNT = CostConcept(
    "commercial_discount",
    "commercialDiscount",
    "Commercial Discount",
    reference="gross_sales",
)

# Order matters: this is the order of the cost-of-sales block
COST_LINES: tuple[CostConcept, ...] = (
    CostConcept("product_cost", "productCost", "Product Cost"),
    CostConcept("kit_cost", "kitCost", "Kit Cost"),
    CostConcept("payment_fee", "paymentFee", "Payment Fee Costs"),
    CostConcept("blood_draw_sample", "bloodDrawSample", "Blood Drawn & Sample Handling"),
    CostConcept("sanitary_permits", "sanitaryPermits", "Sanitary Permits to export blood"),
    CostConcept("external_courier", "externalCourier", "External Courier"),
    CostConcept("internal_courier", "internalCourier", "Internal Courier"),
    CostConcept("physicians_fees", "physiciansFees", "Physicians Fees"),
    CostConcept("sales_commission", "salesCommission", "Sales Commission"),
)

EDITABLE_CONCEPTS: tuple[CostConcept, ...] = (
    GROSS_SALES,
    COMMERCIAL_DISCOUNT,
) + COST_LINES

CONCEPTS_BY_KEY: Mapping[str, CostConcept] = MappingProxyType(
    {c.key: c for c in EDITABLE_CONCEPTS}
)


def get_concept(key: str) -> CostConcept:
    """Look up a concept by python key ("kit_cost") or blob stem ("kitCost")."""
    if key in CONCEPTS_BY_KEY:
        return CONCEPTS_BY_KEY[key]
    for concept in EDITABLE_CONCEPTS:
        if concept.stem == key:
            return concept
    raise KeyError(f"Unknown cost concept: {key!r}")


@dataclass(frozen=True)
class DefaultRate:
    """A rule from the rate table: a fraction or a fixed amount."""

    kind: Literal["pct", "usd", "none"]
    value: float = 0.0


class CountryRates(BaseModel):
    """Rate table entry for a single country."""

    model_config = ConfigDict(frozen=True)

    currency: str = "USD"
    accounts: dict[str, str] = Field(default_factory=dict)
    rules: dict[str, float] = Field(default_factory=dict)

    def default_for(self, concept: CostConcept) -> DefaultRate:
        """Pct rules win over USD rules when a table carries both."""
        if concept.pct_alias in self.rules:
            return DefaultRate("pct", float(self.rules[concept.pct_alias]))
        if concept.usd_alias in self.rules:
            return DefaultRate("usd", float(self.rules[concept.usd_alias]))
        return DefaultRate("none")

    def account_for(self, concept: CostConcept) -> str | None:
        return self.accounts.get(concept.stem)


_STANDARD_ACCOUNTS = {
    "grossSales": "4.1.1.6",
    "commercialDiscount": "4.1.1.10",
    "productCost": "5.1.1.6",
    "kitCost": "5.1.4.1.4",
    "bloodDrawSample": "5.1.4.1.2",
    "sanitaryPermits": "5.1.x.x",
    "externalCourier": "5.1.2.4.2",
    "internalCourier": "5.1.2.4.1",
    "physiciansFees": "5.1.4.1.1",
    "salesCommission": "6.1.1.06",
}


def _rules(
    discount: float,
    product_cost: float,
    kit: float,
    payment_fee: float,
    sample: float,
    permits: float,
    external_courier: float,
    internal_courier: float,
    physicians: float,
    commission: float,
) -> dict[str, float]:
    return {
        "commercialDiscountPct": discount,
        "productCostPct": product_cost,
        "kitCostUSD": kit,
        "paymentFeePct": payment_fee,
        "bloodDrawSampleUSD": sample,
        "sanitaryPermitsUSD": permits,
        "externalCourierUSD": external_courier,
        "internalCourierUSD": internal_courier,
        "physiciansFeesUSD": physicians,
        "salesCommissionPct": commission,
    }


BUILTIN_RULES: dict[str, dict[str, float]] = {
    "UY": _rules(0.05, 0.25, 150, 0.029, 50, 75, 200, 30, 100, 0.08),
    "AR": _rules(0.03, 0.20, 120, 0.035, 40, 60, 180, 25, 80, 0.07),
    "MX": _rules(0.04, 0.22, 140, 0.032, 45, 85, 190, 28, 90, 0.075),
    "CL": _rules(0.06, 0.24, 160, 0.028, 55, 90, 220, 35, 110, 0.09),
    "VE": _rules(0.08, 0.18, 100, 0.045, 35, 120, 250, 20, 70, 0.10),
    "CO": _rules(0.035, 0.21, 130, 0.031, 42, 70, 175, 26, 85, 0.072),
}

COUNTRY_NAMES: dict[str, str] = {
    "UY": "Uruguay",
    "AR": "Argentina",
    "MX": "México",
    "CL": "Chile",
    "VE": "Venezuela",
    "CO": "Colombia",
}


class RateTable:
    """
    Immutable mapping of country code -> CountryRates.

    Usage:
        table = RateTable.default()
        resolver = PricingResolver(table)
    """

    def __init__(
        self,
        rates: Mapping[str, CountryRates],
        names: Mapping[str, str] | None = None,
    ):
        self._rates = MappingProxyType({k.upper(): v for k, v in rates.items()})
        self._names = MappingProxyType(dict(names or {}))

    @classmethod
    def default(cls) -> "RateTable":
        return cls(
            {
                code: CountryRates(accounts=dict(_STANDARD_ACCOUNTS), rules=rules)
                for code, rules in BUILTIN_RULES.items()
            },
            names=COUNTRY_NAMES,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping]) -> "RateTable":
        """
        Build a table from plain dicts, e.g. parsed JSON.

        Entries may omit ``accounts``; the standard chart of accounts is used.
        An optional ``name`` key per entry sets the display name.
        """
        rates = {}
        names = {}
        for code, entry in data.items():
            entry = dict(entry)
            name = entry.pop("name", None)
            entry.setdefault("accounts", dict(_STANDARD_ACCOUNTS))
            rates[code] = CountryRates.model_validate(entry)
            if name:
                names[code.upper()] = name
        return cls(rates, names=names)

    def get(self, country_code: str) -> CountryRates:
        try:
            return self._rates[country_code.upper()]
        except KeyError:
            raise UnknownCountryError(country_code) from None

    def __contains__(self, country_code: object) -> bool:
        return isinstance(country_code, str) and country_code.upper() in self._rates

    def __len__(self) -> int:
        return len(self._rates)

    def codes(self) -> list[str]:
        return list(self._rates)

    def country_name(self, country_code: str) -> str:
        return self._names.get(country_code.upper(), country_code.upper())


def load_rate_table(path: Path | str | None = None) -> RateTable:
    """Load a rate table from a JSON file, or the built-in table if no path."""
    if path is None:
        return RateTable.default()

    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    table = RateTable.from_mapping(data)
    logger.info("Loaded rate table for %d countries from %s", len(table), path)
    return table
