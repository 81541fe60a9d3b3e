"""
Sparse per-(product, country) cost overrides.

Overrides are persisted as a loosely typed JSON blob. Here they are a typed
partial record: every numeric field is optional and ``None`` means absent.
Zero is a real value, not "absent".

Reads are resilient: garbage in a numeric slot is treated as absent so the
resolver falls back to the country default instead of failing.
"""

import json
import logging
import math
import numbers
from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .rates import EDITABLE_CONCEPTS, CostConcept

logger = logging.getLogger(__name__)


def coerce_number(value: Any) -> float | None:
    """Return a finite float, or None for anything that isn't one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, numbers.Real):
        logger.debug("Dropping override value of type %s", type(value).__name__)
        return None

    try:
        result = float(value)
    except (OverflowError, ValueError):
        logger.debug("Dropping non-numeric override value %r", value)
        return None

    if not math.isfinite(result):
        return None
    return result


NUMERIC_FIELDS: tuple[str, ...] = tuple(
    name
    for concept in EDITABLE_CONCEPTS
    for name in (
        (f"{concept.key}_usd", f"{concept.key}_pct")
        if concept.has_pct
        else (f"{concept.key}_usd",)
    )
)


class OverrideFields(BaseModel):
    """
    The persisted override blob for one (product, country) pair.

    Field aliases follow the ``<concept>USD`` / ``<concept>Pct`` convention
    of the stored JSON. Pct values are fractions (0.05 == 5%).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    gross_sales_usd: float | None = Field(None, alias="grossSalesUSD")

    commercial_discount_usd: float | None = Field(None, alias="commercialDiscountUSD")
    commercial_discount_pct: float | None = Field(None, alias="commercialDiscountPct")

    product_cost_usd: float | None = Field(None, alias="productCostUSD")
    product_cost_pct: float | None = Field(None, alias="productCostPct")

    kit_cost_usd: float | None = Field(None, alias="kitCostUSD")
    kit_cost_pct: float | None = Field(None, alias="kitCostPct")

    payment_fee_usd: float | None = Field(None, alias="paymentFeeUSD")
    payment_fee_pct: float | None = Field(None, alias="paymentFeePct")

    blood_draw_sample_usd: float | None = Field(None, alias="bloodDrawSampleUSD")
    blood_draw_sample_pct: float | None = Field(None, alias="bloodDrawSamplePct")

    sanitary_permits_usd: float | None = Field(None, alias="sanitaryPermitsUSD")
    sanitary_permits_pct: float | None = Field(None, alias="sanitaryPermitsPct")

    external_courier_usd: float | None = Field(None, alias="externalCourierUSD")
    external_courier_pct: float | None = Field(None, alias="externalCourierPct")

    internal_courier_usd: float | None = Field(None, alias="internalCourierUSD")
    internal_courier_pct: float | None = Field(None, alias="internalCourierPct")

    physicians_fees_usd: float | None = Field(None, alias="physiciansFeesUSD")
    physicians_fees_pct: float | None = Field(None, alias="physiciansFeesPct")

    sales_commission_usd: float | None = Field(None, alias="salesCommissionUSD")
    sales_commission_pct: float | None = Field(None, alias="salesCommissionPct")

    # Not pricing related, but lives in the same blob
    reviewed: bool = False

    @field_validator(*NUMERIC_FIELDS, mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> float | None:
        return coerce_number(value)

    @field_validator("reviewed", mode="before")
    @classmethod
    def _lenient_flag(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"true", "1", "yes"}
        if isinstance(value, numbers.Real):
            return value == 1
        return False

    @classmethod
    def from_blob(cls, blob: Any) -> "OverrideFields":
        """Parse a persisted blob; anything unreadable yields an empty record."""
        if isinstance(blob, OverrideFields):
            return blob
        if isinstance(blob, str):
            try:
                blob = json.loads(blob)
            except ValueError:
                logger.warning("Override blob is not valid JSON; treating as empty")
                return cls()
        if not isinstance(blob, dict):
            return cls()
        return cls.model_validate(blob)

    def to_blob(self) -> dict[str, Any]:
        """Serialize back to the stored JSON shape, omitting absent fields."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def amount_for(self, concept: CostConcept) -> float | None:
        return getattr(self, f"{concept.key}_usd")

    def pct_for(self, concept: CostConcept) -> float | None:
        if not concept.has_pct:
            return None
        return getattr(self, f"{concept.key}_pct")

    def with_values(self, **updates: Any) -> "OverrideFields":
        """Return a copy with the given python-named fields replaced."""
        unknown = set(updates) - set(NUMERIC_FIELDS) - {"reviewed"}
        if unknown:
            raise KeyError(f"Unknown override fields: {sorted(unknown)}")
        return self.model_copy(update=updates)

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in NUMERIC_FIELDS)


@dataclass(frozen=True)
class CountryOverride:
    """An override record keyed by (product id, country code)."""

    product_id: str
    country_code: str
    overrides: OverrideFields

    def to_record(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "country_code": self.country_code,
            "overrides": self.overrides.to_blob(),
        }


class OverrideStore:
    """
    In-memory override records, the shape the storage layer hands us.

    Writes are last-write-wins: concurrent edits to the same pair are not
    coordinated.
    """

    def __init__(self, records: Iterable[CountryOverride] = ()):
        self._records: dict[tuple[str, str], CountryOverride] = {}
        for record in records:
            self._records[(record.product_id, record.country_code)] = record

    @classmethod
    def from_records(cls, rows: Iterable[dict[str, Any]]) -> "OverrideStore":
        """Build a store from raw storage rows, skipping rows without a key."""
        store = cls()
        for row in rows:
            if not isinstance(row, dict):
                logger.warning("Skipping override row without product/country: %r", row)
                continue
            product_id = row.get("product_id")
            country_code = row.get("country_code")
            if not product_id or not country_code:
                logger.warning("Skipping override row without product/country: %r", row)
                continue
            store.upsert(
                str(product_id),
                str(country_code),
                OverrideFields.from_blob(row.get("overrides")),
            )
        return store

    def __len__(self) -> int:
        return len(self._records)

    def get(self, product_id: str, country_code: str) -> OverrideFields | None:
        record = self._records.get((product_id, country_code.upper()))
        return record.overrides if record else None

    def upsert(
        self, product_id: str, country_code: str, overrides: OverrideFields
    ) -> CountryOverride:
        record = CountryOverride(product_id, country_code.upper(), overrides)
        self._records[(record.product_id, record.country_code)] = record
        return record

    def for_product(self, product_id: str) -> list[CountryOverride]:
        return [r for r in self._records.values() if r.product_id == product_id]

    def any_for_product(self, product_id: str) -> CountryOverride | None:
        """First override stored for the product, in insertion order."""
        for record in self._records.values():
            if record.product_id == product_id:
                return record
        return None

    def mark_reviewed(
        self, product_id: str, country_code: str, reviewed: bool = True
    ) -> CountryOverride:
        current = self.get(product_id, country_code) or OverrideFields()
        return self.upsert(
            product_id, country_code, current.with_values(reviewed=reviewed)
        )

    def delete_product(self, product_id: str) -> int:
        """Cascade delete for a removed product. Returns records removed."""
        keys = [k for k in self._records if k[0] == product_id]
        for key in keys:
            del self._records[key]
        return len(keys)

    def records(self) -> list[dict[str, Any]]:
        return [r.to_record() for r in self._records.values()]
