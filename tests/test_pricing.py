"""
Tests for the P&L waterfall resolver and its edit protocol.
"""

import pytest

from pnl_recon.core import (
    OverrideFields,
    PricingResolver,
    Product,
    RateTable,
    UnknownCountryError,
    is_price_configured,
    reset_overrides,
)
from pnl_recon.core.pricing import safe_ratio
from pnl_recon.core.rates import COST_LINES, get_concept


def assert_waterfall_holds(result):
    assert result.sales_revenue.amount == pytest.approx(
        result.gross_sales.amount - result.discount.amount
    )
    assert result.total_cost_of_sales.amount == pytest.approx(
        sum(line.amount for line in result.cost_lines)
    )
    assert result.gross_profit.amount == pytest.approx(
        result.sales_revenue.amount - result.total_cost_of_sales.amount
    )


# ---------------------------------------------------------------------------
# Default resolution
# ---------------------------------------------------------------------------
class TestDefaultResolution:
    """Resolution with no overrides uses the country's rate table."""

    def test_default_scenario(self, resolver, genomind):
        result = resolver.resolve(genomind, "UY")

        assert result.gross_sales.amount == 4000
        assert result.gross_sales.source == "base_price"
        assert result.discount.amount == pytest.approx(200)
        assert result.sales_revenue.amount == pytest.approx(3800)

        amounts = result.amounts()
        assert amounts["product_cost"] == pytest.approx(950)
        assert amounts["kit_cost"] == pytest.approx(150)
        assert amounts["payment_fee"] == pytest.approx(110.2)
        assert amounts["sales_commission"] == pytest.approx(304)
        assert result.total_cost_of_sales.amount == pytest.approx(1969.2)
        assert result.gross_profit.amount == pytest.approx(1830.8)
        assert_waterfall_holds(result)

    def test_cost_lines_follow_waterfall_order(self, resolver, genomind):
        result = resolver.resolve(genomind, "UY")
        assert [line.key for line in result.cost_lines] == [c.key for c in COST_LINES]

    def test_fixed_default_reports_share_of_revenue(self, resolver, genomind):
        kit = resolver.resolve(genomind, "UY").line("kit_cost")
        assert kit.source == "default"
        assert kit.pct == pytest.approx(150 / 3800)

    def test_accounts_attached(self, resolver, genomind):
        result = resolver.resolve(genomind, "UY")
        assert result.gross_sales.account == "4.1.1.6"
        assert result.line("product_cost").account == "5.1.1.6"
        # No account in the standard chart for payment fees
        assert result.line("payment_fee").account is None

    def test_country_code_case_insensitive(self, resolver, genomind):
        assert resolver.resolve(genomind, "uy").country_code == "UY"

    def test_unknown_country_raises(self, resolver, genomind):
        with pytest.raises(UnknownCountryError) as exc_info:
            resolver.resolve(genomind, "XX")
        assert exc_info.value.country_code == "XX"
        assert isinstance(exc_info.value, KeyError)

    def test_substitute_rate_table(self, genomind):
        table = RateTable.from_mapping(
            {"ZZ": {"rules": {"commercialDiscountPct": 0.5, "kitCostUSD": 10}}}
        )
        result = PricingResolver(table).resolve(genomind, "ZZ")

        assert result.sales_revenue.amount == pytest.approx(2000)
        assert result.line("kit_cost").amount == 10
        # Concepts with no rule resolve to zero
        assert result.line("product_cost").amount == 0
        assert result.total_cost_of_sales.amount == pytest.approx(10)


# ---------------------------------------------------------------------------
# Override precedence
# ---------------------------------------------------------------------------
class TestOverridePrecedence:
    """Absolute override > percentage override > country default."""

    def test_absolute_discount_wins(self, resolver, genomind):
        overrides = OverrideFields(commercial_discount_usd=500)
        result = resolver.resolve(genomind, "UY", overrides)

        assert result.discount.amount == 500
        assert result.discount.source == "override_usd"
        assert result.sales_revenue.amount == pytest.approx(3500)
        assert_waterfall_holds(result)

    def test_usd_beats_pct_for_amount(self, resolver, genomind):
        overrides = OverrideFields(kit_cost_usd=80, kit_cost_pct=0.5)
        kit = resolver.resolve(genomind, "UY", overrides).line("kit_cost")

        assert kit.amount == 80
        assert kit.pct == pytest.approx(80 / 3800)

    def test_pct_override_beats_default(self, resolver, genomind):
        overrides = OverrideFields(product_cost_pct=0.1)
        line = resolver.resolve(genomind, "UY", overrides).line("product_cost")

        assert line.amount == pytest.approx(380)
        assert line.source == "override_pct"

    def test_gross_sales_override(self, resolver, genomind):
        result = resolver.resolve(genomind, "UY", OverrideFields(gross_sales_usd=2000))

        assert result.gross_sales.amount == 2000
        assert result.gross_sales.source == "override_usd"
        assert result.sales_revenue.amount == pytest.approx(1900)

    def test_garbage_override_falls_back_to_default(self, resolver, genomind):
        overrides = OverrideFields.from_blob({"kitCostUSD": "abc", "kitCostPct": None})
        kit = resolver.resolve(genomind, "UY", overrides).line("kit_cost")

        assert kit.amount == 150
        assert kit.source == "default"

    @pytest.mark.parametrize(
        "blob",
        [
            {},
            {"commercialDiscountUSD": 0},
            {"grossSalesUSD": 1500, "productCostPct": 0.4, "kitCostUSD": 0},
            {"salesCommissionUSD": 999, "salesCommissionPct": 0.01},
            {"commercialDiscountPct": 1.0},
        ],
    )
    def test_waterfall_invariant(self, resolver, genomind, blob):
        result = resolver.resolve(genomind, "AR", OverrideFields.from_blob(blob))
        assert_waterfall_holds(result)


# ---------------------------------------------------------------------------
# Zero base
# ---------------------------------------------------------------------------
class TestZeroBase:
    """A zero reference base never divides."""

    def test_safe_ratio(self):
        assert safe_ratio(50, 0) == 0
        assert safe_ratio(50, 200) == 0.25

    def test_zero_revenue_gives_zero_pcts(self, resolver, genomind):
        overrides = OverrideFields(commercial_discount_pct=1.0)
        result = resolver.resolve(genomind, "UY", overrides)

        assert result.sales_revenue.amount == 0
        assert all(line.pct == 0 for line in result.cost_lines)
        kit = result.line("kit_cost")
        assert kit.amount == 150
        assert kit.pct == 0
        assert result.gross_profit.pct == 0
        assert_waterfall_holds(result)

    def test_zero_base_price(self, resolver):
        free = Product(id="p-free", name="Free Test", base_price=0)
        result = resolver.resolve(free, "UY")

        assert result.sales_revenue.pct == 0
        assert result.line("product_cost").amount == 0
        assert_waterfall_holds(result)


# ---------------------------------------------------------------------------
# Edit protocol
# ---------------------------------------------------------------------------
class TestApplyEdit:
    """Edits store both sides against the base as it is at edit time."""

    def test_usd_edit_derives_pct(self, resolver, genomind):
        updated = resolver.apply_edit(genomind, "UY", None, "kit_cost", 190)

        assert updated.kit_cost_usd == 190
        assert updated.kit_cost_pct == pytest.approx(0.05)

    def test_pct_edit_derives_usd(self, resolver, genomind):
        updated = resolver.apply_edit(genomind, "UY", None, "product_cost", 0.1, side="pct")

        assert updated.product_cost_pct == 0.1
        assert updated.product_cost_usd == pytest.approx(380)

    def test_discount_edit_uses_gross_sales_base(self, resolver, genomind):
        updated = resolver.apply_edit(
            genomind, "UY", None, "commercialDiscount", 400
        )
        assert updated.commercial_discount_pct == pytest.approx(0.1)

    def test_round_trip(self, resolver, genomind):
        original = 237.5
        updated = resolver.apply_edit(genomind, "UY", None, "physicians_fees", original)
        result = resolver.resolve(genomind, "UY", updated)
        base = resolver.reference_base(result, get_concept("physicians_fees"))

        assert updated.physicians_fees_pct * base == pytest.approx(original)

    def test_edit_keeps_other_fields(self, resolver, genomind):
        current = OverrideFields(kit_cost_usd=80, reviewed=True)
        updated = resolver.apply_edit(genomind, "UY", current, "payment_fee", 50)

        assert updated.kit_cost_usd == 80
        assert updated.reviewed is True
        assert current.payment_fee_usd is None

    def test_gross_sales_edit(self, resolver, genomind):
        updated = resolver.apply_edit(genomind, "UY", None, "gross_sales", 5000)
        assert updated.gross_sales_usd == 5000

    def test_gross_sales_pct_edit_rejected(self, resolver, genomind):
        with pytest.raises(ValueError):
            resolver.apply_edit(genomind, "UY", None, "gross_sales", 0.5, side="pct")

    def test_non_numeric_edit_rejected(self, resolver, genomind):
        with pytest.raises(ValueError):
            resolver.apply_edit(genomind, "UY", None, "kit_cost", "lots")

    def test_bad_side_rejected(self, resolver, genomind):
        with pytest.raises(ValueError):
            resolver.apply_edit(genomind, "UY", None, "kit_cost", 10, side="eur")

    def test_unknown_concept(self, resolver, genomind):
        with pytest.raises(KeyError):
            resolver.apply_edit(genomind, "UY", None, "marketing", 10)


# ---------------------------------------------------------------------------
# Reset and price configuration
# ---------------------------------------------------------------------------
class TestResetAndConfigured:
    def test_reset_zeroes_costs(self, resolver, genomind):
        overrides = reset_overrides(genomind)
        result = resolver.resolve(genomind, "UY", overrides)

        assert overrides.gross_sales_usd == 4000
        assert overrides.kit_cost_pct == 0
        assert result.discount.amount == 0
        assert result.total_cost_of_sales.amount == 0
        assert result.gross_profit.amount == pytest.approx(4000)

    @pytest.mark.parametrize(
        "gross, configured",
        [(0.0, False), (10.0, False), (10.5, True), (4000.0, True)],
    )
    def test_is_price_configured(self, gross, configured):
        assert is_price_configured(gross) is configured

    def test_is_price_configured_from_result(self, resolver, products):
        seed = products[2]
        assert not is_price_configured(resolver.resolve(seed, "UY"))
