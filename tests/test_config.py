"""
Tests for settings, errors and the rate table.
"""

import json
from pathlib import Path

import numpy as np
import pytest

from pnl_recon.core import (
    EngineError,
    EngineSettings,
    InvalidFilterError,
    RateTable,
    StorageUnavailable,
    UnknownCountryError,
    load_rate_table,
    load_settings,
)
from pnl_recon.core.errors import validate_month
from pnl_recon.core.rates import COST_LINES, GROSS_SALES, get_concept

PNL_VARS = (
    "PNL_BUDGET_YEAR",
    "PNL_ACTUAL_YEAR_A",
    "PNL_ACTUAL_YEAR_B",
    "PNL_UNKNOWN_COUNTRY",
    "PNL_DEFAULT_COUNTRY",
    "PNL_MIN_PARTIAL_MATCH",
    "PNL_UNPRICED_GROSS_SALES",
    "PNL_RATE_TABLE_PATH",
)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in PNL_VARS:
            monkeypatch.delenv(name, raising=False)

        settings = load_settings(dotenv=False)
        assert settings == EngineSettings()
        assert settings.unpriced_gross_sales == (0.0, 10.0)

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PNL_BUDGET_YEAR", "2027")
        monkeypatch.setenv("PNL_ACTUAL_YEAR_A", "2026")
        monkeypatch.setenv("PNL_ACTUAL_YEAR_B", "2027")
        monkeypatch.setenv("PNL_DEFAULT_COUNTRY", "AR")
        monkeypatch.setenv("PNL_MIN_PARTIAL_MATCH", "4")
        monkeypatch.setenv("PNL_UNPRICED_GROSS_SALES", "0, 1")
        monkeypatch.setenv("PNL_RATE_TABLE_PATH", str(tmp_path / "rates.json"))

        settings = load_settings(dotenv=False)
        assert settings.budget_year == 2027
        assert settings.actual_year_b == 2027
        assert settings.default_country_code == "AR"
        assert settings.min_partial_match_length == 4
        assert settings.unpriced_gross_sales == (0.0, 1.0)
        assert settings.rate_table_path == tmp_path / "rates.json"

    def test_dotenv_file(self, monkeypatch, tmp_path):
        # Register the variable so teardown removes the value the file sets
        monkeypatch.setenv("PNL_UNKNOWN_COUNTRY", "unused")
        monkeypatch.delenv("PNL_UNKNOWN_COUNTRY")
        env_file = tmp_path / ".env"
        env_file.write_text("PNL_UNKNOWN_COUNTRY=ZZ\n")

        assert load_settings(env_file).unknown_country_code == "ZZ"

    def test_environment_beats_dotenv_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PNL_DEFAULT_COUNTRY", "CL")
        env_file = tmp_path / ".env"
        env_file.write_text("PNL_DEFAULT_COUNTRY=MX\n")

        assert load_settings(env_file).default_country_code == "CL"

    def test_settings_are_frozen(self):
        with pytest.raises(AttributeError):
            EngineSettings().budget_year = 2030


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class TestErrors:
    def test_hierarchy(self):
        assert issubclass(InvalidFilterError, ValueError)
        assert issubclass(UnknownCountryError, KeyError)
        assert issubclass(StorageUnavailable, EngineError)

    def test_messages(self):
        assert "XX" in str(UnknownCountryError("XX"))
        err = StorageUnavailable("budget.csv", "timeout")
        assert str(err) == "Storage unavailable for budget.csv: timeout"
        assert err.source == "budget.csv"

    @pytest.mark.parametrize("month", [None, 1, 12, np.int64(3), np.int32(12)])
    def test_valid_months(self, month):
        assert validate_month(month) == month

    def test_numpy_month_becomes_int(self):
        assert type(validate_month(np.int64(3))) is int

    @pytest.mark.parametrize("month", [np.int64(13), np.float64(3.0), np.bool_(True), True])
    def test_invalid_months(self, month):
        with pytest.raises(InvalidFilterError):
            validate_month(month)


# ---------------------------------------------------------------------------
# Rate table
# ---------------------------------------------------------------------------
class TestRateTable:
    def test_builtin_countries(self, rate_table):
        assert sorted(rate_table.codes()) == ["AR", "CL", "CO", "MX", "UY", "VE"]
        assert "uy" in rate_table
        assert "PE" not in rate_table
        assert 42 not in rate_table
        assert rate_table.country_name("mx") == "México"
        assert rate_table.country_name("PE") == "PE"

    def test_pct_rule_wins_over_usd(self):
        table = RateTable.from_mapping(
            {"UY": {"rules": {"kitCostPct": 0.1, "kitCostUSD": 150}, "name": "Uruguay"}}
        )
        default = table.get("UY").default_for(get_concept("kit_cost"))
        assert (default.kind, default.value) == ("pct", 0.1)
        assert table.country_name("UY") == "Uruguay"

    def test_default_accounts_filled(self):
        table = RateTable.from_mapping({"UY": {"rules": {}}})
        assert table.get("UY").account_for(GROSS_SALES) == "4.1.1.6"

    def test_unknown_country(self, rate_table):
        with pytest.raises(UnknownCountryError):
            rate_table.get("XX")

    def test_concept_lookup(self):
        assert get_concept("kitCost") is get_concept("kit_cost")
        assert len(COST_LINES) == 9
        with pytest.raises(KeyError):
            get_concept("marketing")

    def test_load_rate_table(self, tmp_path):
        path = tmp_path / "rates.json"
        path.write_text(json.dumps({"PE": {"currency": "PEN", "rules": {"kitCostUSD": 99}}}))

        table = load_rate_table(path)
        assert table.codes() == ["PE"]
        assert table.get("pe").currency == "PEN"

    def test_load_builtin(self):
        assert len(load_rate_table(None)) == len(RateTable.default())

    def test_missing_file(self):
        with pytest.raises(OSError):
            load_rate_table(Path("/nonexistent/rates.json"))
