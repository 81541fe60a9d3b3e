# Core engine components
# Pricing resolution, identity normalization, aggregation and reconciliation

from .config import EngineSettings, load_settings
from .errors import (
    EngineError,
    InvalidFilterError,
    StorageUnavailable,
    UnknownCountryError,
)
from .rates import CountryRates, RateTable, load_rate_table
from .overrides import CountryOverride, OverrideFields, OverrideStore
from .models import Product, SalesRecord, sales_frame
from .pricing import (
    LineItem,
    PricingResolver,
    PricingResult,
    is_price_configured,
    reset_overrides,
)
from .parsers import CountryCodeParser, ProductKeyNormalizer, ProductMatcher
from .budget import BudgetEntry, link_product_ids
from .aggregation import CompanyContribution, ProductSalesAggregate, SalesAggregator
from .reconciliation import (
    ComparisonRow,
    ComparisonSummary,
    MatchType,
    ReconciliationEngine,
    ReconciliationResult,
)
from .analysis import (
    ConsolidatedPnL,
    bottom_margin,
    compute_key_metrics,
    consolidate_pnl,
    monthly_evolution,
    most_expensive,
    top_margin,
    top_selling,
)
from .quality import DataQualityChecker, DataQualityReport

__all__ = [
    "EngineSettings",
    "load_settings",
    "EngineError",
    "InvalidFilterError",
    "StorageUnavailable",
    "UnknownCountryError",
    "CountryRates",
    "RateTable",
    "load_rate_table",
    "CountryOverride",
    "OverrideFields",
    "OverrideStore",
    "Product",
    "SalesRecord",
    "sales_frame",
    "LineItem",
    "PricingResolver",
    "PricingResult",
    "is_price_configured",
    "reset_overrides",
    "CountryCodeParser",
    "ProductKeyNormalizer",
    "ProductMatcher",
    "BudgetEntry",
    "link_product_ids",
    "CompanyContribution",
    "ProductSalesAggregate",
    "SalesAggregator",
    "ComparisonRow",
    "ComparisonSummary",
    "MatchType",
    "ReconciliationEngine",
    "ReconciliationResult",
    "ConsolidatedPnL",
    "bottom_margin",
    "compute_key_metrics",
    "consolidate_pnl",
    "monthly_evolution",
    "most_expensive",
    "top_margin",
    "top_selling",
    "DataQualityChecker",
    "DataQualityReport",
]
