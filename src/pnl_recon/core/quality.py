"""
Data quality checks for the sales, budget and override sources.

Quality problems are reported, never raised: the engine still produces
(possibly partial) results from imperfect data.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import pandas as pd

from .budget import MONTH_KEYS
from .parsers import CountryCodeParser

logger = logging.getLogger(__name__)

Severity = str  # "critical", "warning", "info"


@dataclass
class DataQualityIssue:
    """A single data quality issue found in a source."""

    column: str
    issue_type: str  # e.g. "missing", "outlier", "duplicate", "unknown_country"
    severity: Severity
    count: int
    percentage: float
    sample_values: list[Any] = field(default_factory=list)
    description: str = ""


@dataclass
class DataQualityReport:
    """Summary of the issues found in one source."""

    source_name: str
    total_rows: int
    issues: list[DataQualityIssue] = field(default_factory=list)

    def with_severity(self, severity: Severity) -> list[DataQualityIssue]:
        return [issue for issue in self.issues if issue.severity == severity]

    @property
    def critical_issues(self) -> list[DataQualityIssue]:
        return self.with_severity("critical")

    @property
    def warning_issues(self) -> list[DataQualityIssue]:
        return self.with_severity("warning")

    @property
    def has_critical_issues(self) -> bool:
        return any(issue.severity == "critical" for issue in self.issues)

    def summary(self) -> dict:
        counts = {s: len(self.with_severity(s)) for s in ("critical", "warning", "info")}
        return {
            "source": self.source_name,
            "total_rows": self.total_rows,
            "critical": counts["critical"],
            "warnings": counts["warning"],
            "info": counts["info"],
        }


def _pct(count: int, total: int) -> float:
    return (count / total) * 100 if total else 0.0


class DataQualityChecker:
    """
    Runs a list of checks over a DataFrame.

    Missing values are always checked; everything else is opt-in:
        checker = DataQualityChecker("Sales")
        checker.check_outliers("cantidad_ventas", min_val=0)
        report = checker.run(df)
    """

    # Share of missing values (percent) above which a column is flagged
    MISSING_CRITICAL_PCT = 20
    MISSING_WARNING_PCT = 5

    def __init__(self, source_name: str, check_missing: bool = True):
        self.source_name = source_name
        self._checks: list[Callable[[pd.DataFrame], list[DataQualityIssue]]] = []
        if check_missing:
            self.add_check(self._check_missing_values)

    def add_check(
        self, check_fn: Callable[[pd.DataFrame], list[DataQualityIssue]]
    ) -> "DataQualityChecker":
        """Add a custom check function. Returns self for chaining."""
        self._checks.append(check_fn)
        return self

    def _missing_severity(self, pct: float) -> Severity:
        if pct > self.MISSING_CRITICAL_PCT:
            return "critical"
        if pct > self.MISSING_WARNING_PCT:
            return "warning"
        return "info"

    def _check_missing_values(self, df: pd.DataFrame) -> list[DataQualityIssue]:
        missing_counts = df.isna().sum()
        return [
            DataQualityIssue(
                column=col,
                issue_type="missing",
                severity=self._missing_severity(_pct(int(n), len(df))),
                count=int(n),
                percentage=_pct(int(n), len(df)),
                description=f"{int(n):,} empty cells in {col}",
            )
            for col, n in missing_counts.items()
            if n > 0
        ]

    def check_duplicates(
        self, key_columns: list[str], severity: Severity = "warning"
    ) -> "DataQualityChecker":
        """Flag rows sharing the same key columns."""

        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            if not set(key_columns) <= set(df.columns):
                return []
            dupes = int(df.duplicated(subset=key_columns, keep=False).sum())
            if dupes == 0:
                return []
            return [
                DataQualityIssue(
                    column=", ".join(key_columns),
                    issue_type="duplicate",
                    severity=severity,
                    count=dupes,
                    percentage=_pct(dupes, len(df)),
                    description=f"{dupes:,} rows share the same key",
                )
            ]

        return self.add_check(check)

    def check_outliers(
        self,
        column: str,
        min_val: float | None = None,
        max_val: float | None = None,
        severity: Severity = "warning",
    ) -> "DataQualityChecker":
        """Flag numeric values outside [min_val, max_val]."""

        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            if column not in df.columns:
                return []

            values = pd.to_numeric(df[column], errors="coerce")
            outlier_mask = pd.Series(False, index=df.index)
            if min_val is not None:
                outlier_mask |= values < min_val
            if max_val is not None:
                outlier_mask |= values > max_val

            outliers = int(outlier_mask.sum())
            if outliers == 0:
                return []
            return [
                DataQualityIssue(
                    column=column,
                    issue_type="outlier",
                    severity=severity,
                    count=outliers,
                    percentage=_pct(outliers, len(df)),
                    sample_values=df.loc[outlier_mask, column].head(5).tolist(),
                    description=f"{outliers:,} values outside expected range",
                )
            ]

        return self.add_check(check)

    def check_budget_totals(self, severity: Severity = "critical") -> "DataQualityChecker":
        """Flag budget rows whose total_units differs from the twelve months."""

        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            if "total_units" not in df.columns:
                return []
            months = [m for m in MONTH_KEYS if m in df.columns]
            month_sum = df[months].apply(pd.to_numeric, errors="coerce").fillna(0).sum(axis=1)
            totals = pd.to_numeric(df["total_units"], errors="coerce")
            bad = totals.notna() & (totals != month_sum)
            count = int(bad.sum())
            if count == 0:
                return []
            samples = df.loc[bad, "product_name"].head(5).tolist() if "product_name" in df.columns else []
            return [
                DataQualityIssue(
                    column="total_units",
                    issue_type="total_mismatch",
                    severity=severity,
                    count=count,
                    percentage=_pct(count, len(df)),
                    sample_values=samples,
                    description=f"{count:,} rows where total_units != sum of months",
                )
            ]

        return self.add_check(check)

    def check_unknown_countries(
        self,
        column: str,
        parser: CountryCodeParser,
        severity: Severity = "warning",
    ) -> "DataQualityChecker":
        """Flag company labels that resolve to no country."""

        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            if column not in df.columns:
                return []
            codes = parser.parse_series(df[column])
            unknown = codes == parser.unknown_code
            count = int(unknown.sum())
            if count == 0:
                return []
            return [
                DataQualityIssue(
                    column=column,
                    issue_type="unknown_country",
                    severity=severity,
                    count=count,
                    percentage=_pct(count, len(df)),
                    sample_values=sorted(df.loc[unknown, column].astype(str).unique())[:5],
                    description=f"{count:,} rows whose company maps to no country",
                )
            ]

        return self.add_check(check)

    def run(self, df: pd.DataFrame) -> DataQualityReport:
        """Run all checks and return a quality report."""
        report = DataQualityReport(self.source_name, total_rows=len(df))
        for check_fn in self._checks:
            report.issues.extend(check_fn(df))

        if report.issues:
            logger.info("Quality check %s", report.summary())
        return report
