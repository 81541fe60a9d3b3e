"""
Identity normalization for free-text sales labels.

Sales rows carry a free-text company label instead of a country, and product
names that drift between the budget sheet and the sales system:
- "SouthGenetics LLC Arge" and "SouthGenetics LLC Argentina" are both AR
- "[GX-01] Genomind Professional PGx" and "GENOMIND" are the same product

Every fuzzy threshold lives here so matching behaviour can be audited in one
place. Both matchers are substring heuristics, not exact token matches.
"""

import logging
import re

import pandas as pd

logger = logging.getLogger(__name__)


class CountryCodeParser:
    """
    Maps a free-text company label to a country code.

    Lookup order:
    1. First country-name alias contained in the label (case-insensitive)
    2. Legacy company label contained in the label
    3. The unknown-country sentinel

    Caveat: matching is by substring, so an alias inside an unrelated word
    still matches (e.g. "PERU" inside "PERUGIA").
    """

    # Ordered: earlier entries win
    DEFAULT_ALIASES: list[tuple[str, str]] = [
        ("CHILE", "CL"),
        ("URUGUAY", "UY"),
        ("ARGENTINA", "AR"),
        ("ARGE", "AR"),
        ("MÉXICO", "MX"),
        ("MEXICO", "MX"),
        ("COLOMBIA", "CO"),
        ("VENEZUELA", "VE"),
        ("DOMINICANA", "DO"),
        ("REPÚBLICA DOMINICANA", "DO"),
        ("ECUADOR", "EC"),
        ("PARAGUAY", "PY"),
        ("JAMAICA", "JM"),
        ("BOLIVIA", "BO"),
        ("TRINIDAD", "TT"),
        ("TOBAGO", "TT"),
        ("BAHAMAS", "BS"),
        ("BARBADOS", "BB"),
        ("BERMUDA", "BM"),
        ("CAYMAN", "KY"),
        ("PERÚ", "PE"),
        ("PERU", "PE"),
    ]

    # Company labels used before country names were added to every label
    LEGACY_COMPANIES: list[tuple[str, str]] = [
        ("SouthGenetics LLC", "UY"),
        ("SouthGenetics LLC Uruguay", "UY"),
        ("SouthGenetics LLC Argentina", "AR"),
        ("SouthGenetics LLC Arge", "AR"),
        ("SouthGenetics LLC Chile", "CL"),
        ("Southgenetics LLC Chile", "CL"),
        ("SouthGenetics LLC Colombia", "CO"),
        ("SouthGenetics LLC México", "MX"),
        ("SouthGenetics LLC Venezuela", "VE"),
    ]

    def __init__(
        self,
        aliases: list[tuple[str, str]] | None = None,
        legacy_companies: list[tuple[str, str]] | None = None,
        unknown_code: str = "XX",
    ):
        """
        Args:
            aliases: Ordered (name fragment, code) pairs (defaults to DEFAULT_ALIASES)
            legacy_companies: Ordered (company label, code) fallback pairs
            unknown_code: Sentinel returned when nothing matches
        """
        self.aliases = [
            (name.upper(), code) for name, code in (aliases or self.DEFAULT_ALIASES)
        ]
        self.legacy_companies = [
            (name.upper(), code)
            for name, code in (legacy_companies or self.LEGACY_COMPANIES)
        ]
        self.unknown_code = unknown_code
        self._cache: dict[str, str] = {}

    def parse(self, company: str | None) -> str:
        """Return the country code for a company label, or the sentinel."""
        if company is None or pd.isna(company) or not str(company).strip():
            return self.unknown_code

        label = str(company).strip()
        if label in self._cache:
            return self._cache[label]

        upper = label.upper()
        code = self.unknown_code

        for fragment, candidate in self.aliases:
            if fragment in upper:
                code = candidate
                break
        else:
            for fragment, candidate in self.legacy_companies:
                if fragment in upper:
                    code = candidate
                    break

        if code == self.unknown_code:
            logger.debug("No country found for company label %r", label)

        self._cache[label] = code
        return code

    def parse_series(self, series: pd.Series) -> pd.Series:
        """Parse an entire pandas Series of company labels."""
        return series.apply(self.parse)


class ProductKeyNormalizer:
    """
    Builds the canonical comparison key for a product name.

    "[GX-01] Genomind Professional PGx" -> "GENOMINDPROFESSIONALPGX"

    Steps: drop [bracketed] annotations, uppercase, drop everything that
    isn't A-Z or 0-9. Applying it twice gives the same key.
    """

    BRACKETS = re.compile(r"\[.*?\]")
    NON_ALNUM = re.compile(r"[^A-Z0-9]")

    def normalize(self, name: str | None) -> str:
        """Normalize a single product name. Missing names give ''."""
        if name is None or pd.isna(name):
            return ""

        result = str(name).strip().upper()
        result = self.BRACKETS.sub("", result)
        return self.NON_ALNUM.sub("", result)

    def normalize_series(self, series: pd.Series) -> pd.Series:
        """Normalize an entire pandas Series of product names."""
        return series.apply(self.normalize)


class ProductMatcher:
    """
    Decides whether two product labels name the same product.

    Match if the normalized keys are equal, or if the shorter key is at
    least ``min_partial_length`` characters and appears inside the longer
    one. Short overlapping names can produce false positives; the threshold
    of 5 is the behaviour the dashboard has always had, not a tuned value.
    """

    DEFAULT_MIN_PARTIAL_LENGTH = 5

    def __init__(
        self,
        min_partial_length: int = DEFAULT_MIN_PARTIAL_LENGTH,
        normalizer: ProductKeyNormalizer | None = None,
    ):
        self.min_partial_length = min_partial_length
        self.normalizer = normalizer or ProductKeyNormalizer()

    def keys_match(self, key_a: str, key_b: str) -> bool:
        """Compare two already-normalized keys."""
        if key_a == key_b:
            return True
        if not key_a or not key_b:
            return False

        shorter, longer = sorted((key_a, key_b), key=len)
        return len(shorter) >= self.min_partial_length and shorter in longer

    def exact(self, key_a: str, key_b: str) -> bool:
        return key_a == key_b

    def matches(self, name_a: str | None, name_b: str | None) -> bool:
        """Compare two raw product labels."""
        return self.keys_match(
            self.normalizer.normalize(name_a), self.normalizer.normalize(name_b)
        )
