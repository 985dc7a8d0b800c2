"""
Name, stage and currency normalization shared by dedup and connectors.
"""

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

# Legal-entity suffixes stripped when building a company slug
LEGAL_SUFFIX_PATTERN = re.compile(
    r"\b(sas|sarl|sa|sasu|eurl|inc|incorporated|ltd|limited|llc|gmbh|ag|bv|nv|plc"
    r"|corp|corporation|co|company)\b\.?",
    re.IGNORECASE,
)

# Extended list for similarity comparison: legal suffixes plus generic
# business words that rarely distinguish two companies
AGGRESSIVE_SUFFIX_PATTERN = re.compile(
    r"\b(sas|sarl|sa|sasu|eurl|inc|incorporated|ltd|limited|llc|llp|lp|gmbh|ag|bv|nv|plc"
    r"|corp|corporation|co|company|group|groupe|holding|holdings|technologies|technology"
    r"|tech|software|solutions|services|consulting|labs|lab|studio|studios|io|ai|app|apps"
    r"|platform|systems|system|digital|ventures|venture|capital|partners|partner)\b\.?",
    re.IGNORECASE,
)

LEADING_ARTICLE_PATTERN = re.compile(r"^(the|la|le|les|l'|el|los|las)\s+", re.IGNORECASE)

STAGE_NORMALIZATION: dict[str, str] = {
    "pre-seed": "PRE_SEED",
    "preseed": "PRE_SEED",
    "pre seed": "PRE_SEED",
    "pre_seed": "PRE_SEED",
    "angel": "PRE_SEED",
    "seed": "SEED",
    "amorçage": "SEED",
    "amorcage": "SEED",
    "series a": "SERIES_A",
    "série a": "SERIES_A",
    "serie a": "SERIES_A",
    "series_a": "SERIES_A",
    "a": "SERIES_A",
    "series b": "SERIES_B",
    "série b": "SERIES_B",
    "serie b": "SERIES_B",
    "series_b": "SERIES_B",
    "b": "SERIES_B",
    "series c": "SERIES_C",
    "série c": "SERIES_C",
    "serie c": "SERIES_C",
    "series_c": "SERIES_C",
    "c": "SERIES_C",
    "series d": "SERIES_D",
    "série d": "SERIES_D",
    "serie d": "SERIES_D",
    "series_d": "SERIES_D",
    "d": "SERIES_D",
    "series e": "SERIES_E",
    "series f": "SERIES_F",
    "late stage": "LATE_STAGE",
    "late-stage": "LATE_STAGE",
    "late_stage": "LATE_STAGE",
    "growth": "GROWTH",
    "ipo": "IPO",
    "pre-ipo": "PRE_IPO",
    "bridge": "BRIDGE",
    "convertible": "CONVERTIBLE",
    "debt": "DEBT",
}

# Approximate rates to USD. Unknown currencies convert at 1.
FX_RATES_TO_USD: dict[str, Decimal] = {
    "USD": Decimal("1"),
    "EUR": Decimal("1.08"),
    "GBP": Decimal("1.27"),
    "CHF": Decimal("1.12"),
    "CAD": Decimal("0.74"),
    "AUD": Decimal("0.65"),
    "JPY": Decimal("0.0067"),
    "CNY": Decimal("0.14"),
    "INR": Decimal("0.012"),
    "BRL": Decimal("0.2"),
}


def strip_diacritics(text: str) -> str:
    """Remove accents: 'Amorçage' -> 'Amorcage'."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_company_name(name: str) -> str:
    """
    Build the company slug used as identity key.

    Lowercase, strip accents and legal suffixes, drop punctuation, hyphenate
    whitespace, collapse and trim hyphens.

    Examples:
        "Acme SAS" -> "acme"
        "Société Générale Inc." -> "societe-generale"
    """
    if not name:
        return ""
    result = strip_diacritics(name.lower())
    result = LEGAL_SUFFIX_PATTERN.sub("", result)
    result = re.sub(r"[^\w\s-]", "", result)
    result = re.sub(r"\s+", "-", result.strip())
    result = re.sub(r"-+", "-", result)
    return result.strip("-")


def aggressive_normalize(name: str) -> str:
    """Normalize a company name for similarity comparison.

    Strips the extended suffix list, leading articles and all punctuation.
    """
    if not name:
        return ""
    result = strip_diacritics(name.lower())
    result = AGGRESSIVE_SUFFIX_PATTERN.sub("", result)
    result = LEADING_ARTICLE_PATTERN.sub("", result.strip())
    result = re.sub(r"[^\w\s]", "", result)
    return re.sub(r"\s+", " ", result).strip()


def normalize_stage(stage: Optional[str]) -> Optional[str]:
    """Map a free-form stage label to a canonical code.

    Unknown labels are upper-cased with whitespace replaced by underscores.
    """
    if not stage or not stage.strip():
        return None
    key = stage.lower().strip()
    if key in STAGE_NORMALIZATION:
        return STAGE_NORMALIZATION[key]
    return re.sub(r"\s+", "_", stage.strip().upper())


def to_decimal(value: Union[Decimal, int, float, str, None]) -> Optional[Decimal]:
    """Coerce a numeric value to Decimal. Floats go through str() to avoid binary noise."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def convert_to_usd(amount: Union[Decimal, int, float], currency: Optional[str]) -> Decimal:
    """Convert an amount to USD using the fixed FX table."""
    rate = FX_RATES_TO_USD.get((currency or "USD").upper(), Decimal("1"))
    return to_decimal(amount) * rate
