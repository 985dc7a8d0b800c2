"""
Regex funding parser.

Fallback used when the LLM extractor is disabled, its circuit is open, or it
rejects an article. Handles the French and English headline shapes the
funding-news sources publish ("X lève 5 M€", "X raises $10M Series A led by Y").
"""

import logging
import re
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from ..common.normalization import normalize_stage
from .schemas import RawFundingRecord

logger = logging.getLogger(__name__)

FUNDING_KEYWORDS = (
    # French
    "lève", "levée", "levée de fonds", "tour de table", "financement",
    "série a", "série b", "série c", "amorçage",
    "million", "millions",
    # English
    "raises", "raised", "funding", "funding round",
    "series a", "series b", "series c", "seed",
    "investment", "venture", "secures", "closes",
)

NAME = r"[A-Z][A-Za-zÀ-ÿ0-9\s\-&.]+?"

COMPANY_NAME_PATTERNS = [
    # "Company lève X M€"
    re.compile(rf"^({NAME})\s+(?:lève|annonce|boucle)", re.IGNORECASE),
    # "Company raises $X million"
    re.compile(rf"^({NAME})\s+(?:raises|secures|closes|announces)", re.IGNORECASE),
]

STARTUP_PREFIX_PATTERN = re.compile(
    rf"(?:la startup|la fintech|la healthtech|la proptech|la société)\s+({NAME})(?:\s+lève|\s+annonce|,)",
    re.IGNORECASE,
)

CAPITALIZED_PREFIX_PATTERN = re.compile(r"^([A-Z][A-Za-zÀ-ÿ]+(?:\s+[A-Z][A-Za-zÀ-ÿ]+)?)")

MULTIPLIERS = {
    "k": Decimal("1e3"),
    "m": Decimal("1e6"),
    "mn": Decimal("1e6"),
    "million": Decimal("1e6"),
    "millions": Decimal("1e6"),
    "b": Decimal("1e9"),
    "bn": Decimal("1e9"),
    "billion": Decimal("1e9"),
    "milliard": Decimal("1e9"),
    "milliards": Decimal("1e9"),
}

# (pattern, currency); group 1 is the number, group 2 the multiplier word
AMOUNT_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"(\d+(?:[.,]\d+)?)\s*(millions?|milliards?)\s*(?:d'euros?|d’euros?|€|eur)", re.IGNORECASE), "EUR"),
    (re.compile(r"(\d+(?:[.,]\d+)?)\s*(m|md)€", re.IGNORECASE), "EUR"),
    (re.compile(r"€\s*(\d+(?:[.,]\d+)?)\s*(million|billion|bn|mn|m|b)\b", re.IGNORECASE), "EUR"),
    (re.compile(r"£\s*(\d+(?:[.,]\d+)?)\s*(million|billion|bn|mn|m|b)\b", re.IGNORECASE), "GBP"),
    (re.compile(r"\$\s*(\d+(?:[.,]\d+)?)\s*(million|billion|bn|mn|m|b|k)\b", re.IGNORECASE), "USD"),
    (re.compile(r"(\d+(?:[.,]\d+)?)\s*(millions?|billion)\s*(?:dollars?|usd)", re.IGNORECASE), "USD"),
]

STAGE_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"(?:série|serie|series)\s*a\b", re.IGNORECASE), "series a"),
    (re.compile(r"(?:série|serie|series)\s*b\b", re.IGNORECASE), "series b"),
    (re.compile(r"(?:série|serie|series)\s*c\b", re.IGNORECASE), "series c"),
    (re.compile(r"(?:série|serie|series)\s*d\b", re.IGNORECASE), "series d"),
    (re.compile(r"pre[- ]?seed", re.IGNORECASE), "pre-seed"),
    (re.compile(r"\bseed\b", re.IGNORECASE), "seed"),
    (re.compile(r"amorçage", re.IGNORECASE), "amorçage"),
    (re.compile(r"\bbridge\b", re.IGNORECASE), "bridge"),
    (re.compile(r"\bgrowth\b", re.IGNORECASE), "growth"),
    (re.compile(r"late[- ]?stage", re.IGNORECASE), "late stage"),
]

INVESTOR_NAME = r"[A-Z][A-Za-zÀ-ÿ0-9\s\-&.,]+?"

LEAD_PATTERNS = [
    re.compile(rf"(?:[Mm]ené|[Mm]enée|[Ll]ead|[Ll]ed)\s+(?:par|by)\s+({INVESTOR_NAME})(?:\.|,|\savec\s|\swith\s|\salongside\s|\set\s|\sand\s|$)"),
    re.compile(rf"(?:avec|with)\s+({INVESTOR_NAME})(?:\s+en\s+lead|\s+comme\s+lead)"),
]

INVESTOR_LIST_PATTERNS = [
    re.compile(rf"[Ii]nvestisseurs?\s*:?\s*({INVESTOR_NAME})(?:\.|$)"),
    re.compile(rf"[Ii]nvestors?\s*(?:include|:)?\s*({INVESTOR_NAME})(?:\.|$)"),
]

INVESTOR_SPLIT = re.compile(r",|\bet\b|\band\b")

MAX_INVESTORS = 10


def strip_html(text: str) -> str:
    """Extract plain text from an HTML fragment."""
    if not text:
        return ""
    if "<" not in text:
        return re.sub(r"\s+", " ", text).strip()
    soup = BeautifulSoup(text, "lxml")
    return re.sub(r"\s+", " ", soup.get_text(separator=" ", strip=True)).strip()


def is_funding_article(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in FUNDING_KEYWORDS)


def _clean_company_name(name: str) -> str:
    name = re.sub(r"\s+", " ", name.strip())
    return re.sub(r"[,.:;!?]$", "", name).strip()


def extract_company_name(title: str, content: str) -> Optional[str]:
    """Find the company name in a headline, falling back to the body text."""
    for pattern in COMPANY_NAME_PATTERNS:
        match = pattern.search(title)
        if match:
            return _clean_company_name(match.group(1))

    match = STARTUP_PREFIX_PATTERN.search(f"{title} {content}")
    if match:
        return _clean_company_name(match.group(1))

    match = CAPITALIZED_PREFIX_PATTERN.search(title)
    if match:
        return _clean_company_name(match.group(1))

    return None


def extract_amount(text: str) -> Optional[Tuple[Decimal, str]]:
    """Return (amount, currency) for the first amount mentioned, if any."""
    for pattern, currency in AMOUNT_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        value = Decimal(match.group(1).replace(",", "."))
        unit = match.group(2).lower()
        if unit == "md":
            multiplier = Decimal("1e9")
        else:
            multiplier = MULTIPLIERS.get(unit, Decimal("1e6"))
        return value * multiplier, currency
    return None


def extract_stage(text: str) -> Optional[str]:
    for pattern, stage in STAGE_PATTERNS:
        if pattern.search(text):
            return normalize_stage(stage)
    return None


def extract_investors(text: str) -> List[str]:
    """Investors in mention order, lead first when "led by" is present."""
    investors: List[str] = []

    for pattern in LEAD_PATTERNS + INVESTOR_LIST_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        for candidate in INVESTOR_SPLIT.split(match.group(1)):
            candidate = re.sub(r"\s+", " ", candidate).strip().rstrip(".,;:").strip()
            if 2 < len(candidate) < 100 and candidate not in investors:
                investors.append(candidate)

    return investors[:MAX_INVESTORS]


def extract_description(content: str, company_name: str) -> Optional[str]:
    escaped = re.escape(company_name)
    specialized = re.search(
        rf"{escaped}[,\s]+(?:spécialisée?|specialized|qui propose|which offers|leader)\s+(?:dans|in)?\s*([^.]+)",
        content,
        re.IGNORECASE,
    )
    if specialized:
        return specialized.group(1).strip()[:200]

    is_a = re.search(rf"{escaped}\s+(?:est une?|is an?)\s+([^.]+?)(?:\.|,|\squi\s|\sthat\s)", content, re.IGNORECASE)
    if is_a:
        return is_a.group(1).strip()[:200]

    for sentence in re.split(r"(?<=[.!?])\s+", content)[:3]:
        if company_name.lower() in sentence.lower() and len(sentence) < 300:
            return sentence.strip()[:200]

    return None


def parse_article(
    title: str,
    content: str,
    source_url: Optional[str],
    source_name: str,
    publish_date: Optional[date] = None,
) -> Optional[RawFundingRecord]:
    """
    Parse a funding article with regexes.

    Returns None when the text is not about a funding event or no company
    name can be found.
    """
    clean_title = strip_html(title)
    clean_content = strip_html(content)
    full_text = f"{clean_title} {clean_content}"

    if not is_funding_article(full_text):
        return None

    company_name = extract_company_name(clean_title, clean_content)
    if not company_name:
        logger.debug(f"Regex parser found no company name: {clean_title[:100]}")
        return None

    amount_result = extract_amount(full_text)
    investors = extract_investors(full_text)

    return RawFundingRecord(
        company_name=company_name,
        amount=amount_result[0] if amount_result else None,
        currency=amount_result[1] if amount_result else "EUR",
        stage=extract_stage(full_text),
        investors=tuple(investors),
        lead_investor=investors[0] if investors else None,
        date=publish_date or date.today(),
        source_url=source_url,
        source_name=source_name,
        description=extract_description(clean_content, company_name),
    )
