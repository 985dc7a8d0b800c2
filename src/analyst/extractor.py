"""
Funding Extractor - turns article text into a RawFundingRecord.

Uses Instructor + Claude for structured extraction, guarded by the
"sourcer-llm" circuit breaker and a timeout/retry budget. Falls back to the
regex parser when the LLM is disabled or unavailable.

Records with confidence below settings.extraction_confidence_threshold or
without a company name are rejected.
"""

import logging
from datetime import date
from typing import Optional

import httpx
import instructor
from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APIError,
    APITimeoutError,
    InternalServerError,
    RateLimitError,
)
from instructor.core import InstructorRetryException

from ..common.circuit_breaker import CircuitBreakerConfig
from ..common.errors import CircuitOpenError, PermanentParseError, TransientSourceError
from ..common.normalization import normalize_stage, to_decimal
from ..common.resilience import TierConfig, call_with_tier
from ..config.settings import settings
from .parser import is_funding_article, parse_article, strip_html
from .schemas import ParsedFields, RawFundingRecord

logger = logging.getLogger(__name__)

LLM_CIRCUIT_NAME = "sourcer-llm"
LLM_CIRCUIT_CONFIG = CircuitBreakerConfig(
    failure_threshold=5,
    cooldown_seconds=300.0,
    success_threshold=2,
)

LLM_TIER = TierConfig(
    timeout=float(settings.llm_timeout),
    max_retries=settings.llm_max_retries,
    base_delay=1.0,
)

SYSTEM_PROMPT = """You are a funding news extraction expert. Extract structured funding information from French and English startup news articles.

CRITICAL RULES:
1. Extract ONLY information explicitly stated in the text
2. Do NOT guess or infer amounts, investors, or dates not mentioned
3. If information is missing, set the field to null
4. Convert all amounts to raw numbers (e.g., "5 millions d'euros" -> 5000000)
5. Currency must be EUR, USD, or GBP only
6. Date must be in ISO format (YYYY-MM-DD) if extractable
7. Stage must be one of: pre_seed, seed, series_a, series_b, series_c, series_d, growth, bridge, late_stage
8. confidence_score is 0-100: below 50 means this is not a real, new funding announcement"""

_client: Optional[instructor.AsyncInstructor] = None


def get_llm_client() -> instructor.AsyncInstructor:
    """Build the Instructor client once, on first use."""
    global _client
    if _client is None:
        anthropic_client = AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=httpx.Timeout(settings.llm_timeout, connect=10.0),
            max_retries=0,  # retries are handled by call_with_tier
        )
        _client = instructor.from_anthropic(anthropic_client)
    return _client


def is_llm_available() -> bool:
    return settings.llm_enabled and bool(settings.anthropic_api_key)


def build_extraction_prompt(title: str, content: str) -> str:
    article_text = f"Title: {title}\n\nContent: {content}"[: settings.llm_max_content_chars]
    return f"Extract funding information from this article:\n\n{article_text}"


async def _call_llm(prompt: str) -> ParsedFields:
    """Single Claude call. Transient API failures become TransientSourceError."""
    client = get_llm_client()
    try:
        response, completion = await client.messages.create_with_completion(
            model=settings.llm_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
            response_model=ParsedFields,
            max_retries=0,
        )
    except (APITimeoutError, APIConnectionError, RateLimitError, InternalServerError) as e:
        raise TransientSourceError(f"Claude API {type(e).__name__}: {e}", LLM_CIRCUIT_NAME) from e

    if completion is not None and hasattr(completion, "usage"):
        usage = completion.usage
        logger.debug(f"Claude call tokens: in={usage.input_tokens}, out={usage.output_tokens}")
    return response


def convert_to_record(
    fields: ParsedFields,
    source_url: Optional[str],
    source_name: str,
    publish_date: Optional[date] = None,
) -> RawFundingRecord:
    """Validate extracted fields and build the record.

    Raises:
        PermanentParseError: missing company name or confidence below threshold
    """
    if not fields.company_name:
        raise PermanentParseError("Extraction has no company name")
    if fields.confidence_score < settings.extraction_confidence_threshold:
        raise PermanentParseError(
            f"Low confidence ({fields.confidence_score}) for {fields.company_name}"
        )

    investors = tuple(i.strip() for i in fields.investors if i and i.strip())
    return RawFundingRecord(
        company_name=fields.company_name.strip(),
        amount=to_decimal(fields.amount),
        currency=fields.currency or "EUR",
        stage=normalize_stage(fields.stage),
        investors=investors,
        lead_investor=fields.lead_investor,
        date=fields.date or publish_date or date.today(),
        source_url=source_url,
        source_name=source_name,
        description=fields.description,
    )


async def extract_with_llm(
    title: str,
    content: str,
    source_url: Optional[str],
    source_name: str,
    publish_date: Optional[date] = None,
) -> Optional[RawFundingRecord]:
    """LLM extraction.

    Returns None when the LLM is unavailable or failed, so callers can fall
    back. Raises PermanentParseError when Claude read the article and
    rejected it.
    """
    if not is_llm_available():
        return None

    prompt = build_extraction_prompt(title, content)
    try:
        fields = await call_with_tier(
            LLM_CIRCUIT_NAME,
            lambda: _call_llm(prompt),
            LLM_TIER,
            breaker_config=LLM_CIRCUIT_CONFIG,
        )
    except CircuitOpenError:
        logger.warning("Circuit breaker open for LLM extractor, using regex parser")
        return None
    except InstructorRetryException as e:
        logger.error(f"Instructor validation failed for {source_url}: {e}")
        return None
    except (TransientSourceError, APIError) as e:
        logger.error(f"LLM extraction failed for {source_url}: {type(e).__name__}: {e}")
        return None

    return convert_to_record(fields, source_url, source_name, publish_date)


async def extract(
    title: str,
    content: str,
    source_url: Optional[str],
    source_name: str,
    publish_date: Optional[date] = None,
) -> Optional[RawFundingRecord]:
    """
    Hybrid extraction: Claude first, regex parser on fallback.

    Returns None when the article is not about a funding event.

    Raises:
        PermanentParseError: Claude rejected the article (low confidence or
            no company), or the regex parser found no company in a funding
            article
    """
    record = await extract_with_llm(title, content, source_url, source_name, publish_date)
    if record is not None:
        return record

    logger.debug(f"Falling back to regex parser for {source_url}")
    clean_content = strip_html(content)
    record = parse_article(title, clean_content, source_url, source_name, publish_date)
    if record is not None:
        return record

    if is_funding_article(f"{strip_html(title)} {clean_content}"):
        raise PermanentParseError(f"No company name found in '{title[:80]}'")
    return None
