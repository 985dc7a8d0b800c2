"""
Tests for the hybrid extractor (Claude via Instructor, regex fallback).

The Claude call itself (_call_llm) is mocked; no network access.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError

from src.analyst.extractor import (
    LLM_CIRCUIT_NAME,
    build_extraction_prompt,
    convert_to_record,
    extract,
    extract_with_llm,
)
from src.analyst.schemas import ParsedFields
from src.common.circuit_breaker import CircuitStatus, circuit_breakers
from src.common.errors import PermanentParseError, TransientSourceError
from src.config.settings import settings


@pytest.fixture
def llm_enabled(monkeypatch):
    monkeypatch.setattr(settings, "llm_enabled", True)
    monkeypatch.setattr(settings, "anthropic_api_key", "test-key")


def good_fields(**overrides) -> ParsedFields:
    data = dict(
        company_name="Acme Robotics",
        amount=5_000_000,
        currency="EUR",
        stage="series_a",
        investors=["Partech", " Eurazeo "],
        lead_investor="Partech",
        description="Warehouse robots",
        confidence_score=90,
    )
    data.update(overrides)
    return ParsedFields(**data)


class TestParsedFields:
    def test_blank_name_is_none(self):
        assert ParsedFields(company_name="   ").company_name is None

    def test_non_positive_amount_is_unknown(self):
        assert ParsedFields(amount=0).amount is None

    def test_long_description_truncated(self):
        fields = ParsedFields(description="x" * 500)
        assert len(fields.description) <= 200
        assert fields.description.endswith("...")

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            ParsedFields(confidence_score=150)

    def test_currency_restricted(self):
        with pytest.raises(ValidationError):
            ParsedFields(currency="JPY")


class TestConvertToRecord:
    def test_builds_record(self):
        record = convert_to_record(good_fields(), "https://example.com/a", "frenchweb", date(2024, 3, 1))

        assert record.company_name == "Acme Robotics"
        assert record.amount == Decimal("5000000")
        assert record.stage == "SERIES_A"
        assert record.investors == ("Partech", "Eurazeo")
        assert record.date == date(2024, 3, 1)
        assert record.source_name == "frenchweb"

    def test_article_date_wins_over_publish_date(self):
        record = convert_to_record(good_fields(date=date(2024, 2, 27)), None, "frenchweb", date(2024, 3, 1))
        assert record.date == date(2024, 2, 27)

    def test_low_confidence_rejected(self):
        with pytest.raises(PermanentParseError, match="Low confidence"):
            convert_to_record(good_fields(confidence_score=30), None, "frenchweb")

    def test_missing_company_rejected(self):
        with pytest.raises(PermanentParseError):
            convert_to_record(good_fields(company_name=None), None, "frenchweb")


class TestExtract:
    @pytest.mark.asyncio
    async def test_regex_fallback_when_llm_disabled(self, sample_article_text):
        with patch("src.analyst.extractor._call_llm", new_callable=AsyncMock) as llm:
            record = await extract(
                "Acme lève 5 millions d'euros en série A",
                sample_article_text,
                "https://www.frenchweb.fr/acme",
                "frenchweb",
                date(2024, 3, 1),
            )

        llm.assert_not_awaited()
        assert record.company_name == "Acme"
        assert record.stage == "SERIES_A"

    @pytest.mark.asyncio
    async def test_llm_result_used(self, llm_enabled, sample_article_text):
        with patch("src.analyst.extractor._call_llm", new=AsyncMock(return_value=good_fields())):
            record = await extract(
                "Acme lève 5 millions d'euros",
                sample_article_text,
                "https://www.frenchweb.fr/acme",
                "frenchweb",
                date(2024, 3, 1),
            )

        assert record.company_name == "Acme Robotics"
        assert record.lead_investor == "Partech"

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_regex(self, llm_enabled, sample_article_text):
        failing = AsyncMock(side_effect=TransientSourceError("overloaded"))
        with patch("src.analyst.extractor._call_llm", new=failing), \
                patch("src.common.resilience.asyncio.sleep", new_callable=AsyncMock):
            record = await extract(
                "Acme lève 5 millions d'euros",
                sample_article_text,
                "https://www.frenchweb.fr/acme",
                "frenchweb",
                date(2024, 3, 1),
            )

        assert failing.await_count == settings.llm_max_retries + 1
        assert record.company_name == "Acme"

    @pytest.mark.asyncio
    async def test_low_confidence_is_rejected(self, llm_enabled, sample_article_text):
        low = AsyncMock(return_value=good_fields(confidence_score=10))
        with patch("src.analyst.extractor._call_llm", new=low):
            with pytest.raises(PermanentParseError, match="Low confidence"):
                await extract_with_llm("t", sample_article_text, None, "frenchweb")
            with pytest.raises(PermanentParseError, match="Low confidence"):
                await extract("Acme lève 5 millions d'euros", sample_article_text, None, "frenchweb")

    @pytest.mark.asyncio
    async def test_funding_article_without_company_is_rejected(self):
        with pytest.raises(PermanentParseError, match="No company name"):
            await extract("3 startups lèvent 10 millions d'euros", "", None, "frenchweb")

    @pytest.mark.asyncio
    async def test_non_funding_article_is_none(self):
        assert await extract("Météo du jour", "Il fait beau sur Paris", None, "frenchweb") is None

    @pytest.mark.asyncio
    async def test_open_llm_circuit_skips_call(self, llm_enabled):
        for _ in range(5):
            circuit_breakers.record_failure(LLM_CIRCUIT_NAME)
        assert circuit_breakers.get_status(LLM_CIRCUIT_NAME) == CircuitStatus.OPEN

        with patch("src.analyst.extractor._call_llm", new_callable=AsyncMock) as llm:
            assert await extract_with_llm("t", "c", None, "frenchweb") is None

        llm.assert_not_awaited()


def test_prompt_is_truncated(monkeypatch):
    monkeypatch.setattr(settings, "llm_max_content_chars", 100)
    prompt = build_extraction_prompt("Title", "x" * 1000)
    article = prompt.split("\n\n", 1)[1]
    assert len(article) == 100
    assert article.startswith("Title: Title")
