"""
Tests for the regex funding parser (LLM fallback).

Run with: pytest tests/test_parser.py -v
"""

from datetime import date
from decimal import Decimal

from src.analyst.parser import (
    extract_amount,
    extract_company_name,
    extract_description,
    extract_investors,
    extract_stage,
    is_funding_article,
    parse_article,
    strip_html,
)


class TestFundingDetection:
    def test_french_headline(self):
        assert is_funding_article("Acme lève 5 millions d'euros") is True

    def test_english_headline(self):
        assert is_funding_article("Acme raises $10M to expand in Europe") is True

    def test_unrelated(self):
        assert is_funding_article("Les tendances du design en 2024") is False


class TestExtractAmount:
    def test_millions_of_euros(self):
        assert extract_amount("Acme lève 5 millions d'euros") == (Decimal("5000000"), "EUR")

    def test_compact_euro(self):
        assert extract_amount("Acme boucle un tour de 3,5 M€") == (Decimal("3500000"), "EUR")

    def test_dollars(self):
        assert extract_amount("Acme raises $12.5M Series A") == (Decimal("12500000"), "USD")

    def test_pounds_billion(self):
        assert extract_amount("Acme secures £1.2bn") == (Decimal("1200000000"), "GBP")

    def test_none(self):
        assert extract_amount("Acme opens a new office") is None


class TestExtractStage:
    def test_french_series(self):
        assert extract_stage("une levée en série A") == "SERIES_A"

    def test_pre_seed_before_seed(self):
        assert extract_stage("a pre-seed round") == "PRE_SEED"

    def test_seed(self):
        assert extract_stage("closes its seed round") == "SEED"

    def test_none(self):
        assert extract_stage("Acme raises money") is None


class TestExtractCompanyName:
    def test_french(self):
        assert extract_company_name("Acme lève 5 M€", "") == "Acme"

    def test_english(self):
        assert extract_company_name("Payfit raises $20M", "") == "Payfit"

    def test_capitalized_fallback(self):
        assert extract_company_name("Mistral, the French AI lab", "") == "Mistral"

    def test_none(self):
        assert extract_company_name("funding news of the week", "") is None


class TestExtractInvestors:
    def test_led_by(self):
        investors = extract_investors("Acme raises $10M led by Sequoia and Accel.")
        assert investors[0] == "Sequoia"

    def test_mene_par(self):
        assert extract_investors("Le tour est mené par Partech.") == ["Partech"]

    def test_none(self):
        assert extract_investors("No investors mentioned here") == []


class TestParseArticle:
    def test_full_french_article(self, sample_article_text):
        record = parse_article(
            "Acme lève 5 millions d'euros en série A",
            sample_article_text,
            "https://www.frenchweb.fr/acme",
            "frenchweb",
            date(2024, 3, 1),
        )

        assert record is not None
        assert record.company_name == "Acme"
        assert record.amount == Decimal("5000000")
        assert record.currency == "EUR"
        assert record.stage == "SERIES_A"
        assert record.lead_investor == "Partech"
        assert record.date == date(2024, 3, 1)
        assert record.source_name == "frenchweb"
        assert record.description == "startup spécialisée dans la logistique urbaine"

    def test_not_funding(self):
        assert parse_article("Weather report", "Sunny today.", None, "frenchweb") is None

    def test_html_is_stripped(self):
        record = parse_article(
            "<b>Payfit</b> raises $20M",
            "<p>Payfit raises $20 million.</p>",
            "https://techcrunch.com/payfit",
            "techcrunch",
            date(2024, 1, 10),
        )
        assert record.company_name == "Payfit"
        assert record.amount == Decimal("20000000")


class TestStripHtml:
    def test_tags_removed(self):
        assert strip_html("<p>Hello <b>world</b></p>") == "Hello world"

    def test_plain_text_whitespace(self):
        assert strip_html("  a \n b ") == "a b"

    def test_empty(self):
        assert strip_html("") == ""


def test_extract_description_is_a():
    assert extract_description("Acme est une fintech. Elle lève.", "Acme") == "fintech"
