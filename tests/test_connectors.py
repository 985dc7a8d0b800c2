"""
Tests for the paginated source connectors.

HTTP is served by httpx.MockTransport; extraction is patched so these tests
only exercise pagination, cursors and the historical cutoff.
"""

import json
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.analyst.schemas import RawFundingRecord
from src.common.errors import PermanentParseError
from src.config.settings import settings
from src.config.sources import SourceType, get_source_config
from src.harvester.base_connector import ListingPageCursor, parse_page_cursor
from src.harvester.connectors import (
    CONNECTOR_REGISTRY,
    BpifranceConnector,
    CompaniesHouseConnector,
    CrunchbaseConnector,
    FrenchWebArchiveConnector,
    GitHubTrendingConnector,
    HackerNewsConnector,
    ProductHuntConnector,
    RSSFeedConnector,
    SiftedArchiveConnector,
    YCombinatorConnector,
    build_connector,
    parse_funding_title,
)
from src.harvester.connectors.crunchbase import map_investment_type
from src.harvester.connectors.ycombinator import batch_code, yc_batches


async def fake_extract(title, content, source_url, source_name, publish_date=None):
    """First word of the title is the company."""
    return RawFundingRecord(
        company_name=title.split()[0],
        date=publish_date or date(2024, 1, 1),
        source_url=source_url,
        source_name=source_name,
    )


def archive_card(url: str, title: str, published: str = None) -> str:
    time_tag = f'<time datetime="{published}">{published}</time>' if published else ""
    return (
        f'<article class="post"><h2 class="entry-title"><a href="{url}">{title}</a></h2>'
        f'{time_tag}<div class="entry-content">{title}.</div></article>'
    )


def html_response(body: str, status: int = 200) -> httpx.Response:
    return httpx.Response(status, text=f"<html><body>{body}</body></html>")


# =============================================================================
# Cursors
# =============================================================================
class TestPageCursor:
    def test_parse(self):
        assert parse_page_cursor("3") == 3
        assert parse_page_cursor(None) == 1

    def test_malformed_restarts(self):
        assert parse_page_cursor("abc") == 1
        assert parse_page_cursor("0") == 1


class TestListingPageCursor:
    def test_round_trip(self):
        cursor = ListingPageCursor.parse("2:5", listing_count=4)
        assert (cursor.index, cursor.page) == (2, 5)
        assert cursor.dump() == "2:5"

    def test_advance(self):
        cursor = ListingPageCursor.parse("1:3", listing_count=4)
        assert cursor.next_page().dump() == "1:4"
        assert cursor.next_listing().dump() == "2:1"

    def test_zero_based_pages(self):
        cursor = ListingPageCursor.parse("1:0", listing_count=4, first_page=0)
        assert cursor.next_listing().dump() == "2:0"
        assert ListingPageCursor.initial(first_page=0).dump() == "0:0"

    def test_invalid_restarts_at_first_listing(self):
        assert ListingPageCursor.parse(None, 4).dump() == "0:1"
        assert ListingPageCursor.parse("garbage", 4).dump() == "0:1"
        assert ListingPageCursor.parse("9:1", 4).dump() == "0:1"
        assert ListingPageCursor.parse("1:0", 4).dump() == "0:1"


# =============================================================================
# Registry
# =============================================================================
class TestConnectorRegistry:
    def test_every_source_has_a_connector(self):
        from src.config.sources import SOURCE_REGISTRY
        assert set(SOURCE_REGISTRY) == set(CONNECTOR_REGISTRY)

    def test_build(self, mock_client):
        client = mock_client(lambda request: httpx.Response(200))
        connector = build_connector("techcrunch", client=client)
        assert isinstance(connector, RSSFeedConnector)
        assert connector.source_type == SourceType.RSS

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_connector("nope")

    def test_archive_batch_budget(self, mock_client):
        client = mock_client(lambda request: httpx.Response(200))
        archive = build_connector("frenchweb-archive", client=client)
        api = build_connector("hackernews", client=client)

        assert archive.batch_tier.timeout == settings.archive_batch_timeout
        assert archive.batch_tier.max_retries == 0
        assert api.batch_tier.timeout == 5.0
        assert api.batch_tier.max_retries == 1

    def test_scrape_and_feed_sources(self, mock_client):
        client = mock_client(lambda request: httpx.Response(200))
        feed = build_connector("tech-eu", client=client)
        yc = build_connector("ycombinator", client=client)

        assert isinstance(feed, RSSFeedConnector)
        assert isinstance(yc, YCombinatorConnector)
        assert yc.source_type == SourceType.SCRAPE
        assert yc.batch_tier.timeout == settings.archive_batch_timeout
        assert isinstance(build_connector("bpifrance", client=client), BpifranceConnector)


# =============================================================================
# Archives
# =============================================================================
class TestFrenchWebArchive:
    @pytest.mark.asyncio
    async def test_page_with_next(self, mock_client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if "/page/1" in request.url.path:
                return html_response(
                    archive_card("https://www.frenchweb.fr/acme", "Acme lève 5 M€", "2024-03-12")
                    + archive_card("https://www.frenchweb.fr/beta", "Beta lève 2 M€", "2024-03-10")
                    + '<a href="https://www.frenchweb.fr/tag/levees-de-fonds/page/2/">Suivant</a>'
                )
            return html_response('<div class="entry-content"><p>Article body</p></div>')

        connector = FrenchWebArchiveConnector(get_source_config("frenchweb-archive"), client=mock_client(handler))
        with patch("src.harvester.connectors.archive.extract", new=AsyncMock(side_effect=fake_extract)):
            result = await connector.fetch(None)

        assert requested[0] == "https://www.frenchweb.fr/tag/levees-de-fonds/page/1"
        assert [r.company_name for r in result.items] == ["Acme", "Beta"]
        assert result.items[0].date == date(2024, 3, 12)
        assert result.has_more is True
        assert result.next_cursor == "2"

    @pytest.mark.asyncio
    async def test_cutoff_stops_pagination(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            if "/page/7" in request.url.path:
                return html_response(
                    archive_card("https://www.frenchweb.fr/new", "Newco lève 3 M€", "2021-02-01")
                    + archive_card("https://www.frenchweb.fr/old", "Oldco lève 1 M€", "2020-11-30")
                    + '<a href="https://www.frenchweb.fr/tag/levees-de-fonds/page/8/">Suivant</a>'
                )
            return html_response("<p>body</p>")

        connector = FrenchWebArchiveConnector(get_source_config("frenchweb-archive"), client=mock_client(handler))
        extract = AsyncMock(side_effect=fake_extract)
        with patch("src.harvester.connectors.archive.extract", new=extract):
            result = await connector.fetch("7")

        assert [r.company_name for r in result.items] == ["Newco"]
        assert extract.await_count == 1
        assert result.has_more is False
        assert result.next_cursor is None

    @pytest.mark.asyncio
    async def test_date_read_from_article_body(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            if "/page/" in request.url.path:
                return html_response(archive_card("https://www.frenchweb.fr/acme", "Acme lève 5 M€"))
            return html_response('<div class="entry-content">Publié le 12 mars 2023 par la rédaction</div>')

        connector = FrenchWebArchiveConnector(get_source_config("frenchweb-archive"), client=mock_client(handler))
        with patch("src.harvester.connectors.archive.extract", new=AsyncMock(side_effect=fake_extract)):
            result = await connector.fetch("1")

        assert result.items[0].date == date(2023, 3, 12)
        # No link to page 2
        assert result.has_more is False

    @pytest.mark.asyncio
    async def test_rejected_article_is_reported(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            if "/page/" in request.url.path:
                return html_response(
                    archive_card("https://www.frenchweb.fr/acme", "Acme lève 5 M€", "2024-03-12")
                    + archive_card("https://www.frenchweb.fr/vague", "Une levée floue", "2024-03-10")
                )
            return html_response("<p>body</p>")

        async def extract_or_reject(title, content, source_url, source_name, publish_date=None):
            if "floue" in title:
                raise PermanentParseError("Low confidence (20) for Une")
            return await fake_extract(title, content, source_url, source_name, publish_date)

        connector = FrenchWebArchiveConnector(get_source_config("frenchweb-archive"), client=mock_client(handler))
        with patch("src.harvester.connectors.archive.extract", new=AsyncMock(side_effect=extract_or_reject)):
            result = await connector.fetch("1")

        assert [r.company_name for r in result.items] == ["Acme"]
        assert [(r.url, r.reason) for r in result.rejected] == [
            ("https://www.frenchweb.fr/vague", "Low confidence (20) for Une"),
        ]
        assert result.found == 2

    @pytest.mark.asyncio
    async def test_failed_article_fetch_not_repeated(self, mock_client):
        article_calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            if "/page/" in request.url.path:
                return html_response(archive_card("https://www.frenchweb.fr/acme", "Acme lève 5 M€"))
            article_calls.append(str(request.url))
            return httpx.Response(404)

        connector = FrenchWebArchiveConnector(get_source_config("frenchweb-archive"), client=mock_client(handler))
        extract = AsyncMock(side_effect=fake_extract)
        with patch("src.harvester.connectors.archive.extract", new=extract):
            result = await connector.fetch("1")

        assert article_calls == ["https://www.frenchweb.fr/acme"]
        assert extract.await_args.args[1] == "Acme lève 5 M€."
        assert [r.company_name for r in result.items] == ["Acme"]

    @pytest.mark.asyncio
    async def test_5xx_is_retried(self, mock_client):
        calls = {"listing": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if "/page/" in request.url.path:
                calls["listing"] += 1
                if calls["listing"] == 1:
                    return httpx.Response(503)
                return html_response("")
            return html_response("")

        connector = FrenchWebArchiveConnector(get_source_config("frenchweb-archive"), client=mock_client(handler))
        with patch("src.common.resilience.asyncio.sleep", new_callable=AsyncMock):
            result = await connector.fetch("1")

        assert calls["listing"] == 2
        assert result.items == []
        assert result.has_more is False

    @pytest.mark.asyncio
    async def test_4xx_fails_fast(self, mock_client):
        calls = {"listing": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["listing"] += 1
            return httpx.Response(404)

        connector = FrenchWebArchiveConnector(get_source_config("frenchweb-archive"), client=mock_client(handler))
        with pytest.raises(httpx.HTTPStatusError):
            await connector.fetch("1")

        assert calls["listing"] == 1


class TestSiftedArchive:
    @staticmethod
    def sifted_card(slug: str, title: str, published: str = "2024-05-01") -> str:
        return f'<article><a href="/articles/{slug}">{title}</a><time datetime="{published}"></time></article>'

    @pytest.mark.asyncio
    async def test_next_page_within_sector(self, mock_client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if "/sector/" in request.url.path:
                return html_response(
                    self.sifted_card("acme-raises", "Acme raises €10m Series A")
                    + self.sifted_card("opinion", "Why Europe needs more founders")
                    + '<a href="?page=2">Next</a>'
                )
            return html_response("<article>Body</article>")

        connector = SiftedArchiveConnector(get_source_config("sifted-archive"), client=mock_client(handler))
        with patch("src.harvester.connectors.archive.extract", new=AsyncMock(side_effect=fake_extract)):
            result = await connector.fetch(None)

        assert requested[0] == "https://sifted.eu/sector/fintech"
        assert [r.source_url for r in result.items] == ["https://sifted.eu/articles/acme-raises"]
        assert result.next_cursor == "0:2"
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_exhausted_sector_moves_to_next(self, mock_client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return html_response(self.sifted_card("beta-raises", "Beta raises €2m seed round"))

        connector = SiftedArchiveConnector(get_source_config("sifted-archive"), client=mock_client(handler))
        with patch("src.harvester.connectors.archive.extract", new=AsyncMock(side_effect=fake_extract)):
            result = await connector.fetch("1:3")

        assert requested[0] == "https://sifted.eu/sector/healthtech?page=3"
        assert result.next_cursor == "2:1"
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_last_sector_completes(self, mock_client):
        connector = SiftedArchiveConnector(
            get_source_config("sifted-archive"),
            client=mock_client(lambda request: html_response("")),
        )
        result = await connector.fetch("3:1")

        assert result.has_more is False
        assert result.next_cursor is None


# =============================================================================
# Hacker News
# =============================================================================
MARCH_1_2024 = 1709251200


class TestParseFundingTitle:
    def test_yc_headline(self):
        parsed = parse_funding_title("Acme (YC W21) raises $12M Series A")
        assert parsed["company_name"] == "Acme"
        assert parsed["amount"] == 12_000_000
        assert parsed["stage"] == "SERIES_A"

    def test_multi_word_billion(self):
        parsed = parse_funding_title("Acme Robotics raises $1.5 billion")
        assert parsed["company_name"] == "Acme Robotics"
        assert parsed["amount"] == 1_500_000_000
        assert parsed["stage"] is None

    def test_not_funding(self):
        assert parse_funding_title("Ask HN: How do you raise a seed round?") is None
        assert parse_funding_title("Show HN: My weekend project") is None


class TestHackerNews:
    @pytest.mark.asyncio
    async def test_first_page(self, mock_client):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(dict(request.url.params))
            return httpx.Response(200, json={
                "nbPages": 3,
                "hits": [
                    {
                        "objectID": "1",
                        "title": "Acme raises $12M Series A",
                        "url": "https://acme.com/news",
                        "created_at_i": MARCH_1_2024,
                    },
                    {"objectID": "2", "title": "Ask HN: Hiring?", "created_at_i": MARCH_1_2024},
                    {"objectID": "3", "title": "Beta secures $3M", "created_at_i": MARCH_1_2024},
                ],
            })

        connector = HackerNewsConnector(get_source_config("hackernews"), client=mock_client(handler))
        result = await connector.fetch(None)

        assert seen[0]["query"] == "raises million"
        assert seen[0]["page"] == "0"
        assert seen[0]["tags"] == "story"
        assert seen[0]["hitsPerPage"] == "20"
        assert [r.company_name for r in result.items] == ["Acme", "Beta"]
        assert result.items[0].currency == "USD"
        assert result.items[0].date == date(2024, 3, 1)
        assert result.items[1].source_url == "https://news.ycombinator.com/item?id=3"
        assert result.next_cursor == "0:1"
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_last_page_moves_to_next_query(self, mock_client):
        handler = lambda request: httpx.Response(200, json={"nbPages": 2, "hits": []})
        connector = HackerNewsConnector(get_source_config("hackernews"), client=mock_client(handler))

        result = await connector.fetch("0:1")

        assert result.next_cursor == "1:0"
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_page_cap(self, mock_client):
        handler = lambda request: httpx.Response(200, json={"nbPages": 50, "hits": []})
        connector = HackerNewsConnector(get_source_config("hackernews"), client=mock_client(handler))

        result = await connector.fetch("0:9")

        assert result.next_cursor == "1:0"

    @pytest.mark.asyncio
    async def test_last_query_exhausts(self, mock_client):
        handler = lambda request: httpx.Response(200, json={"nbPages": 3, "hits": []})
        connector = HackerNewsConnector(get_source_config("hackernews"), client=mock_client(handler))

        result = await connector.fetch("3:2")

        assert result.has_more is False
        assert result.next_cursor is None


# =============================================================================
# RSS
# =============================================================================
RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>FrenchWeb</title>
<item>
  <title>Acme lève 5 millions d'euros</title>
  <link>https://www.frenchweb.fr/acme</link>
  <pubDate>Tue, 12 Mar 2024 08:00:00 +0000</pubDate>
  <description>&lt;p&gt;Acme lève 5 millions d'euros en série A.&lt;/p&gt;</description>
</item>
<item>
  <title>Les tendances du design en 2024</title>
  <link>https://www.frenchweb.fr/design</link>
  <pubDate>Mon, 11 Mar 2024 08:00:00 +0000</pubDate>
  <description>Un article sur le design.</description>
</item>
<item>
  <title>Oldco lève 1 million</title>
  <link>https://www.frenchweb.fr/oldco</link>
  <pubDate>Mon, 01 Jun 2020 08:00:00 +0000</pubDate>
  <description>Oldco lève 1 million.</description>
</item>
</channel></rss>"""


class TestRSSFeed:
    @pytest.mark.asyncio
    async def test_funding_entries_only(self, mock_client):
        handler = lambda request: httpx.Response(200, text=RSS_FEED, headers={"content-type": "application/rss+xml"})
        connector = build_connector("frenchweb", client=mock_client(handler))
        extract = AsyncMock(side_effect=fake_extract)

        with patch("src.harvester.connectors.rss_feeds.extract", new=extract):
            result = await connector.fetch(None)

        assert extract.await_count == 1
        assert [r.company_name for r in result.items] == ["Acme"]
        assert result.items[0].date == date(2024, 3, 12)
        assert result.found == 2
        assert result.rejected == []
        assert result.has_more is False
        assert result.next_cursor == "latest"

    def test_parse_feed_strips_html(self, mock_client):
        connector = build_connector("frenchweb", client=mock_client(lambda request: httpx.Response(200)))
        entries = connector.parse_feed(RSS_FEED)

        assert len(entries) == 3
        assert entries[0].content == "Acme lève 5 millions d'euros en série A."

    def test_malformed_feed(self, mock_client):
        connector = build_connector("frenchweb", client=mock_client(lambda request: httpx.Response(200)))
        broken = SimpleNamespace(bozo=1, entries=[], bozo_exception=ValueError("not well-formed"))

        with patch("src.harvester.connectors.rss_feeds.feedparser.parse", return_value=broken):
            with pytest.raises(PermanentParseError):
                connector.parse_feed("<rss")

    @pytest.mark.asyncio
    async def test_extraction_error_skips_entry(self, mock_client):
        handler = lambda request: httpx.Response(200, text=RSS_FEED)
        connector = build_connector("frenchweb", client=mock_client(handler))

        with patch("src.harvester.connectors.rss_feeds.extract", new=AsyncMock(side_effect=RuntimeError("boom"))):
            result = await connector.fetch(None)

        assert result.items == []
        assert result.has_more is False
        assert [r.reason for r in result.rejected] == ["RuntimeError: boom"]
        assert result.found == 2


# =============================================================================
# Scraped directories
# =============================================================================
class TestYCombinator:
    @staticmethod
    def next_data(companies) -> str:
        payload = json.dumps({"props": {"pageProps": {"companies": companies}}})
        return f'<script id="__NEXT_DATA__" type="application/json">{payload}</script>'

    def test_batches_since_cutoff(self):
        assert yc_batches(date(2021, 1, 1), date(2022, 3, 1)) == ["W21", "S21", "W22"]

    def test_batch_code(self):
        assert batch_code("Winter 2021") == "W21"
        assert batch_code("s22") == "S22"
        assert batch_code("Fall 2021") is None

    @pytest.mark.asyncio
    async def test_first_batch_from_page_data(self, mock_client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return html_response(self.next_data([
                {"name": "Acme", "slug": "acme", "one_liner": "Payroll for robots", "batch": "W21"},
                {"name": "Beta", "slug": "beta", "batch": "S22"},
                {"name": "Gamma", "slug": "gamma", "batch": "Winter 2021"},
            ]))

        connector = YCombinatorConnector(get_source_config("ycombinator"), client=mock_client(handler))
        result = await connector.fetch(None)

        assert requested == ["https://www.ycombinator.com/companies?batch=W21"]
        assert [r.company_name for r in result.items] == ["Acme", "Gamma"]
        acme = result.items[0]
        assert acme.amount == 500_000
        assert acme.stage == "SEED"
        assert acme.investors == ("Y Combinator",)
        assert acme.date == date(2021, 1, 15)
        assert acme.source_url == "https://www.ycombinator.com/companies/acme"
        assert result.found == 3
        assert result.next_cursor == "2"
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_company_cards_fallback(self, mock_client):
        card = (
            '<a href="/companies/delta" class="company-card">'
            '<span class="company-name">Delta</span>'
            '<span class="company-description">Payments API</span>'
            '<span class="company-batch">S21</span></a>'
        )
        connector = YCombinatorConnector(
            get_source_config("ycombinator"), client=mock_client(lambda request: html_response(card))
        )

        result = await connector.fetch("2")

        assert [r.company_name for r in result.items] == ["Delta"]
        assert result.items[0].description == "Payments API"
        assert result.items[0].date == date(2021, 6, 15)

    @pytest.mark.asyncio
    async def test_last_batch_completes(self, mock_client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return html_response("")

        connector = YCombinatorConnector(get_source_config("ycombinator"), client=mock_client(handler))
        last = len(connector.batches)

        result = await connector.fetch(str(last))
        beyond = await connector.fetch(str(last + 1))

        assert len(requested) == 1
        assert result.has_more is False
        assert result.next_cursor is None
        assert beyond.items == []
        assert beyond.has_more is False


class TestBpifrance:
    @pytest.mark.asyncio
    async def test_funding_news_credit_bpifrance(self, mock_client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if request.url.path == "/nos-actualites":
                return html_response(
                    '<article><h3><a href="/nos-actualites/acme-leve-5-millions">Acme lève 5 millions</a></h3>'
                    '<time datetime="2024-04-02"></time></article>'
                    '<article><h3><a href="/nos-actualites/vivatech">Rendez-vous à VivaTech</a></h3>'
                    '<time datetime="2024-04-01"></time></article>'
                )
            return html_response('<div class="article-content">Acme lève 5 millions.</div>')

        connector = BpifranceConnector(get_source_config("bpifrance"), client=mock_client(handler))
        with patch("src.harvester.connectors.archive.extract", new=AsyncMock(side_effect=fake_extract)):
            result = await connector.fetch(None)

        assert requested == [
            "https://www.bpifrance.fr/nos-actualites",
            "https://www.bpifrance.fr/nos-actualites/acme-leve-5-millions",
        ]
        assert [r.company_name for r in result.items] == ["Acme"]
        assert result.items[0].investors == ("Bpifrance",)
        assert result.items[0].source_url == "https://www.bpifrance.fr/nos-actualites/acme-leve-5-millions"
        # No next page: the second listing comes next
        assert result.next_cursor == "1:1"
        assert result.has_more is True


# =============================================================================
# Registries and directories
# =============================================================================
class TestCompaniesHouse:
    @pytest.mark.asyncio
    async def test_api_search(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "companies_house_api_key", "key")
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={
                "hits": 10,
                "items": [
                    {
                        "company_number": "123",
                        "company_name": "ACME TECH LIMITED",
                        "company_status": "active",
                        "date_of_creation": "2023-05-01",
                        "sic_codes": ["62012"],
                    },
                    {
                        "company_number": "456",
                        "company_name": "OLDCO SOFTWARE LTD",
                        "company_status": "active",
                        "date_of_creation": "2019-01-01",
                        "sic_codes": ["62012"],
                    },
                    {
                        "company_number": "789",
                        "company_name": "CORNER BAKERY LTD",
                        "company_status": "active",
                        "date_of_creation": "2023-06-01",
                        "sic_codes": ["10710"],
                    },
                ],
            })

        connector = CompaniesHouseConnector(get_source_config("companies-house"), client=mock_client(handler))
        result = await connector.fetch(None)

        request = seen[0]
        assert request.url.path == "/advanced-search/companies"
        assert request.url.params["start_index"] == "0"
        assert request.url.params["incorporated_from"] == "2021-01-01"
        assert request.headers["authorization"] == "Basic a2V5Og=="
        assert [r.company_name for r in result.items] == ["ACME TECH"]
        record = result.items[0]
        assert record.currency == "GBP"
        assert record.stage == "SEED"
        assert record.amount is None
        assert record.source_url.endswith("/company/123")
        assert result.seen == 3
        assert result.next_cursor == "3"
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_public_search_without_key(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "companies_house_api_key", "")
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return html_response(
                '<ul><li class="type-company"><a href="/company/0999">DATA LABS LTD</a>'
                "<p>0999 - Incorporated on 3 March 2024</p></li>"
                '<li class="type-company"><a href="/company/0888">OLD TECH LTD</a>'
                "<p>0888 - Dissolved on 1 May 2024 - Incorporated on 2 June 2022</p></li></ul>"
            )

        connector = CompaniesHouseConnector(get_source_config("companies-house"), client=mock_client(handler))
        result = await connector.fetch("20")

        assert seen[0].url.host == "find-and-update.company-information.service.gov.uk"
        assert seen[0].url.params["page"] == "2"
        assert [r.company_name for r in result.items] == ["DATA LABS"]
        assert result.items[0].date == date(2024, 3, 3)
        # A short page is the last one
        assert result.has_more is False


class TestCrunchbase:
    ROUND = {
        "uuid": "u-1",
        "properties": {
            "identifier": {"permalink": "acme-series-a"},
            "funded_organization_identifier": {"value": "Acme"},
            "announced_on": "2024-02-01",
            "money_raised": {"value": 12000000, "currency": "USD"},
            "investment_type": "series_a",
            "lead_investor_identifiers": [{"value": "Index"}],
            "investor_identifiers": [{"value": "Index"}, {"value": "Kima"}],
        },
    }

    def test_investment_types(self):
        assert map_investment_type("seed") == "SEED"
        assert map_investment_type("series_d") == "LATER"
        assert map_investment_type("private_equity") == "LATER"
        assert map_investment_type("undisclosed") is None
        assert map_investment_type(None) is None

    @pytest.mark.asyncio
    async def test_api_pages_after_last_round(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "crunchbase_api_key", "cb")
        monkeypatch.setattr(settings, "historical_items_per_batch", 1)
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v4/searches/funding_rounds"
            assert request.headers["x-cb-user-key"] == "cb"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"count": 40, "entities": [self.ROUND]})

        connector = CrunchbaseConnector(get_source_config("crunchbase"), client=mock_client(handler))
        first = await connector.fetch(None)
        await connector.fetch(first.next_cursor)

        assert "after_id" not in bodies[0]
        assert bodies[0]["limit"] == 1
        assert bodies[1]["after_id"] == "u-1"
        record = first.items[0]
        assert record.company_name == "Acme"
        assert record.amount == 12_000_000
        assert record.stage == "SERIES_A"
        assert record.investors == ("Index", "Kima")
        assert record.lead_investor == "Index"
        assert record.source_url == "https://www.crunchbase.com/funding_round/acme-series-a"
        assert first.next_cursor == "u-1"
        assert first.has_more is True

    @pytest.mark.asyncio
    async def test_news_fallback_without_key(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "crunchbase_api_key", "")
        handler = lambda request: html_response(
            '<article><h2><a href="/venture/acme-raises-12m/">Acme raises $12M Series A</a></h2>'
            '<time datetime="2024-03-05"></time></article>'
            '<article><h2><a href="/venture/ai-outlook/">The AI outlook for 2024</a></h2></article>'
        )
        connector = CrunchbaseConnector(get_source_config("crunchbase"), client=mock_client(handler))

        result = await connector.fetch(None)

        assert [r.company_name for r in result.items] == ["Acme"]
        assert result.items[0].source_url == "https://news.crunchbase.com/venture/acme-raises-12m/"
        assert result.items[0].date == date(2024, 3, 5)
        assert result.seen == 2
        assert result.has_more is False


class TestProductHunt:
    @staticmethod
    def posts(nodes, has_next=True, end_cursor="next-page"):
        return {
            "data": {
                "posts": {
                    "edges": [{"node": node} for node in nodes],
                    "pageInfo": {"hasNextPage": has_next, "endCursor": end_cursor},
                }
            }
        }

    @pytest.mark.asyncio
    async def test_no_token_skips(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "producthunt_token", "")
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request)
            return httpx.Response(200, json={})

        connector = ProductHuntConnector(get_source_config("producthunt"), client=mock_client(handler))
        result = await connector.fetch(None)

        assert requested == []
        assert result.items == []
        assert result.has_more is False

    @pytest.mark.asyncio
    async def test_cursor_passed_through(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "producthunt_token", "tok")
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["authorization"] == "Bearer tok"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=self.posts([
                {"name": "Acme", "tagline": "Robots", "url": "https://www.producthunt.com/posts/acme",
                 "createdAt": "2024-05-01T08:00:00Z"},
            ]))

        connector = ProductHuntConnector(get_source_config("producthunt"), client=mock_client(handler))
        first = await connector.fetch(None)
        await connector.fetch(first.next_cursor)

        assert bodies[0]["variables"]["cursor"] is None
        assert bodies[1]["variables"]["cursor"] == "next-page"
        record = first.items[0]
        assert (record.company_name, record.stage, record.amount) == ("Acme", "PRE_SEED", None)
        assert record.date == date(2024, 5, 1)
        assert first.has_more is True

    @pytest.mark.asyncio
    async def test_cutoff_stops_pagination(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "producthunt_token", "tok")
        handler = lambda request: httpx.Response(200, json=self.posts([
            {"name": "Acme", "url": "https://www.producthunt.com/posts/acme", "createdAt": "2024-05-01"},
            {"name": "Oldie", "url": "https://www.producthunt.com/posts/oldie", "createdAt": "2020-06-01"},
            {"name": "Older", "url": "https://www.producthunt.com/posts/older", "createdAt": "2020-05-01"},
        ]))
        connector = ProductHuntConnector(get_source_config("producthunt"), client=mock_client(handler))

        result = await connector.fetch("next-page")

        assert [r.company_name for r in result.items] == ["Acme"]
        assert result.has_more is False
        assert result.next_cursor is None

    @pytest.mark.asyncio
    async def test_graphql_errors(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "producthunt_token", "tok")
        handler = lambda request: httpx.Response(200, json={"errors": [{"message": "rate limited"}]})
        connector = ProductHuntConnector(get_source_config("producthunt"), client=mock_client(handler))

        with pytest.raises(PermanentParseError):
            await connector.fetch(None)


class TestGitHubTrending:
    TRENDING = (
        '<article class="Box-row"><h2><a href="/acme/rocket">acme / rocket</a></h2>'
        "<p>Open-source billing platform</p>"
        '<span itemprop="programmingLanguage">TypeScript</span><span>1,234 stars this week</span></article>'
        '<article class="Box-row"><h2><a href="/bob/dotfiles">bob / dotfiles</a></h2>'
        "<p>My dotfiles</p><span>12 stars this week</span></article>"
        '<article class="Box-row"><h2><a href="/carol/notes">carol / notes</a></h2>'
        "<p>Note taking platform</p><span>80 stars this week</span></article>"
    )

    @pytest.mark.asyncio
    async def test_startup_like_repos(self, mock_client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if request.url.host == "api.github.com":
                if request.url.path.endswith("/notes"):
                    return httpx.Response(404)
                return httpx.Response(200, json={"created_at": "2023-06-01T10:00:00Z", "topics": []})
            return html_response(self.TRENDING)

        connector = GitHubTrendingConnector(get_source_config("github-trending"), client=mock_client(handler))
        result = await connector.fetch(None)

        assert requested[0] == "https://github.com/trending?since=weekly"
        assert [r.company_name for r in result.items] == ["rocket"]
        record = result.items[0]
        assert record.stage == "PRE_SEED"
        assert record.date == date(2023, 6, 1)
        assert record.source_url == "https://github.com/acme/rocket"
        assert result.seen == 3
        assert result.next_cursor == "2"
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_last_language_completes(self, mock_client):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return html_response("")

        connector = GitHubTrendingConnector(get_source_config("github-trending"), client=mock_client(handler))
        result = await connector.fetch("5")

        assert requested == ["https://github.com/trending/go?since=weekly"]
        assert result.has_more is False
