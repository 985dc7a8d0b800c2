"""
Archive Connector - Paginated HTML archives of funding news.

Walks listing pages newest-first, extracts each funding article and stops
once an article older than the historical cutoff appears. Subclasses set the
listing URL and CSS selectors for their site.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from ...analyst.extractor import extract
from ...common.errors import TransientSourceError
from ..base_connector import FetchResult, ListingPageCursor, PaginatedSourceConnector, parse_page_cursor

logger = logging.getLogger(__name__)

FRENCH_DATE_PATTERN = re.compile(
    r"(\d{1,2})\s+(janvier|février|mars|avril|mai|juin|juillet|août|septembre|octobre|novembre|décembre)\s+(\d{4})",
    re.IGNORECASE,
)

FUNDING_TITLE_WORDS = ("raises", "funding", "million", "series", "seed", "round", "lève", "levée")


@dataclass
class ArchiveEntry:
    """One article card on a listing page."""
    title: str
    url: str
    published: Optional[date] = None
    excerpt: str = ""


class ArchiveConnector(PaginatedSourceConnector):
    """
    Page-numbered HTML archive.

    Override the selectors (and listing_url when the URL is not a simple
    "{page}" template) for site-specific parsing.
    """

    article_selector: str = "article"
    title_selector: str = "h2.entry-title a, h3.entry-title a"
    date_selector: str = "time"
    excerpt_selector: str = ".entry-content, .excerpt, p"
    content_selector: str = ".entry-content, article"
    # Only keep article URLs containing this fragment (None keeps all)
    url_must_contain: Optional[str] = None
    # Listing pages mix funding and non-funding news
    require_funding_title: bool = False
    funding_title_words: Tuple[str, ...] = FUNDING_TITLE_WORDS

    def get_initial_cursor(self) -> str:
        return "1"

    def listing_url(self, page: int) -> str:
        return self.config.base_url.format(page=page)

    def has_next_page(self, html: str, page: int) -> bool:
        return re.search(rf"/page/{page + 1}[/\"']", html) is not None

    def parse_listing(self, html: str) -> List[ArchiveEntry]:
        soup = BeautifulSoup(html, "lxml")
        entries: List[ArchiveEntry] = []
        seen: set[str] = set()

        for card in soup.select(self.article_selector):
            link = card.select_one(self.title_selector)
            if link is None:
                continue
            url = (link.get("href") or "").strip()
            title = link.get_text(" ", strip=True)
            if not url or not title or url in seen:
                continue
            if self.url_must_contain and self.url_must_contain not in url:
                continue
            if self.require_funding_title and not any(w in title.lower() for w in self.funding_title_words):
                continue

            published = None
            date_el = card.select_one(self.date_selector)
            if date_el is not None:
                published = self._parse_date(date_el.get("datetime") or date_el.get_text(strip=True))

            excerpt_el = card.select_one(self.excerpt_selector)
            excerpt = excerpt_el.get_text(" ", strip=True)[:500] if excerpt_el else ""

            seen.add(url)
            entries.append(ArchiveEntry(title=title, url=url, published=published, excerpt=excerpt))

        return entries

    async def fetch_article_content(self, url: str) -> Optional[str]:
        """Article body text, or None if the page can't be fetched."""
        try:
            html = await self._fetch_with_retry(url)
        except (TransientSourceError, httpx.HTTPError) as e:
            logger.warning(f"Error fetching article {url}: {e}")
            return None

        soup = BeautifulSoup(html, "lxml")
        body = soup.select_one(self.content_selector)
        return self._extract_text(str(body)) if body is not None else self._extract_text(html)

    def _date_from_content(self, content: Optional[str]) -> Optional[date]:
        if not content:
            return None
        match = FRENCH_DATE_PATTERN.search(content)
        return self._parse_date(match.group(0)) if match else None

    async def process_entries(self, entries: List[ArchiveEntry]) -> Tuple[FetchResult, bool]:
        """
        Extract records from listing entries, newest first.

        Returns (batch, reached_cutoff); the caller sets the batch cursor.
        Processing stops at the first entry older than min_date.
        """
        batch = FetchResult()

        for entry in entries:
            content = None
            fetched = False
            published = entry.published
            if published is None:
                content = await self.fetch_article_content(entry.url)
                fetched = True
                published = self._date_from_content(content)

            if self.is_before_min_date(published):
                logger.info(f"{self.name}: reached cutoff {self.min_date} at '{entry.title}'")
                return batch, True

            batch.seen += 1
            if not fetched:
                content = await self.fetch_article_content(entry.url)

            try:
                record = await extract(
                    entry.title,
                    content or entry.excerpt,
                    entry.url,
                    self.name,
                    published,
                )
            except Exception as e:
                self._reject(batch, entry.title, entry.url, e)
                record = None

            if record is not None:
                batch.items.append(record)

            await self._polite_delay()

        return batch, False

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        page = parse_page_cursor(cursor)
        url = self.listing_url(page)
        logger.info(f"Fetching {self.display_name} page {page}")

        html = await self._fetch_with_retry(url)
        entries = self.parse_listing(html)
        logger.info(f"{self.name}: found {len(entries)} articles on page {page}")

        if not entries:
            logger.warning(
                f"SCRAPER_HEALTH_ALERT: {self.name} page {page} returned 0 articles - "
                "selectors may have changed or the archive ended"
            )

        batch, reached_cutoff = await self.process_entries(entries)
        if not reached_cutoff and entries and self.has_next_page(html, page):
            batch.next_cursor = str(page + 1)
            batch.has_more = True
        return batch


class MultiListingArchiveConnector(ArchiveConnector):
    """
    Archive spread over several listings (sectors, news hubs).

    The cursor is a ListingPageCursor ("listing_index:page"). When a listing
    runs out of pages or reaches the historical cutoff, the next listing
    starts at page 1. Listing URLs come from SourceConfig.listing_urls.
    """

    @property
    def listings(self) -> List[str]:
        return self.config.listing_urls

    def get_initial_cursor(self) -> str:
        return ListingPageCursor.initial().dump()

    def listing_page_url(self, cursor: ListingPageCursor) -> str:
        base = self.listings[cursor.index]
        return f"{base}?page={cursor.page}" if cursor.page > 1 else base

    def has_next_page(self, html: str, page: int) -> bool:
        return f"page={page + 1}" in html or 'rel="next"' in html

    def _advance_listing(self, cursor: ListingPageCursor, batch: FetchResult) -> FetchResult:
        if cursor.index < len(self.listings) - 1:
            next_cursor = cursor.next_listing()
            logger.info(f"{self.name}: moving to listing {next_cursor.index}")
            batch.next_cursor, batch.has_more = next_cursor.dump(), True
        return batch

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        position = ListingPageCursor.parse(cursor, len(self.listings))
        url = self.listing_page_url(position)
        logger.info(f"Fetching {self.display_name}: listing {position.index}, page {position.page}")

        html = await self._fetch_with_retry(url)
        entries = self.parse_listing(html)
        for entry in entries:
            # Listings link articles relative to their own host
            entry.url = urljoin(url, entry.url)
        logger.info(f"{self.name}: found {len(entries)} funding articles on {url}")

        batch, reached_cutoff = await self.process_entries(entries)
        if reached_cutoff:
            return self._advance_listing(position, batch)

        # A page can hold no funding articles and still have a next page
        if self.has_next_page(html, position.page):
            batch.next_cursor, batch.has_more = position.next_page().dump(), True
            return batch

        return self._advance_listing(position, batch)
