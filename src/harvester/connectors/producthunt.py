"""
ProductHunt Connector - Product launches as early-stage signals.

Launches are not funding rounds; each post since the cutoff is recorded as
PRE_SEED with no amount. Posts come newest first from the GraphQL API, paged
with the connection's `endCursor`, which is stored as this source's cursor.
The first post older than the cutoff ends the walk.

The API needs a developer token (PRODUCTHUNT_TOKEN); without one the
source returns empty batches.

API: https://api.producthunt.com/v2/api/graphql
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

from ...analyst.schemas import RawFundingRecord
from ...common.errors import PermanentParseError
from ...common.http_client import post_json
from ...config.settings import settings
from ..base_connector import FetchResult, PaginatedSourceConnector

logger = logging.getLogger(__name__)

START_CURSOR = "start"

POSTS_QUERY = """
query GetPosts($cursor: String, $first: Int!) {
  posts(first: $first, after: $cursor, order: NEWEST) {
    edges {
      node { id name tagline description url website createdAt votesCount }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""


class ProductHuntConnector(PaginatedSourceConnector):
    """Token-paged GraphQL posts feed."""

    def get_initial_cursor(self) -> str:
        return START_CURSOR

    async def query_posts(self, after: Optional[str]) -> Dict[str, Any]:
        data = await post_json(
            self.client,
            self.config.base_url,
            {
                "query": POSTS_QUERY,
                "variables": {"cursor": after, "first": settings.historical_items_per_batch},
            },
            headers={"Authorization": f"Bearer {settings.producthunt_token}"},
        )
        if data.get("errors"):
            raise PermanentParseError(f"ProductHunt GraphQL errors: {data['errors']}")
        return (data.get("data") or {}).get("posts") or {}

    def post_to_record(self, post: Dict[str, Any], launched: date) -> RawFundingRecord:
        return RawFundingRecord(
            company_name=(post.get("name") or "").strip(),
            amount=None,
            currency="USD",
            stage="PRE_SEED",
            date=launched,
            source_url=post.get("url") or post.get("website"),
            source_name=self.name,
            description=post.get("tagline") or post.get("description"),
        )

    async def fetch(self, cursor: Optional[str]) -> FetchResult:
        if not settings.producthunt_token:
            logger.warning(f"{self.name}: no PRODUCTHUNT_TOKEN, skipping")
            return FetchResult()

        after = cursor if cursor and cursor != START_CURSOR else None
        logger.info(f"Fetching ProductHunt posts (after {after!r})")
        posts = await self.query_posts(after)
        edges = posts.get("edges") or []
        page_info = posts.get("pageInfo") or {}

        batch = FetchResult()
        for edge in edges:
            post = edge.get("node") or {}
            launched = self._parse_date(post.get("createdAt"))
            if self.is_before_min_date(launched):
                logger.info(f"{self.name}: reached cutoff {self.min_date} at '{post.get('name')}'")
                return batch

            batch.seen += 1
            if launched is None or not (post.get("name") or "").strip():
                continue
            batch.items.append(self.post_to_record(post, launched))

        logger.info(f"{self.name}: {len(batch.items)} launches in {len(edges)} posts")

        if page_info.get("hasNextPage") and page_info.get("endCursor"):
            batch.next_cursor, batch.has_more = page_info["endCursor"], True
        return batch
