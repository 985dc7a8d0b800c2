"""
Shared HTTP Client Configuration.

Provides standardized HTTP client creation and User-Agent strings for all
source connectors, plus the status-code mapping every connector uses.

Usage:
    from src.common.http_client import create_scraper_client, USER_AGENT_BOT

    async with create_scraper_client(user_agent=USER_AGENT_BOT) as client:
        html = await fetch_text(client, url)
"""

import httpx
from typing import Optional

from ..config.settings import settings
from .errors import TransientSourceError


# =============================================================================
# User-Agent Constants
# =============================================================================

# Bot identifier - archives and feeds that allow bots
USER_AGENT_BOT = "FundingSourcer/1.0 (Funding Tracker)"

# Browser-like User-Agent - sites that reject bot identifiers
USER_AGENT_BROWSER = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


# =============================================================================
# HTTP Client Factory
# =============================================================================

def create_scraper_client(
    user_agent: str = USER_AGENT_BOT,
    timeout: Optional[float] = None,
    max_connections: int = 20,
    max_keepalive: int = 10,
    extra_headers: Optional[dict] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create a standardized async HTTP client for connectors.

    Args:
        user_agent: User-Agent string (use constants above)
        timeout: Request timeout in seconds (default: settings.request_timeout)
        max_connections: Maximum concurrent connections
        max_keepalive: Maximum keepalive connections
        extra_headers: Additional headers to include
        transport: Optional transport (tests pass httpx.MockTransport)

    Returns:
        Configured httpx.AsyncClient
    """
    headers = {"User-Agent": user_agent}
    if extra_headers:
        headers.update(extra_headers)

    return httpx.AsyncClient(
        timeout=timeout or settings.request_timeout,
        headers=headers,
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive,
        ),
        follow_redirects=True,
        transport=transport,
    )


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """Send a request with the shared error mapping.

    Timeouts, connection errors and 5xx become TransientSourceError so the
    retry layer can retry them. 4xx raises httpx.HTTPStatusError and fails fast.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransientSourceError(f"Timeout fetching {url}: {e}") from e
    except httpx.TransportError as e:
        raise TransientSourceError(f"Connection error fetching {url}: {type(e).__name__}") from e

    if response.status_code >= 500:
        raise TransientSourceError(f"HTTP {response.status_code} fetching {url}")
    response.raise_for_status()
    return response


async def fetch_text(client: httpx.AsyncClient, url: str, **kwargs) -> str:
    """GET a URL and return its body."""
    response = await send(client, "GET", url, **kwargs)
    return response.text


async def fetch_json(client: httpx.AsyncClient, url: str, headers: Optional[dict] = None, **kwargs) -> dict:
    """GET a URL and decode JSON."""
    headers = {"Accept": "application/json", **(headers or {})}
    response = await send(client, "GET", url, headers=headers, **kwargs)
    return response.json()


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict,
    headers: Optional[dict] = None,
) -> dict:
    """POST a JSON body (GraphQL, search APIs) and decode the JSON answer."""
    headers = {"Accept": "application/json", **(headers or {})}
    response = await send(client, "POST", url, json=payload, headers=headers)
    return response.json()
