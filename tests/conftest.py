"""
Pytest fixtures for test infrastructure.

This module is automatically loaded by pytest and provides shared fixtures.
Plain helpers live in test_helpers.py.
"""

import httpx
import pytest

from src.archivist.checkpoints import InMemoryCheckpointStore
from src.archivist.storage import InMemoryFundingStore
from src.common.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry, circuit_breakers
from src.common.http_client import create_scraper_client
from src.config.settings import settings
from tests.test_helpers import FakeClock


# =============================================================================
# Global fixtures (autouse)
# =============================================================================
@pytest.fixture(autouse=True)
def quiet_settings(monkeypatch):
    """No LLM calls and no polite delays in tests."""
    monkeypatch.setattr(settings, "llm_enabled", False)
    monkeypatch.setattr(settings, "article_rate_limit_delay", 0)
    monkeypatch.setattr(settings, "slack_webhook_url", "")
    monkeypatch.setattr(settings, "discord_webhook_url", "")


@pytest.fixture(autouse=True)
def reset_global_breakers():
    """The process-wide registry must not leak state between tests."""
    circuit_breakers.reset()
    yield
    circuit_breakers.reset()


# =============================================================================
# Shared fixtures
# =============================================================================
@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breakers(clock):
    """Isolated breaker registry: 3 failures open, 300s cooldown, 2 successes close."""
    return CircuitBreakerRegistry(
        default_config=CircuitBreakerConfig(failure_threshold=3, cooldown_seconds=300.0, success_threshold=2),
        clock=clock,
    )


@pytest.fixture
def funding_store():
    return InMemoryFundingStore()


@pytest.fixture
def checkpoint_store():
    return InMemoryCheckpointStore()


@pytest.fixture
def mock_client():
    """Build an httpx client whose requests are answered by `handler`."""
    clients = []

    def build(handler):
        client = create_scraper_client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    return build


@pytest.fixture
def sample_article_text():
    """Sample French funding article."""
    return (
        "Acme est une startup spécialisée dans la logistique urbaine. "
        "La société lève 5 millions d'euros en série A. "
        "Le tour est mené par Partech."
    )
