"""
Common utilities and shared modules.
"""

from .errors import (
    SourcerError,
    TransientSourceError,
    PermanentParseError,
    CircuitOpenError,
    PersistenceConflict,
    AgentError,
    create_agent_error,
)

from .http_client import (
    create_scraper_client,
    fetch_text,
    fetch_json,
    post_json,
    USER_AGENT_BOT,
    USER_AGENT_BROWSER,
)

from .circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitStatus,
    circuit_breakers,
    is_circuit_open,
    record_failure,
    record_success,
)

from .resilience import (
    CONNECTOR_TIERS,
    TierConfig,
    call_with_tier,
    get_tier_config,
    with_retry,
    with_timeout,
)

__all__ = [
    # Errors
    "SourcerError",
    "TransientSourceError",
    "PermanentParseError",
    "CircuitOpenError",
    "PersistenceConflict",
    "AgentError",
    "create_agent_error",
    # HTTP client utilities
    "create_scraper_client",
    "fetch_text",
    "fetch_json",
    "post_json",
    "USER_AGENT_BOT",
    "USER_AGENT_BROWSER",
    # Circuit breaker
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitStatus",
    "circuit_breakers",
    "is_circuit_open",
    "record_failure",
    "record_success",
    # Timeout / retry
    "CONNECTOR_TIERS",
    "TierConfig",
    "call_with_tier",
    "get_tier_config",
    "with_retry",
    "with_timeout",
]
