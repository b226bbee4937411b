"""
web2rep - Web2 reputation scoring and achievement commitments

Turns GitHub and Google usage metrics into:
- per-provider scores, tiers and badges
- a combined AggregateResult with cross-platform bonuses
- a daily SHA-256 achievement hash for on-chain commitment
- a signed identity-to-wallet binding message

Usage:
    from web2rep import AchievementService, IdentityRequest, Provider, ServiceConfig

    service = AchievementService.from_config(ServiceConfig.from_env())
    result = await service.fetch_cached([
        IdentityRequest(Provider.GITHUB, "octocat"),
        IdentityRequest(Provider.GOOGLE, "octocat@example.com"),
    ])
    print(result.total_score, result.overall_tier, result.achievement_hash)

REST API Usage:
    from web2rep.api import AchievementAPI

    api = AchievementAPI(service, host="0.0.0.0", port=8080)
    await api.start()

Command line:
    python -m web2rep --port 8080
"""

__version__ = "0.1.0"

from .errors import (
    Web2RepError,
    ValidationError,
    NoProvidersError,
    UpstreamUnavailableError,
    NetworkTimeoutError,
    HashMismatchError,
    SignatureInvalidError,
)
from .models import (
    Provider,
    Tier,
    GithubMetrics,
    GoogleMetrics,
    ProviderResult,
    AggregateResult,
    IdentityRequest,
    IdentityBinding,
    CacheEntry,
)
from .config import ServiceConfig, CacheConfig, UpstreamConfig, ApiConfig
from .cache import AchievementCache, RateLimitedNoop
from .service import AchievementService
from .metrics import MetricsCollector
from .api import AchievementAPI

__all__ = [
    # Errors
    "Web2RepError",
    "ValidationError",
    "NoProvidersError",
    "UpstreamUnavailableError",
    "NetworkTimeoutError",
    "HashMismatchError",
    "SignatureInvalidError",
    # Models
    "Provider",
    "Tier",
    "GithubMetrics",
    "GoogleMetrics",
    "ProviderResult",
    "AggregateResult",
    "IdentityRequest",
    "IdentityBinding",
    "CacheEntry",
    # Config
    "ServiceConfig",
    "CacheConfig",
    "UpstreamConfig",
    "ApiConfig",
    # Service
    "AchievementCache",
    "RateLimitedNoop",
    "AchievementService",
    # API & Metrics
    "AchievementAPI",
    "MetricsCollector",
]
