"""
web2rep/config.py

Configuration constants and data classes for web2rep.

Threshold tables live here as separate named constant sets. The per-provider
tier table, the aggregate tier table and the cross-platform bonus table are
independent and must not be merged.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


# Seconds in one commitment day (achievement hashes have daily resolution)
SECONDS_PER_DAY = 86400

# Cache & rate limit
CACHE_TTL_SECONDS = 5 * 60          # 5 minutes
RATE_LIMIT_INTERVAL_SECONDS = 2.0   # minimum gap between upstream calls

# Upstream defaults
DEFAULT_UPSTREAM_URL = "http://localhost:3000"
DEFAULT_UPSTREAM_TIMEOUT = 10.0     # seconds per provider fetch
GITHUB_API_URL = "https://api.github.com"
GITHUB_MAX_REPOS = 10               # owned repos inspected per user

# API server defaults
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8080

# =============================================================================
# PER-PROVIDER TIER THRESHOLDS
# =============================================================================
# (tier name, minimum score), highest first. Bronze is the default.

GITHUB_TIER_THRESHOLDS: List[Tuple[str, int]] = [
    ("Platinum", 2500),
    ("Gold", 1500),
    ("Silver", 750),
]

GOOGLE_TIER_THRESHOLDS: List[Tuple[str, int]] = [
    ("Platinum", 1600),
    ("Gold", 1000),
    ("Silver", 600),
]

# =============================================================================
# AGGREGATE TIER THRESHOLDS
# =============================================================================

OVERALL_TIER_THRESHOLDS: List[Tuple[str, int]] = [
    ("Platinum", 3500),
    ("Gold", 2000),
    ("Silver", 1000),
]

# =============================================================================
# CROSS-PLATFORM BONUS BADGES
# =============================================================================

MULTI_PLATFORM_BADGE = "Multi-Platform User"
MIN_PROVIDERS_FOR_BONUS = 2

CROSS_PLATFORM_BADGE_THRESHOLDS: List[Tuple[str, int]] = [
    ("Web2 Champion", 3000),
    ("Web2 Expert", 2000),
    ("Web2 Achiever", 1000),
]

# =============================================================================
# SCORE WEIGHTS AND CAPS
# =============================================================================
# metric -> (divisor or multiplier, cap). Multipliers are applied as
# value * weight, divisors as value / weight.

GITHUB_SCORE_WEIGHTS: Dict[str, Tuple[float, int]] = {
    "total_commits": (2, 1000),
    "total_pull_requests": (10, 500),
    "total_issues": (5, 300),
    "public_repos": (20, 600),
    "followers": (3, 400),
}
GITHUB_AGE_DIVISOR = 10
GITHUB_AGE_CAP = 200

GOOGLE_SCORE_DIVISORS: Dict[str, Tuple[float, int]] = {
    "account_age": (10, 300),
    "total_emails": (100, 800),
    "total_files": (10, 400),
    "storage_used": (50, 300),
    "calendar_events": (20, 200),
}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass
class CacheConfig:
    """Cache and rate limiting settings."""

    ttl: float = CACHE_TTL_SECONDS
    min_interval: float = RATE_LIMIT_INTERVAL_SECONDS


@dataclass
class UpstreamConfig:
    """Settings for upstream metric sources."""

    # Base URL of the per-provider metrics endpoints
    base_url: str = DEFAULT_UPSTREAM_URL

    # GitHub REST API
    github_api_url: str = GITHUB_API_URL
    github_token: Optional[str] = None

    # Per-provider fetch deadline
    timeout: float = DEFAULT_UPSTREAM_TIMEOUT

    # Fetch providers concurrently (order is preserved either way)
    concurrent: bool = False

    # "direct": GitHub REST API + seeded Google metrics
    # "http":   per-provider metrics endpoints under base_url
    source_mode: str = "direct"


@dataclass
class ApiConfig:
    """Settings for the aggregation HTTP endpoint."""

    host: str = DEFAULT_API_HOST
    port: int = DEFAULT_API_PORT
    enable_metrics: bool = True


@dataclass
class ServiceConfig:
    """
    Complete configuration for a web2rep process.

    Usage:
        config = ServiceConfig.from_env()
        service = AchievementService.from_config(config)
    """

    cache: CacheConfig = field(default_factory=CacheConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Build configuration from WEB2REP_* environment variables."""
        return cls(
            cache=CacheConfig(
                ttl=_env_float("WEB2REP_CACHE_TTL", CACHE_TTL_SECONDS),
                min_interval=_env_float("WEB2REP_RATE_LIMIT_INTERVAL", RATE_LIMIT_INTERVAL_SECONDS),
            ),
            upstream=UpstreamConfig(
                base_url=os.environ.get("WEB2REP_UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
                github_api_url=os.environ.get("WEB2REP_GITHUB_API_URL", GITHUB_API_URL),
                github_token=os.environ.get("WEB2REP_GITHUB_TOKEN") or None,
                timeout=_env_float("WEB2REP_UPSTREAM_TIMEOUT", DEFAULT_UPSTREAM_TIMEOUT),
                concurrent=os.environ.get("WEB2REP_CONCURRENT_FETCH", "").lower() in ("1", "true", "yes"),
                source_mode=os.environ.get("WEB2REP_SOURCE_MODE", "direct").strip().lower(),
            ),
            api=ApiConfig(
                host=os.environ.get("WEB2REP_API_HOST", DEFAULT_API_HOST),
                port=_env_int("WEB2REP_API_PORT", DEFAULT_API_PORT),
                enable_metrics=os.environ.get("WEB2REP_ENABLE_METRICS", "1").lower() not in ("0", "false", "no"),
            ),
        )
