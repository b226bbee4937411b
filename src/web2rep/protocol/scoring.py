"""
web2rep/protocol/scoring.py

Provider Score Calculator.

Turns raw per-platform usage metrics into a ProviderResult:

Score:
    Weighted sub-scores, each capped on its own, then summed and floored.
    The caps bound the influence of any single metric.

    GitHub                         Google
    commits * 2      (max 1000)    account age / 10  (max 300)
    pull requests*10 (max 500)     emails / 100      (max 800)
    issues * 5       (max 300)     files / 10        (max 400)
    public repos*20  (max 600)     storage MB / 50   (max 300)
    followers * 3    (max 400)     calendar / 20     (max 200)
    account age/10   (max 200)

Tier:
    Per-provider threshold tables (see config). Lower bounds are inclusive.

Badges:
    Checked against raw metrics, not sub-scores. Within one family only the
    highest qualifying badge is emitted.

Everything here is pure and deterministic; achievement hashes depend on it.
"""

import logging
import math
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..config import (
    GITHUB_AGE_CAP,
    GITHUB_AGE_DIVISOR,
    GITHUB_SCORE_WEIGHTS,
    GITHUB_TIER_THRESHOLDS,
    GOOGLE_SCORE_DIVISORS,
    GOOGLE_TIER_THRESHOLDS,
    SECONDS_PER_DAY,
)
from ..errors import ValidationError
from ..models import GithubMetrics, GoogleMetrics, Provider, ProviderMetrics, ProviderResult, Tier

logger = logging.getLogger(__name__)


# Badge families: (minimum, badge name), highest first. First match wins.
GITHUB_COMMIT_BADGES = [(1000, "Commit Master"), (500, "Commit Expert"), (100, "Regular Contributor")]
GITHUB_PR_BADGES = [(100, "PR Champion"), (50, "PR Expert"), (10, "Code Reviewer")]
GITHUB_REPO_BADGES = [(50, "Project Builder"), (20, "Repository Owner")]
GITHUB_LANGUAGE_BADGES = [(10, "Polyglot"), (5, "Multi-Language")]
GITHUB_FOLLOWER_BADGES = [(100, "Community Leader"), (50, "Influencer")]
GITHUB_AGE_BADGES = [
    (2555, "Veteran (7+ years)"),
    (1825, "Senior (5+ years)"),
    (1095, "Experienced (3+ years)"),
]

GOOGLE_AGE_BADGES = [
    (3650, "Google Veteran (10+ years)"),
    (1825, "Google Senior (5+ years)"),
    (1095, "Google Regular (3+ years)"),
]
GOOGLE_EMAIL_BADGES = [(50000, "Email Master"), (20000, "Heavy Email User"), (5000, "Active Communicator")]
GOOGLE_DAILY_EMAIL_BADGE = (50, "Daily Communicator")
GOOGLE_STORAGE_BADGES = [(10000, "Storage Expert (10+ GB)"), (5000, "Drive Power User (5+ GB)")]
GOOGLE_FILE_BADGE = (1000, "File Organizer")
GOOGLE_CALENDAR_BADGES = [(2000, "Schedule Master"), (1000, "Calendar Pro")]
GOOGLE_PRODUCTIVITY_BADGE = "Productivity Champion"
GOOGLE_PRODUCTIVITY_MIN_FILES = 500
GOOGLE_PRODUCTIVITY_MIN_EVENTS = 500

PROVIDER_TIER_THRESHOLDS: Dict[Provider, List[Tuple[str, int]]] = {
    Provider.GITHUB: GITHUB_TIER_THRESHOLDS,
    Provider.GOOGLE: GOOGLE_TIER_THRESHOLDS,
}


def tier_for_score(score: float, thresholds: Sequence[Tuple[str, int]]) -> Tier:
    """
    Highest tier whose threshold is <= score.

    Args:
        score: Score to classify
        thresholds: (tier name, minimum) pairs, highest first

    Returns:
        Matching Tier, Bronze when no threshold is met
    """
    for name, minimum in thresholds:
        if score >= minimum:
            return Tier.parse(name)
    return Tier.BRONZE


def calculate_tier(score: float, provider: Union[str, Provider]) -> Tier:
    """Per-provider tier. Not for aggregate scores."""
    return tier_for_score(score, PROVIDER_TIER_THRESHOLDS[Provider.parse(provider)])


def _first_badge(value: float, family: Sequence[Tuple[int, str]]) -> Optional[str]:
    for minimum, name in family:
        if value >= minimum:
            return name
    return None


# =============================================================================
# GITHUB
# =============================================================================

def calculate_github_score(metrics: GithubMetrics) -> int:
    """Caps-then-sum GitHub score."""
    total = 0.0
    for name, (weight, cap) in GITHUB_SCORE_WEIGHTS.items():
        total += min(getattr(metrics, name) * weight, cap)
    total += min(metrics.account_age / GITHUB_AGE_DIVISOR, GITHUB_AGE_CAP)
    return int(math.floor(total))


def calculate_github_badges(metrics: GithubMetrics) -> List[str]:
    badges = []
    checks = [
        (metrics.total_commits, GITHUB_COMMIT_BADGES),
        (metrics.total_pull_requests, GITHUB_PR_BADGES),
        (metrics.public_repos, GITHUB_REPO_BADGES),
        (len(metrics.languages), GITHUB_LANGUAGE_BADGES),
        (metrics.followers, GITHUB_FOLLOWER_BADGES),
        (metrics.account_age, GITHUB_AGE_BADGES),
    ]
    for value, family in checks:
        badge = _first_badge(value, family)
        if badge:
            badges.append(badge)
    return badges


# =============================================================================
# GOOGLE
# =============================================================================

def calculate_google_score(metrics: GoogleMetrics) -> int:
    """Caps-then-sum Google score."""
    total = 0.0
    for name, (divisor, cap) in GOOGLE_SCORE_DIVISORS.items():
        total += min(getattr(metrics, name) / divisor, cap)
    return int(math.floor(total))


def calculate_google_badges(metrics: GoogleMetrics) -> List[str]:
    badges = []

    badge = _first_badge(metrics.account_age, GOOGLE_AGE_BADGES)
    if badge:
        badges.append(badge)

    badge = _first_badge(metrics.total_emails, GOOGLE_EMAIL_BADGES)
    if badge:
        badges.append(badge)

    if metrics.emails_per_day >= GOOGLE_DAILY_EMAIL_BADGE[0]:
        badges.append(GOOGLE_DAILY_EMAIL_BADGE[1])

    badge = _first_badge(metrics.storage_used, GOOGLE_STORAGE_BADGES)
    if badge:
        badges.append(badge)

    if metrics.total_files >= GOOGLE_FILE_BADGE[0]:
        badges.append(GOOGLE_FILE_BADGE[1])

    badge = _first_badge(metrics.calendar_events, GOOGLE_CALENDAR_BADGES)
    if badge:
        badges.append(badge)

    if (metrics.total_files >= GOOGLE_PRODUCTIVITY_MIN_FILES
            and metrics.calendar_events >= GOOGLE_PRODUCTIVITY_MIN_EVENTS):
        badges.append(GOOGLE_PRODUCTIVITY_BADGE)

    return badges


_CALCULATORS: Dict[Provider, Tuple[Callable, Callable]] = {
    Provider.GITHUB: (calculate_github_score, calculate_github_badges),
    Provider.GOOGLE: (calculate_google_score, calculate_google_badges),
}


def score_provider(metrics: ProviderMetrics) -> ProviderResult:
    """
    Score one platform's raw metrics.

    Args:
        metrics: GithubMetrics or GoogleMetrics

    Returns:
        ProviderResult with score, tier, badges and the raw metrics

    Raises:
        ValidationError: metrics is not a known variant
    """
    kind = getattr(type(metrics), "kind", None)
    if kind not in _CALCULATORS:
        raise ValidationError(f"Unsupported metrics type: {type(metrics).__name__}")

    score_fn, badge_fn = _CALCULATORS[kind]
    score = score_fn(metrics)
    return ProviderResult(
        provider=kind,
        score=score,
        tier=calculate_tier(score, kind),
        badges=tuple(badge_fn(metrics)),
        raw_metrics=metrics.to_dict(),
    )


# =============================================================================
# SEEDED METRICS
# =============================================================================
# Stand-in for real Google data: metrics derived from a hash of the email.

def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_hash32(text: str) -> int:
    """Signed 32-bit `h = h * 31 + c` over UTF-16 code units."""
    h = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = _to_int32((h << 5) - h + unit)
    return h


def _parse_created(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        created = value
    else:
        created = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


def seeded_google_metrics(
    email: str,
    account_created: Optional[Union[str, datetime]] = None,
    now: Optional[float] = None,
) -> GoogleMetrics:
    """
    Deterministic Google metrics for an email address.

    Args:
        email: Account email (the seed)
        account_created: Real creation date, overrides the seeded age
        now: Reference Unix time for account age (defaults to now)

    Returns:
        GoogleMetrics
    """
    if not email:
        raise ValidationError("Email is required")

    seed = abs(string_hash32(email))

    if account_created is not None:
        now = time.time() if now is None else now
        created = _parse_created(account_created).timestamp()
        account_age = max(int(math.floor((now - created) / SECONDS_PER_DAY)), 0)
    else:
        account_age = 300 + (seed % 3000)

    total_emails = 1000 + (seed % 50000)
    return GoogleMetrics(
        account_age=account_age,
        total_emails=total_emails,
        emails_per_day=total_emails // max(account_age, 1),
        total_files=50 + (seed % 2000),
        storage_used=500 + (seed % 14500),
        calendar_events=100 + (seed % 5000),
    )
