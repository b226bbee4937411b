"""
web2rep/protocol/aggregator.py

Achievement Aggregator.

Combines ProviderResults into one AggregateResult:
- total score is the plain sum of provider scores (no aggregate cap)
- overall tier uses the global thresholds, not the per-provider ones
- badges are the union of provider badges, plus cross-platform bonuses when
  at least two distinct providers contributed
- provider order is the input order

The result is committed (hashed) before it is returned.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config import (
    CROSS_PLATFORM_BADGE_THRESHOLDS,
    MIN_PROVIDERS_FOR_BONUS,
    MULTI_PLATFORM_BADGE,
    OVERALL_TIER_THRESHOLDS,
)
from ..errors import NoProvidersError
from ..models import AggregateResult, Provider, ProviderResult, Tier
from .commitment import commit, day_index
from .scoring import tier_for_score

logger = logging.getLogger(__name__)


def calculate_overall_tier(total_score: int) -> Tier:
    """Aggregate tier from the global threshold table."""
    return tier_for_score(total_score, OVERALL_TIER_THRESHOLDS)


def cross_platform_badges(results: Sequence[ProviderResult]) -> List[str]:
    """
    Bonus badges for users with several linked platforms.

    Returns nothing unless at least two distinct providers are present. Then
    the multi-platform badge plus the highest score-gated bonus reached.
    """
    distinct = {r.provider for r in results}
    if len(distinct) < MIN_PROVIDERS_FOR_BONUS:
        return []

    badges = [MULTI_PLATFORM_BADGE]
    total = sum(r.score for r in results)
    for name, minimum in CROSS_PLATFORM_BADGE_THRESHOLDS:
        if total >= minimum:
            badges.append(name)
            break
    return badges


def combine_badges(results: Sequence[ProviderResult]) -> List[str]:
    """Deduplicated union of provider badges followed by bonus badges."""
    combined: List[str] = []
    seen = set()
    for result in results:
        for badge in result.badges:
            if badge not in seen:
                seen.add(badge)
                combined.append(badge)
    for badge in cross_platform_badges(results):
        if badge not in seen:
            seen.add(badge)
            combined.append(badge)
    return combined


def build_metadata(results: Sequence[ProviderResult], now: float) -> Dict[str, Any]:
    """Headline figures for display. Not part of the achievement hash."""
    metadata: Dict[str, Any] = {
        'lastUpdated': datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
    }
    for result in results:
        data = result.raw_metrics
        if result.provider == Provider.GITHUB:
            metadata['githubCommits'] = data.get('totalCommits')
            metadata['githubRepos'] = data.get('totalRepositories')
        elif result.provider == Provider.GOOGLE:
            metadata['googleAccountAge'] = data.get('accountAge')
            metadata['googleEmailCount'] = (data.get('emailUsage') or {}).get('totalEmails')
    return metadata


def aggregate(
    results: Sequence[ProviderResult],
    day: Optional[int] = None,
    clock: Optional[Callable[[], float]] = None,
) -> AggregateResult:
    """
    Aggregate provider results and commit the hash.

    Args:
        results: Non-empty ordered ProviderResults
        day: Day index to commit to (defaults to the clock's current day)
        clock: Time source (defaults to time.time)

    Returns:
        Committed AggregateResult

    Raises:
        NoProvidersError: results is empty
    """
    results = list(results)
    if not results:
        raise NoProvidersError()

    now = (clock or time.time)()
    if day is None:
        day = day_index(now)

    total_score = sum(r.score for r in results)
    aggregate_result = AggregateResult(
        total_score=total_score,
        overall_tier=calculate_overall_tier(total_score),
        providers=tuple(results),
        combined_badges=tuple(combine_badges(results)),
        metadata=build_metadata(results, now),
    )

    logger.info(
        f"Aggregated {len(results)} providers: score={total_score} "
        f"tier={aggregate_result.overall_tier.value}"
    )
    return commit(aggregate_result, day)
