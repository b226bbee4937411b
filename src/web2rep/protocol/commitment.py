"""
web2rep/protocol/commitment.py

Achievement Hash Committer.

Canonical form (fixed key order, compact JSON, UTF-8):

    {"totalScore":2850,"overallTier":"Gold",
     "providers":[{"provider":"github","score":1950,"tier":"Gold"}, ...],
     "badges":[...sorted...],
     "timestamp":20380}

Providers keep their existing order; badges are sorted. `timestamp` is the
Unix day index, so the same content hashes identically all day and
differently the next day. The digest is SHA-256 rendered as lowercase hex.
"""

import hashlib
import json
import logging
import time
from dataclasses import replace
from typing import Any, Dict, Iterable, Optional

from ..config import SECONDS_PER_DAY
from ..errors import HashMismatchError
from ..models import AggregateResult, ProviderResult, Tier

logger = logging.getLogger(__name__)


def day_index(timestamp: Optional[float] = None) -> int:
    """Whole days since the Unix epoch."""
    if timestamp is None:
        timestamp = time.time()
    return int(timestamp // SECONDS_PER_DAY)


def canonical_record(
    total_score: int,
    overall_tier: Tier,
    providers: Iterable[ProviderResult],
    badges: Iterable[str],
    day: int,
) -> Dict[str, Any]:
    """Build the fixed-shape record that gets hashed."""
    return {
        "totalScore": total_score,
        "overallTier": overall_tier.value,
        "providers": [
            {"provider": p.provider.value, "score": p.score, "tier": p.tier.value}
            for p in providers
        ],
        "badges": sorted(set(badges)),
        "timestamp": day,
    }


def canonical_bytes(record: Dict[str, Any]) -> bytes:
    return json.dumps(record, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_achievement_hash(aggregate: AggregateResult, day: int) -> str:
    """
    Hash an aggregate for a given day.

    Only total score, overall tier, provider/score/tier triples, the sorted
    badge set and the day index are read. The aggregate's own hash, its
    generated day and its metadata never influence the result.
    """
    record = canonical_record(
        aggregate.total_score,
        aggregate.overall_tier,
        aggregate.providers,
        aggregate.combined_badges,
        day,
    )
    return hashlib.sha256(canonical_bytes(record)).hexdigest()


def commit(aggregate: AggregateResult, day: Optional[int] = None) -> AggregateResult:
    """
    Attach the achievement hash to an aggregate.

    Args:
        aggregate: Aggregate without (or with a stale) hash
        day: Day index to commit to (defaults to today)

    Returns:
        New AggregateResult with achievement_hash and generated_at_day set
    """
    if day is None:
        day = day_index()
    digest = compute_achievement_hash(aggregate, day)
    logger.debug(f"Committed aggregate score={aggregate.total_score} day={day} hash={digest[:16]}...")
    return replace(aggregate, achievement_hash=digest, generated_at_day=day)


def verify_achievement_hash(
    aggregate: AggregateResult,
    claimed_hash: str,
    day: int,
) -> bool:
    """
    Verify a claimed hash against the recomputed one.

    Args:
        aggregate: The aggregate content
        claimed_hash: Hash being verified (e.g. read from chain)
        day: Day index the claim was committed on

    Returns:
        True if the hashes match

    Raises:
        HashMismatchError: Recomputed hash differs from the claim
    """
    expected = compute_achievement_hash(aggregate, day)
    if claimed_hash != expected:
        logger.warning(f"Achievement hash mismatch for day {day}")
        raise HashMismatchError(expected=expected, actual=claimed_hash)
    return True
