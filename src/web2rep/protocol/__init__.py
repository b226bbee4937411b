"""
web2rep.protocol - Scoring, aggregation, commitment and binding rules.

Everything in this package is synchronous and free of I/O.
"""

from .scoring import (
    calculate_tier,
    calculate_github_score,
    calculate_github_badges,
    calculate_google_score,
    calculate_google_badges,
    score_provider,
    seeded_google_metrics,
)
from .aggregator import (
    aggregate,
    calculate_overall_tier,
    cross_platform_badges,
)
from .commitment import (
    day_index,
    compute_achievement_hash,
    commit,
    verify_achievement_hash,
)
from .binding import (
    BindingState,
    IdentityBindingSession,
    IdentityData,
    SignatureVerifier,
    WalletSigner,
    IdentityRegistryReader,
    build_binding_message,
    can_link,
    generate_identity_hash,
    verify_binding,
)

__all__ = [
    # Scoring
    "calculate_tier",
    "calculate_github_score",
    "calculate_github_badges",
    "calculate_google_score",
    "calculate_google_badges",
    "score_provider",
    "seeded_google_metrics",
    # Aggregation
    "aggregate",
    "calculate_overall_tier",
    "cross_platform_badges",
    # Commitment
    "day_index",
    "compute_achievement_hash",
    "commit",
    "verify_achievement_hash",
    # Binding
    "BindingState",
    "IdentityBindingSession",
    "IdentityData",
    "SignatureVerifier",
    "WalletSigner",
    "IdentityRegistryReader",
    "build_binding_message",
    "can_link",
    "generate_identity_hash",
    "verify_binding",
]
