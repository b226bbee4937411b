"""
web2rep/models.py

Data model shared by the scoring, aggregation, commitment, binding and cache
layers.

Provider metrics are a closed tagged variant: each metrics class carries a
`kind` naming its Provider, and only the kinds listed in METRICS_TYPES are
accepted. ProviderResult and AggregateResult are frozen once built, nested
metrics and metadata included.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from .errors import ValidationError


class Provider(Enum):
    """Platforms whose usage metrics feed into scoring."""
    GITHUB = "github"
    GOOGLE = "google"

    @classmethod
    def parse(cls, value: Union[str, "Provider"]) -> "Provider":
        """Parse a provider name, rejecting unknown kinds."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown provider: {value!r}") from None


class Tier(Enum):
    """Reputation bands, ordered Bronze < Silver < Gold < Platinum."""
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @classmethod
    def parse(cls, value: Union[str, "Tier"]) -> "Tier":
        if isinstance(value, cls):
            return value
        for tier in cls:
            if tier.value.lower() == str(value).strip().lower():
                return tier
        raise ValidationError(f"Unknown tier: {value!r}")


_TIER_ORDER = [Tier.BRONZE, Tier.SILVER, Tier.GOLD, Tier.PLATINUM]


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate while keeping first-seen order."""
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return tuple(out)


def _freeze(value: Any) -> Any:
    """Read-only copy: mappings become MappingProxyType, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    """Plain dicts and lists again, for JSON output."""
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


def _require_non_negative(kind: str, values: Dict[str, Any]) -> None:
    for name, value in values.items():
        if value < 0:
            raise ValidationError(f"{kind} metric {name} must be non-negative, got {value}")


# =============================================================================
# PROVIDER METRICS (tagged variants)
# =============================================================================

@dataclass(frozen=True)
class GithubMetrics:
    """Raw GitHub usage metrics."""
    kind: ClassVar[Provider] = Provider.GITHUB

    total_commits: int = 0
    total_pull_requests: int = 0
    total_issues: int = 0
    public_repos: int = 0
    followers: int = 0
    following: int = 0
    account_age: int = 0  # days
    languages: Tuple[str, ...] = ()

    def __post_init__(self):
        _require_non_negative("github", {
            "total_commits": self.total_commits,
            "total_pull_requests": self.total_pull_requests,
            "total_issues": self.total_issues,
            "public_repos": self.public_repos,
            "followers": self.followers,
            "following": self.following,
            "account_age": self.account_age,
        })
        object.__setattr__(self, "languages", _unique(self.languages))

    def to_dict(self) -> dict:
        return {
            'totalCommits': self.total_commits,
            'totalPullRequests': self.total_pull_requests,
            'totalIssues': self.total_issues,
            'totalRepositories': self.public_repos,
            'languages': list(self.languages),
            'accountAge': self.account_age,
            'publicRepos': self.public_repos,
            'followers': self.followers,
            'following': self.following,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GithubMetrics":
        return cls(
            total_commits=int(data.get('totalCommits', 0)),
            total_pull_requests=int(data.get('totalPullRequests', 0)),
            total_issues=int(data.get('totalIssues', 0)),
            public_repos=int(data.get('publicRepos', data.get('totalRepositories', 0))),
            followers=int(data.get('followers', 0)),
            following=int(data.get('following', 0)),
            account_age=int(data.get('accountAge', 0)),
            languages=tuple(data.get('languages', ())),
        )


@dataclass(frozen=True)
class GoogleMetrics:
    """Raw Google account usage metrics."""
    kind: ClassVar[Provider] = Provider.GOOGLE

    account_age: int = 0  # days
    total_emails: int = 0
    emails_per_day: int = 0
    total_files: int = 0
    storage_used: int = 0  # MB
    calendar_events: int = 0

    def __post_init__(self):
        _require_non_negative("google", {
            "account_age": self.account_age,
            "total_emails": self.total_emails,
            "emails_per_day": self.emails_per_day,
            "total_files": self.total_files,
            "storage_used": self.storage_used,
            "calendar_events": self.calendar_events,
        })

    def to_dict(self) -> dict:
        return {
            'accountAge': self.account_age,
            'emailUsage': {
                'totalEmails': self.total_emails,
                'emailsPerDay': self.emails_per_day,
            },
            'driveUsage': {
                'totalFiles': self.total_files,
                'storageUsed': self.storage_used,
            },
            'calendarEvents': self.calendar_events,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GoogleMetrics":
        email = data.get('emailUsage') or {}
        drive = data.get('driveUsage') or {}
        return cls(
            account_age=int(data.get('accountAge', 0)),
            total_emails=int(email.get('totalEmails', 0)),
            emails_per_day=int(email.get('emailsPerDay', 0)),
            total_files=int(drive.get('totalFiles', 0)),
            storage_used=int(drive.get('storageUsed', 0)),
            calendar_events=int(data.get('calendarEvents', 0)),
        )


ProviderMetrics = Union[GithubMetrics, GoogleMetrics]

METRICS_TYPES: Dict[Provider, Type] = {
    Provider.GITHUB: GithubMetrics,
    Provider.GOOGLE: GoogleMetrics,
}


def metrics_from_dict(provider: Union[str, Provider], data: Mapping[str, Any]) -> ProviderMetrics:
    """Build the metrics variant for a provider from its wire JSON."""
    kind = Provider.parse(provider)
    try:
        return METRICS_TYPES[kind].from_dict(data)
    except (TypeError, ValueError) as e:
        if isinstance(e, ValidationError):
            raise
        raise ValidationError(f"Malformed {kind.value} metrics: {e}") from e


# =============================================================================
# RESULTS
# =============================================================================

@dataclass(frozen=True)
class ProviderResult:
    """Score, tier and badges for one platform. Immutable once produced."""
    provider: Provider
    score: int
    tier: Tier
    badges: Tuple[str, ...] = ()
    raw_metrics: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.provider, Provider):
            object.__setattr__(self, "provider", Provider.parse(self.provider))
        if not isinstance(self.tier, Tier):
            object.__setattr__(self, "tier", Tier.parse(self.tier))
        if (isinstance(self.score, bool) or not isinstance(self.score, (int, float))
                or int(self.score) != self.score or self.score < 0):
            raise ValidationError(f"Provider score must be a non-negative integer, got {self.score!r}")
        object.__setattr__(self, "score", int(self.score))
        object.__setattr__(self, "badges", _unique(self.badges))
        object.__setattr__(self, "raw_metrics", _freeze(self.raw_metrics))

    def to_dict(self) -> dict:
        return {
            'provider': self.provider.value,
            'data': _thaw(self.raw_metrics),
            'achievements': {
                'tier': self.tier.value,
                'badges': list(self.badges),
                'score': self.score,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderResult":
        try:
            achievements = data['achievements']
            return cls(
                provider=Provider.parse(data['provider']),
                score=achievements['score'],
                tier=Tier.parse(achievements['tier']),
                badges=tuple(achievements.get('badges', ())),
                raw_metrics=data.get('data') or {},
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed provider result: {e}") from e


@dataclass(frozen=True)
class AggregateResult:
    """Combined achievements across providers, committed to a content hash."""
    total_score: int
    overall_tier: Tier
    providers: Tuple[ProviderResult, ...]
    combined_badges: Tuple[str, ...]
    achievement_hash: str = ""
    generated_at_day: int = 0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "providers", tuple(self.providers))
        object.__setattr__(self, "combined_badges", _unique(self.combined_badges))
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    @property
    def provider_kinds(self) -> List[Provider]:
        return [p.provider for p in self.providers]

    def to_dict(self) -> dict:
        return {
            'totalScore': self.total_score,
            'overallTier': self.overall_tier.value,
            'providers': [p.to_dict() for p in self.providers],
            'combinedBadges': list(self.combined_badges),
            'metadata': _thaw(self.metadata),
            'achievementHash': self.achievement_hash,
            'generatedAtDay': self.generated_at_day,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AggregateResult":
        try:
            return cls(
                total_score=int(data['totalScore']),
                overall_tier=Tier.parse(data['overallTier']),
                providers=tuple(ProviderResult.from_dict(p) for p in data['providers']),
                combined_badges=tuple(data.get('combinedBadges', ())),
                achievement_hash=data.get('achievementHash', ''),
                generated_at_day=int(data.get('generatedAtDay', 0)),
                metadata=data.get('metadata') or {},
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed aggregate result: {e}") from e


# =============================================================================
# REQUESTS, BINDINGS, CACHE
# =============================================================================

@dataclass(frozen=True)
class IdentityRequest:
    """A provider plus the identity key (username or email) to fetch."""
    provider: Provider
    identity_key: str

    def __post_init__(self):
        object.__setattr__(self, "provider", Provider.parse(self.provider))
        key = (self.identity_key or "").strip() if isinstance(self.identity_key, str) else ""
        if not key:
            raise ValidationError(f"Identity key required for provider {self.provider.value}")
        object.__setattr__(self, "identity_key", key)

    @property
    def cache_key(self) -> str:
        return f"{self.provider.value}-{self.identity_key}"

    def to_dict(self) -> dict:
        key_field = 'username' if self.provider == Provider.GITHUB else 'email'
        return {'provider': self.provider.value, key_field: self.identity_key}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IdentityRequest":
        if not isinstance(data, Mapping):
            raise ValidationError("Identity must be an object")
        key = data.get('identityKey') or data.get('username') or data.get('email')
        return cls(provider=Provider.parse(data.get('provider', '')), identity_key=key or "")


@dataclass(frozen=True)
class IdentityBinding:
    """Snapshot of an identity-to-wallet binding. Never holds a signature."""
    identity_hash: Optional[str]
    wallet_address: Optional[str]
    binding_message: Optional[str]
    linked: bool = False

    def to_dict(self) -> dict:
        return {
            'identityHash': self.identity_hash,
            'walletAddress': self.wallet_address,
            'bindingMessage': self.binding_message,
            'linked': self.linked,
        }


@dataclass
class CacheEntry:
    """A cached aggregate. Owned by AchievementCache."""
    key: str
    value: AggregateResult
    created_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at
