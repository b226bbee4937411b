"""
web2rep/tests/test_scoring.py

Unit tests for provider scoring:
- weighted, capped scores for GitHub and Google
- per-provider tier thresholds
- badge families
- seeded Google metrics
"""

import pytest

from web2rep.errors import ValidationError
from web2rep.models import GithubMetrics, GoogleMetrics, Provider, Tier
from web2rep.protocol.scoring import (
    calculate_github_badges,
    calculate_github_score,
    calculate_google_badges,
    calculate_google_score,
    calculate_tier,
    score_provider,
    seeded_google_metrics,
    string_hash32,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def active_github():
    """A busy GitHub account that hits several caps."""
    return GithubMetrics(
        total_commits=600,
        total_pull_requests=60,
        total_issues=30,
        public_repos=25,
        followers=60,
        following=5,
        account_age=2000,
        languages=("Python", "Go", "Rust", "C", "TypeScript", "Lua"),
    )


@pytest.fixture
def heavy_google():
    """A Google account that qualifies for every badge family."""
    return GoogleMetrics(
        account_age=4000,
        total_emails=60000,
        emails_per_day=60,
        total_files=1500,
        storage_used=12000,
        calendar_events=2500,
    )


# ============================================================================
# Score
# ============================================================================

class TestGithubScore:
    """Tests for the GitHub score formula."""

    def test_capped_sum(self, active_github):
        """Each sub-score is capped before summing."""
        # 1000 (capped) + 500 (capped) + 150 + 500 + 180 + 200 (capped)
        assert calculate_github_score(active_github) == 2530

    def test_empty_account_scores_zero(self):
        assert calculate_github_score(GithubMetrics()) == 0

    def test_maximum_score(self):
        """All caps reached gives the sum of the caps."""
        metrics = GithubMetrics(
            total_commits=10**6,
            total_pull_requests=10**6,
            total_issues=10**6,
            public_repos=10**6,
            followers=10**6,
            account_age=10**6,
        )
        assert calculate_github_score(metrics) == 3000

    def test_fractional_age_is_floored(self):
        """Account age contributes age/10, floored after summing."""
        assert calculate_github_score(GithubMetrics(account_age=15)) == 1

    def test_deterministic(self, active_github):
        assert score_provider(active_github) == score_provider(active_github)


class TestGoogleScore:
    """Tests for the Google score formula."""

    def test_maximum_score(self):
        metrics = GoogleMetrics(
            account_age=10**6,
            total_emails=10**8,
            total_files=10**6,
            storage_used=10**6,
            calendar_events=10**6,
        )
        assert calculate_google_score(metrics) == 2000

    def test_floor_applies_to_sum(self):
        """Fractional parts add up before flooring."""
        metrics = GoogleMetrics(account_age=5, total_emails=50)
        assert calculate_google_score(metrics) == 1

    def test_partial_caps(self, heavy_google):
        # 300 (capped) + 600 + 150 + 240 + 125
        assert calculate_google_score(heavy_google) == 1415


# ============================================================================
# Tiers
# ============================================================================

class TestProviderTiers:
    """Tests for per-provider tier thresholds (lower bound inclusive)."""

    @pytest.mark.parametrize("score,expected", [
        (0, Tier.BRONZE),
        (749, Tier.BRONZE),
        (750, Tier.SILVER),
        (1499, Tier.SILVER),
        (1500, Tier.GOLD),
        (2499, Tier.GOLD),
        (2500, Tier.PLATINUM),
    ])
    def test_github_boundaries(self, score, expected):
        assert calculate_tier(score, Provider.GITHUB) == expected

    @pytest.mark.parametrize("score,expected", [
        (0, Tier.BRONZE),
        (599, Tier.BRONZE),
        (600, Tier.SILVER),
        (999, Tier.SILVER),
        (1000, Tier.GOLD),
        (1599, Tier.GOLD),
        (1600, Tier.PLATINUM),
    ])
    def test_google_boundaries(self, score, expected):
        assert calculate_tier(score, "google") == expected

    def test_same_score_differs_per_provider(self):
        """Provider tables are independent."""
        assert calculate_tier(1000, Provider.GITHUB) == Tier.SILVER
        assert calculate_tier(1000, Provider.GOOGLE) == Tier.GOLD

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValidationError):
            calculate_tier(100, "twitter")


# ============================================================================
# Badges
# ============================================================================

class TestGithubBadges:
    """Tests for GitHub badge families."""

    def test_one_badge_per_family(self, active_github):
        assert calculate_github_badges(active_github) == [
            "Commit Expert",
            "PR Expert",
            "Repository Owner",
            "Multi-Language",
            "Influencer",
            "Senior (5+ years)",
        ]

    def test_highest_badge_only(self):
        """Reaching the top of a family does not also award lower badges."""
        badges = calculate_github_badges(GithubMetrics(total_commits=1000))
        assert badges == ["Commit Master"]

    def test_badges_use_raw_metrics_not_subscores(self):
        """Commit sub-score is capped at 1000 but badges still see 5000 commits."""
        badges = calculate_github_badges(GithubMetrics(total_commits=5000))
        assert "Commit Master" in badges

    def test_no_badges_below_thresholds(self):
        metrics = GithubMetrics(total_commits=99, total_pull_requests=9, public_repos=19,
                                followers=49, account_age=1094)
        assert calculate_github_badges(metrics) == []


class TestGoogleBadges:
    """Tests for Google badge families."""

    def test_all_families(self, heavy_google):
        assert calculate_google_badges(heavy_google) == [
            "Google Veteran (10+ years)",
            "Email Master",
            "Daily Communicator",
            "Storage Expert (10+ GB)",
            "File Organizer",
            "Schedule Master",
            "Productivity Champion",
        ]

    def test_productivity_requires_files_and_events(self):
        assert "Productivity Champion" not in calculate_google_badges(
            GoogleMetrics(total_files=500, calendar_events=499))
        assert "Productivity Champion" in calculate_google_badges(
            GoogleMetrics(total_files=500, calendar_events=500))


# ============================================================================
# score_provider
# ============================================================================

class TestScoreProvider:
    """Tests for the score_provider dispatcher."""

    def test_github_result(self, active_github):
        result = score_provider(active_github)
        assert result.provider == Provider.GITHUB
        assert result.score == 2530
        assert result.tier == Tier.PLATINUM
        assert result.raw_metrics["totalCommits"] == 600

    def test_google_result(self, heavy_google):
        result = score_provider(heavy_google)
        assert result.provider == Provider.GOOGLE
        assert result.score == 1415
        assert result.tier == Tier.GOLD
        assert result.raw_metrics["emailUsage"]["totalEmails"] == 60000

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            score_provider({"totalCommits": 5})

    def test_negative_metric_rejected(self):
        with pytest.raises(ValidationError):
            GithubMetrics(total_commits=-1)


# ============================================================================
# Seeded metrics
# ============================================================================

class TestSeededMetrics:
    """Tests for deterministic email-seeded Google metrics."""

    def test_string_hash_known_values(self):
        assert string_hash32("") == 0
        assert string_hash32("abc") == 96354
        assert string_hash32("hello") == 99162322

    def test_string_hash_wraps_to_int32(self):
        value = string_hash32("a-rather-long-email-address@example.com")
        assert -2**31 <= value < 2**31

    def test_deterministic(self):
        assert seeded_google_metrics("user@example.com") == seeded_google_metrics("user@example.com")

    def test_ranges(self):
        metrics = seeded_google_metrics("user@example.com")
        assert 300 <= metrics.account_age < 3300
        assert 1000 <= metrics.total_emails < 51000
        assert 50 <= metrics.total_files < 2050
        assert 500 <= metrics.storage_used < 15000
        assert 100 <= metrics.calendar_events < 5100
        assert metrics.emails_per_day == metrics.total_emails // metrics.account_age

    def test_seed_derivation(self):
        seed = abs(string_hash32("abc"))
        metrics = seeded_google_metrics("abc")
        assert metrics.account_age == 300 + seed % 3000
        assert metrics.total_emails == 1000 + seed % 50000

    def test_real_creation_date_overrides_age(self):
        now = 1_700_000_000.0
        created = "2023-01-01T00:00:00Z"
        metrics = seeded_google_metrics("abc", account_created=created, now=now)
        assert metrics.account_age == int((now - 1672531200) // 86400)

    def test_empty_email_rejected(self):
        with pytest.raises(ValidationError):
            seeded_google_metrics("")
