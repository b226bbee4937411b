"""
web2rep/tests/test_models.py

Unit tests for the shared data model.
"""

import json

import pytest

from web2rep.errors import ValidationError
from web2rep.models import (
    AggregateResult,
    CacheEntry,
    GoogleMetrics,
    IdentityRequest,
    Provider,
    ProviderResult,
    Tier,
    metrics_from_dict,
)


class TestEnums:
    """Tests for Provider and Tier."""

    def test_provider_parse(self):
        assert Provider.parse("GitHub") == Provider.GITHUB
        assert Provider.parse(Provider.GOOGLE) == Provider.GOOGLE
        with pytest.raises(ValidationError):
            Provider.parse("twitter")

    def test_tier_order(self):
        assert Tier.BRONZE.rank < Tier.SILVER.rank < Tier.GOLD.rank < Tier.PLATINUM.rank

    def test_tier_parse(self):
        assert Tier.parse("gold") == Tier.GOLD
        with pytest.raises(ValidationError):
            Tier.parse("Diamond")


class TestProviderResult:
    """Tests for ProviderResult validation."""

    def test_badges_deduplicated_in_order(self):
        result = ProviderResult(Provider.GITHUB, 10, Tier.BRONZE, ("b", "a", "b"))
        assert result.badges == ("b", "a")

    @pytest.mark.parametrize("score", [-1, 1.5, "100", True])
    def test_invalid_score(self, score):
        with pytest.raises(ValidationError):
            ProviderResult(Provider.GITHUB, score, Tier.BRONZE)

    def test_raw_metrics_read_only(self):
        result = ProviderResult(Provider.GITHUB, 10, Tier.BRONZE, raw_metrics={"a": 1})
        with pytest.raises(TypeError):
            result.raw_metrics["a"] = 2

    def test_wire_format(self):
        result = ProviderResult(Provider.GOOGLE, 900, Tier.SILVER, ("x",), {"accountAge": 1})
        assert result.to_dict() == {
            "provider": "google",
            "data": {"accountAge": 1},
            "achievements": {"tier": "Silver", "badges": ["x"], "score": 900},
        }
        assert ProviderResult.from_dict(result.to_dict()) == result

    def test_malformed_dict(self):
        with pytest.raises(ValidationError):
            ProviderResult.from_dict({"provider": "github"})

    def test_nested_raw_metrics_read_only(self):
        result = ProviderResult(Provider.GOOGLE, 10, Tier.BRONZE, raw_metrics={
            "emailUsage": {"totalEmails": 5},
            "contributions": [{"repository": "a"}],
        })
        with pytest.raises(TypeError):
            result.raw_metrics["emailUsage"]["totalEmails"] = 999
        with pytest.raises(TypeError):
            result.raw_metrics["contributions"][0]["repository"] = "b"
        assert isinstance(result.raw_metrics["contributions"], tuple)
        assert result.raw_metrics["emailUsage"]["totalEmails"] == 5

    def test_to_dict_is_plain_json(self):
        result = ProviderResult(Provider.GOOGLE, 10, Tier.BRONZE, raw_metrics={
            "emailUsage": {"totalEmails": 5},
            "contributions": [{"repository": "a"}],
        })
        data = result.to_dict()["data"]
        assert data == {"emailUsage": {"totalEmails": 5}, "contributions": [{"repository": "a"}]}
        assert type(data["emailUsage"]) is dict
        assert type(data["contributions"]) is list
        json.dumps(data)


class TestAggregateResult:
    """Tests for AggregateResult."""

    def test_from_dict(self):
        data = {
            "totalScore": 900,
            "overallTier": "Bronze",
            "providers": [{
                "provider": "google",
                "data": {},
                "achievements": {"tier": "Silver", "badges": [], "score": 900},
            }],
            "combinedBadges": [],
            "achievementHash": "ab" * 32,
            "generatedAtDay": 19675,
        }
        result = AggregateResult.from_dict(data)
        assert result.provider_kinds == [Provider.GOOGLE]
        assert result.to_dict()["achievementHash"] == "ab" * 32

    def test_malformed(self):
        with pytest.raises(ValidationError):
            AggregateResult.from_dict({"overallTier": "Gold"})

    @pytest.mark.parametrize("field, value", [
        ("totalScore", "abc"),
        ("generatedAtDay", "yesterday"),
    ])
    def test_non_numeric_fields(self, field, value):
        data = {"totalScore": 900, "overallTier": "Gold", "providers": []}
        data[field] = value
        with pytest.raises(ValidationError):
            AggregateResult.from_dict(data)

    def test_metadata_read_only(self):
        result = AggregateResult(
            total_score=1,
            overall_tier=Tier.BRONZE,
            providers=(),
            combined_badges=(),
            metadata={"extra": {"n": 1}},
        )
        with pytest.raises(TypeError):
            result.metadata["extra"]["n"] = 2
        assert result.to_dict()["metadata"] == {"extra": {"n": 1}}


class TestMetricsFromDict:
    """Tests for metrics_from_dict()."""

    def test_google_nested_shape(self):
        metrics = metrics_from_dict("google", {
            "accountAge": 100,
            "emailUsage": {"totalEmails": 5, "emailsPerDay": 1},
            "driveUsage": {"totalFiles": 2, "storageUsed": 3},
            "calendarEvents": 4,
        })
        assert metrics == GoogleMetrics(100, 5, 1, 2, 3, 4)

    def test_non_numeric(self):
        with pytest.raises(ValidationError):
            metrics_from_dict("github", {"totalCommits": "many"})


class TestIdentityRequest:
    """Tests for IdentityRequest."""

    def test_strips_key(self):
        request = IdentityRequest("github", "  octocat ")
        assert request.identity_key == "octocat"
        assert request.cache_key == "github-octocat"

    @pytest.mark.parametrize("key", ["", "   ", None])
    def test_blank_key_rejected(self, key):
        with pytest.raises(ValidationError):
            IdentityRequest(Provider.GITHUB, key)

    def test_from_dict(self):
        assert IdentityRequest.from_dict({"provider": "google", "email": "a@b.c"}).identity_key == "a@b.c"
        assert IdentityRequest.from_dict({"provider": "github", "username": "x"}).to_dict() == {
            "provider": "github", "username": "x"}


class TestCacheEntry:
    def test_freshness(self):
        entry = CacheEntry("k", None, created_at=0, expires_at=300)
        assert entry.is_fresh(299.99)
        assert not entry.is_fresh(300)
