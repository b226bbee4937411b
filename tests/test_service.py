"""
web2rep/tests/test_service.py

Unit tests for AchievementService: per-provider failure handling, timeouts,
concurrent fetch ordering and the cached entry point.
"""

import httpx
import pytest
import trio

from web2rep.cache import AchievementCache, RateLimitedNoop
from web2rep.config import ServiceConfig
from web2rep.errors import NoProvidersError, UpstreamUnavailableError, ValidationError
from web2rep.models import AggregateResult, IdentityRequest, Provider, ProviderResult, Tier
from web2rep.service import AchievementService
from web2rep.sources import GithubApiSource, HttpMetricsSource, MetricsSource, SeededGoogleSource

NOW = 1_700_000_000.0


class StaticSource(MetricsSource):
    """Returns a fixed result after an optional delay."""

    def __init__(self, provider, score, delay=0.0):
        self.provider = provider
        self.score = score
        self.delay = delay
        self.calls = []

    async def fetch(self, identity_key):
        self.calls.append(identity_key)
        if self.delay:
            await trio.sleep(self.delay)
        return ProviderResult(self.provider, self.score, Tier.SILVER, ("Badge-" + self.provider.value,))


class FailingSource(MetricsSource):
    def __init__(self, provider):
        self.provider = provider

    async def fetch(self, identity_key):
        raise UpstreamUnavailableError(self.provider.value, "HTTP 503")


class HangingSource(MetricsSource):
    def __init__(self, provider):
        self.provider = provider

    async def fetch(self, identity_key):
        await trio.sleep(60)


class BrokenSource(MetricsSource):
    """Fails with an error outside the upstream error hierarchy."""

    def __init__(self, provider):
        self.provider = provider

    async def fetch(self, identity_key):
        raise RuntimeError("parser blew up")


@pytest.fixture
def requests():
    return [
        IdentityRequest(Provider.GITHUB, "octocat"),
        IdentityRequest(Provider.GOOGLE, "octocat@example.com"),
    ]


def make_service(github, google, **kwargs):
    return AchievementService(
        {Provider.GITHUB: github, Provider.GOOGLE: google},
        clock=lambda: NOW,
        **kwargs,
    )


class TestAggregateIdentities:
    """Tests for fetching and aggregating identities."""

    @pytest.mark.trio
    async def test_all_providers(self, requests):
        service = make_service(
            StaticSource(Provider.GITHUB, 1950),
            StaticSource(Provider.GOOGLE, 900),
        )
        result = await service.aggregate_identities(requests)

        assert result.total_score == 2850
        assert result.provider_kinds == [Provider.GITHUB, Provider.GOOGLE]
        assert result.generated_at_day == 19675
        assert service.aggregations == 1

    @pytest.mark.trio
    async def test_failed_provider_skipped(self, requests):
        service = make_service(FailingSource(Provider.GITHUB), StaticSource(Provider.GOOGLE, 900))
        result = await service.aggregate_identities(requests)

        assert result.total_score == 900
        assert result.provider_kinds == [Provider.GOOGLE]
        assert "Multi-Platform User" not in result.combined_badges
        assert service.provider_failures["github"] == 1

    @pytest.mark.trio
    async def test_timed_out_provider_skipped(self, requests):
        service = make_service(
            HangingSource(Provider.GITHUB),
            StaticSource(Provider.GOOGLE, 900),
            timeout=0.05,
        )
        result = await service.aggregate_identities(requests)

        assert result.provider_kinds == [Provider.GOOGLE]
        assert service.provider_failures["github"] == 1

    @pytest.mark.trio
    async def test_all_failed(self, requests):
        service = make_service(FailingSource(Provider.GITHUB), FailingSource(Provider.GOOGLE))
        with pytest.raises(NoProvidersError):
            await service.aggregate_identities(requests)
        assert service.aggregations == 0

    @pytest.mark.trio
    async def test_missing_source(self, requests):
        service = AchievementService(
            {Provider.GOOGLE: StaticSource(Provider.GOOGLE, 900)},
            clock=lambda: NOW,
        )
        result = await service.aggregate_identities(requests)
        assert result.provider_kinds == [Provider.GOOGLE]

    @pytest.mark.trio
    async def test_concurrent_keeps_request_order(self, requests):
        """The slower first provider still comes first."""
        github = StaticSource(Provider.GITHUB, 1950, delay=0.05)
        google = StaticSource(Provider.GOOGLE, 900, delay=0.0)
        service = make_service(github, google, concurrent=True)

        result = await service.aggregate_identities(requests)

        assert result.provider_kinds == [Provider.GITHUB, Provider.GOOGLE]
        assert github.calls == ["octocat"]
        assert google.calls == ["octocat@example.com"]

    @pytest.mark.trio
    @pytest.mark.parametrize("concurrent", [False, True])
    async def test_unexpected_source_error_skipped(self, requests, concurrent):
        service = make_service(
            BrokenSource(Provider.GITHUB),
            StaticSource(Provider.GOOGLE, 900),
            concurrent=concurrent,
        )
        result = await service.aggregate_identities(requests)

        assert result.provider_kinds == [Provider.GOOGLE]
        assert service.provider_failures["github"] == 1

    @pytest.mark.trio
    async def test_unusable_username_skipped_concurrently(self):
        def handler(request):
            return httpx.Response(404, json={"message": "Not Found"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            service = make_service(
                GithubApiSource(client=client),
                StaticSource(Provider.GOOGLE, 900),
                concurrent=True,
            )
            result = await service.aggregate_identities([
                IdentityRequest(Provider.GITHUB, "bad\x01name"),
                IdentityRequest(Provider.GOOGLE, "octocat@example.com"),
            ])

        assert result.provider_kinds == [Provider.GOOGLE]
        assert service.provider_failures["github"] == 1


class TestFetchCached:
    """Tests for the cached entry point."""

    def test_cache_key(self, requests):
        assert AchievementService.cache_key(requests) == "github-octocat|google-octocat@example.com"

    @pytest.mark.trio
    async def test_empty_rejected(self):
        service = make_service(StaticSource(Provider.GITHUB, 1), StaticSource(Provider.GOOGLE, 1))
        with pytest.raises(NoProvidersError):
            await service.fetch_cached([])

    @pytest.mark.trio
    async def test_cached_then_throttled(self, requests):
        now = [NOW]
        github = StaticSource(Provider.GITHUB, 1950)
        google = StaticSource(Provider.GOOGLE, 900)
        service = make_service(github, google, cache=AchievementCache(clock=lambda: now[0]))

        first = await service.fetch_cached(requests)
        now[0] += 1
        second = await service.fetch_cached(requests)
        other = await service.fetch_cached(requests[:1])

        assert isinstance(first, AggregateResult)
        assert second is first
        assert isinstance(other, RateLimitedNoop)
        assert github.calls == ["octocat"]

    @pytest.mark.trio
    async def test_no_providers_not_cached(self, requests):
        now = [NOW]
        service = make_service(
            FailingSource(Provider.GITHUB),
            FailingSource(Provider.GOOGLE),
            cache=AchievementCache(clock=lambda: now[0]),
        )
        with pytest.raises(NoProvidersError):
            await service.fetch_cached(requests)
        assert len(service.cache) == 0


class TestFromConfig:
    """Tests for building a service from configuration."""

    def test_direct_mode(self):
        service = AchievementService.from_config(ServiceConfig())
        assert isinstance(service.sources[Provider.GITHUB], GithubApiSource)
        assert isinstance(service.sources[Provider.GOOGLE], SeededGoogleSource)
        assert service.cache.ttl == 300
        assert service.cache.min_interval == 2.0

    def test_http_mode(self):
        config = ServiceConfig()
        config.upstream.source_mode = "http"
        config.upstream.base_url = "http://metrics:3000"
        service = AchievementService.from_config(config)

        source = service.sources[Provider.GITHUB]
        assert isinstance(source, HttpMetricsSource)
        assert source.url == "http://metrics:3000/api/github/contributions"

    def test_unknown_mode(self):
        config = ServiceConfig()
        config.upstream.source_mode = "carrier-pigeon"
        with pytest.raises(ValidationError):
            AchievementService.from_config(config)
