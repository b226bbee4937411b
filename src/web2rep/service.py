"""
web2rep/service.py

Aggregation pipeline: identities -> provider fetches -> aggregate -> hash.

Per-provider failures (errors or timeouts) are logged and the provider is
left out. Aggregation fails only when no provider resolved. Fetches may run
concurrently in a trio nursery, but results are collected by position so the
aggregate keeps request order.
"""

import functools
import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import trio

from .cache import AchievementCache, FetchOutcome
from .config import DEFAULT_UPSTREAM_TIMEOUT, ServiceConfig
from .errors import NetworkTimeoutError, NoProvidersError, UpstreamUnavailableError, ValidationError
from .models import AggregateResult, IdentityRequest, Provider, ProviderResult
from .protocol.aggregator import aggregate
from .sources import GithubApiSource, HttpMetricsSource, MetricsSource, SeededGoogleSource

logger = logging.getLogger("web2rep.service")


class AchievementService:
    """
    Resolves identities into a committed AggregateResult.

    Usage:
        service = AchievementService.from_config(ServiceConfig.from_env())
        requests = [IdentityRequest(Provider.GITHUB, "octocat")]
        result = await service.fetch_cached(requests)
    """

    def __init__(
        self,
        sources: Mapping[Provider, MetricsSource],
        cache: Optional[AchievementCache] = None,
        timeout: float = DEFAULT_UPSTREAM_TIMEOUT,
        concurrent: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            sources: One MetricsSource per supported provider
            cache: Shared cache/rate limiter (a new one if omitted)
            timeout: Deadline per provider fetch, in seconds
            concurrent: Fetch providers in parallel
            clock: Time source for day index and metadata
        """
        self.sources: Dict[Provider, MetricsSource] = dict(sources)
        self.cache = cache if cache is not None else AchievementCache(clock=clock)
        self.timeout = timeout
        self.concurrent = concurrent
        self._clock = clock

        # Stats
        self._aggregations = 0
        self._provider_failures: Dict[str, int] = {p.value: 0 for p in Provider}

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "AchievementService":
        upstream = config.upstream
        if upstream.source_mode == "http":
            sources: Dict[Provider, MetricsSource] = {
                p: HttpMetricsSource(p, upstream.base_url, timeout=upstream.timeout)
                for p in Provider
            }
        elif upstream.source_mode == "direct":
            sources = {
                Provider.GITHUB: GithubApiSource(
                    api_url=upstream.github_api_url,
                    token=upstream.github_token,
                    timeout=upstream.timeout,
                ),
                Provider.GOOGLE: SeededGoogleSource(),
            }
        else:
            raise ValidationError(f"Unknown source mode: {upstream.source_mode!r}")

        cache = AchievementCache(ttl=config.cache.ttl, min_interval=config.cache.min_interval)
        return cls(sources, cache=cache, timeout=upstream.timeout, concurrent=upstream.concurrent)

    @property
    def aggregations(self) -> int:
        return self._aggregations

    @property
    def provider_failures(self) -> Dict[str, int]:
        return dict(self._provider_failures)

    async def fetch_provider(self, request: IdentityRequest) -> Optional[ProviderResult]:
        """
        Fetch one provider, or None if it failed.

        Failures are logged here and never propagate.
        """
        source = self.sources.get(request.provider)
        if source is None:
            logger.warning(f"No source configured for provider {request.provider.value}")
            self._provider_failures[request.provider.value] += 1
            return None

        try:
            try:
                with trio.fail_after(self.timeout):
                    return await source.fetch(request.identity_key)
            except trio.TooSlowError:
                raise NetworkTimeoutError(request.provider.value, self.timeout) from None
        except UpstreamUnavailableError as e:
            logger.warning(f"Failed to fetch {request.provider.value} data for {request.identity_key}: {e}")
            self._provider_failures[request.provider.value] += 1
            return None
        except Exception as e:
            logger.error(
                f"Unexpected {type(e).__name__} fetching {request.provider.value} data "
                f"for {request.identity_key!r}: {e}"
            )
            self._provider_failures[request.provider.value] += 1
            return None

    async def _fetch_all(self, requests: Sequence[IdentityRequest]) -> List[Optional[ProviderResult]]:
        results: List[Optional[ProviderResult]] = [None] * len(requests)

        if not self.concurrent:
            for i, request in enumerate(requests):
                results[i] = await self.fetch_provider(request)
            return results

        async def fetch_into(index: int, request: IdentityRequest) -> None:
            results[index] = await self.fetch_provider(request)

        async with trio.open_nursery() as nursery:
            for i, request in enumerate(requests):
                nursery.start_soon(fetch_into, i, request)
        return results

    async def aggregate_identities(self, requests: Sequence[IdentityRequest]) -> AggregateResult:
        """
        Fetch every identity and aggregate whatever resolved.

        Raises:
            NoProvidersError: no provider resolved
        """
        requests = list(requests)
        results = await self._fetch_all(requests)
        resolved = [r for r in results if r is not None]
        logger.info(f"Resolved {len(resolved)}/{len(requests)} providers")

        result = aggregate(resolved, clock=self._clock)
        self._aggregations += 1
        return result

    @staticmethod
    def cache_key(requests: Sequence[IdentityRequest]) -> str:
        """Cache key for a set of identities, e.g. "github-octocat|google-a@b.c"."""
        return "|".join(r.cache_key for r in requests)

    async def fetch_cached(self, requests: Sequence[IdentityRequest]) -> FetchOutcome:
        """
        Aggregate through the cache and rate limiter.

        Returns:
            AggregateResult, or RateLimitedNoop when throttled

        Raises:
            NoProvidersError: no identities given, or none resolved
        """
        requests = list(requests)
        if not requests:
            raise NoProvidersError()
        return await self.cache.fetch(
            self.cache_key(requests),
            functools.partial(self.aggregate_identities, requests),
        )
