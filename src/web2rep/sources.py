"""
web2rep/sources.py

Upstream metric sources.

Each source resolves one identity key (GitHub username, Google email) into a
ProviderResult. Sources raise UpstreamUnavailableError (or its subclass
NetworkTimeoutError) on failure; AchievementService treats those providers
as absent.

Sources:
    HttpMetricsSource   Per-provider metrics endpoint returning JSON. Accepts
                        already-scored payloads without recomputing.
    GithubApiSource     GitHub REST API, scored locally.
    SeededGoogleSource  Deterministic metrics derived from the email. Stand-in
                        for real Google data behind the same interface.
"""

import logging
import math
import re
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import httpx

from .config import DEFAULT_UPSTREAM_TIMEOUT, GITHUB_API_URL, GITHUB_MAX_REPOS, SECONDS_PER_DAY
from .errors import NetworkTimeoutError, UpstreamUnavailableError, ValidationError
from .models import GithubMetrics, Provider, ProviderResult, Tier, metrics_from_dict
from .protocol.scoring import score_provider, seeded_google_metrics

logger = logging.getLogger("web2rep.sources")

# Endpoint path and query parameter per provider
DEFAULT_ENDPOINTS: Dict[Provider, Tuple[str, str]] = {
    Provider.GITHUB: ("/api/github/contributions", "username"),
    Provider.GOOGLE: ("/api/google/achievements", "email"),
}

LAST_PAGE_RE = re.compile(r'page=(\d+)>; rel="last"')


class MetricsSource(ABC):
    """Resolves an identity key into a ProviderResult for one provider."""

    provider: Provider

    @abstractmethod
    async def fetch(self, identity_key: str) -> ProviderResult:
        """
        Fetch and score metrics for an identity.

        Raises:
            UpstreamUnavailableError: fetch failed
            NetworkTimeoutError: fetch exceeded its deadline
        """
        pass


def result_from_payload(provider: Provider, payload: Mapping[str, Any]) -> ProviderResult:
    """
    Build a ProviderResult from upstream JSON.

    If the payload carries an `achievements` block with score and tier, it is
    trusted as-is. Otherwise the raw metrics are scored locally.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{provider.value} payload must be an object")

    data = {k: v for k, v in payload.items() if k != 'achievements'}
    achievements = payload.get('achievements')
    if isinstance(achievements, Mapping) and 'score' in achievements and 'tier' in achievements:
        return ProviderResult(
            provider=provider,
            score=achievements['score'],
            tier=Tier.parse(achievements['tier']),
            badges=tuple(achievements.get('badges') or ()),
            raw_metrics=data,
        )
    return score_provider(metrics_from_dict(provider, data))


class HttpMetricsSource(MetricsSource):
    """
    Fetches metrics from a per-provider HTTP endpoint.

    Usage:
        source = HttpMetricsSource(Provider.GITHUB, "http://localhost:3000")
        result = await source.fetch("octocat")
    """

    def __init__(
        self,
        provider: Provider,
        base_url: str,
        path: Optional[str] = None,
        param: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_UPSTREAM_TIMEOUT,
    ):
        self.provider = Provider.parse(provider)
        default_path, default_param = DEFAULT_ENDPOINTS[self.provider]
        self.url = base_url.rstrip("/") + (path or default_path)
        self.param = param or default_param
        self.timeout = timeout
        self._client = client

    async def fetch(self, identity_key: str) -> ProviderResult:
        try:
            if self._client is not None:
                response = await self._client.get(self.url, params={self.param: identity_key})
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url, params={self.param: identity_key})
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(self.provider.value, self.timeout) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UpstreamUnavailableError(self.provider.value, str(e)) from e
        except ValueError as e:
            raise UpstreamUnavailableError(self.provider.value, f"invalid JSON: {e}") from e

        try:
            return result_from_payload(self.provider, payload)
        except ValidationError as e:
            raise UpstreamUnavailableError(self.provider.value, str(e)) from e


class GithubApiSource(MetricsSource):
    """
    Collects GitHub metrics from the GitHub REST API and scores them.

    Inspects the user's profile and up to `max_repos` recently updated repos
    they own. Counts of commits, pull requests and issues come from the
    `rel="last"` page number of a per_page=1 listing.
    """

    provider = Provider.GITHUB

    def __init__(
        self,
        api_url: str = GITHUB_API_URL,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_UPSTREAM_TIMEOUT,
        max_repos: int = GITHUB_MAX_REPOS,
        clock: Callable[[], float] = time.time,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_repos = max_repos
        self._client = client
        self._clock = clock

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/vnd.github.v3+json',
            'User-Agent': 'web2rep',
        }
        if self.token:
            headers['Authorization'] = f'token {self.token}'
        return headers

    async def fetch(self, identity_key: str) -> ProviderResult:
        try:
            if self._client is not None:
                return await self._collect(self._client, identity_key)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await self._collect(client, identity_key)
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(self.provider.value, self.timeout) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UpstreamUnavailableError(self.provider.value, str(e)) from e
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailableError(self.provider.value, f"unexpected response: {e}") from e

    async def _get(self, client: httpx.AsyncClient, path: str, params: Optional[dict] = None) -> httpx.Response:
        response = await client.get(f"{self.api_url}{path}", params=params, headers=self.headers)
        response.raise_for_status()
        return response

    @staticmethod
    def _count_from_response(response: httpx.Response) -> int:
        link = response.headers.get('link')
        if link:
            match = LAST_PAGE_RE.search(link)
            return int(match.group(1)) if match else 0
        return len(response.json())

    async def _count(self, client: httpx.AsyncClient, path: str, params: dict) -> int:
        return self._count_from_response(await self._get(client, path, params))

    async def _collect(self, client: httpx.AsyncClient, username: str) -> ProviderResult:
        user = (await self._get(client, f"/users/{username}")).json()
        repos = (await self._get(
            client, f"/users/{username}/repos", {'per_page': 100, 'sort': 'updated'}
        )).json()

        total_commits = 0
        total_prs = 0
        total_issues = 0
        languages: List[str] = []
        contributions = []

        for repo in repos[:self.max_repos]:
            if (repo.get('owner') or {}).get('login') != username:
                continue
            name = repo['name']
            try:
                commits = await self._count(
                    client, f"/repos/{username}/{name}/commits", {'author': username, 'per_page': 1})
                prs = await self._count(
                    client, f"/repos/{username}/{name}/pulls",
                    {'state': 'all', 'creator': username, 'per_page': 1})
                issues = await self._count(
                    client, f"/repos/{username}/{name}/issues",
                    {'state': 'all', 'creator': username, 'per_page': 1})
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Failed to fetch data for repo {name}: {e}")
                continue

            total_commits += commits
            total_prs += prs
            total_issues += issues
            if repo.get('language') and repo['language'] not in languages:
                languages.append(repo['language'])
            contributions.append({
                'repository': name,
                'commits': commits,
                'pullRequests': prs,
                'issues': issues,
                'lastContribution': repo.get('updated_at'),
            })

        created = datetime.fromisoformat(user['created_at'].replace("Z", "+00:00"))
        account_age = max(int(math.floor((self._clock() - created.timestamp()) / SECONDS_PER_DAY)), 0)

        metrics = GithubMetrics(
            total_commits=total_commits,
            total_pull_requests=total_prs,
            total_issues=total_issues,
            public_repos=int(user.get('public_repos') or 0),
            followers=int(user.get('followers') or 0),
            following=int(user.get('following') or 0),
            account_age=account_age,
            languages=tuple(languages),
        )
        result = score_provider(metrics)
        raw = dict(result.raw_metrics)
        raw['contributions'] = contributions
        logger.debug(f"GitHub {username}: score={result.score} tier={result.tier.value}")
        return replace(result, raw_metrics=raw)


class SeededGoogleSource(MetricsSource):
    """Deterministic Google metrics seeded from the email address."""

    provider = Provider.GOOGLE

    async def fetch(self, identity_key: str) -> ProviderResult:
        try:
            return score_provider(seeded_google_metrics(identity_key))
        except ValidationError as e:
            raise UpstreamUnavailableError(self.provider.value, str(e)) from e
