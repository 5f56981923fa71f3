"""LinkedIn profile enrichment through the Apify profile scraper.

The enricher resolves a profile URL (searching by name when none is known),
runs the scraper actor synchronously and maps the first dataset item to
candidate fields. Failures raise EnrichmentError; callers decide whether that
is fatal.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx
from rapidfuzz import fuzz, utils
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import EnrichmentSettings
from .pipelines.sanitization import parse_timestamp
from scoring.keywords import PROFILE_OPEN_SIGNALS

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
RECENTLY_ACTIVE = "Recently active"
MAX_NOTE_POSTS = 3

_PROFILE_URL_PATTERNS = [
    re.compile(r"linkedin\.com/in/([^/?]+)", re.IGNORECASE),
    re.compile(r"linkedin\.com/pub/([^/?]+)", re.IGNORECASE),
    re.compile(r"linkedin\.com/profile/view\?id=([^&]+)", re.IGNORECASE),
]


class EnrichmentError(Exception):
    """Raised when a profile cannot be fetched."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableStatusError(Exception):
    """Rate-limited or 5xx response; the request is worth retrying."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


@dataclass
class SearchResult:
    """One hit from the profile search service."""
    url: str
    score: float
    title: str = ""
    snippet: str = ""
    name: str | None = None
    company: str | None = None
    location: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SearchResult":
        return cls(
            url=payload["url"],
            score=float(payload.get("score") or 0.0),
            title=payload.get("title") or "",
            snippet=payload.get("snippet") or "",
            name=payload.get("name"),
            company=payload.get("company"),
            location=payload.get("location"),
        )


@dataclass
class EnrichmentContext:
    """Scratch cache for one processing operation.

    Avoids fetching the same profile or repeating the same search twice within
    one request or batch. Create a new context per operation.
    """
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)
    searches: dict[tuple, str | None] = field(default_factory=dict)


def normalize_linkedin_url(url: str | None) -> str | None:
    """Canonical ``https://www.linkedin.com/in/<id>/`` form of a profile URL.

    Unrecognized linkedin.com URLs are returned as-is; anything else is None.
    """
    if not url:
        return None
    for pattern in _PROFILE_URL_PATTERNS:
        match = pattern.search(url)
        if match:
            return f"https://www.linkedin.com/in/{match.group(1)}/"
    return url if "linkedin.com" in url else None


def infer_open_to_work(item: Mapping[str, Any]) -> bool:
    """Look for availability signals in the headline, about text and posts."""
    profile = " ".join(
        item.get(key) or "" for key in ("headline", "summary", "about")
    )
    posts = " ".join((post or {}).get("text") or "" for post in item.get("posts") or [])
    text = f"{profile} {posts}".lower()
    return any(signal in text for signal in PROFILE_OPEN_SIGNALS)


def transform_profile(item: Mapping[str, Any]) -> dict[str, Any]:
    """Map a raw scraper dataset item to a profile dict."""
    positions = item.get("positions") or []
    current = positions[0] if positions else {}
    posts = item.get("posts") or []
    skills = item.get("skills")

    return {
        "name": item.get("name") or item.get("fullName"),
        "headline": item.get("headline") or item.get("title"),
        "summary": item.get("summary") or item.get("about"),
        "location": item.get("location"),
        "connections": item.get("connectionsCount"),
        "last_active": item.get("lastActivityTime"),
        "open_to_work": bool(item.get("openToWork")) or infer_open_to_work(item),
        "profile_url": item.get("profileUrl") or item.get("url"),
        "current_company": current.get("companyName"),
        "current_position": current.get("title"),
        "skills": skills if isinstance(skills, list) else [],
        "experience": [
            {
                "title": position.get("title"),
                "company": position.get("companyName"),
                "duration": position.get("date"),
                "description": position.get("description"),
            }
            for position in positions
        ],
        "education": [
            {
                "school": school.get("schoolName"),
                "degree": school.get("degree"),
                "field": school.get("fieldOfStudy"),
                "years": school.get("date"),
            }
            for school in item.get("schools") or []
        ],
        "recent_activity": [
            post.get("text") for post in posts[:MAX_NOTE_POSTS] if post.get("text")
        ],
    }


def profile_to_candidate_fields(profile: Mapping[str, Any]) -> dict[str, Any]:
    """Candidate fields set from a fetched profile.

    ``linkedin_last_active`` is None when the scraper only reports
    "Recently active" or an unparseable value.
    """
    last_active = profile.get("last_active")
    if last_active == RECENTLY_ACTIVE:
        last_active = None
    recent_activity = profile.get("recent_activity") or []

    return {
        "linkedin_headline": profile.get("headline"),
        "linkedin_summary": profile.get("summary"),
        "linkedin_connections": profile.get("connections"),
        "linkedin_last_active": parse_timestamp(last_active),
        "linkedin_notes": "\n".join(recent_activity) if recent_activity else None,
        "current_company": profile.get("current_company"),
        "current_title": profile.get("current_position") or profile.get("headline"),
        "current_employer": profile.get("current_company"),
        "location": profile.get("location"),
        "open_to_work": bool(profile.get("open_to_work")),
        "skills": profile.get("skills") or [],
        "experience": profile.get("experience") or [],
        "education": profile.get("education") or [],
        "enrichment_status": "completed",
        "data_source": "linkedin",
    }


def _similarity(left: str | None, right: str | None) -> float:
    if not left or not right:
        return 0.0
    return fuzz.token_set_ratio(left, right, processor=utils.default_process) / 100.0


def _name_from_title(title: str) -> str | None:
    """'Jane Doe - Engineer at Acme' -> 'Jane Doe'."""
    name = re.split(r"[-|–]", title, maxsplit=1)[0].strip()
    return name or None


def field_match_score(
    result: SearchResult,
    name: str,
    title: str | None = None,
    company: str | None = None,
    location: str | None = None,
) -> float:
    """How well a search hit matches the known candidate fields."""
    score = _similarity(name, result.name or _name_from_title(result.title))
    if title:
        score += _similarity(title, result.title)
    if company:
        score += _similarity(company, result.company)
    if location:
        score += _similarity(location, result.location)

    snippet = result.snippet.lower()
    if name.lower() in snippet:
        score += 0.5
    if title and title.lower() in snippet:
        score += 0.3
    if company and company.lower() in snippet:
        score += 0.2
    return score


def select_best_match(
    results: list[SearchResult],
    name: str,
    title: str | None = None,
    company: str | None = None,
    location: str | None = None,
    *,
    min_score: float = 5.0,
) -> SearchResult | None:
    """Pick the highest scored hit; ties are broken by field matching.

    A lone result must reach ``min_score`` to be trusted.
    """
    if not results:
        return None
    if len(results) == 1:
        return results[0] if results[0].score >= min_score else None

    top_score = max(result.score for result in results)
    top = [result for result in results if result.score == top_score]
    if len(top) == 1:
        return top[0]

    logger.debug(f"{len(top)} search results tied at {top_score:.2f}, applying field matching")
    return max(top, key=lambda result: field_match_score(result, name, title, company, location))


def _parse_search_results(body: Any) -> list[SearchResult]:
    """Hits from a search response body; hits without a URL are skipped."""
    if not isinstance(body, Mapping):
        raise ValueError(f"Unexpected search response: {type(body).__name__}")

    hits = body.get("results") or []
    if not isinstance(hits, list):
        raise ValueError(f"Unexpected search results: {type(hits).__name__}")

    return [
        SearchResult.from_payload(hit)
        for hit in hits
        if isinstance(hit, Mapping) and hit.get("url")
    ]


class LinkedInEnricher:
    """Fetch fresh LinkedIn profile data for candidates.

    Holds only its collaborators: an ``httpx.AsyncClient`` owned by the caller
    and the enrichment settings.
    """

    def __init__(self, client: httpx.AsyncClient, config: EnrichmentSettings):
        self.client = client
        self.config = config

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying rate limits, 5xx and transport errors.

        When retries run out on a retryable status the last response is
        returned so the caller can report its status code.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(multiplier=self.config.backoff_base_seconds),
            retry=retry_if_exception_type((httpx.TransportError, RetryableStatusError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self.client.request(method, url, **kwargs)
                    if response.status_code in RETRYABLE_STATUS_CODES:
                        raise RetryableStatusError(response)
        except RetryableStatusError as e:
            return e.response
        except httpx.TransportError as e:
            raise EnrichmentError(f"Request to {url} failed: {e}") from e

        return response

    async def search_profile(
        self,
        name: str,
        *,
        title: str | None = None,
        company: str | None = None,
        location: str | None = None,
        context: EnrichmentContext | None = None,
    ) -> str | None:
        """Find the most likely profile URL for a person.

        Search failures are logged and reported as no match.
        """
        key = (name, title, company, location)
        if context is not None and key in context.searches:
            return context.searches[key]

        payload = {
            "name": name,
            "title": title,
            "company": company,
            "location": location,
            "max_results": self.config.search_max_results,
        }
        logger.info(f"Searching LinkedIn profiles for {name}")

        url = None
        try:
            response = await self._request("POST", self.config.search_url, json=payload)
            response.raise_for_status()
            results = _parse_search_results(response.json())
        except (EnrichmentError, httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(f"Profile search for {name} failed: {e}")
        else:
            best = select_best_match(
                results, name, title, company, location,
                min_score=self.config.search_min_score,
            )
            if best is not None:
                logger.info(f"Selected {best.url} (score {best.score:.2f}) for {name}")
                url = best.url
            else:
                logger.info(f"No suitable profile among {len(results)} results for {name}")

        if context is not None:
            context.searches[key] = url
        return url

    async def run_profile_actor(self, profile_url: str) -> dict[str, Any]:
        """Scrape one profile and return the first dataset item."""
        if not self.config.api_token:
            raise EnrichmentError("APIFY_API_TOKEN not configured")

        actor_input = {
            "profileUrls": [profile_url],
            "proxyConfiguration": {
                "useApifyProxy": True,
                "apifyProxyGroups": ["RESIDENTIAL"] if self.config.use_residential_proxy else [],
            },
            "maxProfilesToScrape": 1,
            "includeContactInfo": True,
        }
        endpoint = (
            f"{self.config.base_url.rstrip('/')}/v2/acts/{self.config.actor_id}"
            "/run-sync-get-dataset-items"
        )

        response = await self._request(
            "POST",
            endpoint,
            json=actor_input,
            headers={"Authorization": f"Bearer {self.config.api_token}"},
            timeout=self.config.timeout_seconds,
        )

        if response.status_code == 403:
            raise EnrichmentError("Apify API access denied", status_code=403)
        if response.status_code == 429:
            raise EnrichmentError("Apify API rate limit exceeded", status_code=429)
        if response.status_code >= 500:
            raise EnrichmentError("Apify service temporarily unavailable", status_code=response.status_code)
        if response.status_code >= 400:
            raise EnrichmentError(
                f"Apify API error: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            items = response.json()
        except ValueError as e:
            raise EnrichmentError(f"Malformed Apify response for {profile_url}") from e

        if not isinstance(items, list) or not items:
            raise EnrichmentError(f"No profile data found for URL: {profile_url}")
        return items[0]

    async def fetch_profile(
        self,
        linkedin_url: str | None = None,
        *,
        name: str | None = None,
        company: str | None = None,
        title: str | None = None,
        location: str | None = None,
        context: EnrichmentContext | None = None,
    ) -> dict[str, Any]:
        """Fetch and map a LinkedIn profile to candidate fields.

        Args:
            linkedin_url: Known profile URL; searched by name when missing
            name: Candidate name used for the search
            company: Search hint
            title: Search hint
            location: Search hint
            context: Per-operation cache

        Returns:
            Candidate fields (see ``profile_to_candidate_fields``)

        Raises:
            EnrichmentError: No profile could be found or fetched
        """
        profile_url = linkedin_url
        if not profile_url and name:
            profile_url = await self.search_profile(
                name, title=title, company=company, location=location, context=context
            )
        if not profile_url:
            raise EnrichmentError(f"No LinkedIn profile found for {name}")

        normalized = normalize_linkedin_url(profile_url)
        if not normalized:
            raise EnrichmentError(f"Invalid LinkedIn URL format: {profile_url}")

        if context is not None and normalized in context.profiles:
            logger.debug(f"Using cached profile for {normalized}")
            return context.profiles[normalized]

        logger.info(f"Enriching LinkedIn profile: {normalized}")
        item = await self.run_profile_actor(normalized)
        fields = profile_to_candidate_fields(transform_profile(item))

        if context is not None:
            context.profiles[normalized] = fields
        return fields
