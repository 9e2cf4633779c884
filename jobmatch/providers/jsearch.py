"""JSearch (RapidAPI) aggregator provider."""

from __future__ import annotations

import logging

import httpx

from jobmatch.errors import ProviderQueryError
from jobmatch.models.job import JobItem, SearchQuery
from jobmatch.providers.base import JobProvider, ProviderStatus, ProviderTestResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
SNIPPET_LENGTH = 300


class JSearchProvider(JobProvider):
    """Keyword/location search over the JSearch job aggregator API."""

    name = "jsearch"

    def __init__(
        self,
        api_key: str,
        host: str = "jsearch.p.rapidapi.com",
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.host = host
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search(self, query: SearchQuery, limit: int = 10) -> list[JobItem]:
        if not self.api_key:
            logger.warning("RAPIDAPI_KEY not configured, skipping JSearch")
            return []

        location = query.location or "India"
        logger.info("[JSearch] Searching: '%s' in %s", query.keywords, location)
        data = await self._request(
            {
                "query": f"{query.keywords} in {location}",
                "page": "1",
                "num_pages": "1",
                "date_posted": query.date_posted or "month",
            }
        )

        jobs: list[JobItem] = []
        for hit in data.get("data") or []:
            try:
                jobs.append(_to_job_item(hit))
            except Exception as e:
                logger.debug("Skipping malformed JSearch result: %s", e)
        logger.info("[JSearch] Found %d jobs, returning %d", len(jobs), min(len(jobs), limit))
        return jobs[:limit]

    async def test(self) -> ProviderTestResult:
        if not self.api_key:
            return ProviderTestResult(available=False, message="RAPIDAPI_KEY not configured")
        try:
            results = await self.search(
                SearchQuery(keywords="software engineer", location="India"), limit=1
            )
        except ProviderQueryError as e:
            return ProviderTestResult(available=False, message=f"JSearch test failed: {e}")
        return ProviderTestResult(
            available=True, message=f"JSearch is working, test returned {len(results)} results"
        )

    async def get_status(self) -> ProviderStatus:
        has_key = bool(self.api_key)
        return ProviderStatus(
            healthy=has_key,
            message="JSearch configured" if has_key else "Missing RAPIDAPI_KEY",
        )

    async def _request(self, params: dict[str, str]) -> dict:
        try:
            response = await self._client.get(
                f"https://{self.host}/search",
                params=params,
                headers={"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": self.host},
            )
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise ProviderQueryError(self.name, "request timed out") from e
        except httpx.HTTPStatusError as e:
            raise ProviderQueryError(self.name, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderQueryError(self.name, str(e)) from e


def _to_job_item(hit: dict) -> JobItem:
    city, country = hit.get("job_city"), hit.get("job_country")
    location = f"{city}, {country}" if city else (country or None)

    salary = None
    if hit.get("job_salary_period") and hit.get("job_min_salary"):
        salary = (
            f"{hit.get('job_salary_currency') or ''} {hit['job_min_salary']}-"
            f"{hit.get('job_max_salary') or ''} {hit['job_salary_period']}"
        ).strip()

    description = hit.get("job_description") or ""
    snippet = None
    if description:
        snippet = description[:SNIPPET_LENGTH] + ("..." if len(description) > SNIPPET_LENGTH else "")

    experience = hit.get("job_required_experience") or {}
    return JobItem(
        source="jsearch",
        source_id=hit.get("job_id"),
        title=hit.get("job_title") or "",
        company=hit.get("employer_name") or "",
        location=location,
        posted_at=hit.get("job_posted_at_datetime_utc"),
        employment_type=hit.get("job_employment_type"),
        seniority=_infer_seniority(experience.get("required_experience_in_months")),
        description_snippet=snippet,
        description=description or None,
        skills=list(hit.get("job_required_skills") or []),
        apply_url=hit.get("job_apply_link") or hit.get("job_google_link") or "",
        salary=salary,
        logo=hit.get("employer_logo"),
    )


def _infer_seniority(months: int | None) -> str | None:
    if not months:
        return None
    if months < 24:
        return "Entry-level"
    if months < 60:
        return "Mid-level"
    return "Senior"
