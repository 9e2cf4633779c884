"""LinkedIn job search through a logged-in session cookie (no browser).

The site actively blocks automated clients, and retrying a flagged session is
what gets accounts restricted. So this provider:

- warms the session up once (home → feed → jobs, with referers and pauses),
- paces every request with a randomized, human-looking delay,
- treats 429s, auth-wall redirects and captcha pages as block signals,
- opens a sticky circuit after 3 consecutive failures or any block signal,
  and stays closed to traffic until an operator calls ``reset()``.

It never raises out of ``search()``: unavailability degrades to ``[]``.
"""

from __future__ import annotations

import logging
import random
import re
from typing import Callable
from urllib.parse import urlencode, urljoin

import httpx
from bs4 import BeautifulSoup

from jobmatch.errors import BlockDetectedError
from jobmatch.models.job import JobItem, SearchQuery
from jobmatch.providers.base import JobProvider, ProviderStatus, ProviderTestResult
from jobmatch.providers.resilience import CircuitBreaker, HumanPacer, ProviderStats
from jobmatch.providers.stealth import browser_headers, pick_user_agent

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.linkedin.com"
DEFAULT_TIMEOUT = 30.0
MAX_CONSECUTIVE_FAILURES = 3

WARMUP_DELAYS = ((2.0, 4.0), (1.5, 3.0))

REDIRECT_BLOCK_TOKENS = ("authwall", "login", "challenge")
BODY_BLOCK_MARKERS = (
    "captcha",
    "security-challenge",
    "challenge",
    "unusual activity",
    "verify your account",
    "security check",
)

DATE_POSTED_FILTER = {"today": "r86400", "week": "r604800", "month": "r2592000"}
WORK_TYPE_FILTER = {"onsite": "1", "remote": "2", "hybrid": "3"}

CARD_SELECTOR = ".jobs-search__results-list li, .scaffold-layout__list-container li, .job-card-container"
TITLE_SELECTOR = ".job-card-list__title, .job-card__title, .base-search-card__title, h3"
COMPANY_SELECTOR = (
    ".job-card-container__company-name, .job-card__subtitle, "
    ".artdeco-entity-lockup__subtitle, .base-search-card__subtitle, h4"
)
LOCATION_SELECTOR = ".job-card-container__metadata-item, .job-card__location, .job-search-card__location"

_JOB_ID_RE = re.compile(r"/jobs/view/(?:.*-)?(\d+)")


class LinkedInSessionProvider(JobProvider):
    """Cookie-authenticated scraping provider with pacing and a circuit breaker."""

    name = "linkedin"

    def __init__(
        self,
        cookie: str | None,
        enabled: bool = True,
        base_url: str = DEFAULT_BASE_URL,
        cookie_name: str = "li_at",
        max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        pacer: HumanPacer | None = None,
        stats: ProviderStats | None = None,
        on_blocked: Callable[[ProviderStats], None] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.cookie = cookie or None
        self.enabled = enabled
        self.base_url = base_url.rstrip("/")
        self.cookie_name = cookie_name
        self.pacer = pacer or HumanPacer(rng=rng)
        self.breaker = CircuitBreaker(max_consecutive_failures, on_trip=on_blocked, stats=stats)
        self.user_agent = pick_user_agent(rng)
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._warmed_up = False

    # -- State ------------------------------------------------------------------

    @property
    def stats(self) -> ProviderStats:
        return self.breaker.stats

    @property
    def blocked(self) -> bool:
        return self.breaker.blocked

    @property
    def state(self) -> str:
        if self.blocked:
            return "blocked"
        if not self.enabled or not self.cookie:
            return "disabled"
        return "ready"

    def update_credential(self, cookie: str | None) -> None:
        """Swap in a freshly decrypted cookie. A new cookie means a new session."""
        if cookie != self.cookie:
            self.cookie = cookie or None
            self._warmed_up = False

    def reset(self) -> None:
        """Manual recovery: close the circuit and clear the failure count."""
        self.breaker.reset()
        logger.info("[LinkedIn] Reset: provider unblocked")

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- JobProvider --------------------------------------------------------------

    async def search(self, query: SearchQuery, limit: int = 10) -> list[JobItem]:
        if not self.enabled:
            logger.info("[LinkedIn] Provider is disabled")
            return []
        if self.blocked:
            logger.warning("[LinkedIn] Provider is blocked, skipping until reset")
            return []
        if not self.cookie:
            logger.warning("[LinkedIn] No session cookie configured")
            return []

        logger.info("[LinkedIn] Searching: '%s' in %s", query.keywords, query.location or "India")
        self.breaker.record_request()
        try:
            await self._warmup()
            await self.pacer.wait()
            html = await self._fetch_page(self.build_search_url(query), referer=f"{self.base_url}/jobs/")
            jobs = self.parse_job_cards(html, limit)
        except BlockDetectedError as e:
            self.breaker.record_failure(str(e), block_signal=True)
            logger.error("[LinkedIn] Block signal: %s", e)
            return []
        except Exception as e:
            self.breaker.record_failure(str(e) or type(e).__name__)
            logger.error(
                "[LinkedIn] Search failed (%d consecutive): %s",
                self.stats.consecutive_failures, e,
            )
            return []

        self.breaker.record_success()
        logger.info("[LinkedIn] Found %d jobs", len(jobs))
        return jobs

    async def test(self) -> ProviderTestResult:
        if not self.cookie:
            return ProviderTestResult(available=False, message="No session cookie provided")

        try:
            await self._warmup()
            await self.pacer.wait()
            await self._fetch_page(f"{self.base_url}/feed/", referer=f"{self.base_url}/")
        except BlockDetectedError as e:
            return ProviderTestResult(
                available=False, message=f"Cookie is invalid, expired, or challenged: {e}"
            )
        except Exception as e:
            return ProviderTestResult(available=False, message=f"Test failed: {e}")
        return ProviderTestResult(available=True, message="Cookie is valid")

    async def get_status(self) -> ProviderStatus:
        state = self.state
        if state == "blocked":
            message = "Provider blocked due to failures"
        elif not self.cookie:
            message = "No cookie configured"
        elif not self.enabled:
            message = "Provider is disabled"
        else:
            message = "Ready"
        return ProviderStatus(
            healthy=state == "ready",
            message=message,
            state=state,
            stats=self.stats.model_dump(),
        )

    # -- HTTP ---------------------------------------------------------------------

    def _headers(self, url: str, referer: str | None) -> dict[str, str]:
        return browser_headers(
            self.base_url, self.cookie_name, self.cookie or "", self.user_agent, url=url, referer=referer
        )

    async def _warmup(self) -> None:
        """Visit home, feed and jobs pages like a person would. Best-effort, once."""
        if self._warmed_up:
            return
        self._warmed_up = True

        logger.info("[LinkedIn] Warming up session...")
        home, feed, jobs = f"{self.base_url}/", f"{self.base_url}/feed/", f"{self.base_url}/jobs/"
        try:
            await self._client.get(home, headers=self._headers(home, None), follow_redirects=True)
            await self.pacer.pause(WARMUP_DELAYS[0])
            await self._client.get(feed, headers=self._headers(feed, home), follow_redirects=True)
            await self.pacer.pause(WARMUP_DELAYS[1])
            await self._client.get(jobs, headers=self._headers(jobs, feed), follow_redirects=True)
            logger.info("[LinkedIn] Session warmed up")
        except httpx.HTTPError as e:
            logger.warning("[LinkedIn] Warmup had issues, continuing anyway: %s", e)
        finally:
            self.pacer.mark()

    async def _fetch_page(self, url: str, referer: str | None = None) -> str:
        response = await self._client.get(url, headers=self._headers(url, referer), follow_redirects=True)
        detect_block(response)
        response.raise_for_status()
        return response.text

    # -- Parsing ------------------------------------------------------------------

    def build_search_url(self, query: SearchQuery) -> str:
        params = {"keywords": query.keywords}
        if query.location:
            params["location"] = query.location
        if query.date_posted in DATE_POSTED_FILTER:
            params["f_TPR"] = DATE_POSTED_FILTER[query.date_posted]
        if query.remote in WORK_TYPE_FILTER:
            params["f_WT"] = WORK_TYPE_FILTER[query.remote]
        return f"{self.base_url}/jobs/search/?{urlencode(params)}"

    def parse_job_cards(self, html: str, limit: int) -> list[JobItem]:
        soup = BeautifulSoup(html, "html.parser")
        jobs: list[JobItem] = []
        seen: set[str] = set()

        for card in soup.select(CARD_SELECTOR):
            if len(jobs) >= limit:
                break
            title = _first_text(card, TITLE_SELECTOR)
            company = _first_text(card, COMPANY_SELECTOR)
            link = card.select_one('a[href*="/jobs/view/"]')
            href = link.get("href") if link else None
            if not (title and company and href):
                continue

            path = str(href).split("?")[0]
            apply_url = urljoin(self.base_url + "/", path)
            if apply_url in seen:
                continue
            seen.add(apply_url)

            match = _JOB_ID_RE.search(path)
            posted = card.select_one("time[datetime]")
            jobs.append(
                JobItem(
                    source=self.name,
                    source_id=match.group(1) if match else None,
                    title=title,
                    company=company,
                    location=_first_text(card, LOCATION_SELECTOR) or None,
                    posted_at=posted.get("datetime") if posted else None,
                    apply_url=apply_url,
                )
            )

        return jobs


def detect_block(response: httpx.Response) -> None:
    """Raise BlockDetectedError if the response looks like an anti-bot block."""
    if response.status_code == 429:
        raise BlockDetectedError("Rate limit exceeded (HTTP 429)")

    for hop in [*response.history, response]:
        if hop.status_code in (301, 302):
            location = hop.headers.get("location", "").lower()
            if any(token in location for token in REDIRECT_BLOCK_TOKENS):
                raise BlockDetectedError(f"Redirected to {location}: authentication required or challenged")

    body = response.text.lower()
    for marker in BODY_BLOCK_MARKERS:
        if marker in body:
            raise BlockDetectedError(f"CAPTCHA or security challenge detected ('{marker}')")


def _first_text(card, selector: str) -> str:
    element = card.select_one(selector)
    return " ".join(element.get_text(" ").split()) if element else ""
