"""Pydantic models for search queries and normalized job postings."""

from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import BaseModel, Field, computed_field


class SearchQuery(BaseModel):
    """One provider query produced by the query builder."""

    keywords: str
    location: str
    remote: str | None = None  # "remote" | "hybrid" | "onsite"
    date_posted: str = "month"  # "today" | "week" | "month" | "all"


class JobItem(BaseModel):
    """Job posting in the common shape every provider returns."""

    source: str
    source_id: str | None = None
    title: str
    company: str
    location: str | None = None
    posted_at: str | None = None  # ISO timestamp when known
    employment_type: str | None = None
    seniority: str | None = None
    description_snippet: str | None = None
    description: str | None = None  # full text, used for ranking only
    skills: list[str] = Field(default_factory=list)
    apply_url: str = ""
    salary: str | None = None
    logo: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def dedupe_key(self) -> str:
        """Normalized apply URL, or lowercase title_company when there is no URL."""
        if self.apply_url:
            return normalize_url(self.apply_url)
        return f"{self.title.lower()}_{self.company.lower()}"


class ScoreBreakdown(BaseModel):
    semantic: float = 0.0
    skill: float = 0.0
    recency: float = 0.0
    seniority: float = 0.0
    location: float = 0.0


class ScoredJobItem(JobItem):
    """JobItem with its blended ranking score and optional fit rationale."""

    score: float = Field(default=0.0, ge=0.0, le=1.0)
    score_breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    rationale: str | None = None


def normalize_url(url: str) -> str:
    """Lowercase scheme+host+path with query, fragment and trailing slash removed."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return url.strip().lower()
    if not parts.scheme or not parts.netloc:
        return url.strip().lower()
    return f"{parts.scheme}://{parts.netloc}{parts.path}".rstrip("/").lower()
