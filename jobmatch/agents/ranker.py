"""Blend embedding similarity with simple heuristics into one [0, 1] score."""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone

from jobmatch.config import ScoreWeights
from jobmatch.errors import LLMError
from jobmatch.models.job import JobItem, ScoreBreakdown, ScoredJobItem
from jobmatch.models.profile import ExtractedIntent, ParsedProfile
from jobmatch.tools.llm import LLMClient
from jobmatch.tools.normalize import parse_posted_at

logger = logging.getLogger(__name__)

JOB_TEXT_LIMIT = 1000

SENIORITY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "entry": ("junior", "entry", "associate", "intern"),
    "mid": ("mid", "engineer", "analyst", "specialist"),
    "senior": ("senior", "lead", "principal"),
    "lead": ("lead", "staff", "principal", "architect"),
    "executive": ("director", "head", "vp", "chief", "cto", "ceo"),
}

# (max age in days, score), checked in order
RECENCY_BANDS = ((7, 1.0), (14, 0.9), (30, 0.7), (60, 0.5))
RECENCY_STALE = 0.3
NEUTRAL = 0.5


# =============================================================================
# Sub-scores
# =============================================================================


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def skill_score(skills: list[str], description: str | None) -> float:
    """Fraction of profile skills mentioned in the job description."""
    if not description or not skills:
        return 0.0
    text = description.lower()
    matched = sum(1 for skill in skills if skill.lower() in text)
    return min(matched / len(skills), 1.0)


def recency_score(posted_at: str | None, now: datetime | None = None) -> float:
    posted = parse_posted_at(posted_at)
    if posted is None:
        return NEUTRAL
    now = now or datetime.now(timezone.utc)
    days_ago = (now - posted).total_seconds() / 86400
    for max_days, score in RECENCY_BANDS:
        if days_ago <= max_days:
            return score
    return RECENCY_STALE


def seniority_score(seniority: str | None, title: str) -> float:
    if not seniority:
        return NEUTRAL
    title_lower = title.lower()
    keywords = SENIORITY_KEYWORDS.get(seniority, ())
    return 1.0 if any(k in title_lower for k in keywords) else NEUTRAL


def location_score(preferred: list[str], job_location: str | None) -> float:
    if not job_location or not preferred:
        return NEUTRAL
    job_lower = job_location.lower()
    return 1.0 if any(loc.lower() in job_lower for loc in preferred) else 0.3


def build_profile_text(intent_text: str, profile: ParsedProfile) -> str:
    parts = [
        f"Job Intent: {intent_text}",
        f"Skills: {', '.join(profile.skills)}",
        f"Titles: {', '.join(profile.titles)}",
        f"Industries: {', '.join(profile.industries)}",
    ]
    return "\n".join(parts)


def build_job_text(job: JobItem) -> str:
    return f"{job.title} at {job.company}. {job.description or ''}"[:JOB_TEXT_LIMIT]


# =============================================================================
# Ranking
# =============================================================================


async def rank_jobs(
    jobs: list[JobItem],
    profile: ParsedProfile,
    intent: ExtractedIntent,
    intent_text: str,
    llm: LLMClient,
    weights: ScoreWeights | None = None,
    concurrency: int = 5,
    now: datetime | None = None,
) -> tuple[list[ScoredJobItem], list[str]]:
    """Score and sort jobs, best first.

    Returns the ranked jobs and notes for jobs whose embedding failed (those
    get a semantic score of 0). A failed profile embedding raises LLMError.
    """
    if not jobs:
        logger.warning("No jobs to rank")
        return [], []

    weights = weights or ScoreWeights()
    now = now or datetime.now(timezone.utc)
    profile_vector = await llm.embed(build_profile_text(intent_text, profile))

    semaphore = asyncio.Semaphore(max(1, concurrency))
    notes: list[str] = []

    async def score(job: JobItem) -> ScoredJobItem:
        semantic = 0.0
        async with semaphore:
            try:
                semantic = cosine_similarity(profile_vector, await llm.embed(build_job_text(job)))
            except LLMError as e:
                logger.warning("Embedding failed for '%s' at %s: %s", job.title, job.company, e)
                notes.append(f"rank: embedding failed for {job.title} at {job.company}: {e}")

        breakdown = ScoreBreakdown(
            semantic=semantic,
            skill=skill_score(profile.skills, job.description),
            recency=recency_score(job.posted_at, now),
            seniority=seniority_score(profile.seniority, job.title),
            location=location_score(intent.locations, job.location),
        )
        total = (
            breakdown.semantic * weights.semantic
            + breakdown.skill * weights.skill
            + breakdown.recency * weights.recency
            + breakdown.seniority * weights.seniority
            + breakdown.location * weights.location
        )
        return ScoredJobItem(
            **job.model_dump(exclude={"dedupe_key"}),
            score=min(max(total, 0.0), 1.0),
            score_breakdown=breakdown,
        )

    scored = await asyncio.gather(*(score(job) for job in jobs))
    # sorted() is stable, so equal scores keep input order
    ranked = sorted(scored, key=lambda j: j.score, reverse=True)

    logger.info("Ranked %d jobs, top score: %.3f", len(ranked), ranked[0].score)
    return ranked, notes
