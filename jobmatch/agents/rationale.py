"""Short "why this fits you" bullets for the top-ranked jobs."""

from __future__ import annotations

import asyncio
import logging
import re

from jobmatch.models.job import ScoredJobItem
from jobmatch.models.profile import ParsedProfile
from jobmatch.tools.llm import LLMClient

logger = logging.getLogger(__name__)

FALLBACK_RATIONALE = "• Strong match based on your profile and search criteria."
MAX_BULLETS = 3

RATIONALE_PROMPT = """You are a career advisor. Explain in 2-3 concise bullet points (each 10-15 words max) why this job is a great fit for the candidate.

## Profile:
- Skills: {skills}
- Titles: {titles}
- Seniority: {seniority}
- Industries: {industries}
- Years: {years}
- Education: {education}

## Intent:
{intent_text}

## Job:
- Title: {title}
- Company: {company}
- Location: {location}
- Description: {description}

Focus on skill matches, experience alignment, career progression and industry relevance.
Return ONLY the bullet points, no introduction. Start each point with "•".
"""

_BULLET_PREFIX = re.compile(r"^(?:[•\-*]|\d+[.)])\s*")


def clean_bullets(text: str, max_bullets: int = MAX_BULLETS) -> str:
    """Normalize model output to at most ``max_bullets`` lines starting with "• "."""
    lines = []
    for line in (text or "").splitlines():
        line = _BULLET_PREFIX.sub("", line.strip()).strip()
        if line:
            lines.append(f"• {line}")
    return "\n".join(lines[:max_bullets])


async def generate_rationales(
    jobs: list[ScoredJobItem],
    profile: ParsedProfile,
    intent_text: str,
    llm: LLMClient,
    top_n: int = 10,
    concurrency: int = 5,
) -> list[ScoredJobItem]:
    """Attach a rationale to each of the first ``top_n`` jobs.

    A failed or empty answer gets FALLBACK_RATIONALE; the batch never fails.
    """
    top = jobs[:top_n]
    if not top:
        logger.warning("No jobs to generate rationale for")
        return []

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def explain(job: ScoredJobItem) -> ScoredJobItem:
        prompt = RATIONALE_PROMPT.format(
            skills=", ".join(profile.skills[:15]) or "unknown",
            titles=", ".join(profile.titles) or "unknown",
            seniority=profile.seniority or "unknown",
            industries=", ".join(profile.industries) or "unknown",
            years=profile.years_of_experience or "unknown",
            education=", ".join(profile.education) or "unknown",
            intent_text=intent_text,
            title=job.title,
            company=job.company,
            location=job.location or "N/A",
            description=(job.description or "N/A")[:500],
        )
        async with semaphore:
            try:
                rationale = clean_bullets(await llm.complete(prompt, temperature=0.3))
            except Exception as e:
                logger.error("Rationale failed for '%s': %s", job.title, e)
                rationale = ""
        return job.model_copy(update={"rationale": rationale or FALLBACK_RATIONALE})

    results = await asyncio.gather(*(explain(job) for job in top))
    logger.info("Generated rationale for %d jobs", len(results))
    return list(results)
