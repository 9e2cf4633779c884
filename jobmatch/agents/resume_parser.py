"""LLM extraction of a structured profile from résumé text."""

from __future__ import annotations

import logging

from jobmatch.errors import ExtractionError
from jobmatch.models.profile import ParsedProfile
from jobmatch.tools.llm import LLMClient, ask_json

logger = logging.getLogger(__name__)

MAX_RESUME_CHARS = 12000

PROFILE_PROMPT = """You are an expert resume parser. Extract structured information from the following resume text.

## Resume:
{resume_text}

## Required Output:
Respond ONLY with valid JSON matching this exact schema:
{{
    "skills": ["list of technical and soft skills"],
    "titles": ["list of job titles held"],
    "yearsOfExperience": <total years as number, null if unknown>,
    "industries": ["list of industries worked in"],
    "seniority": "entry" | "mid" | "senior" | "lead" | "executive",
    "education": ["list of degrees and institutions"],
    "achievements": ["key achievements and quantifiable results"]
}}

Respond ONLY with the JSON object. No other text.
"""


async def extract_profile(resume_text: str, llm: LLMClient) -> ParsedProfile:
    """Ask the LLM for the résumé's skills, titles, seniority and so on."""
    if not resume_text or not resume_text.strip():
        raise ExtractionError("Resume text not available")

    prompt = PROFILE_PROMPT.format(resume_text=resume_text[:MAX_RESUME_CHARS])
    profile = await ask_json(llm, prompt, ParsedProfile)

    logger.info(
        "Parsed profile: %d skills, %d titles, seniority=%s",
        len(profile.skills), len(profile.titles), profile.seniority,
    )
    return profile
