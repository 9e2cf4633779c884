"""LLM extraction of job search constraints from the user's free-text intent."""

from __future__ import annotations

import logging

from jobmatch.config import DEFAULT_LOCATIONS
from jobmatch.errors import ValidationError
from jobmatch.models.profile import ExtractedIntent, ParsedProfile
from jobmatch.models.run import RunPreferences
from jobmatch.tools.llm import LLMClient, ask_json

logger = logging.getLogger(__name__)

INTENT_PROMPT = """You are an expert job search query parser. Extract structured job search constraints from the user's natural language intent.

## Resume Profile:
- Skills: {skills}
- Previous Titles: {titles}
- Seniority: {seniority}
- Industries: {industries}
- Years of Experience: {years}

## User's Job Intent:
"{intent_text}"

## Additional Constraints:
- Desired Role: {desired_role}
- Company Preferences: {company_prefs}
- Location Preference: {location_pref}
- Remote Preference: {remote_pref}

## Required Output:
Respond ONLY with valid JSON matching this exact schema:
{{
    "roles": ["list of target job roles/titles"],
    "industries": ["specific industries or sectors mentioned"],
    "locations": ["cities or regions"],
    "companyAttributes": ["company characteristics like 'AI-first', 'startup', 'MNC', 'B2B'"],
    "seniority": "entry" | "mid" | "senior" | "lead" | "executive" | null,
    "remote": "remote" | "hybrid" | "onsite" | null,
    "salaryRange": {{"min": <number in LPA>, "max": <number in LPA>}} or null,
    "recencyWindow": "today" | "week" | "month" | "all"
}}

Rules:
- If no specific city is mentioned, use major tech hubs: {default_locations}
- Infer seniority from the resume if it is not explicit in the intent
- Default recencyWindow to "month"

Respond ONLY with the JSON object. No other text.
"""


def _or_unknown(value: object) -> str:
    if isinstance(value, list):
        return ", ".join(value) if value else "unknown"
    return str(value) if value else "not specified"


async def extract_intent(
    intent_text: str,
    preferences: RunPreferences | None,
    profile: ParsedProfile,
    llm: LLMClient,
    default_locations: list[str] | None = None,
) -> ExtractedIntent:
    """Turn the intent text plus preferences into an ExtractedIntent.

    Locations fall back to ``default_locations`` and seniority to the
    profile's when the model leaves them empty.
    """
    if not intent_text or not intent_text.strip():
        raise ValidationError("Job intent text not available")

    prefs = preferences or RunPreferences()
    locations = list(default_locations or DEFAULT_LOCATIONS)
    prompt = INTENT_PROMPT.format(
        skills=_or_unknown(profile.skills[:10]),
        titles=_or_unknown(profile.titles),
        seniority=profile.seniority or "unknown",
        industries=_or_unknown(profile.industries),
        years=profile.years_of_experience or "unknown",
        intent_text=intent_text.strip(),
        desired_role=_or_unknown(prefs.desired_role),
        company_prefs=_or_unknown(prefs.company_prefs),
        location_pref=_or_unknown(prefs.location_pref),
        remote_pref=_or_unknown(prefs.remote_pref),
        default_locations=", ".join(locations),
    )
    intent = await ask_json(llm, prompt, ExtractedIntent)

    updates: dict = {}
    if not intent.locations:
        updates["locations"] = locations
    if intent.seniority is None and profile.seniority is not None:
        updates["seniority"] = profile.seniority
    if updates:
        intent = intent.model_copy(update=updates)

    logger.info(
        "Extracted intent: %d roles, %d locations, remote=%s, recency=%s",
        len(intent.roles), len(intent.locations), intent.remote, intent.recency_window,
    )
    return intent
