"""Build provider search queries from the parsed profile and extracted intent."""

from __future__ import annotations

import logging

from jobmatch.errors import ValidationError
from jobmatch.models.job import SearchQuery
from jobmatch.models.profile import ExtractedIntent, ParsedProfile

logger = logging.getLogger(__name__)

MAX_ROLES_FROM_PROFILE = 3
MAX_LOCATIONS = 3
MAX_COMPANY_ATTRIBUTES = 2
MIN_QUERIES = 3
FALLBACK_LOCATION = "India"


def build_queries(profile: ParsedProfile, intent: ExtractedIntent) -> list[SearchQuery]:
    """One query per role × location, capped to keep provider fan-out bounded.

    Roles come from the intent, or else the first three résumé titles. When
    fewer than three queries result, a country-wide query for the first role
    is appended.
    """
    roles = intent.roles or profile.titles[:MAX_ROLES_FROM_PROFILE]
    if not roles:
        raise ValidationError("No roles identified from resume or intent")

    suffix = intent.company_attributes[:MAX_COMPANY_ATTRIBUTES]
    if intent.seniority:
        suffix = [*suffix, intent.seniority]

    queries: list[SearchQuery] = []
    for role in roles:
        keywords = " ".join([role, *suffix])
        for location in intent.locations[:MAX_LOCATIONS]:
            queries.append(
                SearchQuery(
                    keywords=keywords,
                    location=location,
                    remote=intent.remote,
                    date_posted=intent.recency_window,
                )
            )

    if len(queries) < MIN_QUERIES:
        queries.append(
            SearchQuery(
                keywords=roles[0],
                location=FALLBACK_LOCATION,
                remote=intent.remote,
                date_posted=intent.recency_window,
            )
        )

    logger.info("Generated %d queries for %d role(s)", len(queries), len(roles))
    return queries
