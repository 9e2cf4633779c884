"""LangGraph workflow — résumé to ranked, e-mailed job matches."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypedDict

from langgraph.graph import END, StateGraph

from jobmatch.agents.intent_parser import extract_intent
from jobmatch.agents.query_builder import build_queries
from jobmatch.agents.rationale import generate_rationales
from jobmatch.agents.ranker import rank_jobs
from jobmatch.agents.resume_parser import extract_profile
from jobmatch.config import Settings
from jobmatch.errors import DeliveryError, ExtractionError, PersistenceError
from jobmatch.models.job import JobItem, ScoredJobItem, SearchQuery
from jobmatch.models.profile import ExtractedIntent, ParsedProfile
from jobmatch.models.run import RunMetadata, RunPreferences
from jobmatch.providers.base import JobProvider
from jobmatch.providers.registry import SessionProviderRegistry
from jobmatch.report.email_sender import EmailDispatcher
from jobmatch.storage.database import RunRepository
from jobmatch.tools.llm import LLMClient
from jobmatch.tools.normalize import normalize_and_dedupe
from jobmatch.tools.resume_text import ResumeTextExtractor

logger = logging.getLogger(__name__)

STAGES = (
    "ingest_resume",
    "extract_profile",
    "extract_intent",
    "build_queries",
    "aggregator_search",
    "session_search",
    "normalize_dedupe",
    "rank_jobs",
    "generate_rationale",
    "deliver",
)


# =============================================================================
# Pipeline State & Services
# =============================================================================


class PipelineState(TypedDict, total=False):
    """State passed between nodes in the LangGraph pipeline."""

    # Input
    run_id: str
    user_id: str | None
    user_email: str
    intent_text: str
    preferences: RunPreferences
    resume_file_path: str

    # Data
    resume_text: str
    parsed_profile: ParsedProfile
    extracted_intent: ExtractedIntent
    queries: list[SearchQuery]
    jobs_raw: list[JobItem]
    jobs_normalized: list[JobItem]
    jobs_ranked: list[ScoredJobItem]
    top_jobs: list[ScoredJobItem]

    # Output
    email_sent: bool
    metadata: RunMetadata


@dataclass
class PipelineServices:
    """Collaborators the nodes call out to. One instance per process."""

    settings: Settings
    llm: LLMClient
    aggregator: JobProvider
    repository: RunRepository
    emailer: EmailDispatcher
    extractor: ResumeTextExtractor = field(default_factory=ResumeTextExtractor)
    session_providers: SessionProviderRegistry | None = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _metadata(
    state: PipelineState,
    stage: str,
    errors: list[str] | None = None,
    flags: dict[str, bool | int] | None = None,
) -> RunMetadata:
    """A new RunMetadata with the stage stamped; the previous one is left untouched."""
    metadata = state.get("metadata") or RunMetadata()
    return metadata.model_copy(
        update={
            "errors": [*metadata.errors, *(errors or [])],
            "stage_timestamps": {**metadata.stage_timestamps, stage: _now()},
            "provider_flags": {**metadata.provider_flags, **(flags or {})},
        }
    )


# =============================================================================
# Node 1: Ingest Résumé
# =============================================================================


async def ingest_resume_node(state: PipelineState, services: PipelineServices) -> dict:
    """Extract plain text from the uploaded résumé, then delete the upload."""
    logger.info("=== Node 1: Ingest Resume ===")

    path = state.get("resume_file_path")
    if not path:
        raise ExtractionError("No resume file provided")

    try:
        text = await asyncio.to_thread(services.extractor.extract, path)
    finally:
        _remove_upload(path)

    logger.info("Extracted %d characters of resume text", len(text))
    return {"resume_text": text, "metadata": _metadata(state, "ingest_resume")}


def _remove_upload(path: str) -> None:
    try:
        os.remove(path)
        logger.debug("Deleted temporary resume file %s", path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not delete temporary resume file %s: %s", path, e)


# =============================================================================
# Nodes 2-4: Profile, Intent, Queries
# =============================================================================


async def extract_profile_node(state: PipelineState, services: PipelineServices) -> dict:
    logger.info("=== Node 2: Extract Profile ===")
    profile = await extract_profile(state.get("resume_text", ""), services.llm)
    return {"parsed_profile": profile, "metadata": _metadata(state, "extract_profile")}


async def extract_intent_node(state: PipelineState, services: PipelineServices) -> dict:
    logger.info("=== Node 3: Extract Intent ===")
    intent = await extract_intent(
        state.get("intent_text", ""),
        state.get("preferences"),
        state["parsed_profile"],
        services.llm,
        services.settings.default_locations,
    )
    return {"extracted_intent": intent, "metadata": _metadata(state, "extract_intent")}


async def build_queries_node(state: PipelineState, services: PipelineServices) -> dict:
    logger.info("=== Node 4: Build Queries ===")
    queries = build_queries(state["parsed_profile"], state["extracted_intent"])
    for q in queries:
        logger.debug("Query: '%s' in %s", q.keywords, q.location)
    return {"queries": queries, "metadata": _metadata(state, "build_queries")}


# =============================================================================
# Node 5: Aggregator Search
# =============================================================================


async def aggregator_search_node(state: PipelineState, services: PipelineServices) -> dict:
    """Run every query against the aggregator; failed queries are skipped."""
    logger.info("=== Node 5: Aggregator Search ===")

    queries = state.get("queries", [])
    settings = services.settings
    errors: list[str] = []

    async def run_query(index: int, query: SearchQuery) -> list[JobItem]:
        # Staggered start keeps the provider from seeing a burst
        if index:
            await services.sleep(index * settings.aggregator_delay)
        try:
            return await services.aggregator.search(query, limit=settings.aggregator_results_per_query)
        except Exception as e:
            logger.error("Aggregator query '%s' in %s failed: %s", query.keywords, query.location, e)
            errors.append(f"aggregator_search: '{query.keywords}' in {query.location}: {e}")
            return []

    results = await asyncio.gather(*(run_query(i, q) for i, q in enumerate(queries)))
    jobs = [job for batch in results for job in batch]

    logger.info("Aggregator returned %d jobs from %d queries", len(jobs), len(queries))
    return {
        "jobs_raw": jobs,
        "metadata": _metadata(
            state,
            "aggregator_search",
            errors=errors,
            flags={"aggregator_jobs": len(jobs), "linkedin_attempted": False, "linkedin_jobs": 0},
        ),
    }


# =============================================================================
# Node 6: Session Search (conditional)
# =============================================================================


def _should_search_session(state: PipelineState, services: PipelineServices) -> bool:
    settings = services.settings
    if not settings.linkedin_enabled or services.session_providers is None:
        return False
    found = len(state.get("jobs_raw", []))
    if found >= settings.linkedin_threshold:
        logger.info("Aggregator found %d jobs (>= %d), skipping session search", found, settings.linkedin_threshold)
        return False
    if not state.get("user_id"):
        logger.info("Run has no user id, skipping session search")
        return False
    return True


async def session_search_node(state: PipelineState, services: PipelineServices) -> dict:
    """Top up a thin aggregator result with the user's session provider.

    The provider is looked up here, once per run. A missing cookie or a storage
    failure only means no extra jobs.
    """
    logger.info("=== Node 6: Session Search ===")

    settings = services.settings
    errors: list[str] = []
    try:
        provider = services.session_providers.get(state.get("user_id"))
    except PersistenceError as e:
        logger.error("Session provider lookup failed: %s", e)
        errors.append(f"session_search: {e}")
        provider = None
    if provider is None and not errors:
        logger.info("No usable session cookie stored for this user")

    found: list[JobItem] = []
    if provider is not None:
        for query in state.get("queries", [])[: settings.linkedin_max_queries]:
            found.extend(await provider.search(query, limit=settings.linkedin_results_per_query))

    logger.info("Session provider returned %d jobs", len(found))
    return {
        "jobs_raw": [*state.get("jobs_raw", []), *found],
        "metadata": _metadata(
            state,
            "session_search",
            errors=errors,
            flags={"linkedin_attempted": provider is not None, "linkedin_jobs": len(found)},
        ),
    }


# =============================================================================
# Nodes 7-9: Normalize, Rank, Rationale
# =============================================================================


async def normalize_dedupe_node(state: PipelineState, services: PipelineServices) -> dict:
    logger.info("=== Node 7: Normalize & Dedupe ===")
    jobs = normalize_and_dedupe(state.get("jobs_raw", []))
    return {"jobs_normalized": jobs, "metadata": _metadata(state, "normalize_dedupe")}


async def rank_jobs_node(state: PipelineState, services: PipelineServices) -> dict:
    logger.info("=== Node 8: Rank Jobs ===")
    settings = services.settings
    ranked, notes = await rank_jobs(
        state.get("jobs_normalized", []),
        state["parsed_profile"],
        state["extracted_intent"],
        state.get("intent_text", ""),
        services.llm,
        weights=settings.weights,
        concurrency=settings.concurrency,
    )
    return {"jobs_ranked": ranked, "metadata": _metadata(state, "rank_jobs", errors=notes)}


async def generate_rationale_node(state: PipelineState, services: PipelineServices) -> dict:
    logger.info("=== Node 9: Generate Rationale ===")
    settings = services.settings
    top_jobs = await generate_rationales(
        state.get("jobs_ranked", []),
        state["parsed_profile"],
        state.get("intent_text", ""),
        services.llm,
        top_n=settings.top_n,
        concurrency=settings.concurrency,
    )
    return {"top_jobs": top_jobs, "metadata": _metadata(state, "generate_rationale")}


# =============================================================================
# Node 10: Deliver
# =============================================================================


async def deliver_node(state: PipelineState, services: PipelineServices) -> dict:
    """Store the top jobs, then e-mail them.

    Results are written first so they stay queryable if the e-mail fails.
    """
    logger.info("=== Node 10: Deliver ===")

    top_jobs = state.get("top_jobs", [])
    if not top_jobs:
        raise DeliveryError("No matching jobs found to send")

    errors: list[str] = []
    try:
        saved = services.repository.save_results(state["run_id"], top_jobs)
        logger.info("Saved %d result rows", saved)
    except PersistenceError as e:
        logger.error("Could not save results: %s", e)
        errors.append(f"deliver: could not save results: {e}")

    report = await services.emailer.send(state["user_email"], top_jobs, state.get("intent_text", ""))
    if not report.success:
        raise DeliveryError(f"Email delivery failed: {report.error or 'unknown error'}")

    logger.info("Emailed %d jobs to %s", len(top_jobs), state["user_email"])
    return {"email_sent": True, "metadata": _metadata(state, "deliver", errors=errors)}


# =============================================================================
# Build the Graph
# =============================================================================

NodeFn = Callable[[PipelineState, PipelineServices], Awaitable[dict]]


def _bind(name: str, node: NodeFn, services: PipelineServices) -> Callable[[PipelineState], Awaitable[dict]]:
    async def run(state: PipelineState) -> dict:
        try:
            return await node(state, services)
        except Exception as e:
            logger.error("Stage %s failed: %s", name, e)
            raise

    run.__name__ = name
    return run


def build_pipeline(services: PipelineServices) -> Any:
    """Build and compile the LangGraph pipeline around ``services``."""

    graph = StateGraph(PipelineState)

    nodes: dict[str, NodeFn] = {
        "ingest_resume": ingest_resume_node,
        "extract_profile": extract_profile_node,
        "extract_intent": extract_intent_node,
        "build_queries": build_queries_node,
        "aggregator_search": aggregator_search_node,
        "session_search": session_search_node,
        "normalize_dedupe": normalize_dedupe_node,
        "rank_jobs": rank_jobs_node,
        "generate_rationale": generate_rationale_node,
        "deliver": deliver_node,
    }
    for name, node in nodes.items():
        graph.add_node(name, _bind(name, node, services))

    graph.set_entry_point("ingest_resume")
    graph.add_edge("ingest_resume", "extract_profile")
    graph.add_edge("extract_profile", "extract_intent")
    graph.add_edge("extract_intent", "build_queries")
    graph.add_edge("build_queries", "aggregator_search")
    graph.add_conditional_edges(
        "aggregator_search",
        lambda state: "session_search" if _should_search_session(state, services) else "normalize_dedupe",
        {"session_search": "session_search", "normalize_dedupe": "normalize_dedupe"},
    )
    graph.add_edge("session_search", "normalize_dedupe")
    graph.add_edge("normalize_dedupe", "rank_jobs")
    graph.add_edge("rank_jobs", "generate_rationale")
    graph.add_edge("generate_rationale", "deliver")
    graph.add_edge("deliver", END)

    return graph.compile()
