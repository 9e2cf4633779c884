"""Runs the pipeline for one stored run and keeps its status record honest."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from jobmatch.errors import PersistenceError
from jobmatch.graph import STAGES, PipelineServices, PipelineState, build_pipeline
from jobmatch.models.run import RunMetadata, RunOutcome, RunStatus

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _failed_stage(state: PipelineState) -> str:
    """First stage without a timestamp. The optional session stage is never blamed."""
    metadata = state.get("metadata") or RunMetadata()
    for stage in STAGES:
        if stage == "session_search":
            continue
        if stage not in metadata.stage_timestamps:
            return stage
    return "pipeline"


class RunCoordinator:
    """Owns the queued → running → emailed|error lifecycle of a run."""

    def __init__(self, services: PipelineServices, pipeline: Any | None = None) -> None:
        self.services = services
        self.repository = services.repository
        self._pipeline = pipeline or build_pipeline(services)

    async def run(self, run_id: str) -> RunOutcome:
        try:
            run = self.repository.get_run(run_id)
        except PersistenceError as e:
            logger.error("Run %s: could not load run: %s", run_id, e)
            return RunOutcome(success=False, run_id=run_id, error=str(e))

        if run is None:
            logger.error("Run %s not found", run_id)
            return RunOutcome(success=False, run_id=run_id, error="Run not found")
        if run.status != RunStatus.QUEUED:
            logger.warning("Run %s is already %s, nothing to do", run_id, run.status.value)
            return RunOutcome(success=False, run_id=run_id, error=f"Run is already {run.status.value}")

        try:
            claimed = self.repository.transition(run_id, RunStatus.RUNNING)
        except PersistenceError as e:
            logger.error("Run %s: could not mark running: %s", run_id, e)
            return RunOutcome(success=False, run_id=run_id, error=str(e))
        if not claimed:
            return RunOutcome(success=False, run_id=run_id, error="Run was claimed by another worker")

        logger.info("Run %s: starting pipeline for %s", run_id, run.user_email)
        state: PipelineState = {
            "run_id": run.id,
            "user_id": run.user_id,
            "user_email": run.user_email,
            "intent_text": run.intent_text,
            "preferences": run.preferences,
            "resume_file_path": run.resume_path or "",
            "metadata": RunMetadata(started_at=_now()),
        }

        last_state: PipelineState = state
        try:
            async for values in self._pipeline.astream(state, stream_mode="values"):
                last_state = values
        except Exception as e:
            return self._fail(run_id, last_state, e)

        top_jobs = last_state.get("top_jobs", [])
        metadata = last_state["metadata"].model_copy(update={"finished_at": _now()})
        try:
            self.repository.transition(
                run_id,
                RunStatus.EMAILED,
                jobs_found=len(top_jobs),
                metadata=metadata.model_dump(),
                email_sent_at=_now(),
            )
        except PersistenceError as e:
            logger.error("Run %s: e-mail sent but status could not be saved: %s", run_id, e)
            return RunOutcome(success=False, run_id=run_id, jobs_found=len(top_jobs), error=str(e))

        logger.info(
            "Run %s: completed with %d jobs (%d non-fatal errors)",
            run_id, len(top_jobs), len(metadata.errors),
        )
        return RunOutcome(success=True, run_id=run_id, jobs_found=len(top_jobs))

    def _fail(self, run_id: str, state: PipelineState, error: Exception) -> RunOutcome:
        message = str(error) or type(error).__name__
        stage = _failed_stage(state)
        logger.error("Run %s: failed at %s: %s", run_id, stage, message)

        metadata = state.get("metadata") or RunMetadata()
        metadata = metadata.model_copy(
            update={"errors": [*metadata.errors, f"{stage}: {message}"], "finished_at": _now()}
        )
        try:
            self.repository.transition(
                run_id, RunStatus.ERROR, error=message, metadata=metadata.model_dump()
            )
        except PersistenceError as e:
            logger.error("Run %s: could not record failure: %s", run_id, e)

        return RunOutcome(success=False, run_id=run_id, error=message)
