"""Pydantic models for run records, run metadata and persisted results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    EMAILED = "emailed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.EMAILED, RunStatus.ERROR)


# target status -> statuses it may be entered from
ALLOWED_TRANSITIONS: dict[RunStatus, tuple[RunStatus, ...]] = {
    RunStatus.RUNNING: (RunStatus.QUEUED,),
    RunStatus.EMAILED: (RunStatus.RUNNING,),
    RunStatus.ERROR: (RunStatus.RUNNING,),
}


class RunPreferences(BaseModel):
    """Optional free-text constraints submitted alongside the intent."""

    desired_role: str | None = None
    company_prefs: str | None = None
    location_pref: str | None = None
    remote_pref: str | None = None


class JobMatchRun(BaseModel):
    """Persisted record of one submission."""

    id: str
    user_id: str | None = None
    user_email: str
    intent_text: str
    preferences: RunPreferences = Field(default_factory=RunPreferences)
    resume_path: str | None = None
    status: RunStatus = RunStatus.QUEUED
    jobs_found: int = 0
    error: str | None = None
    metadata: dict = Field(default_factory=dict)
    email_sent_at: str | None = None
    created_at: str
    updated_at: str


class RunMetadata(BaseModel):
    """Diagnostics carried through the pipeline and stored with the run."""

    errors: list[str] = Field(default_factory=list)
    started_at: str | None = None
    finished_at: str | None = None
    stage_timestamps: dict[str, str] = Field(default_factory=dict)
    provider_flags: dict[str, bool | int] = Field(default_factory=dict)


class RunOutcome(BaseModel):
    """What the coordinator reports back for one run."""

    success: bool
    run_id: str
    jobs_found: int | None = None
    error: str | None = None


class RunResultRow(BaseModel):
    """One stored top job. Descriptions are intentionally not kept."""

    run_id: str
    title: str
    company: str
    location: str | None = None
    apply_url: str
    salary: str | None = None
    posted_at: str | None = None
    source: str
    score: float
    rationale: str | None = None


class RunStatusView(BaseModel):
    run_id: str
    status: RunStatus
    jobs_found: int
    error_message: str | None = None
    summary: str
