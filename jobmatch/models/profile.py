"""Pydantic models for LLM-extracted résumé profiles and search intents.

The LLM answers in camelCase and is sloppy with enums ("null", "Senior",
numbers as strings), so the validators here are deliberately forgiving:
anything that is not a recognized value becomes ``None`` or an empty list.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Seniority = Literal["entry", "mid", "senior", "lead", "executive"]
RemoteMode = Literal["remote", "hybrid", "onsite"]
RecencyWindow = Literal["today", "week", "month", "all"]

SENIORITY_LEVELS = ("entry", "mid", "senior", "lead", "executive")
REMOTE_MODES = ("remote", "hybrid", "onsite")
RECENCY_WINDOWS = ("today", "week", "month", "all")


def _coerce_choice(value: Any, choices: tuple[str, ...]) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    return value if value in choices else None


def _coerce_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items = [str(v).strip() for v in value if v is not None]
    return [item for item in items if item]


class ParsedProfile(BaseModel):
    """Structured résumé profile."""

    model_config = ConfigDict(populate_by_name=True)

    skills: list[str] = Field(default_factory=list)
    titles: list[str] = Field(default_factory=list)
    years_of_experience: int | None = Field(default=None, alias="yearsOfExperience")
    industries: list[str] = Field(default_factory=list)
    seniority: Seniority | None = None
    education: list[str] = Field(default_factory=list)
    achievements: list[str] = Field(default_factory=list)

    @field_validator("skills", "titles", "industries", "education", "achievements", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _coerce_str_list(v)

    @field_validator("seniority", mode="before")
    @classmethod
    def _seniority(cls, v: Any) -> str | None:
        return _coerce_choice(v, SENIORITY_LEVELS)

    @field_validator("years_of_experience", mode="before")
    @classmethod
    def _years(cls, v: Any) -> int | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            years = int(float(v))
        except (TypeError, ValueError):
            return None
        return years if years > 0 else None


class SalaryRange(BaseModel):
    min: float | None = None
    max: float | None = None


class ExtractedIntent(BaseModel):
    """Structured job search constraints extracted from the user's intent text."""

    model_config = ConfigDict(populate_by_name=True)

    roles: list[str] = Field(default_factory=list)
    industries: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    company_attributes: list[str] = Field(default_factory=list, alias="companyAttributes")
    seniority: Seniority | None = None
    remote: RemoteMode | None = None
    salary_range: SalaryRange | None = Field(default=None, alias="salaryRange")
    recency_window: RecencyWindow = Field(default="month", alias="recencyWindow")

    @field_validator("roles", "industries", "locations", "company_attributes", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _coerce_str_list(v)

    @field_validator("seniority", mode="before")
    @classmethod
    def _seniority(cls, v: Any) -> str | None:
        return _coerce_choice(v, SENIORITY_LEVELS)

    @field_validator("remote", mode="before")
    @classmethod
    def _remote(cls, v: Any) -> str | None:
        return _coerce_choice(v, REMOTE_MODES)

    @field_validator("recency_window", mode="before")
    @classmethod
    def _recency(cls, v: Any) -> str:
        return _coerce_choice(v, RECENCY_WINDOWS) or "month"

    @field_validator("salary_range", mode="before")
    @classmethod
    def _salary(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return None
        bounds: dict[str, float | None] = {}
        for key in ("min", "max"):
            try:
                bounds[key] = float(v[key]) if v.get(key) is not None else None
            except (TypeError, ValueError):
                bounds[key] = None
        if bounds["min"] is None and bounds["max"] is None:
            return None
        return bounds
