"""Runtime configuration — matcher.yaml defaults overlaid with environment variables."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_LOCATIONS = ["Bangalore", "Mumbai", "Delhi", "Pune", "Hyderabad"]


class ScoreWeights(BaseModel):
    """Weights used to blend the ranking sub-scores."""

    semantic: float = 0.5
    skill: float = 0.2
    recency: float = 0.15
    seniority: float = 0.1
    location: float = 0.05


class Settings(BaseModel):
    """All tunables for one process."""

    # Storage
    db_path: str = "jobmatch.db"
    upload_dir: str = "uploads"
    max_resume_bytes: int = 5 * 1024 * 1024

    # LLM (Ollama)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    embedding_model: str = "nomic-embed-text"
    llm_timeout: float = 120.0

    # Aggregator (JSearch on RapidAPI)
    rapidapi_key: str = ""
    jsearch_host: str = "jsearch.p.rapidapi.com"
    aggregator_delay: float = 0.5
    aggregator_results_per_query: int = 30
    aggregator_timeout: float = 30.0

    # Session scraping provider
    linkedin_enabled: bool = False
    linkedin_base_url: str = "https://www.linkedin.com"
    linkedin_threshold: int = 20
    linkedin_max_queries: int = 3
    linkedin_results_per_query: int = 25
    linkedin_timeout: float = 30.0

    # Ranking & output
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    top_n: int = 10
    concurrency: int = 5
    default_locations: list[str] = Field(default_factory=lambda: list(DEFAULT_LOCATIONS))

    # E-mail
    smtp_host: str = "smtp-relay.brevo.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = ""
    smtp_from_name: str = "Job Matcher"
    smtp_timeout: float = 60.0

    # Secrets
    kms_secret_key: str = ""


# env var -> (settings field, converter)
_ENV_OVERRIDES: dict[str, tuple[str, Any]] = {
    "DB_PATH": ("db_path", str),
    "UPLOAD_DIR": ("upload_dir", str),
    "OLLAMA_BASE_URL": ("ollama_base_url", str),
    "OLLAMA_MODEL": ("ollama_model", str),
    "OLLAMA_EMBED_MODEL": ("embedding_model", str),
    "RAPIDAPI_KEY": ("rapidapi_key", str),
    "LINKEDIN_ENABLED": ("linkedin_enabled", lambda v: v.strip().lower() in ("1", "true", "yes")),
    "LINKEDIN_THRESHOLD": ("linkedin_threshold", int),
    "TOP_N": ("top_n", int),
    "SMTP_HOST": ("smtp_host", str),
    "SMTP_PORT": ("smtp_port", int),
    "SMTP_USER": ("smtp_user", str),
    "SMTP_PASS": ("smtp_password", str),
    "SMTP_FROM_EMAIL": ("smtp_from_email", str),
    "SMTP_FROM_NAME": ("smtp_from_name", str),
    "KMS_SECRET_KEY": ("kms_secret_key", str),
}

_WEIGHT_ENV = {
    "SCORE_WEIGHT_SEMANTIC": "semantic",
    "SCORE_WEIGHT_SKILL": "skill",
    "SCORE_WEIGHT_RECENCY": "recency",
    "SCORE_WEIGHT_SENIORITY": "seniority",
    "SCORE_WEIGHT_LOCATION": "location",
}


def load_settings(filepath: str = "matcher.yaml", environ: dict[str, str] | None = None) -> Settings:
    """Build Settings from an optional YAML file, then apply environment overrides."""
    env = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    path = Path(filepath)
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded settings from %s", filepath)
    else:
        logger.debug("No settings file at %s, using defaults", filepath)

    for var, (field, convert) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw.strip() == "":
            continue
        try:
            data[field] = convert(raw)
        except ValueError:
            logger.warning("Ignoring invalid value for %s: %r", var, raw)

    weights = dict(data.get("weights") or {})
    for var, field in _WEIGHT_ENV.items():
        raw = env.get(var)
        if raw:
            try:
                weights[field] = float(raw)
            except ValueError:
                logger.warning("Ignoring invalid value for %s: %r", var, raw)
    if weights:
        data["weights"] = weights

    return Settings(**data)
