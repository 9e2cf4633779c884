"""Normalization and deduplication of raw provider results."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from bs4 import BeautifulSoup

from jobmatch.models.job import JobItem

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[a-zA-Z/][^>]*>")


def clean_text(text: str | None) -> str:
    """Trim and collapse whitespace."""
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def clean_html(raw: str | None) -> str:
    """Strip HTML tags (when present) and normalize whitespace."""
    if not raw:
        return ""
    if not _TAG_RE.search(raw):
        return clean_text(raw)

    soup = BeautifulSoup(raw, "html.parser")
    for element in soup(["script", "style", "nav", "footer", "header"]):
        element.decompose()
    return clean_text(soup.get_text(separator=" "))


def normalize_job(job: JobItem) -> JobItem:
    """Return a copy of ``job`` with its text fields cleaned."""
    return job.model_copy(
        update={
            "title": clean_text(job.title),
            "company": clean_text(job.company),
            "location": clean_text(job.location) or None,
            "description": clean_html(job.description) or None,
            "description_snippet": clean_html(job.description_snippet) or None,
            "apply_url": (job.apply_url or "").strip(),
        }
    )


def dedupe_jobs(jobs: list[JobItem]) -> list[JobItem]:
    """Drop later duplicates by normalized URL (or title_company), keeping order."""
    seen: set[str] = set()
    deduped: list[JobItem] = []
    for job in jobs:
        key = job.dedupe_key
        if key in seen:
            continue
        seen.add(key)
        deduped.append(job)
    return deduped


def normalize_and_dedupe(jobs: list[JobItem]) -> list[JobItem]:
    normalized = [normalize_job(job) for job in jobs]
    deduped = dedupe_jobs(normalized)
    logger.info(
        "Normalized %d jobs, deduped to %d (%d duplicates dropped)",
        len(normalized), len(deduped), len(normalized) - len(deduped),
    )
    return deduped


def parse_posted_at(value: str | int | float | None) -> datetime | None:
    """Parse a posting date (ISO string, feed date, or epoch seconds) to an aware datetime."""
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    date_str = str(value).strip()
    if date_str.isdigit():
        return parse_posted_at(int(date_str))

    try:
        dt = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    formats = [
        "%a, %d %b %Y %H:%M:%S %z",  # RFC 822
        "%a, %d %b %Y %H:%M:%S %Z",
        "%Y-%m-%dT%H:%M:%S.%fZ",
        "%Y-%m-%d %H:%M:%S",
        "%d %b %Y",
        "%B %d, %Y",
    ]
    for fmt in formats:
        try:
            dt = datetime.strptime(date_str, fmt)
        except ValueError:
            continue
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

    logger.debug("Could not parse date: %s", date_str)
    return None
