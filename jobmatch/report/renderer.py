"""Plain-text and HTML bodies for the job match e-mail."""

from __future__ import annotations

from html import escape

from jobmatch.models.job import ScoredJobItem

SUBJECT_INTENT_LIMIT = 60


def subject(jobs: list[ScoredJobItem], intent_text: str) -> str:
    intent = " ".join((intent_text or "").split())
    if len(intent) > SUBJECT_INTENT_LIMIT:
        intent = intent[: SUBJECT_INTENT_LIMIT - 3].rstrip() + "..."
    return f"Top {len(jobs)} Job Matches for {intent or 'Your Search'}"


def _score_percent(job: ScoredJobItem) -> str:
    return f"{job.score * 100:.0f}%"


def render_text(jobs: list[ScoredJobItem], intent_text: str) -> str:
    lines = [
        "Your Job Matches",
        f"Based on: {intent_text}",
        "",
    ]
    for i, job in enumerate(jobs, 1):
        lines.append(f"{i}. {job.title} at {job.company} ({_score_percent(job)} match)")
        details = [d for d in (job.location, job.salary, job.posted_at) if d]
        if details:
            lines.append("   " + " | ".join(details))
        if job.rationale:
            lines.extend(f"   {line}" for line in job.rationale.splitlines())
        lines.append(f"   Apply: {job.apply_url}")
        lines.append("")
    return "\n".join(lines)


def render_html(jobs: list[ScoredJobItem], intent_text: str) -> str:
    cards = []
    for i, job in enumerate(jobs, 1):
        meta = " &middot; ".join(escape(d) for d in (job.location, job.salary) if d)
        bullets = "".join(
            f"<li>{escape(line.lstrip('• ').strip())}</li>"
            for line in (job.rationale or "").splitlines()
            if line.strip()
        )
        cards.append(
            f"""
    <div style="border:1px solid #e5e7eb;border-radius:8px;padding:16px;margin-bottom:16px;">
      <h3 style="margin:0 0 4px 0;">{i}. {escape(job.title)}</h3>
      <div style="color:#4b5563;">{escape(job.company)} <strong>({_score_percent(job)} match)</strong></div>
      <div style="color:#6b7280;font-size:13px;">{meta}</div>
      <ul>{bullets}</ul>
      <a href="{escape(job.apply_url, quote=True)}">Apply &rarr;</a>
    </div>"""
        )

    return f"""<!DOCTYPE html>
<html>
<body style="font-family:Arial,sans-serif;max-width:640px;margin:0 auto;">
  <h2>Your Job Matches</h2>
  <p style="color:#6b7280;">Based on: {escape(intent_text or '')}</p>
  {''.join(cards)}
</body>
</html>
"""
