"""SQLite storage for runs, their result rows, and encrypted user secrets."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from jobmatch.errors import PersistenceError
from jobmatch.models.job import ScoredJobItem
from jobmatch.models.run import (
    ALLOWED_TRANSITIONS,
    JobMatchRun,
    RunPreferences,
    RunResultRow,
    RunStatus,
)
from jobmatch.models.secret import SecretStatus, StoredSecret
from jobmatch.security.crypto import EncryptedBlob

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS runs (
    id            TEXT PRIMARY KEY,
    user_id       TEXT,
    user_email    TEXT NOT NULL,
    intent_text   TEXT NOT NULL,
    preferences   TEXT,  -- JSON object
    resume_path   TEXT,
    status        TEXT NOT NULL DEFAULT 'queued',
    jobs_found    INTEGER DEFAULT 0,
    error         TEXT,
    metadata      TEXT,  -- JSON object
    email_sent_at TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_runs_user_id ON runs(user_id);
CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status);

CREATE TABLE IF NOT EXISTS run_results (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id        TEXT NOT NULL REFERENCES runs(id),
    position      INTEGER NOT NULL,
    title         TEXT NOT NULL,
    company       TEXT NOT NULL,
    location      TEXT,
    apply_url     TEXT NOT NULL,
    salary        TEXT,
    posted_at     TEXT,
    source        TEXT NOT NULL,
    score         REAL NOT NULL,
    rationale     TEXT
);

CREATE INDEX IF NOT EXISTS idx_run_results_run_id ON run_results(run_id);

CREATE TABLE IF NOT EXISTS user_secrets (
    user_id        TEXT NOT NULL,
    key            TEXT NOT NULL,
    ciphertext     TEXT NOT NULL,
    nonce          TEXT NOT NULL,
    auth_tag       TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'active',
    last_tested_at TEXT,
    updated_at     TEXT NOT NULL,
    PRIMARY KEY (user_id, key)
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunRepository:
    """SQLite-backed repository for run records, results and secrets.

    Every ``sqlite3.Error`` surfaces as ``PersistenceError``.
    """

    def __init__(self, db_path: str = "jobmatch.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        with self._errors("initialize schema"):
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            self._conn.rollback()
            raise PersistenceError(f"Failed to {action}: {e}") from e

    # -- Runs -------------------------------------------------------------------

    def create_run(
        self,
        user_email: str,
        intent_text: str,
        preferences: RunPreferences | None = None,
        resume_path: str | None = None,
        user_id: str | None = None,
    ) -> JobMatchRun:
        """Insert a new run in the ``queued`` state."""
        now = _now()
        run = JobMatchRun(
            id=uuid.uuid4().hex,
            user_id=user_id,
            user_email=user_email,
            intent_text=intent_text,
            preferences=preferences or RunPreferences(),
            resume_path=resume_path,
            created_at=now,
            updated_at=now,
        )
        with self._errors("create run"):
            self._conn.execute(
                """
                INSERT INTO runs (id, user_id, user_email, intent_text, preferences,
                                  resume_path, status, jobs_found, metadata,
                                  created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 0, '{}', ?, ?)
                """,
                (
                    run.id,
                    run.user_id,
                    run.user_email,
                    run.intent_text,
                    run.preferences.model_dump_json(),
                    run.resume_path,
                    run.status.value,
                    run.created_at,
                    run.updated_at,
                ),
            )
            self._conn.commit()
        logger.info("Created run %s for %s", run.id, user_email)
        return run

    def get_run(self, run_id: str) -> JobMatchRun | None:
        with self._errors("load run"):
            row = self._conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,)).fetchone()
        if row is None:
            return None
        return JobMatchRun(
            id=row["id"],
            user_id=row["user_id"],
            user_email=row["user_email"],
            intent_text=row["intent_text"],
            preferences=RunPreferences.model_validate_json(row["preferences"] or "{}"),
            resume_path=row["resume_path"],
            status=RunStatus(row["status"]),
            jobs_found=row["jobs_found"] or 0,
            error=row["error"],
            metadata=json.loads(row["metadata"] or "{}"),
            email_sent_at=row["email_sent_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def transition(
        self,
        run_id: str,
        status: RunStatus,
        *,
        error: str | None = None,
        jobs_found: int | None = None,
        metadata: dict | None = None,
        email_sent_at: str | None = None,
    ) -> bool:
        """Move a run to ``status`` if its current status allows it.

        The check and the write are one guarded UPDATE, so two workers racing
        on the same run cannot both win. Returns False when the transition was
        not allowed (including re-entering a terminal state).
        """
        allowed = ALLOWED_TRANSITIONS.get(status, ())
        if not allowed:
            return False

        sets = ["status = ?", "updated_at = ?"]
        params: list = [status.value, _now()]
        if error is not None:
            sets.append("error = ?")
            params.append(error)
        if jobs_found is not None:
            sets.append("jobs_found = ?")
            params.append(jobs_found)
        if metadata is not None:
            sets.append("metadata = ?")
            params.append(json.dumps(metadata, default=str))
        if email_sent_at is not None:
            sets.append("email_sent_at = ?")
            params.append(email_sent_at)

        placeholders = ", ".join("?" for _ in allowed)
        params.extend([run_id, *(s.value for s in allowed)])

        with self._errors(f"update run {run_id} to {status.value}"):
            cursor = self._conn.execute(
                f"UPDATE runs SET {', '.join(sets)} WHERE id = ? AND status IN ({placeholders})",
                params,
            )
            self._conn.commit()

        if cursor.rowcount == 0:
            logger.warning("Run %s: transition to %s rejected", run_id, status.value)
            return False
        logger.debug("Run %s -> %s", run_id, status.value)
        return True

    # -- Results ----------------------------------------------------------------

    def save_results(self, run_id: str, jobs: list[ScoredJobItem]) -> int:
        """Replace the stored top jobs for a run. Descriptions are not stored."""
        rows = [
            (
                run_id,
                position,
                job.title,
                job.company,
                job.location,
                job.apply_url,
                job.salary,
                job.posted_at,
                job.source,
                job.score,
                job.rationale,
            )
            for position, job in enumerate(jobs)
        ]
        with self._errors(f"save results for run {run_id}"):
            self._conn.execute("DELETE FROM run_results WHERE run_id = ?", (run_id,))
            self._conn.executemany(
                """
                INSERT INTO run_results (run_id, position, title, company, location,
                                         apply_url, salary, posted_at, source, score,
                                         rationale)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            self._conn.commit()
        return len(rows)

    def get_results(self, run_id: str) -> list[RunResultRow]:
        with self._errors(f"load results for run {run_id}"):
            rows = self._conn.execute(
                "SELECT * FROM run_results WHERE run_id = ? ORDER BY position",
                (run_id,),
            ).fetchall()
        return [
            RunResultRow(
                run_id=row["run_id"],
                title=row["title"],
                company=row["company"],
                location=row["location"],
                apply_url=row["apply_url"],
                salary=row["salary"],
                posted_at=row["posted_at"],
                source=row["source"],
                score=row["score"],
                rationale=row["rationale"],
            )
            for row in rows
        ]

    # -- Secrets ----------------------------------------------------------------

    def save_secret(
        self, user_id: str, key: str, blob: EncryptedBlob, status: SecretStatus = "active"
    ) -> None:
        """Insert or replace an encrypted secret. Saving resets the status."""
        with self._errors("save secret"):
            self._conn.execute(
                """
                INSERT INTO user_secrets (user_id, key, ciphertext, nonce, auth_tag,
                                          status, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, key) DO UPDATE SET
                    ciphertext = excluded.ciphertext,
                    nonce = excluded.nonce,
                    auth_tag = excluded.auth_tag,
                    status = excluded.status,
                    last_tested_at = NULL,
                    updated_at = excluded.updated_at
                """,
                (user_id, key, blob.ciphertext, blob.nonce, blob.auth_tag, status, _now()),
            )
            self._conn.commit()

    def get_secret(self, user_id: str, key: str) -> StoredSecret | None:
        with self._errors("load secret"):
            row = self._conn.execute(
                "SELECT * FROM user_secrets WHERE user_id = ? AND key = ?",
                (user_id, key),
            ).fetchone()
        if row is None:
            return None
        return StoredSecret(
            user_id=row["user_id"],
            key=row["key"],
            blob=EncryptedBlob(
                ciphertext=row["ciphertext"], nonce=row["nonce"], auth_tag=row["auth_tag"]
            ),
            status=row["status"],
            last_tested_at=row["last_tested_at"],
            updated_at=row["updated_at"],
        )

    def update_secret_status(
        self, user_id: str, key: str, status: SecretStatus, tested: bool = False
    ) -> bool:
        now = _now()
        with self._errors("update secret status"):
            if tested:
                cursor = self._conn.execute(
                    "UPDATE user_secrets SET status = ?, last_tested_at = ?, updated_at = ? "
                    "WHERE user_id = ? AND key = ?",
                    (status, now, now, user_id, key),
                )
            else:
                cursor = self._conn.execute(
                    "UPDATE user_secrets SET status = ?, updated_at = ? WHERE user_id = ? AND key = ?",
                    (status, now, user_id, key),
                )
            self._conn.commit()
        return cursor.rowcount > 0
