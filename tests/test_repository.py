"""Tests for the SQLite run repository."""

from __future__ import annotations

import pytest

from jobmatch.errors import PersistenceError
from jobmatch.models.job import ScoredJobItem
from jobmatch.models.run import RunPreferences, RunStatus
from jobmatch.security.crypto import CryptoBox, generate_key
from jobmatch.storage.database import RunRepository


@pytest.fixture
def repo(tmp_path) -> RunRepository:
    repository = RunRepository(str(tmp_path / "runs.db"))
    yield repository
    repository.close()


def _make_scored(title: str, score: float, **kwargs) -> ScoredJobItem:
    return ScoredJobItem(
        source=kwargs.pop("source", "jsearch"),
        title=title,
        company=kwargs.pop("company", "Acme"),
        apply_url=kwargs.pop("apply_url", f"https://acme.example/{title.replace(' ', '-')}"),
        description="Long description that must never be persisted",
        score=score,
        **kwargs,
    )


class TestRuns:
    """Test suite for run records."""

    def test_create_and_get(self, repo: RunRepository) -> None:
        run = repo.create_run(
            user_email="me@example.com",
            intent_text="Senior PM roles",
            preferences=RunPreferences(location_pref="Bangalore"),
            resume_path="/tmp/cv.pdf",
            user_id="u1",
        )
        loaded = repo.get_run(run.id)

        assert loaded is not None
        assert loaded.status == RunStatus.QUEUED
        assert loaded.user_id == "u1"
        assert loaded.preferences.location_pref == "Bangalore"
        assert loaded.resume_path == "/tmp/cv.pdf"
        assert loaded.metadata == {}
        assert loaded.jobs_found == 0

    def test_unknown_run(self, repo: RunRepository) -> None:
        assert repo.get_run("missing") is None

    def test_ids_are_unique(self, repo: RunRepository) -> None:
        ids = {repo.create_run("a@b.co", "x").id for _ in range(5)}
        assert len(ids) == 5

    def test_persists_across_connections(self, tmp_path) -> None:
        path = str(tmp_path / "nested" / "runs.db")
        first = RunRepository(path)
        run_id = first.create_run("a@b.co", "x").id
        first.close()

        second = RunRepository(path)
        assert second.get_run(run_id) is not None
        second.close()


class TestTransitions:
    """Test suite for the run status machine."""

    def test_happy_path(self, repo: RunRepository) -> None:
        run_id = repo.create_run("a@b.co", "x").id
        assert repo.transition(run_id, RunStatus.RUNNING) is True
        assert repo.transition(
            run_id,
            RunStatus.EMAILED,
            jobs_found=7,
            metadata={"errors": ["jsearch: HTTP 500"]},
            email_sent_at="2025-06-01T00:00:00+00:00",
        ) is True

        run = repo.get_run(run_id)
        assert run.status == RunStatus.EMAILED
        assert run.jobs_found == 7
        assert run.metadata == {"errors": ["jsearch: HTTP 500"]}
        assert run.email_sent_at == "2025-06-01T00:00:00+00:00"

    def test_error_records_message(self, repo: RunRepository) -> None:
        run_id = repo.create_run("a@b.co", "x").id
        repo.transition(run_id, RunStatus.RUNNING)
        assert repo.transition(run_id, RunStatus.ERROR, error="No roles could be derived") is True
        assert repo.get_run(run_id).error == "No roles could be derived"

    @pytest.mark.parametrize("target", [RunStatus.EMAILED, RunStatus.ERROR, RunStatus.QUEUED])
    def test_queued_cannot_skip_running(self, repo: RunRepository, target: RunStatus) -> None:
        run_id = repo.create_run("a@b.co", "x").id
        assert repo.transition(run_id, target) is False
        assert repo.get_run(run_id).status == RunStatus.QUEUED

    def test_second_claim_loses(self, repo: RunRepository) -> None:
        run_id = repo.create_run("a@b.co", "x").id
        assert repo.transition(run_id, RunStatus.RUNNING) is True
        assert repo.transition(run_id, RunStatus.RUNNING) is False

    @pytest.mark.parametrize("terminal", [RunStatus.EMAILED, RunStatus.ERROR])
    def test_terminal_states_are_final(self, repo: RunRepository, terminal: RunStatus) -> None:
        run_id = repo.create_run("a@b.co", "x").id
        repo.transition(run_id, RunStatus.RUNNING)
        repo.transition(run_id, terminal, error="boom" if terminal == RunStatus.ERROR else None)

        for target in RunStatus:
            assert repo.transition(run_id, target, error="late") is False
        run = repo.get_run(run_id)
        assert run.status == terminal
        assert run.error != "late"

    def test_unknown_run_is_rejected(self, repo: RunRepository) -> None:
        assert repo.transition("missing", RunStatus.RUNNING) is False


class TestResults:
    """Test suite for stored top jobs."""

    def test_round_trip_in_rank_order(self, repo: RunRepository) -> None:
        run_id = repo.create_run("a@b.co", "x").id
        jobs = [_make_scored("Lead PM", 0.9, rationale="• Great fit"), _make_scored("PM", 0.4, salary="INR 1-2")]

        assert repo.save_results(run_id, jobs) == 2
        rows = repo.get_results(run_id)

        assert [r.title for r in rows] == ["Lead PM", "PM"]
        assert rows[0].score == pytest.approx(0.9)
        assert rows[0].rationale == "• Great fit"
        assert rows[1].salary == "INR 1-2"
        assert not hasattr(rows[0], "description")

    def test_description_not_stored(self, repo: RunRepository) -> None:
        run_id = repo.create_run("a@b.co", "x").id
        repo.save_results(run_id, [_make_scored("PM", 0.5)])
        columns = [row[1] for row in repo._conn.execute("PRAGMA table_info(run_results)")]
        assert "description" not in columns

    def test_save_replaces(self, repo: RunRepository) -> None:
        run_id = repo.create_run("a@b.co", "x").id
        repo.save_results(run_id, [_make_scored("Old", 0.5)])
        repo.save_results(run_id, [_make_scored("New", 0.6)])
        assert [r.title for r in repo.get_results(run_id)] == ["New"]

    def test_results_are_per_run(self, repo: RunRepository) -> None:
        first = repo.create_run("a@b.co", "x").id
        second = repo.create_run("a@b.co", "y").id
        repo.save_results(first, [_make_scored("PM", 0.5)])
        assert repo.get_results(second) == []


class TestSecrets:
    """Test suite for encrypted secret storage."""

    def test_upsert_resets_status(self, repo: RunRepository) -> None:
        box = CryptoBox.from_hex(generate_key())
        repo.save_secret("u1", "linkedin_cookie", box.encrypt("first"))
        assert repo.update_secret_status("u1", "linkedin_cookie", "invalid", tested=True) is True
        assert repo.get_secret("u1", "linkedin_cookie").last_tested_at is not None

        repo.save_secret("u1", "linkedin_cookie", box.encrypt("second"))
        secret = repo.get_secret("u1", "linkedin_cookie")
        assert secret.status == "active"
        assert secret.last_tested_at is None
        assert box.decrypt(secret.blob) == "second"

    def test_ciphertext_only_at_rest(self, repo: RunRepository) -> None:
        box = CryptoBox.from_hex(generate_key())
        repo.save_secret("u1", "linkedin_cookie", box.encrypt("AQEDAS-plaintext-cookie"))
        dump = "\n".join(repo._conn.iterdump())
        assert "AQEDAS-plaintext-cookie" not in dump

    def test_missing_secret(self, repo: RunRepository) -> None:
        assert repo.get_secret("nobody", "linkedin_cookie") is None
        assert repo.update_secret_status("nobody", "linkedin_cookie", "blocked") is False


class TestErrors:
    def test_sqlite_errors_are_wrapped(self, repo: RunRepository) -> None:
        repo._conn.execute("DROP TABLE runs")
        with pytest.raises(PersistenceError, match="load run"):
            repo.get_run("anything")
        with pytest.raises(PersistenceError, match="create run"):
            repo.create_run("a@b.co", "x")
