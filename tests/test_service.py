"""Tests for the JobMatchService facade: submission, polling and cookie management."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from jobmatch.config import Settings
from jobmatch.errors import CryptoError, ValidationError
from jobmatch.graph import PipelineServices
from jobmatch.models.job import ScoredJobItem
from jobmatch.models.run import RunOutcome, RunStatus
from jobmatch.models.secret import LINKEDIN_COOKIE_KEY
from jobmatch.providers.registry import SessionProviderRegistry
from jobmatch.providers.resilience import HumanPacer
from jobmatch.report.email_sender import DeliveryReport
from jobmatch.security.crypto import CryptoBox, generate_key
from jobmatch.service import JobMatchService
from jobmatch.storage.database import RunRepository


class StubCoordinator:
    def __init__(self) -> None:
        self.ran: list[str] = []

    async def run(self, run_id: str) -> RunOutcome:
        self.ran.append(run_id)
        return RunOutcome(success=True, run_id=run_id, jobs_found=0)


class NullEmailer:
    async def send(self, to, jobs, intent_text) -> DeliveryReport:
        return DeliveryReport(success=True)


def _linkedin_handler(feed_text: str = "<html>feed</html>"):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/feed/":
            return httpx.Response(200, text=feed_text)
        return httpx.Response(200, text="<html>page</html>")

    return handler


def _make_service(tmp_path, make_llm, crypto: CryptoBox | None = None, handler=None, **settings) -> JobMatchService:
    settings.setdefault("upload_dir", str(tmp_path / "uploads"))
    settings.setdefault("linkedin_enabled", True)
    config = Settings(**settings)
    repository = RunRepository(str(tmp_path / "runs.db"))
    registry = SessionProviderRegistry(
        repository,
        crypto,
        config,
        client_factory=lambda: httpx.AsyncClient(
            transport=httpx.MockTransport(handler or _linkedin_handler()), follow_redirects=True
        ),
    )
    services = PipelineServices(
        settings=config,
        llm=make_llm(),
        aggregator=None,
        repository=repository,
        emailer=NullEmailer(),
        session_providers=registry,
    )
    return JobMatchService(config, services, crypto=crypto, coordinator=StubCoordinator())


@pytest.fixture
def resume(tmp_path):
    path = tmp_path / "cv.txt"
    path.write_text("Product Manager with 7 years of experience", encoding="utf-8")
    return path


class TestSubmit:
    """Test suite for submission validation."""

    def test_queues_run_with_private_copy(self, tmp_path, make_llm, resume) -> None:
        service = _make_service(tmp_path, make_llm)
        run_id = service.submit(str(resume), "  Senior PM roles  ", "me@example.com", user_id="u1")

        run = service.repository.get_run(run_id)
        assert run.status == RunStatus.QUEUED
        assert run.intent_text == "Senior PM roles"
        assert run.user_id == "u1"
        assert run.resume_path != str(resume)
        assert run.resume_path.endswith(".txt")
        assert (tmp_path / "uploads").is_dir()
        assert resume.exists()

    @pytest.mark.parametrize(
        "intent, email, message",
        [
            ("", "me@example.com", "intent"),
            ("   ", "me@example.com", "intent"),
            ("PM roles", "not-an-email", "email"),
            ("PM roles", "", "email"),
        ],
    )
    def test_rejects_bad_input(self, tmp_path, make_llm, resume, intent, email, message) -> None:
        service = _make_service(tmp_path, make_llm)
        with pytest.raises(ValidationError, match=f"(?i){message}"):
            service.submit(str(resume), intent, email)
        assert not (tmp_path / "uploads").exists()

    def test_missing_file(self, tmp_path, make_llm) -> None:
        service = _make_service(tmp_path, make_llm)
        with pytest.raises(ValidationError, match="Resume file is required"):
            service.submit(str(tmp_path / "nope.pdf"), "PM roles", "me@example.com")

    def test_unsupported_type(self, tmp_path, make_llm) -> None:
        path = tmp_path / "cv.rtf"
        path.write_text("x", encoding="utf-8")
        service = _make_service(tmp_path, make_llm)
        with pytest.raises(ValidationError, match="Unsupported"):
            service.submit(str(path), "PM roles", "me@example.com")

    def test_too_large(self, tmp_path, make_llm, resume) -> None:
        service = _make_service(tmp_path, make_llm, max_resume_bytes=10)
        with pytest.raises(ValidationError, match="larger than"):
            service.submit(str(resume), "PM roles", "me@example.com")

    def test_execute_delegates_to_coordinator(self, tmp_path, make_llm, resume) -> None:
        service = _make_service(tmp_path, make_llm)
        run_id = service.submit(str(resume), "PM roles", "me@example.com")
        outcome = asyncio.run(service.execute(run_id))
        assert outcome.success is True
        assert service.coordinator.ran == [run_id]


class TestStatus:
    """Test suite for status summaries and results."""

    def test_summaries(self, tmp_path, make_llm, resume) -> None:
        service = _make_service(tmp_path, make_llm)
        repo = service.repository
        run_id = service.submit(str(resume), "PM roles", "me@example.com")

        assert service.status(run_id).summary == "Your request is queued for processing"

        repo.transition(run_id, RunStatus.RUNNING)
        assert service.status(run_id).summary == "Analyzing your resume and searching for jobs..."

        repo.transition(run_id, RunStatus.EMAILED, jobs_found=4)
        view = service.status(run_id)
        assert view.summary == "Successfully found 4 jobs and sent email"
        assert view.jobs_found == 4

    def test_error_summary(self, tmp_path, make_llm, resume) -> None:
        service = _make_service(tmp_path, make_llm)
        run_id = service.submit(str(resume), "PM roles", "me@example.com")
        service.repository.transition(run_id, RunStatus.RUNNING)
        service.repository.transition(run_id, RunStatus.ERROR, error="No roles identified from resume or intent")

        view = service.status(run_id)
        assert view.status == RunStatus.ERROR
        assert view.summary == "No roles identified from resume or intent"
        assert view.error_message == view.summary

    def test_results(self, tmp_path, make_llm, resume) -> None:
        service = _make_service(tmp_path, make_llm)
        run_id = service.submit(str(resume), "PM roles", "me@example.com")
        service.repository.save_results(
            run_id,
            [ScoredJobItem(source="jsearch", title="PM", company="Acme", apply_url="https://a.example/1", score=0.7)],
        )
        assert [r.title for r in service.results(run_id)] == ["PM"]

    def test_unknown_run(self, tmp_path, make_llm) -> None:
        service = _make_service(tmp_path, make_llm)
        with pytest.raises(ValidationError):
            service.status("missing")
        with pytest.raises(ValidationError):
            service.results("missing")


class TestSessionCookies:
    """Test suite for storing, testing and resetting the session cookie."""

    def test_save_requires_key(self, tmp_path, make_llm) -> None:
        service = _make_service(tmp_path, make_llm, crypto=None)
        with pytest.raises(CryptoError):
            asyncio.run(service.save_session_cookie("u1", "AQEDAS"))

    def test_save_rejects_empty(self, tmp_path, make_llm) -> None:
        service = _make_service(tmp_path, make_llm, crypto=CryptoBox.from_hex(generate_key()))
        with pytest.raises(ValidationError):
            asyncio.run(service.save_session_cookie("u1", "   "))

    def test_save_encrypts(self, tmp_path, make_llm) -> None:
        crypto = CryptoBox.from_hex(generate_key())
        service = _make_service(tmp_path, make_llm, crypto=crypto)
        asyncio.run(service.save_session_cookie("u1", " AQEDAS-cookie "))

        secret = service.repository.get_secret("u1", LINKEDIN_COOKIE_KEY)
        assert secret.status == "active"
        assert "AQEDAS" not in secret.blob.ciphertext
        assert crypto.decrypt(secret.blob) == "AQEDAS-cookie"

    def test_cookie_test_marks_active(self, tmp_path, make_llm, no_sleep) -> None:
        service = _make_service(tmp_path, make_llm, crypto=CryptoBox.from_hex(generate_key()))

        async def scenario():
            await service.save_session_cookie("u1", "AQEDAS-cookie")
            service.registry.get("u1").pacer = HumanPacer(sleep=no_sleep)
            return await service.test_session_cookie("u1")

        result = asyncio.run(scenario())
        assert result.available is True
        secret = service.repository.get_secret("u1", LINKEDIN_COOKIE_KEY)
        assert secret.status == "active"
        assert secret.last_tested_at is not None

    def test_cookie_test_marks_invalid(self, tmp_path, make_llm, no_sleep) -> None:
        service = _make_service(
            tmp_path,
            make_llm,
            crypto=CryptoBox.from_hex(generate_key()),
            handler=_linkedin_handler("<html>Let's do a quick security check</html>"),
        )

        async def scenario():
            await service.save_session_cookie("u1", "AQEDAS-cookie")
            service.registry.get("u1").pacer = HumanPacer(sleep=no_sleep)
            return await service.test_session_cookie("u1")

        result = asyncio.run(scenario())
        assert result.available is False
        assert service.repository.get_secret("u1", LINKEDIN_COOKIE_KEY).status == "invalid"

    def test_cookie_test_without_cookie(self, tmp_path, make_llm) -> None:
        service = _make_service(tmp_path, make_llm, crypto=CryptoBox.from_hex(generate_key()))
        result = asyncio.run(service.test_session_cookie("u1"))
        assert result.available is False

    def test_blocked_status_survives_new_registry(self, tmp_path, make_llm) -> None:
        crypto = CryptoBox.from_hex(generate_key())
        service = _make_service(tmp_path, make_llm, crypto=crypto)
        asyncio.run(service.save_session_cookie("u1", "AQEDAS-cookie"))

        service.registry.get("u1").breaker.trip()
        assert service.repository.get_secret("u1", LINKEDIN_COOKIE_KEY).status == "blocked"

        fresh = SessionProviderRegistry(service.repository, crypto, service.settings)
        assert fresh.get("u1").state == "blocked"

    def test_reset(self, tmp_path, make_llm) -> None:
        service = _make_service(tmp_path, make_llm, crypto=CryptoBox.from_hex(generate_key()))
        asyncio.run(service.save_session_cookie("u1", "AQEDAS-cookie"))
        provider = service.registry.get("u1")
        provider.breaker.trip()

        assert service.reset_session_provider("u1") is True
        assert provider.state == "ready"
        assert service.repository.get_secret("u1", LINKEDIN_COOKIE_KEY).status == "active"

    def test_reset_unknown_user(self, tmp_path, make_llm) -> None:
        service = _make_service(tmp_path, make_llm, crypto=CryptoBox.from_hex(generate_key()))
        assert service.reset_session_provider("nobody") is False

    def test_undecryptable_cookie_marked_invalid(self, tmp_path, make_llm) -> None:
        service = _make_service(tmp_path, make_llm, crypto=CryptoBox.from_hex(generate_key()))
        other = CryptoBox.from_hex(generate_key())
        service.repository.save_secret("u1", LINKEDIN_COOKIE_KEY, other.encrypt("AQEDAS"))

        assert service.registry.get("u1") is None
        assert service.repository.get_secret("u1", LINKEDIN_COOKIE_KEY).status == "invalid"
