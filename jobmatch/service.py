"""Entry points for submitting runs, polling them, and managing session cookies."""

from __future__ import annotations

import logging
import re
import shutil
import uuid
from pathlib import Path

from jobmatch.config import Settings
from jobmatch.coordinator import RunCoordinator
from jobmatch.errors import CryptoError, ValidationError
from jobmatch.graph import PipelineServices
from jobmatch.models.run import RunOutcome, RunPreferences, RunResultRow, RunStatus, RunStatusView
from jobmatch.models.secret import LINKEDIN_COOKIE_KEY
from jobmatch.providers.base import ProviderTestResult
from jobmatch.providers.jsearch import JSearchProvider
from jobmatch.providers.registry import SessionProviderRegistry
from jobmatch.report.email_sender import SmtpEmailDispatcher
from jobmatch.security.crypto import CryptoBox
from jobmatch.storage.database import RunRepository
from jobmatch.tools.llm import OllamaClient
from jobmatch.tools.resume_text import SUPPORTED_SUFFIXES

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class JobMatchService:
    """Facade over the repository, the coordinator and the session registry."""

    def __init__(
        self,
        settings: Settings,
        services: PipelineServices,
        crypto: CryptoBox | None = None,
        coordinator: RunCoordinator | None = None,
    ) -> None:
        self.settings = settings
        self.services = services
        self.repository = services.repository
        self.registry = services.session_providers
        self.crypto = crypto
        self.coordinator = coordinator or RunCoordinator(services)

    @classmethod
    def from_settings(cls, settings: Settings) -> JobMatchService:
        """Wire up the production collaborators."""
        repository = RunRepository(settings.db_path)

        crypto = None
        if settings.kms_secret_key:
            crypto = CryptoBox.from_hex(settings.kms_secret_key)
        else:
            logger.warning("KMS_SECRET_KEY not set, session cookies cannot be stored or used")

        services = PipelineServices(
            settings=settings,
            llm=OllamaClient(
                base_url=settings.ollama_base_url,
                model=settings.ollama_model,
                embedding_model=settings.embedding_model,
                timeout=settings.llm_timeout,
            ),
            aggregator=JSearchProvider(
                api_key=settings.rapidapi_key,
                host=settings.jsearch_host,
                timeout=settings.aggregator_timeout,
            ),
            repository=repository,
            emailer=SmtpEmailDispatcher(
                host=settings.smtp_host,
                port=settings.smtp_port,
                user=settings.smtp_user,
                password=settings.smtp_password,
                from_email=settings.smtp_from_email,
                from_name=settings.smtp_from_name,
                timeout=settings.smtp_timeout,
            ),
            session_providers=SessionProviderRegistry(repository, crypto, settings),
        )
        return cls(settings, services, crypto=crypto)

    async def aclose(self) -> None:
        for resource in (self.services.llm, self.services.aggregator, self.registry):
            close = getattr(resource, "aclose", None)
            if close is not None:
                await close()
        self.repository.close()

    # -- Runs -------------------------------------------------------------------

    def submit(
        self,
        resume_path: str,
        intent_text: str,
        user_email: str,
        user_id: str | None = None,
        preferences: RunPreferences | None = None,
    ) -> str:
        """Validate the request, stash a copy of the résumé and queue a run."""
        source = Path(resume_path)
        if not source.is_file():
            raise ValidationError("Resume file is required")
        if source.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ValidationError(
                f"Unsupported resume type {source.suffix or '(none)'}; use {', '.join(SUPPORTED_SUFFIXES)}"
            )
        if source.stat().st_size > self.settings.max_resume_bytes:
            raise ValidationError(
                f"Resume is larger than {self.settings.max_resume_bytes // (1024 * 1024)} MB"
            )
        if not intent_text or not intent_text.strip():
            raise ValidationError("Job intent text is required")
        if not user_email or not EMAIL_RE.match(user_email):
            raise ValidationError("Invalid email format")

        upload_dir = Path(self.settings.upload_dir)
        upload_dir.mkdir(parents=True, exist_ok=True)
        upload = upload_dir / f"{uuid.uuid4().hex}{source.suffix.lower()}"
        shutil.copyfile(source, upload)

        try:
            run = self.repository.create_run(
                user_email=user_email,
                intent_text=intent_text.strip(),
                preferences=preferences,
                resume_path=str(upload),
                user_id=user_id,
            )
        except Exception:
            upload.unlink(missing_ok=True)
            raise
        return run.id

    async def execute(self, run_id: str) -> RunOutcome:
        return await self.coordinator.run(run_id)

    def status(self, run_id: str) -> RunStatusView:
        run = self.repository.get_run(run_id)
        if run is None:
            raise ValidationError(f"Run not found: {run_id}")

        if run.status == RunStatus.EMAILED:
            summary = f"Successfully found {run.jobs_found} jobs and sent email"
        elif run.status == RunStatus.ERROR:
            summary = run.error or "An error occurred"
        elif run.status == RunStatus.RUNNING:
            summary = "Analyzing your resume and searching for jobs..."
        else:
            summary = "Your request is queued for processing"

        return RunStatusView(
            run_id=run.id,
            status=run.status,
            jobs_found=run.jobs_found,
            error_message=run.error,
            summary=summary,
        )

    def results(self, run_id: str) -> list[RunResultRow]:
        if self.repository.get_run(run_id) is None:
            raise ValidationError(f"Run not found: {run_id}")
        return self.repository.get_results(run_id)

    # -- Session cookies ----------------------------------------------------------

    async def save_session_cookie(self, user_id: str, cookie: str) -> None:
        """Encrypt and store the user's li_at cookie, replacing any previous one."""
        if self.crypto is None:
            raise CryptoError("KMS_SECRET_KEY is required to store session cookies")
        cookie = (cookie or "").strip()
        if not cookie:
            raise ValidationError("li_at cookie is required")

        self.repository.save_secret(user_id, LINKEDIN_COOKIE_KEY, self.crypto.encrypt(cookie))
        if self.registry is not None:
            await self.registry.discard(user_id)
        logger.info("Stored session cookie for user %s", user_id)

    async def test_session_cookie(self, user_id: str) -> ProviderTestResult:
        provider = self.registry.get(user_id) if self.registry is not None else None
        if provider is None:
            return ProviderTestResult(available=False, message="No usable session cookie stored")

        result = await provider.test()
        if not provider.blocked:
            status = "active" if result.available else "invalid"
            self.repository.update_secret_status(user_id, LINKEDIN_COOKIE_KEY, status, tested=True)
        return result

    def reset_session_provider(self, user_id: str) -> bool:
        if self.registry is None:
            return False
        return self.registry.reset(user_id)
