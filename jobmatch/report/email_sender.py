"""SMTP (STARTTLS) delivery of job match e-mails."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from pydantic import BaseModel

from jobmatch.models.job import ScoredJobItem
from jobmatch.report.renderer import render_html, render_text, subject

logger = logging.getLogger(__name__)


class DeliveryReport(BaseModel):
    success: bool
    error: str | None = None


class EmailDispatcher(Protocol):
    async def send(self, to: str, jobs: list[ScoredJobItem], intent_text: str) -> DeliveryReport: ...


class SmtpEmailDispatcher:
    """Sends a multipart (text + HTML) message through an SMTP relay.

    Failures are reported in the returned DeliveryReport, never raised.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_email: str = "",
        from_name: str = "Job Matcher",
        timeout: float = 60.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email or user
        self.from_name = from_name
        self.timeout = timeout

    async def send(self, to: str, jobs: list[ScoredJobItem], intent_text: str) -> DeliveryReport:
        if not self.user or not self.password:
            logger.warning("SMTP credentials not configured, skipping email")
            return DeliveryReport(success=False, error="SMTP not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject(jobs, intent_text)
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to

        # Clients render the last part they understand, so HTML goes last
        msg.attach(MIMEText(render_text(jobs, intent_text), "plain", "utf-8"))
        msg.attach(MIMEText(render_html(jobs, intent_text), "html", "utf-8"))

        try:
            await asyncio.to_thread(self._deliver, to, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email send failed: %s", e)
            return DeliveryReport(success=False, error=str(e) or type(e).__name__)

        logger.info("Email sent successfully: '%s' → %s", msg["Subject"], to)
        return DeliveryReport(success=True)

    def _deliver(self, to: str, msg: MIMEMultipart) -> None:
        logger.info("Connecting to SMTP (%s:%d)...", self.host, self.port)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            server.login(self.user, self.password)
            server.sendmail(self.from_email, to, msg.as_string())
