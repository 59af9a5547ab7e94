# notify.py
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from .errors import NotifyError
from .model import Job
from .pipeline import RunResult
from .settings import EmailSettings

logger = logging.getLogger(__name__)

FAILURE_SUBJECT = "BUILD ERROR"


def failure_message(job: Job, result: RunResult) -> str:
    locales = job.locales_arg if job.locales else "undefined"
    return (
        f"Build failed with error: {result.error}. Sim = {job.sim_name} "
        f"Version = {job.version} Locales = {locales}"
    )


class Notifier:
    """
    Best-effort outcome reporting. Success is logged; failure is logged and,
    when mail settings are complete, emailed. Never raises.
    """

    def __init__(self, email: Optional[EmailSettings] = None, *, timeout: float = 30.0):
        self.email = email or EmailSettings()
        self.timeout = timeout

    def notify(self, result: RunResult) -> None:
        job = result.job
        if result.ok:
            logger.info("build for %s finished successfully", job.label)
            return

        message = failure_message(job, result)
        logger.error(message)
        if not self.email.enabled:
            return
        try:
            # some mail relays cut messages off at the first newline
            self.send_email(FAILURE_SUBJECT, message.replace("\n", " "))
        except NotifyError as e:
            logger.error("sending email %s", e)

    def send_email(self, subject: str, text: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.email.sender
        msg["To"] = self.email.to
        msg.set_content(text)

        try:
            with smtplib.SMTP(self.email.server, timeout=self.timeout) as smtp:
                smtp.starttls()
                smtp.login(self.email.username, self.email.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotifyError(f"{type(e).__name__}: {e}") from e
        logger.info("sent email %r to %s", subject, self.email.to)
