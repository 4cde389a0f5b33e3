"""
Notifier
Tells users when their jobs finish, by email through Resend.

Delivery is best effort: the orchestrator calls ``notify_terminal`` after
the job's terminal state has been committed, and nothing that happens here
can change that state or the user's credits.
"""

import html
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from studio.core.config import settings
from studio.core.database import SessionLocal
from studio.models import CreditAccount, JobKind

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Receives terminal job outcomes."""

    @abstractmethod
    def notify_terminal(
        self,
        user_id: str,
        job_kind: str,
        outcome: str,
        artifact_refs: Optional[List[str]] = None,
        error: Optional[str] = None,
    ) -> None:
        """Must not raise."""


_SUBJECTS = {
    (JobKind.TRAIN, "succeeded"): "Your model is ready!",
    (JobKind.TRAIN, "failed"): "Training didn't complete - credits refunded",
    (JobKind.GENERATE_BATCH, "succeeded"): "Your new images are ready",
    (JobKind.GENERATE_BATCH, "failed"): "Image generation failed - credits refunded",
    (JobKind.GENERATE_VIDEO, "succeeded"): "Your video is ready",
    (JobKind.GENERATE_VIDEO, "failed"): "Video generation failed - credits refunded",
}


class EmailNotifier(Notifier):
    """Resend email notifier."""

    def __init__(
        self,
        session_factory=SessionLocal,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.session_factory = session_factory
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.from_email = from_email or settings.NOTIFY_FROM_EMAIL
        self.is_configured = bool(self.api_key)
        self._client = client or httpx.Client(timeout=30.0)

        if not self.is_configured:
            logger.warning("Resend API key not configured, notifications will only be logged")

    def notify_terminal(
        self,
        user_id: str,
        job_kind: str,
        outcome: str,
        artifact_refs: Optional[List[str]] = None,
        error: Optional[str] = None,
    ) -> None:
        subject = _SUBJECTS.get((job_kind, outcome))
        if subject is None:
            logger.debug(f"No notification for {job_kind}/{outcome}")
            return

        try:
            to_email = self._lookup_email(user_id)
            if not to_email:
                logger.info(f"No email on file for {user_id}, skipping {job_kind}/{outcome} notification")
                return

            body = self._render(job_kind, outcome, artifact_refs or [], error)
            self.send_email(to_email, subject, body)
        except Exception as e:
            logger.error(f"Notification for {user_id} ({job_kind}/{outcome}) failed: {e}")

    def send_email(self, to_email: str, subject: str, html_content: str) -> Dict[str, Any]:
        if not self.is_configured:
            logger.info(f"[email disabled] to={to_email} subject={subject!r}")
            return {"success": False, "error": "Resend not configured"}

        response = self._client.post(
            settings.RESEND_API_URL,
            json={
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html_content,
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        if response.status_code >= 400:
            logger.error(f"Resend API error: {response.status_code} - {response.text}")
            return {"success": False, "error": f"Failed to send: {response.status_code}"}

        logger.info(f"Notification email sent to {to_email}")
        return {"success": True, "id": response.json().get("id")}

    def _lookup_email(self, user_id: str) -> Optional[str]:
        db = self.session_factory()
        try:
            return db.query(CreditAccount.email).filter(
                CreditAccount.user_id == user_id
            ).scalar()
        finally:
            db.close()

    @staticmethod
    def _render(job_kind: str, outcome: str, artifact_refs: List[str], error: Optional[str]) -> str:
        link = f"{settings.APP_BASE_URL}/dashboard"
        if outcome == "succeeded":
            items = "".join(
                f'<li><a href="{html.escape(ref)}">{html.escape(ref)}</a></li>'
                for ref in artifact_refs
                if ref.startswith("http")
            )
            return (
                f"<p>Good news, your {job_kind.replace('_', ' ')} job finished.</p>"
                f"{f'<ul>{items}</ul>' if items else ''}"
                f'<p><a href="{link}">Open your dashboard</a></p>'
            )
        return (
            f"<p>Unfortunately your {job_kind.replace('_', ' ')} job did not complete.</p>"
            f"<p>{html.escape(error or 'Unknown error')}</p>"
            "<p>The credits for this job have been returned to your balance.</p>"
            f'<p><a href="{link}">Try again</a></p>'
        )

