"""Email notifications sent after a claim transition has been committed."""
from __future__ import annotations

import logging
import smtplib
from typing import Optional

from flask import current_app
from flask_mail import Mail, Message

from claimflow.models import ClaimStatus, ExpenseClaim

logger = logging.getLogger(__name__)


def _first_name(name: Optional[str]) -> str:
    parts = (name or "").split()
    return parts[0] if parts else "there"


class NotificationService:
    """Best-effort delivery: a failed email never undoes a transition."""

    def __init__(self, mail: Optional[Mail] = None):
        self.mail = mail

    def notify_transition(self, claim: ExpenseClaim) -> bool:
        if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
            return False
        if claim.status in (ClaimStatus.APPROVED, ClaimStatus.REJECTED):
            return self._notify_claimant(claim)
        return self._notify_approver(claim)

    def _notify_claimant(self, claim: ExpenseClaim) -> bool:
        claimant = claim.claimant
        if claimant is None or not claimant.email:
            return False
        decision = claim.status.value.lower()
        body = (
            f"Hi {_first_name(claimant.name)},\n\n"
            f"Your {claim.category} expense of {claim.amount} {claim.currency} "
            f"spent on {claim.date_spent.strftime('%b %d, %Y')} has been {decision}.\n"
            f"Reason: {claim.decision_reason or 'n/a'}.\n\n"
            "- ClaimFlow"
        )
        return self._send(claimant.email, f"Expense claim #{claim.id} was {decision}", body)

    def _notify_approver(self, claim: ExpenseClaim) -> bool:
        approver = claim.current_approver
        if approver is None or not approver.email:
            return False
        body = (
            f"Hi {_first_name(approver.name)},\n\n"
            f"Expense claim #{claim.id} ({claim.converted_amount} {claim.company_currency}, "
            f"{claim.category}) is waiting for your approval at level {claim.current_level}.\n\n"
            "- ClaimFlow"
        )
        return self._send(approver.email, f"Expense claim #{claim.id} needs your approval", body)

    def _send(self, recipient: str, subject: str, body: str) -> bool:
        if self.mail is None:
            logger.error("Mail service not initialized")
            return False
        message = Message(
            subject=subject,
            sender=current_app.config.get("MAIL_DEFAULT_SENDER"),
            recipients=[recipient],
            body=body,
        )
        try:
            self.mail.send(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Failed to send notification to %s: %s", recipient, exc)
            return False
        logger.info("Notification sent to %s", recipient)
        return True


# Global notification service instance
notification_service = NotificationService()


def init_notification_service(mail: Mail) -> None:
    """Initialize the notification service with the Flask-Mail instance."""
    notification_service.mail = mail


def notify_transition(claim: ExpenseClaim) -> bool:
    """Convenience function used by the routes after a committed transition."""
    return notification_service.notify_transition(claim)
