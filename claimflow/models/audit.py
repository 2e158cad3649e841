"""Claim audit trail model.

Entries are written once and never change: the ORM listeners below abort any
flush that would update or delete a stored entry.
"""
from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone

from sqlalchemy import event
from sqlalchemy.orm import object_session

from claimflow import db
from claimflow.errors import AuditLedgerViolationError

logger = logging.getLogger(__name__)


class ClaimAction(enum.Enum):
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEntry(db.Model):
    __tablename__ = "claim_audit_entries"
    __table_args__ = (
        db.UniqueConstraint("claim_id", "sequence", name="uq_audit_entry_claim_sequence"),
    )

    id = db.Column(db.Integer, primary_key=True)
    claim_id = db.Column(db.Integer, db.ForeignKey("expense_claims.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approver_name = db.Column(db.String(200), nullable=False)
    action = db.Column(db.Enum(ClaimAction, name="claim_action"), nullable=False)
    comment = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    claim = db.relationship("ExpenseClaim", back_populates="history")

    @property
    def is_system(self) -> bool:
        return self.approver_id is None

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "approver_id": self.approver_id,
            "approver_name": self.approver_name,
            "action": self.action.value,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<AuditEntry claim_id={self.claim_id} #{self.sequence} {self.action.value}>"


@event.listens_for(AuditEntry, "before_update")
def _block_entry_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    logger.error("Blocked update of audit entry %s on claim %s", target.id, target.claim_id)
    raise AuditLedgerViolationError(
        f"Audit entry {target.id} on claim {target.claim_id} is immutable"
    )


@event.listens_for(AuditEntry, "before_delete")
def _block_entry_delete(mapper, connection, target):
    logger.error("Blocked delete of audit entry %s on claim %s", target.id, target.claim_id)
    raise AuditLedgerViolationError(
        f"Audit entry {target.id} on claim {target.claim_id} cannot be removed"
    )
