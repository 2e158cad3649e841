"""Expense claim model."""
from __future__ import annotations

import enum
from datetime import datetime, timezone

from claimflow import db


class ClaimStatus(enum.Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


TERMINAL_STATUSES = frozenset({ClaimStatus.APPROVED, ClaimStatus.REJECTED})

OPEN_STATUSES = (ClaimStatus.PENDING, ClaimStatus.IN_REVIEW)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpenseClaim(db.Model):
    __tablename__ = "expense_claims"

    id = db.Column(db.Integer, primary_key=True)
    claimant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False)
    converted_amount = db.Column(db.Numeric(12, 2), nullable=False)
    company_currency = db.Column(db.String(10), nullable=False)
    category = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False)
    merchant = db.Column(db.String(255), nullable=True)
    date_spent = db.Column(db.Date, nullable=False)
    receipt_ref = db.Column(db.String(255), nullable=True)
    status = db.Column(
        db.Enum(ClaimStatus, name="claim_status"),
        nullable=False,
        default=ClaimStatus.PENDING,
        index=True,
    )
    current_level = db.Column(db.Integer, nullable=False, default=1)
    current_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    decision_reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    claimant = db.relationship("User", foreign_keys=[claimant_id], lazy="joined")
    current_approver = db.relationship("User", foreign_keys=[current_approver_id], lazy="joined")
    history = db.relationship(
        "AuditEntry",
        back_populates="claim",
        order_by="AuditEntry.sequence",
        lazy="selectin",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_history: bool = True) -> dict:
        payload = {
            "id": self.id,
            "claimant_id": self.claimant_id,
            "claimant": self.claimant.to_dict() if self.claimant else None,
            "company_id": self.company_id,
            "amount": float(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "converted_amount": float(self.converted_amount)
            if self.converted_amount is not None
            else None,
            "company_currency": self.company_currency,
            "category": self.category,
            "description": self.description,
            "merchant": self.merchant,
            "date_spent": self.date_spent.isoformat() if self.date_spent else None,
            "receipt_ref": self.receipt_ref,
            "status": self.status.value if self.status else None,
            "current_level": self.current_level,
            "current_approver_id": self.current_approver_id,
            "decision_reason": self.decision_reason,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            payload["history"] = [entry.to_dict() for entry in self.history]
        return payload

    def __repr__(self) -> str:
        return f"<ExpenseClaim id={self.id} status={self.status.value if self.status else None}>"
