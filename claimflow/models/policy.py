"""Approval policy models."""
from __future__ import annotations

import enum

from claimflow import db


class ApprovalRuleType(enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    CFO = "CFO"
    HYBRID = "HYBRID"


class ApprovalPolicy(db.Model):
    __tablename__ = "approval_policies"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, unique=True)
    rule_type = db.Column(db.Enum(ApprovalRuleType, name="approval_rule_type"), nullable=False)
    threshold_percent = db.Column(db.Integer, nullable=False, default=60)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    company = db.relationship("Company", back_populates="policy")
    approvers = db.relationship(
        "PolicyApprover",
        back_populates="policy",
        order_by="PolicyApprover.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "rule_type": self.rule_type.value if self.rule_type else None,
            "threshold_percent": self.threshold_percent,
            "approvers": [approver.to_dict() for approver in self.approvers],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<ApprovalPolicy company_id={self.company_id} type={self.rule_type.value if self.rule_type else None}>"


class PolicyApprover(db.Model):
    __tablename__ = "policy_approvers"
    __table_args__ = (
        db.UniqueConstraint("policy_id", "approver_id", name="uq_policy_approver"),
    )

    id = db.Column(db.Integer, primary_key=True)
    policy_id = db.Column(db.Integer, db.ForeignKey("approval_policies.id"), nullable=False, index=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    level = db.Column(db.Integer, nullable=False)
    display_role = db.Column(db.String(120), nullable=False)
    is_cfo = db.Column(db.Boolean, default=False, nullable=False)
    position = db.Column(db.Integer, nullable=False)

    policy = db.relationship("ApprovalPolicy", back_populates="approvers")
    approver = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "approver_id": self.approver_id,
            "approver_name": self.approver.name if self.approver else None,
            "level": self.level,
            "display_role": self.display_role,
            "is_cfo": self.is_cfo,
        }

    def __repr__(self) -> str:
        return f"<PolicyApprover approver_id={self.approver_id} level={self.level}>"
