"""Application data models exposed for easy imports."""
from claimflow import db  # noqa: F401
from .company import Company  # noqa: F401
from .user import User, UserRole  # noqa: F401
from .audit import AuditEntry, ClaimAction  # noqa: F401
from .claim import ExpenseClaim, ClaimStatus, TERMINAL_STATUSES  # noqa: F401
from .policy import ApprovalPolicy, ApprovalRuleType, PolicyApprover  # noqa: F401

__all__ = [
    "db",
    "Company",
    "User",
    "UserRole",
    "AuditEntry",
    "ClaimAction",
    "ExpenseClaim",
    "ClaimStatus",
    "TERMINAL_STATUSES",
    "ApprovalPolicy",
    "ApprovalRuleType",
    "PolicyApprover",
]
