"""Typed errors raised by the claim workflow and their HTTP mapping.

Every error carries a machine-readable ``code`` and the ``status_code`` the
request layer answers with, so callers catch by type instead of parsing
messages:

    ClaimFlowError
    +-- NotFoundError                  404
    +-- ValidationError                400
    +-- InvalidStateTransitionError    409
    +-- ConcurrentUpdateError          409
    +-- PolicyMisconfigurationError    500
    +-- AuditLedgerViolationError      500
    +-- RepositoryUnavailableError     503
"""
from __future__ import annotations

from flask import Flask


class ClaimFlowError(Exception):
    """Base exception for all workflow errors."""

    code: str = "CLAIMFLOW_ERROR"
    status_code: int = 500


class NotFoundError(ClaimFlowError):
    """A claim, policy, user or company does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class ValidationError(ClaimFlowError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidStateTransitionError(ClaimFlowError):
    """An action was attempted on a claim in a terminal state."""

    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, claim_id: int, status: str, action: str):
        self.claim_id = claim_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} claim {claim_id}: claim is already {status}")


class ConcurrentUpdateError(ClaimFlowError):
    """The claim was modified by another transaction; re-read and retry."""

    code = "CONCURRENT_UPDATE"
    status_code = 409

    def __init__(self, claim_id: int):
        self.claim_id = claim_id
        super().__init__(
            f"Claim {claim_id} was modified by another transaction, reload and retry"
        )


class PolicyMisconfigurationError(ClaimFlowError):
    code = "POLICY_MISCONFIGURED"


class AuditLedgerViolationError(ClaimFlowError):
    code = "AUDIT_LEDGER_VIOLATION"


class RepositoryUnavailableError(ClaimFlowError):
    code = "REPOSITORY_UNAVAILABLE"
    status_code = 503


def register_error_handlers(app: Flask) -> None:
    """Map workflow errors onto JSON responses."""
    from claimflow.utils.helpers import json_response

    @app.errorhandler(ClaimFlowError)
    def handle_claimflow_error(exc: ClaimFlowError):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", exc.code, exc)
        return json_response({"error": str(exc), "code": exc.code}, status=exc.status_code)
