"""Expense claim routes."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask_login import current_user, login_required

from claimflow.errors import NotFoundError
from claimflow.models import ClaimStatus, ExpenseClaim, UserRole
from claimflow.services.claim_workflow import ClaimWorkflow
from claimflow.services.notifications import notify_transition
from claimflow.services.repositories import ClaimRepository
from claimflow.utils.helpers import (
    json_payload,
    json_response,
    optional_comment,
    parse_iso_date,
    role_required,
)

from . import claims_bp


def _company_claim(workflow: ClaimWorkflow, claim_id: int) -> ExpenseClaim:
    """Load a claim, hiding claims that belong to other companies."""
    claim = workflow.get_claim(claim_id)
    if claim.company_id != current_user.company_id:
        raise NotFoundError("Claim", claim_id)
    return claim


def _can_view(claim: ExpenseClaim) -> bool:
    return (
        claim.claimant_id == current_user.id
        or claim.current_approver_id == current_user.id
        or current_user.is_admin
    )


def _transition_response(claim: ExpenseClaim, message: str) -> Any:
    notify_transition(claim)
    return json_response({"message": message, "claim": claim.to_dict()})


@claims_bp.route("", methods=["POST"])
@login_required
def submit_claim() -> Any:
    """Submit a new expense claim for the current user."""
    payload = json_payload()

    required_fields = {"amount", "currency", "category", "description", "date_spent"}
    if missing := required_fields - payload.keys():
        return json_response({"error": f"Missing fields: {', '.join(sorted(missing))}"}, status=400)

    claim = ClaimWorkflow().submit(
        current_user.id,
        current_user.company_id,
        amount=payload["amount"],
        currency=payload["currency"],
        category=payload["category"],
        description=payload["description"],
        date_spent=parse_iso_date(payload["date_spent"], "date_spent"),
        merchant=payload.get("merchant"),
        receipt_ref=payload.get("receipt_ref"),
    )
    notify_transition(claim)
    return json_response({"message": "Expense submitted for approval.", "claim": claim.to_dict()}, status=201)


@claims_bp.route("/mine", methods=["GET"])
@login_required
def my_claims() -> Any:
    """List claims submitted by the current user."""
    claims = ClaimRepository().list_for_claimant(current_user.id)
    return json_response({"claims": [claim.to_dict(include_history=False) for claim in claims]})


@claims_bp.route("/pending", methods=["GET"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def pending_claims() -> Any:
    """Admins see every open claim of the company, managers only their queue."""
    approver_id = None if current_user.is_admin else current_user.id
    claims = ClaimRepository().list_open(current_user.company_id, approver_id=approver_id)
    return json_response({"claims": [claim.to_dict(include_history=False) for claim in claims]})


@claims_bp.route("/stats", methods=["GET"])
@login_required
def claim_stats() -> Any:
    """Counts per status and totals in the company currency."""
    claimant_id = current_user.id if current_user.role == UserRole.EMPLOYEE else None
    summary = ClaimRepository().status_summary(current_user.company_id, claimant_id=claimant_id)

    def count(*statuses: ClaimStatus) -> int:
        return sum(summary.get(status, (0, 0))[0] for status in statuses)

    def total(*statuses: ClaimStatus) -> float:
        return float(sum((Decimal(str(summary.get(status, (0, 0))[1])) for status in statuses), Decimal("0")))

    return json_response(
        {
            "total_claims": count(*ClaimStatus),
            "pending_claims": count(ClaimStatus.PENDING, ClaimStatus.IN_REVIEW),
            "approved_claims": count(ClaimStatus.APPROVED),
            "rejected_claims": count(ClaimStatus.REJECTED),
            "approved_amount": total(ClaimStatus.APPROVED),
            "pending_amount": total(ClaimStatus.PENDING, ClaimStatus.IN_REVIEW),
            "currency": current_user.company.currency_code,
        }
    )


@claims_bp.route("/<int:claim_id>", methods=["GET"])
@login_required
def claim_detail(claim_id: int) -> Any:
    claim = _company_claim(ClaimWorkflow(), claim_id)
    if not _can_view(claim):
        return json_response({"error": "Not authorized to view this claim."}, status=403)
    return json_response({"claim": claim.to_dict()})


@claims_bp.route("/<int:claim_id>/approve", methods=["POST"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def approve_claim(claim_id: int) -> Any:
    """Approve a claim at its current level."""
    comment = optional_comment(json_payload())
    workflow = ClaimWorkflow()
    _company_claim(workflow, claim_id)
    claim = workflow.approve(claim_id, current_user.id, comment)
    return _transition_response(claim, f"Claim {claim.status.value.lower().replace('_', ' ')}.")


@claims_bp.route("/<int:claim_id>/reject", methods=["POST"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def reject_claim(claim_id: int) -> Any:
    """Reject a claim."""
    comment = optional_comment(json_payload())
    workflow = ClaimWorkflow()
    _company_claim(workflow, claim_id)
    claim = workflow.reject(claim_id, current_user.id, comment)
    return _transition_response(claim, "Claim rejected.")


@claims_bp.route("/<int:claim_id>/force-approve", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def force_approve_claim(claim_id: int) -> Any:
    """Administrative override: finalize without policy evaluation."""
    comment = optional_comment(json_payload())
    workflow = ClaimWorkflow()
    _company_claim(workflow, claim_id)
    claim = workflow.force_approve(claim_id, current_user.id, comment)
    return _transition_response(claim, "Claim approved by administrative override.")
