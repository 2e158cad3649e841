"""Approval policy routes."""
from __future__ import annotations

from typing import Any

from flask_login import current_user, login_required

from claimflow.models import UserRole
from claimflow.services.policy_service import PolicyService, whole_number
from claimflow.utils.helpers import json_payload, json_response, role_required

from . import policy_bp


def _optional_int(value: Any, field: str):
    return None if value is None else whole_number(value, field)


@policy_bp.route("", methods=["GET"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def get_policy() -> Any:
    """Return the approval policy of the current user's company."""
    policy = PolicyService().get_policy(current_user.company_id)
    return json_response({"policy": policy.to_dict()})


@policy_bp.route("", methods=["PUT"])
@login_required
@role_required(UserRole.ADMIN)
def set_policy() -> Any:
    """Create or replace the company policy."""
    payload = json_payload()
    if "rule_type" not in payload:
        return json_response({"error": "Missing fields: rule_type"}, status=400)

    approvers = payload.get("approvers") or []
    if not isinstance(approvers, list):
        return json_response({"error": "'approvers' must be a list."}, status=400)

    policy = PolicyService().set_policy(
        current_user.company_id,
        payload["rule_type"],
        _optional_int(payload.get("threshold_percent"), "threshold_percent"),
        approvers,
    )
    return json_response({"message": "Approval policy saved.", "policy": policy.to_dict()})


@policy_bp.route("/approvers", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def add_approver() -> Any:
    payload = json_payload()
    required_fields = {"approver_id", "level"}
    if missing := required_fields - payload.keys():
        return json_response({"error": f"Missing fields: {', '.join(sorted(missing))}"}, status=400)

    policy = PolicyService().add_approver(
        current_user.company_id,
        whole_number(payload["approver_id"], "approver_id"),
        whole_number(payload["level"], "level"),
        display_role=payload.get("display_role"),
        is_cfo=payload.get("is_cfo", False),
    )
    return json_response({"message": "Approver added.", "policy": policy.to_dict()}, status=201)


@policy_bp.route("/approvers/<int:user_id>", methods=["DELETE"])
@login_required
@role_required(UserRole.ADMIN)
def remove_approver(user_id: int) -> Any:
    policy = PolicyService().remove_approver(current_user.company_id, user_id)
    return json_response({"message": "Approver removed.", "policy": policy.to_dict()})
