"""Approver chain lookups over a policy snapshot."""
from __future__ import annotations

from typing import Optional

from claimflow.services.approval_rules import PolicySnapshot


def resolve_approver(policy: Optional[PolicySnapshot], target_level: int) -> Optional[int]:
    """Return the approver configured at ``target_level``, or None.

    Several approvers may share a level; the one defined first (lowest
    position) is chosen.
    """
    if policy is None:
        return None
    candidates = [slot for slot in policy.approvers if slot.level == target_level]
    if not candidates:
        return None
    return min(candidates, key=lambda slot: slot.position).approver_id


def highest_level(policy: Optional[PolicySnapshot]) -> int:
    """Highest configured level, 0 when the policy has no approvers."""
    if policy is None or not policy.approvers:
        return 0
    return max(slot.level for slot in policy.approvers)
