from __future__ import annotations

from claimflow.services.approval_chain import highest_level, resolve_approver
from claimflow.services.approval_rules import ApproverSlot, PercentageRule, PolicySnapshot


def _policy(*slots):
    return PolicySnapshot(company_id=1, rule=PercentageRule(60), approvers=tuple(slots))


def test_resolves_approver_at_level() -> None:
    policy = _policy(
        ApproverSlot(approver_id=5, level=1, position=1),
        ApproverSlot(approver_id=6, level=2, position=2),
    )

    assert resolve_approver(policy, 1) == 5
    assert resolve_approver(policy, 2) == 6


def test_missing_level_resolves_to_none() -> None:
    policy = _policy(ApproverSlot(approver_id=5, level=1, position=1))

    assert resolve_approver(policy, 2) is None
    assert resolve_approver(None, 1) is None


def test_shared_level_picks_first_defined_approver() -> None:
    policy = _policy(
        ApproverSlot(approver_id=8, level=2, position=3),
        ApproverSlot(approver_id=7, level=2, position=2),
        ApproverSlot(approver_id=5, level=1, position=1),
    )

    assert resolve_approver(policy, 2) == 7


def test_highest_level() -> None:
    policy = _policy(
        ApproverSlot(approver_id=5, level=1, position=1),
        ApproverSlot(approver_id=6, level=3, position=2),
    )

    assert highest_level(policy) == 3
    assert highest_level(_policy()) == 0
    assert highest_level(None) == 0
