from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from claimflow import db
from claimflow.errors import (
    ConcurrentUpdateError,
    InvalidStateTransitionError,
    NotFoundError,
    PolicyMisconfigurationError,
    RepositoryUnavailableError,
    ValidationError,
)
from claimflow.models import ClaimAction, ClaimStatus


def _chain(org, *members):
    return [
        {"approver_id": getattr(org, f"{name}_id"), "level": level, "is_cfo": name == "cfo"}
        for name, level in members
    ]


@pytest.fixture
def three_level_chain(org):
    return _chain(org, ("manager", 1), ("finance", 2), ("cfo", 3))


def _snapshot(claim):
    return (
        claim.status,
        claim.current_level,
        claim.current_approver_id,
        claim.decision_reason,
        claim.version,
        [(entry.sequence, entry.action, entry.approver_id) for entry in claim.history],
    )


# Submission ---------------------------------------------------------------


def test_submit_starts_pending_with_manager(submit_claim, org) -> None:
    claim = submit_claim()

    assert claim.status == ClaimStatus.PENDING
    assert claim.current_level == 1
    assert claim.current_approver_id == org.manager_id
    assert claim.amount == Decimal("120.50")
    assert claim.converted_amount == Decimal("120.50")
    assert claim.company_currency == "USD"
    assert claim.version == 1
    assert [(entry.action, entry.approver_id) for entry in claim.history] == [
        (ClaimAction.SUBMITTED, org.employee_id)
    ]
    assert claim.history[0].comment == "Expense submitted for approval"


def test_submit_converts_to_company_currency(submit_claim) -> None:
    claim = submit_claim(amount="830", currency="inr")

    assert claim.currency == "INR"
    assert claim.converted_amount == Decimal("10.00")


def test_submit_without_manager_falls_back_to_admin(submit_claim, org) -> None:
    claim = submit_claim(org.loner_id)

    assert claim.current_approver_id == org.admin_id


def test_submit_normalizes_category(submit_claim) -> None:
    assert submit_claim(category=" office supplies ").category == "Office Supplies"


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": "0"},
        {"amount": "-5"},
        {"amount": "abc"},
        {"amount": "NaN"},
        {"currency": "XYZ"},
        {"category": "Snacks"},
        {"description": "   "},
        {"date_spent": "2025-10-01"},
    ],
)
def test_submit_rejects_invalid_input(submit_claim, overrides) -> None:
    with pytest.raises(ValidationError):
        submit_claim(**overrides)


def test_submit_rejects_user_from_another_company(submit_claim, org) -> None:
    with pytest.raises(ValidationError):
        submit_claim(org.outsider_id)


def test_submit_unknown_user(submit_claim) -> None:
    with pytest.raises(NotFoundError):
        submit_claim(9999)


# Approval -----------------------------------------------------------------


def test_percentage_threshold_reached_after_two_of_three(
    workflow, policies, submit_claim, org, three_level_chain
) -> None:
    policies.set_policy(org.company_id, "percentage", 60, three_level_chain)
    claim = submit_claim()

    claim = workflow.approve(claim.id, org.manager_id)
    assert claim.status == ClaimStatus.IN_REVIEW
    assert claim.current_level == 2
    assert claim.current_approver_id == org.finance_id

    claim = workflow.approve(claim.id, org.finance_id, "Within budget")

    assert claim.status == ClaimStatus.APPROVED
    assert claim.decision_reason == "67% approval threshold reached"
    assert [entry.action for entry in claim.history] == [
        ClaimAction.SUBMITTED,
        ClaimAction.APPROVED,
        ClaimAction.APPROVED,
        ClaimAction.APPROVED,
    ]
    assert claim.history[2].comment == "Within budget"
    assert claim.history[-1].is_system
    assert claim.history[-1].comment == "Auto-approved: 67% approval threshold reached"


def test_hybrid_rule_waits_then_cfo_approves(
    workflow, policies, submit_claim, org, three_level_chain
) -> None:
    policies.set_policy(org.company_id, "hybrid", 80, three_level_chain)
    claim = submit_claim()

    claim = workflow.approve(claim.id, org.manager_id)
    assert claim.status == ClaimStatus.IN_REVIEW
    assert claim.current_level == 2

    claim = workflow.approve(claim.id, org.cfo_id)

    assert claim.status == ClaimStatus.APPROVED
    assert claim.decision_reason == "CFO approved (hybrid rule)"


def test_approve_terminal_claim_is_rejected_and_leaves_claim_untouched(
    workflow, policies, submit_claim, org
) -> None:
    policies.set_policy(org.company_id, "cfo", None, _chain(org, ("cfo", 1)))
    claim = workflow.approve(submit_claim().id, org.cfo_id)
    assert claim.status == ClaimStatus.APPROVED
    before = _snapshot(claim)

    with pytest.raises(InvalidStateTransitionError):
        workflow.approve(claim.id, org.manager_id)

    assert _snapshot(workflow.get_claim(claim.id)) == before


def test_reject_defaults_comment(workflow, submit_claim, org) -> None:
    claim = workflow.reject(submit_claim().id, org.manager_id, "")

    assert claim.status == ClaimStatus.REJECTED
    assert claim.decision_reason == "rejected by Max Manager"
    assert claim.history[-1].action == ClaimAction.REJECTED
    assert claim.history[-1].comment == "Rejected"


def test_reject_terminal_claim(workflow, submit_claim, org) -> None:
    claim = workflow.reject(submit_claim().id, org.manager_id)

    with pytest.raises(InvalidStateTransitionError):
        workflow.reject(claim.id, org.manager_id)


def test_reject_does_not_consult_policy(workflow, policies, submit_claim, org) -> None:
    policies.set_policy(org.company_id, "percentage", 60, [])
    claim = workflow.reject(submit_claim().id, org.manager_id, "Missing receipt")

    assert claim.status == ClaimStatus.REJECTED
    assert claim.history[-1].comment == "Missing receipt"


def test_zero_approvers_fails_and_leaves_claim_unchanged(
    workflow, policies, submit_claim, org
) -> None:
    policies.set_policy(org.company_id, "percentage", 60, [])
    claim = submit_claim()
    before = _snapshot(claim)

    with pytest.raises(PolicyMisconfigurationError):
        workflow.approve(claim.id, org.manager_id)

    assert _snapshot(workflow.get_claim(claim.id)) == before


def test_no_policy_completes_chain(workflow, submit_claim, org) -> None:
    claim = workflow.approve(submit_claim().id, org.manager_id)

    assert claim.status == ClaimStatus.APPROVED
    assert claim.decision_reason == "approval chain completed"
    assert claim.history[-1].comment == "Auto-approved: approval chain completed"


def test_chain_completes_past_highest_level(workflow, policies, submit_claim, org) -> None:
    policies.set_policy(org.company_id, "cfo", None, _chain(org, ("manager", 1), ("cfo", 2)))
    claim = workflow.approve(submit_claim().id, org.manager_id)
    assert claim.current_approver_id == org.cfo_id

    claim = workflow.approve(claim.id, org.finance_id)

    assert claim.status == ClaimStatus.APPROVED
    assert claim.decision_reason == "approval chain completed"


def test_gap_in_chain_leaves_claim_without_approver(workflow, policies, submit_claim, org) -> None:
    policies.set_policy(org.company_id, "percentage", 100, _chain(org, ("manager", 1), ("cfo", 3)))

    claim = workflow.approve(submit_claim().id, org.manager_id)

    assert claim.status == ClaimStatus.IN_REVIEW
    assert claim.current_level == 2
    assert claim.current_approver_id is None


def test_shared_level_goes_to_first_defined_approver(workflow, policies, submit_claim, org) -> None:
    policies.set_policy(
        org.company_id,
        "percentage",
        100,
        _chain(org, ("manager", 1), ("director", 2), ("finance", 2)),
    )

    claim = workflow.approve(submit_claim().id, org.manager_id)

    assert claim.current_approver_id == org.director_id


def test_force_approve_skips_policy(workflow, policies, submit_claim, org, three_level_chain) -> None:
    policies.set_policy(org.company_id, "percentage", 100, three_level_chain)

    claim = workflow.force_approve(submit_claim().id, org.admin_id, "Urgent")

    assert claim.status == ClaimStatus.APPROVED
    assert claim.decision_reason == "administrative override"
    assert claim.history[-2].approver_id == org.admin_id
    assert claim.history[-2].comment == "Urgent"
    assert claim.history[-1].comment == "Final approval by administrative override"


def test_unknown_claim(workflow, org) -> None:
    with pytest.raises(NotFoundError):
        workflow.approve(424242, org.manager_id)


def test_approve_with_unknown_actor(workflow, submit_claim) -> None:
    claim = submit_claim()

    with pytest.raises(NotFoundError):
        workflow.approve(claim.id, 9999)

    assert workflow.get_claim(claim.id).status == ClaimStatus.PENDING


def test_concurrent_update_is_detected(workflow, submit_claim, org) -> None:
    claim_id = submit_claim().id
    claim = workflow.get_claim(claim_id)
    assert claim.version == 1

    db.session.execute(
        text("UPDATE expense_claims SET version = version + 1 WHERE id = :id"), {"id": claim_id}
    )

    with pytest.raises(ConcurrentUpdateError):
        workflow.approve(claim_id, org.manager_id)

    stored = workflow.get_claim(claim_id)
    assert stored.status == ClaimStatus.PENDING
    assert len(stored.history) == 1
    assert stored.version == 1


def test_version_increments_per_transition(workflow, submit_claim, org) -> None:
    claim = submit_claim()

    claim = workflow.reject(claim.id, org.manager_id)

    assert claim.version == 2


def _locked(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("database is locked"))


def test_failed_reads_are_retried_then_reported(app, workflow, submit_claim, monkeypatch) -> None:
    claim_id = submit_claim().id
    app.config["REPOSITORY_READ_RETRIES"] = 2
    attempts = []

    def failing_get(*args, **kwargs):
        attempts.append(args)
        _locked()

    monkeypatch.setattr(db.session, "get", failing_get)

    with pytest.raises(RepositoryUnavailableError):
        workflow.get_claim(claim_id)
    assert len(attempts) == 3


def test_transient_read_failure_recovers(app, workflow, submit_claim, monkeypatch) -> None:
    claim_id = submit_claim().id
    app.config["REPOSITORY_READ_RETRIES"] = 1
    real_get = db.session.get
    attempts = []

    def flaky_get(*args, **kwargs):
        attempts.append(args)
        if len(attempts) == 1:
            raise PoolTimeoutError("QueuePool limit reached")
        return real_get(*args, **kwargs)

    monkeypatch.setattr(db.session, "get", flaky_get)

    assert workflow.get_claim(claim_id).id == claim_id
    assert len(attempts) == 2


def test_failed_write_is_not_retried_and_leaves_claim_unchanged(
    app, workflow, submit_claim, org, monkeypatch
) -> None:
    claim = submit_claim()
    before = _snapshot(claim)
    app.config["REPOSITORY_READ_RETRIES"] = 2
    commits = []

    def failing_commit():
        commits.append(1)
        _locked()

    monkeypatch.setattr(db.session, "commit", failing_commit)
    with pytest.raises(RepositoryUnavailableError):
        workflow.approve(claim.id, org.manager_id)
    monkeypatch.undo()

    assert len(commits) == 1
    assert _snapshot(workflow.get_claim(claim.id)) == before
