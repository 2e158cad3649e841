from __future__ import annotations

import pytest

from claimflow import db
from claimflow.errors import AuditLedgerViolationError
from claimflow.models import AuditEntry, ClaimAction, ExpenseClaim
from claimflow.services.audit_ledger import AuditLedger


def test_append_assigns_sequence_and_projections() -> None:
    ledger = AuditLedger(ExpenseClaim())

    ledger.append(ClaimAction.SUBMITTED, 1, "Eve", "Expense submitted for approval")
    ledger.append(ClaimAction.APPROVED, 2, "Max", "Looks fine")
    ledger.append_system("Auto-approved: CFO approved")

    assert [entry.sequence for entry in ledger] == [1, 2, 3]
    assert len(ledger) == 3
    assert ledger.latest().approver_name == "System"
    assert ledger.latest().is_system
    assert [entry.comment for entry in ledger.by_approver(2)] == ["Looks fine"]
    assert ledger.count(ClaimAction.APPROVED) == 1
    assert ledger.count(ClaimAction.APPROVED, include_system=True) == 2


def test_entries_are_a_read_only_snapshot() -> None:
    ledger = AuditLedger(ExpenseClaim())
    ledger.append(ClaimAction.SUBMITTED, 1, "Eve", "")

    entries = ledger.entries

    assert isinstance(entries, tuple)
    assert ledger.latest() is entries[-1]
    assert AuditLedger(ExpenseClaim()).latest() is None


def test_stored_entries_cannot_be_edited(submit_claim) -> None:
    claim = submit_claim()
    entry = claim.history[0]
    entry.comment = "rewritten"

    with pytest.raises(AuditLedgerViolationError):
        db.session.commit()
    db.session.rollback()

    assert db.session.get(AuditEntry, entry.id).comment == "Expense submitted for approval"


def test_stored_entries_cannot_be_deleted(submit_claim) -> None:
    claim = submit_claim()
    entry_id = claim.history[0].id

    db.session.delete(db.session.get(AuditEntry, entry_id))
    with pytest.raises(AuditLedgerViolationError):
        db.session.commit()
    db.session.rollback()

    assert db.session.get(AuditEntry, entry_id) is not None
