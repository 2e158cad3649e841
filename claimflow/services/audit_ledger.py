"""Append-only view over a claim's audit history."""
from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional, Tuple

from claimflow.models import AuditEntry, ClaimAction, ExpenseClaim

SYSTEM_ACTOR_NAME = "System"


class AuditLedger:
    """Wraps ``ExpenseClaim.history``; entries can be added, never changed.

    Append order is the chronological order used for decisions, timestamps
    are informational only.
    """

    def __init__(self, claim: ExpenseClaim):
        self._claim = claim

    def append(
        self,
        action: ClaimAction,
        approver_id: Optional[int],
        approver_name: str,
        comment: str,
        at: Optional[datetime] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            sequence=len(self._claim.history) + 1,
            approver_id=approver_id,
            approver_name=approver_name,
            action=action,
            comment=comment,
        )
        if at is not None:
            entry.created_at = at
        self._claim.history.append(entry)
        return entry

    def append_system(self, comment: str, at: Optional[datetime] = None) -> AuditEntry:
        return self.append(ClaimAction.APPROVED, None, SYSTEM_ACTOR_NAME, comment, at=at)

    @property
    def entries(self) -> Tuple[AuditEntry, ...]:
        return tuple(self._claim.history)

    def latest(self) -> Optional[AuditEntry]:
        return self._claim.history[-1] if self._claim.history else None

    def by_approver(self, approver_id: int) -> Tuple[AuditEntry, ...]:
        return tuple(entry for entry in self._claim.history if entry.approver_id == approver_id)

    def count(self, action: ClaimAction, include_system: bool = False) -> int:
        return sum(
            1
            for entry in self._claim.history
            if entry.action == action and (include_system or not entry.is_system)
        )

    def __iter__(self) -> Iterator[AuditEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self._claim.history)
