"""Claim lifecycle engine.

A claim starts PENDING at level 1 and moves through the approver chain one
level per approval until the company policy is satisfied, the chain runs
out, or someone rejects it. APPROVED and REJECTED are terminal.

Each transition is a read-modify-write on one claim. All reads (claim,
policy, acting user) happen before the claim is touched; any failure after
that point rolls the session back so the stored claim is left as it was.
Concurrent transitions on the same claim are caught by the claim's version
column and surface as ``ConcurrentUpdateError``.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from claimflow.errors import InvalidStateTransitionError, NotFoundError, ValidationError
from claimflow.models import ClaimAction, ClaimStatus, ExpenseClaim, User
from claimflow.services import currency_service
from claimflow.services.approval_chain import highest_level, resolve_approver
from claimflow.services.approval_rules import PolicySnapshot, evaluate, snapshot_policy
from claimflow.services.audit_ledger import AuditLedger
from claimflow.services.repositories import ClaimRepository, PolicyRepository, UserDirectory

logger = logging.getLogger(__name__)

CLAIM_CATEGORIES = (
    "Travel",
    "Food",
    "Accommodation",
    "Transportation",
    "Office Supplies",
    "Entertainment",
    "Other",
)

SUBMITTED_COMMENT = "Expense submitted for approval"
CHAIN_COMPLETED_REASON = "approval chain completed"
OVERRIDE_REASON = "administrative override"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _comment_or(comment: Optional[str], default: str) -> str:
    return (comment or "").strip() or default


class ClaimWorkflow:
    def __init__(
        self,
        claims: Optional[ClaimRepository] = None,
        policies: Optional[PolicyRepository] = None,
        directory: Optional[UserDirectory] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.claims = claims or ClaimRepository()
        self.policies = policies or PolicyRepository()
        self.directory = directory or UserDirectory()
        self.clock = clock

    # Queries ----------------------------------------------------------------

    def get_claim(self, claim_id: int) -> ExpenseClaim:
        claim = self.claims.get(claim_id)
        if claim is None:
            raise NotFoundError("Claim", claim_id)
        return claim

    # Commands ---------------------------------------------------------------

    def submit(
        self,
        claimant_id: int,
        company_id: int,
        *,
        amount,
        currency: str,
        category: str,
        description: str,
        date_spent: date,
        merchant: Optional[str] = None,
        receipt_ref: Optional[str] = None,
    ) -> ExpenseClaim:
        """Create a claim in PENDING at level 1 with the first approver assigned."""
        claimant = self._require_user(claimant_id)
        company = self.directory.get_company(company_id)
        if company is None:
            raise NotFoundError("Company", company_id)
        if claimant.company_id != company.id:
            raise ValidationError(f"User {claimant_id} does not belong to company {company_id}.")

        amount = self._parse_amount(amount)
        currency = currency_service.normalize_currency(currency)
        category = self._parse_category(category)
        description = (description or "").strip()
        if not description:
            raise ValidationError("A description is required.")
        if not isinstance(date_spent, date):
            raise ValidationError("Expense date must be a date.")

        now = self.clock()
        claim = ExpenseClaim(
            claimant_id=claimant.id,
            company_id=company.id,
            amount=amount,
            currency=currency,
            converted_amount=currency_service.convert_currency(
                amount, currency, company.currency_code
            ),
            company_currency=company.currency_code,
            category=category,
            description=description,
            merchant=(merchant or "").strip() or None,
            date_spent=date_spent,
            receipt_ref=(receipt_ref or "").strip() or None,
            status=ClaimStatus.PENDING,
            current_level=1,
            current_approver_id=self.directory.first_approver_for(claimant),
            created_at=now,
            updated_at=now,
        )
        AuditLedger(claim).append(
            ClaimAction.SUBMITTED, claimant.id, claimant.name, SUBMITTED_COMMENT, at=now
        )

        self.claims.add(claim)
        self.claims.save(claim)
        logger.info(
            "Claim %s submitted by user %s, first approver %s",
            claim.id,
            claimant.id,
            claim.current_approver_id,
        )
        return claim

    def approve(
        self, claim_id: int, acting_approver_id: int, comment: Optional[str] = None
    ) -> ExpenseClaim:
        """Record an approval and either finalize the claim or move it one level up."""
        claim = self._load_open_claim(claim_id, "approve")
        actor = self._require_user(acting_approver_id)
        policy = snapshot_policy(self.policies.get(claim.company_id))
        now = self.clock()

        try:
            ledger = AuditLedger(claim)
            ledger.append(
                ClaimAction.APPROVED, actor.id, actor.name, _comment_or(comment, "Approved"), at=now
            )
            approval_count = ledger.count(ClaimAction.APPROVED)
            total_approvers = policy.total_approvers if policy is not None else 1
            decision = evaluate(policy, ledger.entries, approval_count, total_approvers)

            if decision.auto_approve:
                self._finalize(claim, ledger, decision.reason, f"Auto-approved: {decision.reason}", now)
            else:
                self._advance(claim, ledger, policy, now)
            claim.updated_at = now
        except Exception:
            self.claims.rollback()
            raise

        self.claims.save(claim)
        logger.info(
            "Claim %s approved by user %s, status %s at level %s",
            claim.id,
            actor.id,
            claim.status.value,
            claim.current_level,
        )
        return claim

    def force_approve(
        self, claim_id: int, acting_approver_id: int, comment: Optional[str] = None
    ) -> ExpenseClaim:
        """Finalize a claim without consulting the policy.

        Callers must check that the actor holds the override capability.
        """
        claim = self._load_open_claim(claim_id, "approve")
        actor = self._require_user(acting_approver_id)
        now = self.clock()

        try:
            ledger = AuditLedger(claim)
            ledger.append(
                ClaimAction.APPROVED, actor.id, actor.name, _comment_or(comment, "Approved"), at=now
            )
            self._finalize(
                claim, ledger, OVERRIDE_REASON, "Final approval by administrative override", now
            )
            claim.updated_at = now
        except Exception:
            self.claims.rollback()
            raise

        self.claims.save(claim)
        logger.info("Claim %s force-approved by user %s", claim.id, actor.id)
        return claim

    def reject(
        self, claim_id: int, acting_approver_id: int, comment: Optional[str] = None
    ) -> ExpenseClaim:
        """Reject a claim. Never consults the policy."""
        claim = self._load_open_claim(claim_id, "reject")
        actor = self._require_user(acting_approver_id)
        now = self.clock()

        try:
            comment = _comment_or(comment, "Rejected")
            AuditLedger(claim).append(ClaimAction.REJECTED, actor.id, actor.name, comment, at=now)
            claim.status = ClaimStatus.REJECTED
            claim.decision_reason = f"rejected by {actor.name}"
            claim.updated_at = now
        except Exception:
            self.claims.rollback()
            raise

        self.claims.save(claim)
        logger.info("Claim %s rejected by user %s", claim.id, actor.id)
        return claim

    # Helpers ----------------------------------------------------------------

    def _load_open_claim(self, claim_id: int, action: str) -> ExpenseClaim:
        claim = self.get_claim(claim_id)
        if claim.is_terminal:
            raise InvalidStateTransitionError(claim.id, claim.status.value, action)
        return claim

    def _require_user(self, user_id: int) -> User:
        user = self.directory.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def _finalize(
        self,
        claim: ExpenseClaim,
        ledger: AuditLedger,
        reason: str,
        comment: str,
        now: datetime,
    ) -> None:
        claim.status = ClaimStatus.APPROVED
        claim.decision_reason = reason
        ledger.append_system(comment, at=now)

    def _advance(
        self,
        claim: ExpenseClaim,
        ledger: AuditLedger,
        policy: Optional[PolicySnapshot],
        now: datetime,
    ) -> None:
        next_level = claim.current_level + 1
        claim.status = ClaimStatus.IN_REVIEW
        claim.current_level = next_level
        claim.current_approver_id = resolve_approver(policy, next_level)

        if next_level > highest_level(policy):
            self._finalize(
                claim, ledger, CHAIN_COMPLETED_REASON, f"Auto-approved: {CHAIN_COMPLETED_REASON}", now
            )
        elif claim.current_approver_id is None:
            logger.warning(
                "Claim %s reached level %s but no approver is configured there",
                claim.id,
                next_level,
            )

    @staticmethod
    def _parse_amount(raw) -> Decimal:
        try:
            amount = Decimal(str(raw))
        except (InvalidOperation, TypeError):
            raise ValidationError("Invalid amount.") from None
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be greater than zero.")
        return amount.quantize(Decimal("0.01"))

    @staticmethod
    def _parse_category(raw: str) -> str:
        lookup = {category.lower(): category for category in CLAIM_CATEGORIES}
        category = lookup.get((raw or "").strip().lower())
        if category is None:
            raise ValidationError(
                f"Unsupported category '{raw}'. Choose one of: {', '.join(CLAIM_CATEGORIES)}."
            )
        return category
