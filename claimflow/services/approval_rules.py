"""Auto-approval policy evaluation.

Everything in this module is a pure function of its arguments: the workflow
hands in a frozen snapshot of the company policy together with the claim
history, and gets back a ``Decision``. Nothing here touches the database.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction
from typing import Iterable, Optional, Tuple, Union

from claimflow.errors import PolicyMisconfigurationError, ValidationError
from claimflow.models.audit import ClaimAction
from claimflow.models.policy import ApprovalRuleType

MIN_THRESHOLD = 1
MAX_THRESHOLD = 100


@dataclass(frozen=True)
class PercentageRule:
    threshold_percent: int


@dataclass(frozen=True)
class CfoRule:
    pass


@dataclass(frozen=True)
class HybridRule:
    threshold_percent: int


ApprovalRule = Union[PercentageRule, CfoRule, HybridRule]


@dataclass(frozen=True)
class ApproverSlot:
    approver_id: int
    level: int
    position: int
    display_role: str = ""
    is_cfo: bool = False


@dataclass(frozen=True)
class PolicySnapshot:
    company_id: int
    rule: ApprovalRule
    approvers: Tuple[ApproverSlot, ...] = ()

    @property
    def total_approvers(self) -> int:
        return len(self.approvers)

    @property
    def cfo_ids(self) -> frozenset:
        return frozenset(slot.approver_id for slot in self.approvers if slot.is_cfo)


@dataclass(frozen=True)
class Decision:
    auto_approve: bool
    reason: str


AWAITING_APPROVALS = Decision(False, "awaiting more approvals")
NO_POLICY = Decision(False, "no policy configured")


def parse_rule_type(value: ApprovalRuleType | str) -> ApprovalRuleType:
    if isinstance(value, ApprovalRuleType):
        return value
    try:
        return ApprovalRuleType[str(value).strip().upper()]
    except KeyError:
        raise ValidationError(f"Unsupported rule type '{value}'.") from None


def validate_threshold(threshold_percent) -> int:
    if threshold_percent is None:
        raise ValidationError("A threshold percentage is required for this rule type.")
    if isinstance(threshold_percent, bool) or not isinstance(threshold_percent, int):
        raise ValidationError("Threshold percentage must be a whole number.")
    if not MIN_THRESHOLD <= threshold_percent <= MAX_THRESHOLD:
        raise ValidationError(
            f"Threshold percentage must be between {MIN_THRESHOLD} and {MAX_THRESHOLD}."
        )
    return threshold_percent


def build_rule(rule_type: ApprovalRuleType | str, threshold_percent: Optional[int]) -> ApprovalRule:
    """Turn a stored rule type and threshold into a rule variant."""
    rule_type = parse_rule_type(rule_type)
    if rule_type == ApprovalRuleType.CFO:
        return CfoRule()
    if rule_type == ApprovalRuleType.PERCENTAGE:
        return PercentageRule(validate_threshold(threshold_percent))
    if rule_type == ApprovalRuleType.HYBRID:
        return HybridRule(validate_threshold(threshold_percent))
    raise ValidationError(f"Unsupported rule type '{rule_type}'.")


def snapshot_policy(policy) -> Optional[PolicySnapshot]:
    """Freeze an ``ApprovalPolicy`` row into a ``PolicySnapshot``."""
    if policy is None:
        return None
    slots = tuple(
        ApproverSlot(
            approver_id=entry.approver_id,
            level=entry.level,
            position=entry.position,
            display_role=entry.display_role,
            is_cfo=bool(entry.is_cfo),
        )
        for entry in sorted(policy.approvers, key=lambda entry: entry.position)
    )
    return PolicySnapshot(
        company_id=policy.company_id,
        rule=build_rule(policy.rule_type, policy.threshold_percent),
        approvers=slots,
    )


def approval_percentage(approval_count: int, total_approvers: int) -> Fraction:
    """Exact share of approvals, in percent."""
    if total_approvers <= 0:
        raise PolicyMisconfigurationError(
            "Cannot compute an approval percentage with no configured approvers."
        )
    return Fraction(approval_count, total_approvers) * 100


def format_percentage(percentage: Fraction) -> str:
    rounded = (Decimal(percentage.numerator) / Decimal(percentage.denominator)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return str(rounded)


def cfo_has_approved(policy: PolicySnapshot, history: Iterable) -> bool:
    cfo_ids = policy.cfo_ids
    return any(
        entry.action == ClaimAction.APPROVED and entry.approver_id in cfo_ids
        for entry in history
    )


def evaluate(
    policy: Optional[PolicySnapshot],
    history: Iterable,
    approval_count: int,
    total_approvers: int,
) -> Decision:
    """Decide whether the approvals so far satisfy the policy."""
    if policy is None:
        return NO_POLICY

    rule = policy.rule
    cfo_approved = cfo_has_approved(policy, history)

    if isinstance(rule, CfoRule):
        return Decision(True, "CFO approved") if cfo_approved else AWAITING_APPROVALS

    if isinstance(rule, PercentageRule):
        percentage = approval_percentage(approval_count, total_approvers)
        if percentage >= rule.threshold_percent:
            return Decision(True, f"{format_percentage(percentage)}% approval threshold reached")
        return AWAITING_APPROVALS

    if isinstance(rule, HybridRule):
        if cfo_approved:
            return Decision(True, "CFO approved (hybrid rule)")
        percentage = approval_percentage(approval_count, total_approvers)
        if percentage >= rule.threshold_percent:
            return Decision(
                True, f"{format_percentage(percentage)}% approval threshold reached (hybrid rule)"
            )
        return AWAITING_APPROVALS

    raise PolicyMisconfigurationError(f"Unknown approval rule {rule!r}")
