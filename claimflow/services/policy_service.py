"""Per-company approval policy management."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from claimflow.errors import NotFoundError, ValidationError
from claimflow.models import ApprovalPolicy, ApprovalRuleType, PolicyApprover
from claimflow.services.approval_rules import parse_rule_type, validate_threshold
from claimflow.services.repositories import PolicyRepository, UserDirectory

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 60


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def whole_number(value: Any, field: str) -> int:
    """Accept an int or a string of digits; bools and floats are rejected."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    raise ValidationError(f"'{field}' must be a whole number.")


class PolicyService:
    def __init__(
        self,
        policies: Optional[PolicyRepository] = None,
        directory: Optional[UserDirectory] = None,
    ):
        self.policies = policies or PolicyRepository()
        self.directory = directory or UserDirectory()

    def get_policy(self, company_id: int) -> ApprovalPolicy:
        policy = self.policies.get(company_id)
        if policy is None:
            raise NotFoundError("Approval policy for company", company_id)
        return policy

    def set_policy(
        self,
        company_id: int,
        rule_type: ApprovalRuleType | str,
        threshold_percent: Optional[int],
        approvers: Iterable[Dict[str, Any]],
    ) -> ApprovalPolicy:
        """Create or replace the company's policy and its approver chain."""
        if self.directory.get_company(company_id) is None:
            raise NotFoundError("Company", company_id)

        rule_type = parse_rule_type(rule_type)
        if rule_type == ApprovalRuleType.CFO and threshold_percent is None:
            threshold_percent = DEFAULT_THRESHOLD
        threshold_percent = validate_threshold(threshold_percent)
        chain = self._validate_approvers(company_id, approvers)

        policy = self.policies.get(company_id)
        try:
            if policy is None:
                policy = ApprovalPolicy(company_id=company_id)
                self.policies.add(policy)
            else:
                policy.approvers.clear()
                self.policies.flush()

            policy.rule_type = rule_type
            policy.threshold_percent = threshold_percent
            for position, fields in enumerate(chain, start=1):
                policy.approvers.append(PolicyApprover(position=position, **fields))
        except Exception:
            self.policies.rollback()
            raise

        self.policies.save(policy)
        logger.info(
            "Approval policy for company %s set to %s with %s approvers",
            company_id,
            policy.rule_type.value,
            len(chain),
        )
        return policy

    def add_approver(
        self,
        company_id: int,
        approver_id: int,
        level: int,
        display_role: Optional[str] = None,
        is_cfo: bool = False,
    ) -> ApprovalPolicy:
        policy = self.get_policy(company_id)
        if any(entry.approver_id == approver_id for entry in policy.approvers):
            raise ValidationError(f"User {approver_id} is already an approver.")

        fields = self._validate_approver(
            company_id,
            {"approver_id": approver_id, "level": level, "display_role": display_role, "is_cfo": is_cfo},
        )
        next_position = max((entry.position for entry in policy.approvers), default=0) + 1
        policy.approvers.append(PolicyApprover(position=next_position, **fields))
        self.policies.save(policy)
        logger.info("Added approver %s at level %s for company %s", approver_id, fields["level"], company_id)
        return policy

    def remove_approver(self, company_id: int, approver_id: int) -> ApprovalPolicy:
        policy = self.get_policy(company_id)
        entry = next((entry for entry in policy.approvers if entry.approver_id == approver_id), None)
        if entry is None:
            raise NotFoundError("Approver", approver_id)
        policy.approvers.remove(entry)
        self.policies.save(policy)
        logger.info("Removed approver %s for company %s", approver_id, company_id)
        return policy

    # Validation -------------------------------------------------------------

    def _validate_approvers(self, company_id: int, approvers: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        chain = [self._validate_approver(company_id, raw) for raw in approvers or []]
        seen = set()
        for fields in chain:
            if fields["approver_id"] in seen:
                raise ValidationError(f"User {fields['approver_id']} appears more than once in the approver chain.")
            seen.add(fields["approver_id"])
        return chain

    def _validate_approver(self, company_id: int, raw: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise ValidationError("Each approver must be an object.")
        if "approver_id" not in raw or "level" not in raw:
            raise ValidationError("Each approver needs an integer 'approver_id' and 'level'.")
        approver_id = whole_number(raw["approver_id"], "approver_id")
        level = whole_number(raw["level"], "level")
        if level < 1:
            raise ValidationError("Approver level must be 1 or greater.")

        user = self.directory.get_user(approver_id)
        if user is None or user.company_id != company_id:
            raise ValidationError(f"User {approver_id} is not a member of company {company_id}.")

        return {
            "approver_id": approver_id,
            "level": level,
            "display_role": (raw.get("display_role") or user.role.value.title()).strip(),
            "is_cfo": _as_bool(raw.get("is_cfo", False)),
        }
