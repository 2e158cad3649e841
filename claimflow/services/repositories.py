"""Persistence gateways used by the workflow.

The workflow only ever calls ``get``/``add``/``save`` style methods on these
objects. Storage failures are translated into ``RepositoryUnavailableError``
and stale optimistic-lock writes into ``ConcurrentUpdateError``; reads are
retried a configurable number of times, writes never are.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

from claimflow import db
from claimflow.errors import ConcurrentUpdateError, RepositoryUnavailableError
from claimflow.models import (
    ApprovalPolicy,
    Company,
    ExpenseClaim,
    User,
    UserRole,
)
from claimflow.models.claim import OPEN_STATUSES

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNAVAILABLE = (OperationalError, PoolTimeoutError)


def _read(operation: Callable[[], T]) -> T:
    retries = current_app.config.get("REPOSITORY_READ_RETRIES", 0)
    attempt = 0
    while True:
        try:
            return operation()
        except _UNAVAILABLE as exc:
            db.session.rollback()
            if attempt >= retries:
                raise RepositoryUnavailableError(f"Repository read failed: {exc}") from exc
            attempt += 1
            logger.warning("Repository read failed (attempt %s of %s): %s", attempt, retries + 1, exc)


class ClaimRepository:
    def get(self, claim_id: int) -> Optional[ExpenseClaim]:
        return _read(lambda: db.session.get(ExpenseClaim, claim_id))

    def list_for_claimant(self, claimant_id: int) -> List[ExpenseClaim]:
        return _read(
            lambda: ExpenseClaim.query.filter_by(claimant_id=claimant_id)
            .order_by(ExpenseClaim.created_at.desc(), ExpenseClaim.id.desc())
            .all()
        )

    def list_open(self, company_id: int, approver_id: Optional[int] = None) -> List[ExpenseClaim]:
        """Open claims of a company, optionally only those awaiting ``approver_id``."""
        def query():
            q = ExpenseClaim.query.filter(
                ExpenseClaim.company_id == company_id,
                ExpenseClaim.status.in_(OPEN_STATUSES),
            )
            if approver_id is not None:
                q = q.filter(ExpenseClaim.current_approver_id == approver_id)
            return q.order_by(ExpenseClaim.created_at.desc(), ExpenseClaim.id.desc()).all()

        return _read(query)

    def status_summary(self, company_id: int, claimant_id: Optional[int] = None) -> dict:
        def query():
            q = db.session.query(
                ExpenseClaim.status,
                func.count(ExpenseClaim.id),
                func.coalesce(func.sum(ExpenseClaim.converted_amount), 0),
            ).filter(ExpenseClaim.company_id == company_id)
            if claimant_id is not None:
                q = q.filter(ExpenseClaim.claimant_id == claimant_id)
            return q.group_by(ExpenseClaim.status).all()

        return {status: (count, total) for status, count, total in _read(query)}

    def add(self, claim: ExpenseClaim) -> None:
        db.session.add(claim)

    def save(self, claim: ExpenseClaim) -> ExpenseClaim:
        claim_id = claim.id
        try:
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            logger.warning("Stale write rejected for claim %s", claim_id)
            raise ConcurrentUpdateError(claim_id) from exc
        except _UNAVAILABLE as exc:
            db.session.rollback()
            raise RepositoryUnavailableError(f"Repository write failed: {exc}") from exc
        return claim

    def rollback(self) -> None:
        db.session.rollback()


class PolicyRepository:
    def get(self, company_id: int) -> Optional[ApprovalPolicy]:
        return _read(lambda: ApprovalPolicy.query.filter_by(company_id=company_id).first())

    def add(self, policy: ApprovalPolicy) -> None:
        db.session.add(policy)

    def flush(self) -> None:
        db.session.flush()

    def save(self, policy: ApprovalPolicy) -> ApprovalPolicy:
        try:
            db.session.commit()
        except _UNAVAILABLE as exc:
            db.session.rollback()
            raise RepositoryUnavailableError(f"Repository write failed: {exc}") from exc
        return policy

    def rollback(self) -> None:
        db.session.rollback()


class UserDirectory:
    """Read-only lookups into the company/user directory."""

    def get_user(self, user_id: int) -> Optional[User]:
        return _read(lambda: db.session.get(User, user_id))

    def get_company(self, company_id: int) -> Optional[Company]:
        return _read(lambda: db.session.get(Company, company_id))

    def first_approver_for(self, claimant: User) -> Optional[int]:
        """The claimant's manager, or the company's first admin as a fallback."""
        if claimant.manager_id:
            return claimant.manager_id
        admin = _read(
            lambda: User.query.filter_by(company_id=claimant.company_id, role=UserRole.ADMIN)
            .order_by(User.id.asc())
            .first()
        )
        return admin.id if admin else None
