"""Pytest fixtures: an app on in-memory SQLite and a seeded company.

HTTP tests run without an application context pushed, so every request
loads its own user; service tests ask for ``app_context``.
"""
from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest

from claimflow import create_app, db
from claimflow.models import Company, User, UserRole
from claimflow.services.claim_workflow import ClaimWorkflow
from claimflow.services.policy_service import PolicyService


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def app_context(app):
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(company, name, role, manager=None):
    user = User(
        name=name,
        email=f"{name.split()[0].lower()}@{company.name.lower()}.test",
        role=role,
        company=company,
        manager=manager,
    )
    db.session.add(user)
    return user


@pytest.fixture
def org(app):
    with app.app_context():
        company = Company(name="Acme", country="United States", currency_code="USD")
        db.session.add(company)
        admin = _user(company, "Ada Admin", UserRole.ADMIN)
        manager = _user(company, "Max Manager", UserRole.MANAGER)
        finance = _user(company, "Fiona Finance", UserRole.MANAGER)
        director = _user(company, "Dana Director", UserRole.MANAGER)
        cfo = _user(company, "Carl Cfo", UserRole.MANAGER)
        employee = _user(company, "Eve Employee", UserRole.EMPLOYEE, manager=manager)
        loner = _user(company, "Lou Loner", UserRole.EMPLOYEE)

        other = Company(name="Globex", country="India", currency_code="INR")
        db.session.add(other)
        outsider = _user(other, "Otto Outsider", UserRole.ADMIN)
        db.session.commit()

        return SimpleNamespace(
            company_id=company.id,
            other_company_id=other.id,
            admin_id=admin.id,
            manager_id=manager.id,
            finance_id=finance.id,
            director_id=director.id,
            cfo_id=cfo.id,
            employee_id=employee.id,
            loner_id=loner.id,
            outsider_id=outsider.id,
        )


@pytest.fixture
def workflow(app_context):
    return ClaimWorkflow()


@pytest.fixture
def policies(app_context):
    return PolicyService()


@pytest.fixture
def submit_claim(workflow, org):
    def _submit(claimant_id=None, **overrides):
        fields = {
            "amount": "120.50",
            "currency": "USD",
            "category": "Travel",
            "description": "Taxi to client site",
            "date_spent": date(2025, 10, 1),
            "merchant": "Uber",
        }
        fields.update(overrides)
        return workflow.submit(claimant_id or org.employee_id, org.company_id, **fields)

    return _submit


@pytest.fixture
def as_user():
    def _headers(user_id):
        return {"X-User-Id": str(user_id)}

    return _headers
