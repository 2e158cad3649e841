"""
Seed script that creates a demo company with an approver chain and policy
"""

import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from claimflow import create_app, db
from claimflow.models import Company, User, UserRole
from claimflow.services.policy_service import PolicyService

DEMO_COMPANY = "Demo Corp"

DEMO_USERS = [
    ("Alice Admin", "alice@demo.test", UserRole.ADMIN),
    ("Mark Manager", "mark@demo.test", UserRole.MANAGER),
    ("Fran Finance", "fran@demo.test", UserRole.MANAGER),
    ("Cora Cfo", "cora@demo.test", UserRole.MANAGER),
    ("Ed Employee", "ed@demo.test", UserRole.EMPLOYEE),
]


def seed_demo(app=None):
    """Create the demo company unless it already exists; returns its id"""
    app = app or create_app()

    with app.app_context():
        db.create_all()
        existing = Company.query.filter_by(name=DEMO_COMPANY).first()
        if existing is not None:
            print(f"{DEMO_COMPANY} already exists (id={existing.id}), nothing to do")
            return existing.id

        try:
            print(f"Seeding {DEMO_COMPANY}...")
            company = Company(name=DEMO_COMPANY, country="United States", currency_code="USD")
            db.session.add(company)

            users = {}
            for name, email, role in DEMO_USERS:
                users[name] = User(name=name, email=email, role=role, company=company)
                db.session.add(users[name])
            users["Ed Employee"].manager = users["Mark Manager"]
            db.session.commit()

            PolicyService().set_policy(
                company.id,
                "hybrid",
                60,
                [
                    {"approver_id": users["Mark Manager"].id, "level": 1},
                    {"approver_id": users["Fran Finance"].id, "level": 2, "display_role": "Finance"},
                    {"approver_id": users["Cora Cfo"].id, "level": 3, "display_role": "CFO", "is_cfo": True},
                ],
            )

            print("\nDemo users (send the id as X-User-Id):")
            for name, _, role in DEMO_USERS:
                print(f"  {users[name].id}: {name} ({role.value})")
            return company.id

        except Exception as e:
            print(f"Seeding failed: {e}")
            db.session.rollback()
            raise


if __name__ == "__main__":
    seed_demo()
