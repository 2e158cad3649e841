"""User directory model."""
from __future__ import annotations

import enum

from flask_login import UserMixin

from claimflow import db


class UserRole(enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(db.Enum(UserRole, name="user_role"), nullable=False, default=UserRole.EMPLOYEE)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    company = db.relationship("Company", back_populates="users", lazy="joined")
    manager = db.relationship("User", remote_side=[id], lazy="joined")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "company_id": self.company_id,
            "manager_id": self.manager_id,
        }

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role.value}>"
