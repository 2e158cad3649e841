"""Company model."""
from __future__ import annotations

from claimflow import db


class Company(db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    country = db.Column(db.String(120), nullable=False)
    currency_code = db.Column(db.String(10), nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    users = db.relationship("User", back_populates="company", lazy="selectin")
    policy = db.relationship(
        "ApprovalPolicy",
        back_populates="company",
        uselist=False,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Company {self.name}>"
