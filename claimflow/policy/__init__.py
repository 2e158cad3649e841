"""Approval policy blueprint."""
from flask import Blueprint

policy_bp = Blueprint("policy", __name__, url_prefix="/policy")

from . import routes  # noqa: E402,F401
