"""General helper utilities."""
from __future__ import annotations

from datetime import date
from functools import wraps
from typing import Any, Callable, Dict, Optional

from flask import jsonify, request
from flask_login import current_user

from claimflow.errors import ValidationError
from claimflow.models import UserRole

JsonView = Callable[..., Any]


def json_response(payload: Any, status: int = 200):
    """Return a JSON response with status code."""
    return jsonify(payload), status


def role_required(*roles: UserRole):
    """Restrict a route to one or more roles."""
    def decorator(view_func: JsonView) -> JsonView:
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return json_response({"error": "Authentication required."}, status=401)
            if current_user.role not in roles:
                return json_response({"error": "Insufficient permissions."}, status=403)
            return view_func(*args, **kwargs)

        return wrapped

    return decorator


def json_payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def optional_comment(payload: Dict[str, Any]) -> Optional[str]:
    comment = payload.get("comment")
    if comment is not None and not isinstance(comment, str):
        raise ValidationError("Comment must be a string.")
    return comment


def parse_iso_date(raw: Any, field: str) -> date:
    try:
        return date.fromisoformat(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid '{field}' format. Use YYYY-MM-DD.") from None
