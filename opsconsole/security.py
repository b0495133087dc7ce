"""
opsconsole/security.py

Access control helpers for the operations console.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Admin: full access, may audit both phases.
- inbound_auditor / outbound_auditor: may audit their own phase only.
- operator: runs the processing steps, cannot audit.
- viewer: read-only (no mutating requests), except logging out.

This module provides:
- can_audit(): the authorization collaborator injected into the workflow
- viewer_readonly_guard(): global safety net, wired via app.before_request
- role_required: view decorator (admins always pass)

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Dict, FrozenSet, Optional

from flask import jsonify, request
from flask_login import current_user

from .workflow.states import AUDIT_DOMAIN, Phase

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# role -> phases it may approve/reject
AUDIT_POLICY: Dict[str, FrozenSet[str]] = {
    "admin": frozenset([Phase.INBOUND.value, Phase.OUTBOUND.value]),
    "inbound_auditor": frozenset([Phase.INBOUND.value]),
    "outbound_auditor": frozenset([Phase.OUTBOUND.value]),
}


def _forbidden(message: str = "You do not have permission to perform this action."):
    """Consistent JSON 403 body."""
    return jsonify({"error": "forbidden", "message": message}), 403


def can_audit(role: Optional[str], domain: str, phase: str) -> bool:
    """Return True if a user with this role may decide audits of (domain, phase)."""
    if domain != AUDIT_DOMAIN or not role:
        return False
    return phase in AUDIT_POLICY.get(role, frozenset())


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def has_role(*roles: str) -> bool:
    if not current_user.is_authenticated:
        return False
    return is_admin() or getattr(current_user, "role", None) in roles


def viewer_readonly_guard():
    """
    Global guard: viewers cannot mutate data.

    Blocks POST/PUT/PATCH/DELETE for authenticated users with role "viewer".
    Allow-list for safe self-service mutating endpoints:
    - auth.logout
    """
    if request.method not in MUTATING_METHODS:
        return None

    if not current_user.is_authenticated:
        return None

    if getattr(current_user, "role", None) != "viewer":
        return None

    endpoint = (request.endpoint or "").strip()
    if endpoint in {"auth.logout"}:
        return None

    return _forbidden("Viewers have read-only access.")


def role_required(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator factory: allow the listed roles (admins always pass).

    Usage:
        @role_required("operator")
        def start(order_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not has_role(*roles):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
