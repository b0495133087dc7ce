"""
opsconsole/audit.py

Audit trail helpers.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store username snapshot to preserve identity even if the user is renamed later.
- Store IP address for traceability when called inside a request.

IMPORTANT:
- This helper ADDS AuditLog entries to the current SQLAlchemy session.
  The caller (workflow service, auth routes) controls commit/rollback, so a
  rolled back command leaves no trail entry behind.
- Outside a request (CLI, tests, background jobs) the explicit `actor` is used.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog, User


def _resolve_actor(actor: Any) -> tuple[Optional[int], Optional[str]]:
    """Return (user_id, username) for the acting identity."""
    if has_request_context() and current_user.is_authenticated:
        return current_user.id, current_user.username
    if isinstance(actor, User):
        return actor.id, actor.username
    if isinstance(actor, str):
        return None, actor
    return None, getattr(actor, "username", None)


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    actor: Any = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: model instance with an .id (flush first for new rows)
        action: short verb, e.g. CREATE / START_PROCESSING / APPROVE
        before / after: dict snapshots (optional)
        actor: User or username used when there is no logged-in request user

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy,
      configure ProxyFix / trusted proxy headers to capture the real client IP.
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    user_id, username = _resolve_actor(actor)

    entry = AuditLog(
        user_id=user_id,
        username_snapshot=username,
        entity_type=entity.__class__.__name__,
        entity_id=str(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False, default=str) if before else None,
        after_data=json.dumps(after, ensure_ascii=False, default=str) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
