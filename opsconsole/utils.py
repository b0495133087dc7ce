"""
Utility functions shared across the console:
- utcnow: default clock (naive UTC) for timestamps
- parse_optional_int / parse_date: lenient request-body parsing
- status_label: human label for an order's status/step (shown on list rows)
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from .workflow.states import STEP_LABELS, OrderStatus, PENDING_AUDIT_PHASE


def utcnow() -> datetime:
    """Current time as naive UTC (what the SQLite DateTime columns store)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_optional_int(value) -> int | None:
    """Parse optional int from JSON/form/query."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_date(value) -> date | None:
    """Parse YYYY-MM-DD. Returns None if empty/invalid."""
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def status_label(status: str, current_step: int) -> str:
    """
    Compute the display label of an order row.

    Priority:
    1) pending audit -> "待审核"
    2) completed -> "已完成"
    3) not yet received -> "待接单"
    4) otherwise the label of the current step
    """
    if status in {s.value for s in PENDING_AUDIT_PHASE}:
        return "待审核"
    if status == OrderStatus.COMPLETED.value:
        return "已完成"
    if status == OrderStatus.PENDING_RECEIVE.value:
        return "待接单"
    return STEP_LABELS.get(current_step, "")
