"""
opsconsole/workflow/states.py

Closed vocabularies of the procurement order lifecycle.

Statuses name the KIND of state (processing / pending audit / terminal),
current_step names the POSITION inside the phase:
- inbound phase:  1 confirm order, 2 stocking, 3 packing/outbound from warehouse
- outbound phase: 4 logistics, 5 receipt at the store
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class OrderStatus(str, Enum):
    PENDING_RECEIVE = "pending_receive"
    INBOUND_PROCESSING = "inbound_processing"
    PENDING_INBOUND_AUDIT = "pending_inbound_audit"
    OUTBOUND_PROCESSING = "outbound_processing"
    PENDING_OUTBOUND_AUDIT = "pending_outbound_audit"
    COMPLETED = "completed"


class AuditStatus(str, Enum):
    """Outcome of the most recent audit request, stored on the order."""

    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestStatus(str, Enum):
    """Status of a single AuditRequest row. INVALID marks a superseded request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    INVALID = "invalid"


class Phase(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class OrderType(str, Enum):
    PURCHASE = "purchase"
    RENT = "rent"


class Event(str, Enum):
    """Events accepted by the state machine."""

    START_PROCESSING = "start_processing"
    ADVANCE_STEP = "advance_step"
    SUBMIT_INBOUND_AUDIT = "submit_inbound_audit"
    SUBMIT_OUTBOUND_AUDIT = "submit_outbound_audit"
    APPROVE = "approve"
    REJECT = "reject"
    RECORD_EVIDENCE = "record_evidence"


AUDIT_DOMAIN = "procurement"

STEP_CONFIRM = 1
STEP_STOCKING = 2
STEP_PACKING = 3
STEP_LOGISTICS = 4
STEP_RECEIPT = 5

ALL_STEPS = (STEP_CONFIRM, STEP_STOCKING, STEP_PACKING, STEP_LOGISTICS, STEP_RECEIPT)

STEP_LABELS: Dict[int, str] = {
    STEP_CONFIRM: "确认订单",
    STEP_STOCKING: "备货",
    STEP_PACKING: "出库",
    STEP_LOGISTICS: "物流运输",
    STEP_RECEIPT: "收货验货",
}

PHASE_STEPS: Dict[Phase, tuple] = {
    Phase.INBOUND: (STEP_CONFIRM, STEP_STOCKING, STEP_PACKING),
    Phase.OUTBOUND: (STEP_LOGISTICS, STEP_RECEIPT),
}

PROCESSING_STATUSES: FrozenSet[OrderStatus] = frozenset([
    OrderStatus.INBOUND_PROCESSING,
    OrderStatus.OUTBOUND_PROCESSING,
])

PENDING_AUDIT_PHASE: Dict[OrderStatus, Phase] = {
    OrderStatus.PENDING_INBOUND_AUDIT: Phase.INBOUND,
    OrderStatus.PENDING_OUTBOUND_AUDIT: Phase.OUTBOUND,
}

# Evidence cannot change once the order has been handed to an auditor or closed.
FROZEN_STATUSES: FrozenSet[OrderStatus] = frozenset([
    OrderStatus.PENDING_INBOUND_AUDIT,
    OrderStatus.PENDING_OUTBOUND_AUDIT,
    OrderStatus.COMPLETED,
])

# Orders shown in the outbound tab: approved inbound onwards.
OUTBOUND_VISIBLE_STATUSES: FrozenSet[OrderStatus] = frozenset([
    OrderStatus.OUTBOUND_PROCESSING,
    OrderStatus.PENDING_OUTBOUND_AUDIT,
    OrderStatus.COMPLETED,
])

