"""
opsconsole/workflow/state_machine.py

Transition table and guards of the procurement order lifecycle.

Encodes what is allowed; persistence and audit requests live elsewhere
(service.py / audit_gate.py). Every method mutates the order in place and
returns it; nothing here commits.

    pending_receive --start--> inbound_processing(2) --advance--> (3)
        --submit_inbound--> pending_inbound_audit
            --approve--> outbound_processing(4) --advance--> (5)
                --submit_outbound--> pending_outbound_audit --approve--> completed
            --reject--> back to the processing status of the same phase
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Tuple

from ..models import ProcurementOrder
from .errors import InvalidTransition, StepIncomplete
from .stage_data import StageDataStore
from .states import (
    FROZEN_STATUSES,
    PHASE_STEPS,
    STEP_CONFIRM,
    STEP_LOGISTICS,
    STEP_PACKING,
    STEP_RECEIPT,
    STEP_STOCKING,
    AuditStatus,
    Event,
    OrderStatus,
    Phase,
)

logger = logging.getLogger(__name__)

S = OrderStatus

# (status, event) -> steps at which the event is accepted
TRANSITIONS: Dict[Tuple[OrderStatus, Event], Tuple[int, ...]] = {
    (S.PENDING_RECEIVE, Event.START_PROCESSING): (STEP_CONFIRM,),
    (S.INBOUND_PROCESSING, Event.ADVANCE_STEP): (STEP_STOCKING, STEP_PACKING),
    (S.INBOUND_PROCESSING, Event.SUBMIT_INBOUND_AUDIT): (STEP_PACKING,),
    (S.PENDING_INBOUND_AUDIT, Event.APPROVE): (STEP_PACKING,),
    (S.PENDING_INBOUND_AUDIT, Event.REJECT): (STEP_PACKING,),
    (S.OUTBOUND_PROCESSING, Event.ADVANCE_STEP): (STEP_LOGISTICS, STEP_RECEIPT),
    (S.OUTBOUND_PROCESSING, Event.SUBMIT_OUTBOUND_AUDIT): (STEP_RECEIPT,),
    (S.PENDING_OUTBOUND_AUDIT, Event.APPROVE): (STEP_RECEIPT,),
    (S.PENDING_OUTBOUND_AUDIT, Event.REJECT): (STEP_RECEIPT,),
}

# Where the step pointer moves after a successful advance_step
NEXT_STEP: Dict[int, int] = {
    STEP_STOCKING: STEP_PACKING,
    STEP_PACKING: STEP_PACKING,
    STEP_LOGISTICS: STEP_RECEIPT,
    STEP_RECEIPT: STEP_RECEIPT,
}

SUBMIT_EVENT: Dict[Phase, Event] = {
    Phase.INBOUND: Event.SUBMIT_INBOUND_AUDIT,
    Phase.OUTBOUND: Event.SUBMIT_OUTBOUND_AUDIT,
}

PROCESSING_STATUS: Dict[Phase, OrderStatus] = {
    Phase.INBOUND: S.INBOUND_PROCESSING,
    Phase.OUTBOUND: S.OUTBOUND_PROCESSING,
}

PENDING_STATUS: Dict[Phase, OrderStatus] = {
    Phase.INBOUND: S.PENDING_INBOUND_AUDIT,
    Phase.OUTBOUND: S.PENDING_OUTBOUND_AUDIT,
}


def can_fire(status: str, step: int, event: Event) -> bool:
    """Return True if the table has an entry for (status, event) at this step."""
    try:
        key = (OrderStatus(status), event)
    except ValueError:
        return False
    return step in TRANSITIONS.get(key, ())


class OrderStateMachine:
    """Applies events to a ProcurementOrder according to TRANSITIONS."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self.clock = clock

    # ---------------------------------------------------------------------
    # Validation
    # ---------------------------------------------------------------------
    @staticmethod
    def validate(order: ProcurementOrder, event: Event) -> None:
        """Raise InvalidTransition if the event has no table entry for the order's state."""
        if not can_fire(order.status, order.current_step, event):
            raise InvalidTransition(order.status, order.current_step, event.value)

    @staticmethod
    def ensure_evidence_writable(order: ProcurementOrder) -> None:
        if OrderStatus(order.status) in FROZEN_STATUSES:
            raise InvalidTransition(order.status, order.current_step, Event.RECORD_EVIDENCE.value)

    # ---------------------------------------------------------------------
    # Processing events
    # ---------------------------------------------------------------------
    def start_processing(self, order: ProcurementOrder) -> ProcurementOrder:
        self.validate(order, Event.START_PROCESSING)

        StageDataStore(order).mark_complete(STEP_CONFIRM, self.clock())
        order.status = S.INBOUND_PROCESSING.value
        order.current_step = STEP_STOCKING

        logger.info("Order %s received, inbound processing started", order.id)
        return order

    def advance_step(self, order: ProcurementOrder) -> ProcurementOrder:
        self.validate(order, Event.ADVANCE_STEP)

        step = order.current_step
        store = StageDataStore(order)
        missing = store.missing_evidence(step)
        if missing:
            raise StepIncomplete(step, missing)

        store.mark_complete(step, self.clock())
        order.current_step = max(order.current_step, NEXT_STEP[step])

        logger.info("Order %s completed step %s, now at step %s", order.id, step, order.current_step)
        return order

    def submit_for_audit(self, order: ProcurementOrder, phase: Phase) -> ProcurementOrder:
        """
        Freeze the phase for audit.

        The final step of the phase must have been completed at least once and
        its evidence must still be present (it may have been edited since).
        The completion mark is refreshed so "update then submit" is recorded.
        """
        self.validate(order, SUBMIT_EVENT[phase])

        final_step = PHASE_STEPS[phase][-1]
        store = StageDataStore(order)
        if not store.is_completed(final_step):
            raise StepIncomplete(final_step, f"Step {final_step} must be completed before submitting for audit.")
        missing = store.missing_evidence(final_step)
        if missing:
            raise StepIncomplete(final_step, missing)

        store.mark_complete(final_step, self.clock())
        order.status = PENDING_STATUS[phase].value
        order.audit_status = AuditStatus.PENDING.value
        order.reject_reason = None

        logger.info("Order %s submitted for %s audit", order.id, phase.value)
        return order

    # ---------------------------------------------------------------------
    # Audit outcomes
    # ---------------------------------------------------------------------
    def approve(self, order: ProcurementOrder) -> ProcurementOrder:
        self.validate(order, Event.APPROVE)

        if order.status == S.PENDING_INBOUND_AUDIT.value:
            order.status = S.OUTBOUND_PROCESSING.value
            order.current_step = STEP_LOGISTICS
        else:
            order.status = S.COMPLETED.value

        order.audit_status = AuditStatus.APPROVED.value
        order.reject_reason = None
        return order

    def reject(self, order: ProcurementOrder, reason: str) -> ProcurementOrder:
        """Return to the same phase's processing status. Step pointer and evidence stay."""
        self.validate(order, Event.REJECT)

        phase = Phase.INBOUND if order.status == S.PENDING_INBOUND_AUDIT.value else Phase.OUTBOUND
        order.status = PROCESSING_STATUS[phase].value
        order.audit_status = AuditStatus.REJECTED.value
        order.reject_reason = reason
        return order
