"""
opsconsole/workflow/audit_gate.py

Approve/reject checkpoint between phases.

Responsibilities:
- open an AuditRequest on every submission (older pending ones become "invalid")
- check, in this order: order is pending audit -> caller may audit -> reason present
- stamp the decision on the request
- trigger inventory materialization on OUTBOUND approval only, exactly once

The gate never commits; ProcurementWorkflow owns the transaction and rolls
back when MaterializationFailed escapes.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from ..models import AuditRequest, ProcurementOrder
from .errors import MaterializationFailed, MissingReason, NotPendingAudit, Unauthorized
from .state_machine import OrderStateMachine
from .states import AUDIT_DOMAIN, PENDING_AUDIT_PHASE, OrderStatus, Phase, RequestStatus

logger = logging.getLogger(__name__)

Authorizer = Callable[[Optional[str], str, str], bool]
Materializer = Callable[[ProcurementOrder], Any]


def _actor_name(actor) -> Optional[str]:
    if actor is None:
        return None
    if isinstance(actor, str):
        return actor
    return getattr(actor, "username", None)


class AuditGate:
    def __init__(
        self,
        machine: OrderStateMachine,
        authorizer: Authorizer,
        materializer: Materializer,
        clock: Callable[[], datetime],
    ) -> None:
        self.machine = machine
        self.authorizer = authorizer
        self.materializer = materializer
        self.clock = clock

    # ---------------------------------------------------------------------
    # Requests
    # ---------------------------------------------------------------------
    @staticmethod
    def pending_request(order: ProcurementOrder) -> Optional[AuditRequest]:
        for request in reversed(order.audit_requests):
            if request.status == RequestStatus.PENDING.value:
                return request
        return None

    def submit(self, order: ProcurementOrder, phase: Phase, actor=None) -> AuditRequest:
        """Move the order into pending audit and open a fresh request."""
        self.machine.submit_for_audit(order, phase)

        for request in order.audit_requests:
            if request.status == RequestStatus.PENDING.value:
                request.status = RequestStatus.INVALID.value
                logger.info("Audit request %s of order %s superseded", request.id, order.id)

        request = AuditRequest(
            phase=phase.value,
            status=RequestStatus.PENDING.value,
            requested_at=self.clock(),
            requested_by=_actor_name(actor),
        )
        order.audit_requests.append(request)
        return request

    # ---------------------------------------------------------------------
    # Decisions
    # ---------------------------------------------------------------------
    def _authorize(self, order: ProcurementOrder, auditor) -> Phase:
        try:
            phase = PENDING_AUDIT_PHASE[OrderStatus(order.status)]
        except (KeyError, ValueError):
            raise NotPendingAudit(f"Order {order.id} is not waiting for an audit (status {order.status!r}).")

        role = getattr(auditor, "role", None)
        if auditor is None or not self.authorizer(role, AUDIT_DOMAIN, phase.value):
            logger.warning(
                "Audit denied on order %s: %r (role %r) may not audit %s",
                order.id, _actor_name(auditor), role, phase.value,
            )
            raise Unauthorized(f"Not allowed to audit the {phase.value} phase.")
        return phase

    def _close_request(self, order: ProcurementOrder, phase: Phase, status: RequestStatus, auditor, reason=None):
        request = self.pending_request(order)
        if request is None:
            # Orders put into pending audit without a request (imported data) still get a record.
            request = AuditRequest(phase=phase.value, requested_at=self.clock())
            order.audit_requests.append(request)
        request.status = status.value
        request.decided_at = self.clock()
        request.decided_by = _actor_name(auditor)
        request.reject_reason = reason
        return request

    def approve(self, order: ProcurementOrder, auditor) -> ProcurementOrder:
        phase = self._authorize(order, auditor)

        self.machine.approve(order)
        self._close_request(order, phase, RequestStatus.APPROVED, auditor)

        if phase is Phase.OUTBOUND:
            try:
                self.materializer(order)
            except Exception as exc:
                logger.exception("Inventory materialization failed for order %s", order.id)
                raise MaterializationFailed(f"Inventory materialization failed: {exc}") from exc

        logger.info("Order %s %s audit approved by %s", order.id, phase.value, _actor_name(auditor))
        return order

    def reject(self, order: ProcurementOrder, auditor, reason: Optional[str]) -> ProcurementOrder:
        phase = self._authorize(order, auditor)

        reason = reason.strip() if isinstance(reason, str) else ""
        if not reason:
            raise MissingReason("A rejection reason is required.")

        self.machine.reject(order, reason)
        self._close_request(order, phase, RequestStatus.REJECTED, auditor, reason)

        logger.warning("Order %s %s audit rejected by %s: %s", order.id, phase.value, _actor_name(auditor), reason)
        return order
