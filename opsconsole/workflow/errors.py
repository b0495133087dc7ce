"""
opsconsole/workflow/errors.py

Error taxonomy of the procurement workflow.

Every error carries:
- code: stable machine-readable string (used in JSON error bodies)
- http_status: what the REST binding answers with

No error is retried inside the workflow. Callers decide UI/retry policy.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for all procurement workflow errors."""

    code = "workflow_error"
    http_status = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidOrder(WorkflowError):
    """Bad input at creation (empty cart, bad quantity, rent duration mismatch, unknown store)."""

    code = "invalid_order"
    http_status = 400


class InvalidEvidence(WorkflowError):
    """Malformed evidence patch or out-of-range image/item reference."""

    code = "invalid_evidence"
    http_status = 400


class UnknownOrder(WorkflowError):
    code = "unknown_order"
    http_status = 404

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id!r} does not exist.")
        self.order_id = order_id


class InvalidTransition(WorkflowError):
    """
    Event fired against a state that has no table entry for it.

    This is a caller/programming error: always surfaced, never retried.
    """

    code = "invalid_transition"
    http_status = 409

    def __init__(self, status: str, step: int, event: str) -> None:
        super().__init__(f"Event {event!r} is not allowed in status {status!r} at step {step}.")
        self.status = status
        self.step = step
        self.event = event


class StepIncomplete(WorkflowError):
    """Evidence guard not satisfied. User-correctable."""

    code = "step_incomplete"
    http_status = 422

    def __init__(self, step: int, message: str | None = None) -> None:
        super().__init__(message or f"Step {step} is missing required evidence.")
        self.step = step


class Unauthorized(WorkflowError):
    code = "unauthorized"
    http_status = 403


class NotPendingAudit(WorkflowError):
    """approve/reject on an order that is not waiting for an auditor (stale UI)."""

    code = "not_pending_audit"
    http_status = 409


class MissingReason(WorkflowError):
    code = "missing_reason"
    http_status = 422


class MaterializationFailed(WorkflowError):
    """
    The asset registry failed during outbound approval.

    Fatal class: the approval is rolled back and the order stays pending audit.
    """

    code = "materialization_failed"
    http_status = 500
