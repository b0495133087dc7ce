"""
Procurement order workflow.

Kept import-light: models import the state vocabulary from here, so the
service module (which imports models) is imported explicitly by callers:

    from opsconsole.workflow.service import ProcurementWorkflow
"""

from .errors import (
    InvalidEvidence,
    InvalidOrder,
    InvalidTransition,
    MaterializationFailed,
    MissingReason,
    NotPendingAudit,
    StepIncomplete,
    Unauthorized,
    UnknownOrder,
    WorkflowError,
)
from .states import AuditStatus, Event, OrderStatus, OrderType, Phase, RequestStatus

__all__ = [
    "WorkflowError",
    "InvalidOrder",
    "InvalidEvidence",
    "UnknownOrder",
    "InvalidTransition",
    "StepIncomplete",
    "Unauthorized",
    "NotPendingAudit",
    "MissingReason",
    "MaterializationFailed",
    "OrderStatus",
    "AuditStatus",
    "RequestStatus",
    "Phase",
    "OrderType",
    "Event",
]
