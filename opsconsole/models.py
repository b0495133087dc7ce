"""
Hotel Equipment Operations Console – Domain Models

Registry:
- Region / Store (store registry, source of the order's store snapshot)
- Product (procurement catalog, source of the cart snapshot)
- User (login identity + role used by the audit permission policy)

Procurement domain:
- ProcurementOrder + OrderItem (immutable cart snapshot)
- StepRecord (per-step evidence, tagged by step kind):
    ReceiptStep (1), PhotoStep (2, 3, 5), LogisticsStep (4) + LogisticsItem
- AuditRequest (one row per submission for audit; superseded rows become "invalid")

Downstream:
- Device (inventory materialized on outbound approval)
- AuditLog (who did what, before/after snapshots)

IMPORTANT:
- JSON list columns are always REASSIGNED, never mutated in place,
  so SQLAlchemy change tracking sees every edit.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from sqlalchemy.orm.collections import attribute_keyed_dict
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .utils import status_label, utcnow
from .workflow.states import AuditStatus, OrderStatus, OrderType, RequestStatus


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def _money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _new_id() -> str:
    return uuid.uuid4().hex


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------
# Registry: regions, stores, catalog
# ---------------------------------------------------------------------
class Region(db.Model):
    __tablename__ = "regions"

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)

    stores = db.relationship("Store", back_populates="region", lazy=True)

    def __repr__(self):
        return f"<Region {self.name}>"


class Store(db.Model):
    """Hotel store. Orders copy id + name at checkout and never look back."""

    __tablename__ = "stores"

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    region_id = db.Column(
        db.String(32),
        db.ForeignKey("regions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    region = db.relationship("Region", back_populates="stores")

    def __repr__(self):
        return f"<Store {self.name}>"


class Product(db.Model):
    """Catalog entry. Price changes here never touch existing orders."""

    __tablename__ = "products"

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    # Rent price per month; products without it are purchase-only in practice
    monthly_rent = db.Column(db.Numeric(12, 2), nullable=True)

    image_url = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    def __repr__(self):
        return f"<Product {self.name}>"


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """Console login user. Role drives the audit permission policy (security.py)."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(40), nullable=False, default="operator", index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"<User {self.username}>"


# ---------------------------------------------------------------------
# Procurement order
# ---------------------------------------------------------------------
class ProcurementOrder(db.Model):
    """
    Procurement order aggregate.

    status names the kind of state, current_step the furthest-reached step.
    total_price is an order-level fact computed once at checkout.
    """

    __tablename__ = "procurement_orders"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)

    # Store snapshot (denormalized on purpose, never refreshed)
    store_id = db.Column(db.String(32), nullable=False, index=True)
    store_name = db.Column(db.String(255), nullable=False)

    order_type = db.Column(db.String(20), nullable=False, default=OrderType.PURCHASE.value)
    rent_duration = db.Column(db.Integer, nullable=True)

    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    expect_delivery_date = db.Column(db.Date, nullable=True)
    remark = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(40), nullable=False, default=OrderStatus.PENDING_RECEIVE.value, index=True)
    current_step = db.Column(db.Integer, nullable=False, default=1)
    audit_status = db.Column(db.String(20), nullable=False, default=AuditStatus.NONE.value, index=True)
    reject_reason = db.Column(db.Text, nullable=True)

    create_time = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    update_time = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )

    steps = db.relationship(
        "StepRecord",
        back_populates="order",
        collection_class=attribute_keyed_dict("step"),
        cascade="all, delete-orphan",
    )

    audit_requests = db.relationship(
        "AuditRequest",
        back_populates="order",
        order_by="AuditRequest.id",
        cascade="all, delete-orphan",
    )

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self) -> dict:
        """Authoritative order state returned by every workflow command."""
        return {
            "id": self.id,
            "store_id": self.store_id,
            "store_name": self.store_name,
            "order_type": self.order_type,
            "rent_duration": self.rent_duration,
            "items": [item.to_dict() for item in self.items],
            "total_quantity": self.total_quantity,
            "total_price": str(_money(_to_decimal(self.total_price))),
            "expect_delivery_date": self.expect_delivery_date.isoformat() if self.expect_delivery_date else None,
            "remark": self.remark,
            "status": self.status,
            "current_step": self.current_step,
            "status_label": status_label(self.status, self.current_step),
            "audit_status": self.audit_status,
            "reject_reason": self.reject_reason,
            "step_data": {str(step): record.to_dict() for step, record in sorted(self.steps.items())},
            "create_time": _iso(self.create_time),
            "update_time": _iso(self.update_time),
        }

    def __repr__(self):
        return f"<ProcurementOrder {self.id} {self.status}/{self.current_step}>"


class OrderItem(db.Model):
    """One cart line copied at checkout."""

    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.String(32),
        db.ForeignKey("procurement_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.String(32), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    monthly_rent = db.Column(db.Numeric(12, 2), nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    order = db.relationship("ProcurementOrder", back_populates="items")

    @property
    def line_total(self) -> Decimal:
        """price * qty, or monthly_rent * qty * months on rent orders."""
        if self.order is not None and self.order.order_type == OrderType.RENT.value:
            return _money(_to_decimal(self.monthly_rent) * self.quantity * (self.order.rent_duration or 0))
        return _money(_to_decimal(self.price) * self.quantity)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "price": str(_money(_to_decimal(self.price))),
            "monthly_rent": str(_money(_to_decimal(self.monthly_rent))) if self.monthly_rent is not None else None,
            "image_url": self.image_url,
            "quantity": self.quantity,
            "line_total": str(self.line_total),
        }


# ---------------------------------------------------------------------
# Step evidence (tagged by kind)
# ---------------------------------------------------------------------
class StepRecord(db.Model):
    """
    Evidence bag for one step of one order.

    kind is the discriminator; the subclass decides what "evidence present" means.
    completion_time is overwritten on every re-completion, never cleared.
    extra holds free-form scalar fields the guards never look at.
    """

    __tablename__ = "order_steps"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.String(32),
        db.ForeignKey("procurement_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(20), nullable=False)

    images = db.Column(db.JSON, nullable=False, default=list)
    completion_time = db.Column(db.DateTime, nullable=True)
    extra = db.Column(db.JSON, nullable=False, default=dict)

    order = db.relationship("ProcurementOrder", back_populates="steps")

    __table_args__ = (db.UniqueConstraint("order_id", "step", name="uq_order_step"),)

    __mapper_args__ = {
        "polymorphic_on": kind,
        "polymorphic_identity": "step",
    }

    def __init__(self, **kwargs):
        kwargs.setdefault("images", [])
        kwargs.setdefault("extra", {})
        super().__init__(**kwargs)

    @property
    def is_completed(self) -> bool:
        return self.completion_time is not None

    def missing_evidence(self) -> str | None:
        """Return a human message if the completion guard fails, else None."""
        return None

    def to_dict(self) -> dict:
        data = dict(self.extra or {})
        data.update({
            "kind": self.kind,
            "images": list(self.images or []),
            "completion_time": _iso(self.completion_time),
        })
        return data


class ReceiptStep(StepRecord):
    """Step 1: acknowledging the order is itself the evidence."""

    __mapper_args__ = {"polymorphic_identity": "receipt"}


class PhotoStep(StepRecord):
    """Steps 2, 3, 5: at least one photo."""

    __mapper_args__ = {"polymorphic_identity": "photo"}

    def missing_evidence(self) -> str | None:
        if not self.images:
            return f"Step {self.step} requires at least one photo."
        return None


class LogisticsStep(StepRecord):
    """Step 4: one or more shipments, each with a tracking ref and a photo."""

    __mapper_args__ = {"polymorphic_identity": "logistics"}

    logistics_items = db.relationship(
        "LogisticsItem",
        back_populates="step_record",
        order_by="LogisticsItem.position",
        cascade="all, delete-orphan",
    )

    def missing_evidence(self) -> str | None:
        if not self.logistics_items:
            return "Step 4 requires at least one logistics record."
        for item in self.logistics_items:
            if not item.is_complete:
                return f"Logistics record {item.carrier_name!r} needs a tracking reference and a photo."
        return None

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["logistics_items"] = [item.to_dict() for item in self.logistics_items]
        return data


class LogisticsItem(db.Model):
    __tablename__ = "logistics_items"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)

    step_record_id = db.Column(
        db.Integer,
        db.ForeignKey("order_steps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    carrier_name = db.Column(db.String(255), nullable=False, default="")
    tracking_ref = db.Column(db.String(500), nullable=False, default="")
    images = db.Column(db.JSON, nullable=False, default=list)

    step_record = db.relationship("LogisticsStep", back_populates="logistics_items")

    def __init__(self, **kwargs):
        kwargs.setdefault("id", _new_id())
        kwargs.setdefault("carrier_name", "")
        kwargs.setdefault("tracking_ref", "")
        kwargs.setdefault("images", [])
        super().__init__(**kwargs)

    @property
    def is_complete(self) -> bool:
        return bool((self.tracking_ref or "").strip()) and len(self.images or []) >= 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "carrier_name": self.carrier_name,
            "tracking_ref": self.tracking_ref,
            "images": list(self.images or []),
        }


# ---------------------------------------------------------------------
# Audit requests
# ---------------------------------------------------------------------
class AuditRequest(db.Model):
    """One submission of a phase for audit, and its decision."""

    __tablename__ = "order_audit_requests"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.String(32),
        db.ForeignKey("procurement_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    phase = db.Column(db.String(20), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value, index=True)

    requested_at = db.Column(db.DateTime, nullable=False)
    requested_by = db.Column(db.String(150), nullable=True)

    decided_at = db.Column(db.DateTime, nullable=True)
    decided_by = db.Column(db.String(150), nullable=True)
    reject_reason = db.Column(db.Text, nullable=True)

    order = db.relationship("ProcurementOrder", back_populates="audit_requests")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phase": self.phase,
            "status": self.status,
            "requested_at": _iso(self.requested_at),
            "requested_by": self.requested_by,
            "decided_at": _iso(self.decided_at),
            "decided_by": self.decided_by,
            "reject_reason": self.reject_reason,
        }


# ---------------------------------------------------------------------
# Devices (materialized inventory)
# ---------------------------------------------------------------------
class Device(db.Model):
    """Device registry entry created from a completed procurement order."""

    __tablename__ = "devices"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    product_id = db.Column(db.String(32), nullable=False, index=True)

    store_id = db.Column(db.String(32), nullable=False, index=True)
    source_order_id = db.Column(
        db.String(32),
        db.ForeignKey("procurement_orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status = db.Column(db.String(20), nullable=False, default="Offline")
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<Device {self.name}>"


# ---------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who did what to which entity."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.String(64), nullable=False, index=True)

    action = db.Column(db.String(40), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
