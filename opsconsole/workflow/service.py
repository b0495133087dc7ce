"""
opsconsole/workflow/service.py

Command surface of the procurement workflow.

ProcurementWorkflow is the only mutator of procurement orders:
- every mutating command runs under a per-order lock (commands for one order
  are applied one at a time, in call order; different orders are independent)
- every command writes one AuditLog entry and commits, or rolls back and
  re-raises on any error
- every command returns the authoritative order state (order.to_dict())

Collaborators are injected so tests can replace them:
    repository    OrderRepository (owns the session)
    authorizer    can_audit(role, domain, phase) -> bool
    materializer  materialize_inventory(order), called on outbound approval
    clock         () -> naive UTC datetime
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..audit import log_action
from ..catalog import store_snapshot
from ..models import OrderItem, ProcurementOrder, _money, _to_decimal
from ..utils import parse_date, utcnow
from .audit_gate import AuditGate, Authorizer, Materializer
from .errors import InvalidOrder
from .stage_data import StageDataStore
from .state_machine import OrderStateMachine
from .states import OrderStatus, OrderType, Phase

logger = logging.getLogger(__name__)


def compute_total(items: List[Dict], order_type: OrderType, rent_duration: Optional[int]) -> Decimal:
    """
    purchase: sum(price * qty)
    rent:     sum(monthly_rent * qty * months); a missing monthly_rent counts as 0
    """
    total = Decimal("0.00")
    for line in items:
        if order_type is OrderType.RENT:
            total += _to_decimal(line.get("monthly_rent")) * line["quantity"] * rent_duration
        else:
            total += _to_decimal(line.get("price")) * line["quantity"]
    return _money(total)


def _validated_lines(items: Iterable[dict]) -> List[Dict]:
    lines = []
    for raw in items or []:
        if not isinstance(raw, dict):
            raise InvalidOrder("Each order item must be an object.")

        quantity = raw.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidOrder(f"Quantity must be an integer >= 1 (got {quantity!r}).")

        if not raw.get("product_id") or not raw.get("product_name"):
            raise InvalidOrder("Each order item needs product_id and product_name.")

        try:
            price = _to_decimal(raw.get("price"))
            monthly_rent = _to_decimal(raw["monthly_rent"]) if raw.get("monthly_rent") is not None else None
        except InvalidOperation:
            raise InvalidOrder(f"Invalid price for product {raw.get('product_id')!r}.")
        if not price.is_finite() or (monthly_rent is not None and not monthly_rent.is_finite()):
            raise InvalidOrder(f"Invalid price for product {raw.get('product_id')!r}.")
        if price < 0 or (monthly_rent is not None and monthly_rent < 0):
            raise InvalidOrder(f"Negative price for product {raw.get('product_id')!r}.")

        lines.append({
            "product_id": str(raw["product_id"]),
            "product_name": str(raw["product_name"]),
            "price": price,
            "monthly_rent": monthly_rent,
            "image_url": raw.get("image_url"),
            "quantity": quantity,
        })

    if not lines:
        raise InvalidOrder("An order needs at least one item.")
    return lines


class ProcurementWorkflow:
    def __init__(
        self,
        repository,
        authorizer: Authorizer,
        materializer: Materializer,
        clock: Callable = utcnow,
    ) -> None:
        self.repository = repository
        self.clock = clock
        self.machine = OrderStateMachine(clock)
        self.gate = AuditGate(self.machine, authorizer, materializer, clock)

        # order id -> [lock, number of commands holding or waiting on it]
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------
    @contextmanager
    def _order_lock(self, order_id: str):
        """Hold the lock of one order; the entry is dropped when no command uses it."""
        key = str(order_id)
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    @contextmanager
    def _command(self, order_id: str, action: str, actor=None):
        """Load -> mutate -> audit -> commit, serialized per order."""
        with self._order_lock(order_id):
            order = self.repository.get(order_id)
            before = order.to_dict()
            try:
                yield order
                order.update_time = self.clock()
                self.repository.flush()
                log_action(order, action, before=before, after=order.to_dict(), actor=actor)
                self.repository.commit()
            except Exception:
                self.repository.rollback()
                raise

    @contextmanager
    def _evidence_command(self, order_id: str, action: str, actor=None):
        """Same as _command, but refuses once the order is frozen for audit or completed."""
        with self._command(order_id, action, actor) as order:
            self.machine.ensure_evidence_writable(order)
            yield StageDataStore(order)

    # ---------------------------------------------------------------------
    # Creation
    # ---------------------------------------------------------------------
    def create(
        self,
        store_id: str,
        items: Iterable[dict],
        order_type: str = OrderType.PURCHASE.value,
        rent_duration: Optional[int] = None,
        remark: str = "",
        expect_delivery_date: date | str | None = None,
        actor=None,
    ) -> dict:
        try:
            kind = OrderType(order_type)
        except ValueError:
            raise InvalidOrder(f"Unknown order type: {order_type!r}.")

        if kind is OrderType.RENT:
            if isinstance(rent_duration, bool) or not isinstance(rent_duration, int) or rent_duration < 1:
                raise InvalidOrder("Rent orders need rent_duration (months) >= 1.")
        elif rent_duration is not None:
            raise InvalidOrder("rent_duration is only allowed on rent orders.")

        lines = _validated_lines(items)
        store_id, store_name = store_snapshot(store_id)

        delivery = parse_date(expect_delivery_date)
        if expect_delivery_date and delivery is None:
            raise InvalidOrder(f"Invalid expect_delivery_date: {expect_delivery_date!r}.")

        now = self.clock()
        order = ProcurementOrder(
            store_id=store_id,
            store_name=store_name,
            order_type=kind.value,
            rent_duration=rent_duration,
            total_price=compute_total(lines, kind, rent_duration),
            expect_delivery_date=delivery,
            remark=remark or "",
            status=OrderStatus.PENDING_RECEIVE.value,
            current_step=1,
            create_time=now,
            update_time=now,
        )
        order.items = [OrderItem(position=i, **line) for i, line in enumerate(lines)]

        try:
            self.repository.add(order)
            log_action(order, "CREATE", after=order.to_dict(), actor=actor)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        logger.info("Order %s created for store %s (%s, total %s)", order.id, store_id, kind.value, order.total_price)
        return order.to_dict()

    # ---------------------------------------------------------------------
    # Processing
    # ---------------------------------------------------------------------
    def start_processing(self, order_id: str, actor=None) -> dict:
        with self._command(order_id, "START_PROCESSING", actor) as order:
            self.machine.start_processing(order)
        return order.to_dict()

    def advance_step(self, order_id: str, actor=None) -> dict:
        with self._command(order_id, "ADVANCE_STEP", actor) as order:
            self.machine.advance_step(order)
        return order.to_dict()

    def submit_inbound_audit(self, order_id: str, actor=None) -> dict:
        with self._command(order_id, "SUBMIT_INBOUND_AUDIT", actor) as order:
            self.gate.submit(order, Phase.INBOUND, actor)
        return order.to_dict()

    def submit_outbound_audit(self, order_id: str, actor=None) -> dict:
        with self._command(order_id, "SUBMIT_OUTBOUND_AUDIT", actor) as order:
            self.gate.submit(order, Phase.OUTBOUND, actor)
        return order.to_dict()

    # ---------------------------------------------------------------------
    # Evidence
    # ---------------------------------------------------------------------
    def record_evidence(self, order_id: str, step: int, patch: Dict[str, Any], actor=None) -> dict:
        with self._evidence_command(order_id, "RECORD_EVIDENCE", actor) as store:
            store.merge(step, patch)
        return store.order.to_dict()

    def add_image(self, order_id: str, step: int, url: str, actor=None) -> dict:
        with self._evidence_command(order_id, "ADD_IMAGE", actor) as store:
            store.add_image(step, url)
        return store.order.to_dict()

    def remove_image(self, order_id: str, step: int, index: int, actor=None) -> dict:
        with self._evidence_command(order_id, "REMOVE_IMAGE", actor) as store:
            store.remove_image(step, index)
        return store.order.to_dict()

    def add_logistics_item(self, order_id: str, carrier_name: str | None = None, tracking_ref: str = "", actor=None) -> dict:
        with self._evidence_command(order_id, "ADD_LOGISTICS_ITEM", actor) as store:
            store.add_logistics_item(carrier_name, tracking_ref)
        return store.order.to_dict()

    def update_logistics_item(self, order_id: str, item_id: str, field: str, value: Any, actor=None) -> dict:
        with self._evidence_command(order_id, "UPDATE_LOGISTICS_ITEM", actor) as store:
            store.update_logistics_item(item_id, field, value)
        return store.order.to_dict()

    def remove_logistics_item(self, order_id: str, item_id: str, actor=None) -> dict:
        with self._evidence_command(order_id, "REMOVE_LOGISTICS_ITEM", actor) as store:
            store.remove_logistics_item(item_id)
        return store.order.to_dict()

    def add_logistics_image(self, order_id: str, item_id: str, url: str, actor=None) -> dict:
        with self._evidence_command(order_id, "ADD_LOGISTICS_IMAGE", actor) as store:
            store.add_logistics_image(item_id, url)
        return store.order.to_dict()

    def remove_logistics_image(self, order_id: str, item_id: str, index: int, actor=None) -> dict:
        with self._evidence_command(order_id, "REMOVE_LOGISTICS_IMAGE", actor) as store:
            store.remove_logistics_image(item_id, index)
        return store.order.to_dict()

    # ---------------------------------------------------------------------
    # Audit decisions
    # ---------------------------------------------------------------------
    def approve(self, order_id: str, auditor) -> dict:
        with self._command(order_id, "APPROVE", auditor) as order:
            self.gate.approve(order, auditor)
        return order.to_dict()

    def reject(self, order_id: str, auditor, reason: Optional[str]) -> dict:
        with self._command(order_id, "REJECT", auditor) as order:
            self.gate.reject(order, auditor, reason)
        return order.to_dict()

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------
    def get(self, order_id: str) -> dict:
        return self.repository.get(order_id).to_dict()

    def list_orders(
        self,
        store_id: Optional[str] = None,
        region_id: Optional[str] = None,
        phase: Optional[str] = None,
    ) -> List[dict]:
        if phase is not None:
            try:
                Phase(phase)
            except ValueError:
                raise InvalidOrder(f"Unknown phase: {phase!r}.")
        return [order.to_dict() for order in self.repository.query(store_id=store_id, region_id=region_id, phase=phase)]

    def audit_history(self, order_id: str) -> List[dict]:
        return [request.to_dict() for request in self.repository.get(order_id).audit_requests]
