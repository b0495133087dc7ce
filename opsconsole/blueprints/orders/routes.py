"""
opsconsole/blueprints/orders/routes.py

REST binding of the procurement workflow (JSON in / JSON out).

One route per workflow command; the order id is the addressed resource.

IMPORTANT:
- UI is never trusted. Role checks happen here (operator commands) and in the
  audit gate (approve/reject via can_audit).
- Routes never catch WorkflowError: the app-level handler renders it with its
  code and HTTP status, after the service has rolled back.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from ...catalog import build_cart_items
from ...security import role_required
from ...utils import parse_optional_int
from ...workflow.errors import InvalidEvidence, InvalidOrder

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _workflow():
    return current_app.extensions["procurement_workflow"]


def _actor():
    return current_user._get_current_object()


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _required_text(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidEvidence(f"'{key}' is required.")
    return value


# ---------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------
@orders_bp.route("/", methods=["GET"])
@login_required
def list_orders():
    """Filters: ?store_id=, ?region_id=, ?phase=inbound|outbound"""
    orders = _workflow().list_orders(
        store_id=request.args.get("store_id") or None,
        region_id=request.args.get("region_id") or None,
        phase=request.args.get("phase") or None,
    )
    return jsonify(orders)


@orders_bp.route("/", methods=["POST"])
@login_required
@role_required("operator")
def create_order():
    """
    Checkout: {store_id, items: [{product_id, quantity}], order_type,
    rent_duration?, remark?, expect_delivery_date?}
    """
    data = _body()

    items = data.get("items")
    if not isinstance(items, list):
        raise InvalidOrder("'items' must be a list of {product_id, quantity}.")

    rent_duration = data.get("rent_duration")
    if rent_duration is not None:
        rent_duration = parse_optional_int(rent_duration)
        if rent_duration is None:
            raise InvalidOrder("'rent_duration' must be a whole number of months.")

    order = _workflow().create(
        store_id=data.get("store_id"),
        items=build_cart_items(items),
        order_type=data.get("order_type") or "purchase",
        rent_duration=rent_duration,
        remark=data.get("remark") or "",
        expect_delivery_date=data.get("expect_delivery_date"),
        actor=_actor(),
    )
    return jsonify(order), 201


# ---------------------------------------------------------------------
# Single order
# ---------------------------------------------------------------------
@orders_bp.route("/<order_id>", methods=["GET"])
@login_required
def get_order(order_id: str):
    return jsonify(_workflow().get(order_id))


@orders_bp.route("/<order_id>/audits", methods=["GET"])
@login_required
def audit_history(order_id: str):
    return jsonify(_workflow().audit_history(order_id))


@orders_bp.route("/<order_id>/start", methods=["POST"])
@login_required
@role_required("operator")
def start_processing(order_id: str):
    return jsonify(_workflow().start_processing(order_id, actor=_actor()))


@orders_bp.route("/<order_id>/advance", methods=["POST"])
@login_required
@role_required("operator")
def advance_step(order_id: str):
    return jsonify(_workflow().advance_step(order_id, actor=_actor()))


@orders_bp.route("/<order_id>/submit-inbound-audit", methods=["POST"])
@login_required
@role_required("operator")
def submit_inbound_audit(order_id: str):
    return jsonify(_workflow().submit_inbound_audit(order_id, actor=_actor()))


@orders_bp.route("/<order_id>/submit-outbound-audit", methods=["POST"])
@login_required
@role_required("operator")
def submit_outbound_audit(order_id: str):
    return jsonify(_workflow().submit_outbound_audit(order_id, actor=_actor()))


# ---------------------------------------------------------------------
# Step evidence
# ---------------------------------------------------------------------
@orders_bp.route("/<order_id>/steps/<int:step>", methods=["PATCH"])
@login_required
@role_required("operator")
def record_evidence(order_id: str, step: int):
    patch = request.get_json(silent=True)
    if not isinstance(patch, dict):
        raise InvalidEvidence("Request body must be a JSON object.")
    return jsonify(_workflow().record_evidence(order_id, step, patch, actor=_actor()))


@orders_bp.route("/<order_id>/steps/<int:step>/images", methods=["POST"])
@login_required
@role_required("operator")
def add_image(order_id: str, step: int):
    url = _required_text(_body(), "url")
    return jsonify(_workflow().add_image(order_id, step, url, actor=_actor()))


@orders_bp.route("/<order_id>/steps/<int:step>/images/<int:index>", methods=["DELETE"])
@login_required
@role_required("operator")
def remove_image(order_id: str, step: int, index: int):
    return jsonify(_workflow().remove_image(order_id, step, index, actor=_actor()))


# ---------------------------------------------------------------------
# Logistics records (step 4)
# ---------------------------------------------------------------------
@orders_bp.route("/<order_id>/logistics", methods=["POST"])
@login_required
@role_required("operator")
def add_logistics_item(order_id: str):
    data = _body()
    order = _workflow().add_logistics_item(
        order_id,
        carrier_name=data.get("carrier_name"),
        tracking_ref=data.get("tracking_ref") or "",
        actor=_actor(),
    )
    return jsonify(order), 201


@orders_bp.route("/<order_id>/logistics/<item_id>", methods=["PATCH"])
@login_required
@role_required("operator")
def update_logistics_item(order_id: str, item_id: str):
    """Body: {"field": "carrier_name" | "tracking_ref", "value": "..."}"""
    data = _body()
    field = _required_text(data, "field")
    return jsonify(_workflow().update_logistics_item(order_id, item_id, field, data.get("value"), actor=_actor()))


@orders_bp.route("/<order_id>/logistics/<item_id>", methods=["DELETE"])
@login_required
@role_required("operator")
def remove_logistics_item(order_id: str, item_id: str):
    return jsonify(_workflow().remove_logistics_item(order_id, item_id, actor=_actor()))


@orders_bp.route("/<order_id>/logistics/<item_id>/images", methods=["POST"])
@login_required
@role_required("operator")
def add_logistics_image(order_id: str, item_id: str):
    url = _required_text(_body(), "url")
    return jsonify(_workflow().add_logistics_image(order_id, item_id, url, actor=_actor()))


@orders_bp.route("/<order_id>/logistics/<item_id>/images/<int:index>", methods=["DELETE"])
@login_required
@role_required("operator")
def remove_logistics_image(order_id: str, item_id: str, index: int):
    return jsonify(_workflow().remove_logistics_image(order_id, item_id, index, actor=_actor()))


# ---------------------------------------------------------------------
# Audit decisions (permission checked by the audit gate)
# ---------------------------------------------------------------------
@orders_bp.route("/<order_id>/approve", methods=["POST"])
@login_required
def approve(order_id: str):
    return jsonify(_workflow().approve(order_id, auditor=_actor()))


@orders_bp.route("/<order_id>/reject", methods=["POST"])
@login_required
def reject(order_id: str):
    reason = _body().get("reason")
    return jsonify(_workflow().reject(order_id, auditor=_actor(), reason=reason))
