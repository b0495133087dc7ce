"""
Pytest configuration and fixtures for the procurement workflow tests
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from opsconsole import create_app
from opsconsole.extensions import db as _db
from opsconsole.models import User
from opsconsole.repository import OrderRepository
from opsconsole.security import can_audit
from opsconsole.seed import seed_demo_data
from opsconsole.workflow.service import ProcurementWorkflow


class FakeClock:
    """Deterministic clock; every call moves one second forward."""

    def __init__(self, start=datetime(2024, 5, 1, 9, 0, 0)):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class MaterializerSpy:
    """Records every call; optionally fails like a broken asset registry."""

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, order):
        self.calls.append(order.id)
        if self.fail:
            raise RuntimeError("asset registry unavailable")


@pytest.fixture()
def app():
    """Create Flask application for testing (fresh in-memory database per test)"""
    app = create_app("config.TestConfig")

    with app.app_context():
        _db.create_all()
        seed_demo_data()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def web_app():
    """
    Application WITHOUT a pushed app context, for HTTP tests.

    Every test-client request then gets its own context, so the logged-in
    user cached on flask.g does not leak between clients.
    """
    app = create_app("config.TestConfig")

    with app.app_context():
        _db.create_all()
        seed_demo_data()

    yield app

    with app.app_context():
        _db.drop_all()


@pytest.fixture()
def client(web_app):
    """Create Flask test client"""
    return web_app.test_client()


@pytest.fixture()
def users(app):
    return {user.username: user for user in User.query.all()}


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def materializer():
    return MaterializerSpy()


@pytest.fixture()
def workflow(app, clock, materializer):
    return ProcurementWorkflow(
        repository=OrderRepository(_db.session),
        authorizer=can_audit,
        materializer=materializer,
        clock=clock,
    )


def cart_line(product_id="p1", name="桌显", price="100", quantity=1, monthly_rent=None):
    return {
        "product_id": product_id,
        "product_name": name,
        "price": Decimal(price),
        "monthly_rent": Decimal(monthly_rent) if monthly_rent is not None else None,
        "image_url": None,
        "quantity": quantity,
    }


class Driver:
    """Moves an order through the lifecycle with valid evidence."""

    def __init__(self, workflow, users):
        self.workflow = workflow
        self.users = users
        self.operator = users["operator"]

    def create(self, store_id="s1", items=None, **kwargs):
        items = items or [cart_line(quantity=3), cart_line("p2", "地投", "50", 1)]
        return self.workflow.create(store_id, items, actor=self.operator, **kwargs)

    def to_inbound_step3(self, order_id=None):
        order_id = order_id or self.create()["id"]
        self.workflow.start_processing(order_id, actor=self.operator)
        self.workflow.add_image(order_id, 2, "stock.jpg", actor=self.operator)
        self.workflow.advance_step(order_id, actor=self.operator)
        self.workflow.add_image(order_id, 3, "pack.jpg", actor=self.operator)
        self.workflow.advance_step(order_id, actor=self.operator)
        return order_id

    def to_pending_inbound(self, order_id=None):
        order_id = self.to_inbound_step3(order_id)
        self.workflow.submit_inbound_audit(order_id, actor=self.operator)
        return order_id

    def complete_outbound(self, order_id):
        """Steps 4 and 5 for an order that passed the inbound audit."""
        order = self.workflow.add_logistics_item(order_id, "顺丰", "SF123", actor=self.operator)
        item_id = order["step_data"]["4"]["logistics_items"][-1]["id"]
        self.workflow.add_logistics_image(order_id, item_id, "waybill.jpg", actor=self.operator)
        self.workflow.advance_step(order_id, actor=self.operator)
        self.workflow.add_image(order_id, 5, "receipt.jpg", actor=self.operator)
        self.workflow.advance_step(order_id, actor=self.operator)
        return order_id

    def to_outbound_step5(self, order_id=None):
        order_id = self.to_pending_inbound(order_id)
        self.workflow.approve(order_id, self.users["inbound"])
        return self.complete_outbound(order_id)

    def to_pending_outbound(self, order_id=None):
        order_id = self.to_outbound_step5(order_id)
        self.workflow.submit_outbound_audit(order_id, actor=self.operator)
        return order_id


@pytest.fixture()
def drive(workflow, users):
    return Driver(workflow, users)


def login(client, username, password=None):
    """Helper function to login a seeded user (password = username + '123')"""
    return client.post("/auth/login", json={
        "username": username,
        "password": password or f"{username}123",
    })
