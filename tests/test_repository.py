"""
OrderRepository queries and the cart snapshot provider
"""
from decimal import Decimal

import pytest

from opsconsole.catalog import build_cart_items, store_snapshot
from opsconsole.extensions import db
from opsconsole.models import Product
from opsconsole.repository import OrderRepository
from opsconsole.workflow.errors import InvalidOrder, UnknownOrder


@pytest.fixture()
def repo(app):
    return OrderRepository(db.session)


def test_get_unknown_raises(repo):
    assert repo.find("nope") is None
    assert repo.find("") is None
    with pytest.raises(UnknownOrder) as excinfo:
        repo.get("nope")
    assert excinfo.value.order_id == "nope"


def test_lists_are_newest_first(repo, drive):
    first = drive.create("s1")["id"]
    second = drive.create("s2")["id"]
    third = drive.create("s3")["id"]

    assert [o.id for o in repo.list_all()] == [third, second, first]
    assert [o.id for o in repo.list_by_store("s2")] == [second]
    assert [o.id for o in repo.list_by_region("r1")] == [second, first]
    assert repo.list_by_region("r3") == []


def test_list_by_phase(repo, drive, users):
    waiting = drive.create()["id"]
    shipped = drive.to_pending_inbound()
    drive.workflow.approve(shipped, users["inbound"])

    assert {o.id for o in repo.list_by_phase("inbound")} == {waiting, shipped}
    assert [o.id for o in repo.list_by_phase("outbound")] == [shipped]


def test_query_combines_filters(repo, drive, users):
    shipped = drive.to_pending_inbound(drive.create("s1")["id"])
    drive.workflow.approve(shipped, users["inbound"])
    waiting = drive.create("s2")["id"]
    drive.create("s3")

    assert [o.id for o in repo.query(region_id="r1")] == [waiting, shipped]
    assert [o.id for o in repo.query(region_id="r1", phase="outbound")] == [shipped]
    assert repo.query(store_id="s2", phase="outbound") == []
    assert repo.list_by_phase("outbound") == repo.query(phase="outbound")


def test_build_cart_items_snapshots_catalog(app):
    lines = build_cart_items([{"product_id": "p2", "quantity": "2"}])
    assert lines == [{
        "product_id": "p2",
        "product_name": "地投",
        "price": Decimal("3500.00"),
        "monthly_rent": Decimal("220.00"),
        "image_url": None,
        "quantity": 2,
    }]


def test_build_cart_items_rejects_inactive_products(app):
    db.session.get(Product, "p3").is_active = False
    db.session.commit()

    with pytest.raises(InvalidOrder):
        build_cart_items([{"product_id": "p3", "quantity": 1}])


@pytest.mark.parametrize("entry", [
    {"product_id": "p1", "quantity": 0},
    {"product_id": "p1", "quantity": "many"},
    {"product_id": None, "quantity": 1},
    "p1",
])
def test_build_cart_items_rejects_bad_entries(app, entry):
    with pytest.raises(InvalidOrder):
        build_cart_items([entry])


def test_store_snapshot(app):
    assert store_snapshot("s3") == ("s3", "北京三里屯店")
    with pytest.raises(InvalidOrder):
        store_snapshot("s9")
