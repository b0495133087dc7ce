"""
opsconsole/seed.py

Seed demo master data: regions, stores, catalog products and console users.

Rules:
- Safe to run multiple times (idempotent).
- Regions/stores/products are matched by id, users by username.
- Existing users keep their password; only missing users are created.
"""

from __future__ import annotations

from decimal import Decimal

from .extensions import db
from .models import Product, Region, Store, User


DEFAULT_REGIONS = [
    ("r1", "华东大区"),
    ("r2", "华北大区"),
    ("r3", "华南大区"),
]

DEFAULT_STORES = [
    # id, region_id, name
    ("s1", "r1", "上海南京路店"),
    ("s2", "r1", "杭州西湖店"),
    ("s3", "r2", "北京三里屯店"),
    ("s4", "r3", "广州天河城店"),
]

DEFAULT_PRODUCTS = [
    # id, name, price, monthly_rent
    ("p1", "桌显", Decimal("1200.00"), Decimal("80.00")),
    ("p2", "地投", Decimal("3500.00"), Decimal("220.00")),
    ("p3", "YVR", Decimal("5800.00"), None),
]

DEFAULT_USERS = [
    # username, role, password
    ("admin", "admin", "admin123"),
    ("inbound", "inbound_auditor", "inbound123"),
    ("outbound", "outbound_auditor", "outbound123"),
    ("operator", "operator", "operator123"),
    ("viewer", "viewer", "viewer123"),
]


def seed_demo_data(with_users: bool = True) -> None:
    """Create default regions, stores, products (and users) if they don't exist."""
    for region_id, name in DEFAULT_REGIONS:
        region = db.session.get(Region, region_id)
        if region is None:
            db.session.add(Region(id=region_id, name=name))
        elif region.name != name:
            region.name = name

    db.session.flush()

    for store_id, region_id, name in DEFAULT_STORES:
        store = db.session.get(Store, store_id)
        if store is None:
            db.session.add(Store(id=store_id, region_id=region_id, name=name))
            continue
        store.region_id = region_id
        store.name = name

    for product_id, name, price, monthly_rent in DEFAULT_PRODUCTS:
        if db.session.get(Product, product_id) is not None:
            # keep catalog prices as edited; orders snapshot them anyway
            continue
        db.session.add(Product(id=product_id, name=name, price=price, monthly_rent=monthly_rent, is_active=True))

    if with_users:
        for username, role, password in DEFAULT_USERS:
            if User.query.filter_by(username=username).first():
                continue
            user = User(username=username, role=role, is_active=True)
            user.set_password(password)
            db.session.add(user)

    db.session.commit()
