"""
opsconsole/catalog.py

Cart snapshot provider.

Resolves (product_id, quantity) pairs against the Product catalog and the
store registry into the immutable lines a ProcurementOrder is created with.
After checkout the order never looks at the catalog again.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from .extensions import db
from .models import Product, Store
from .utils import parse_optional_int
from .workflow.errors import InvalidOrder


def store_snapshot(store_id: str) -> Tuple[str, str]:
    """Return (store_id, store_name) for a registered store."""
    store = db.session.get(Store, str(store_id)) if store_id else None
    if store is None:
        raise InvalidOrder(f"Unknown store: {store_id!r}.")
    return store.id, store.name


def build_cart_items(product_quantities: Iterable[dict]) -> List[Dict]:
    """
    Turn [{"product_id": ..., "quantity": ...}, ...] into cart lines.

    Prices are copied from the catalog at this moment. Inactive or unknown
    products and non-positive quantities are rejected with InvalidOrder.
    """
    lines: List[Dict] = []
    for entry in product_quantities or []:
        if not isinstance(entry, dict):
            raise InvalidOrder("Each cart entry must be an object.")

        product_id = entry.get("product_id")
        quantity = parse_optional_int(entry.get("quantity"))
        if quantity is None or quantity < 1:
            raise InvalidOrder(f"Quantity for product {product_id!r} must be at least 1.")

        product = db.session.get(Product, str(product_id)) if product_id else None
        if product is None or not product.is_active:
            raise InvalidOrder(f"Unknown product: {product_id!r}.")

        lines.append({
            "product_id": product.id,
            "product_name": product.name,
            "price": product.price,
            "monthly_rent": product.monthly_rent,
            "image_url": product.image_url,
            "quantity": quantity,
        })
    return lines
