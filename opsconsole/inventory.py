"""
opsconsole/inventory.py

Default asset materializer: one Device row per delivered unit.

Called by the audit gate inside the approval transaction, so the rows are
only committed together with the order's transition to "completed".
"""

from __future__ import annotations

import logging
from typing import List

from .extensions import db
from .models import Device, ProcurementOrder

logger = logging.getLogger(__name__)


def materialize_inventory(order: ProcurementOrder) -> List[Device]:
    devices: List[Device] = []
    for item in order.items:
        for n in range(1, item.quantity + 1):
            devices.append(Device(
                name=f"{item.product_name} #{n}" if item.quantity > 1 else item.product_name,
                product_id=item.product_id,
                store_id=order.store_id,
                source_order_id=order.id,
                status="Offline",
            ))

    db.session.add_all(devices)
    db.session.flush()

    logger.info("Materialized %s device(s) for order %s at store %s", len(devices), order.id, order.store_id)
    return devices
