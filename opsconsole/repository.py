"""
opsconsole/repository.py

Keyed collection of procurement orders.

The repository owns the SQLAlchemy session used by the workflow service:
- get() raises UnknownOrder instead of returning None
- commit()/rollback() are the only transaction boundaries the service uses
- list_* queries return newest-first (the console's list pages sort that way)
"""

from __future__ import annotations

from typing import List, Optional

from .models import ProcurementOrder, Store
from .workflow.errors import UnknownOrder
from .workflow.states import OUTBOUND_VISIBLE_STATUSES, Phase


class OrderRepository:
    def __init__(self, session) -> None:
        self.session = session

    # -------------------- writes --------------------

    def add(self, order: ProcurementOrder) -> ProcurementOrder:
        self.session.add(order)
        self.session.flush()
        return order

    def flush(self) -> None:
        self.session.flush()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    # -------------------- reads --------------------

    def find(self, order_id: str) -> Optional[ProcurementOrder]:
        if not order_id:
            return None
        return self.session.get(ProcurementOrder, str(order_id))

    def get(self, order_id: str) -> ProcurementOrder:
        order = self.find(order_id)
        if order is None:
            raise UnknownOrder(order_id)
        return order

    def _base_query(self):
        return self.session.query(ProcurementOrder).order_by(
            ProcurementOrder.create_time.desc(), ProcurementOrder.id.desc()
        )

    def list_all(self) -> List[ProcurementOrder]:
        return self._base_query().all()

    def list_by_store(self, store_id: str) -> List[ProcurementOrder]:
        return self.query(store_id=store_id)

    def list_by_region(self, region_id: str) -> List[ProcurementOrder]:
        """Orders whose store belongs to the region (current registry, not the snapshot)."""
        return self.query(region_id=region_id)

    def list_by_phase(self, phase: Phase | str) -> List[ProcurementOrder]:
        """
        inbound: every order (the inbound tab tracks orders from creation on)
        outbound: orders that passed the inbound audit
        """
        return self.query(phase=Phase(phase))

    def query(
        self,
        store_id: Optional[str] = None,
        region_id: Optional[str] = None,
        phase: Phase | str | None = None,
    ) -> List[ProcurementOrder]:
        """Combined filter used by the list endpoint. All filters are optional and ANDed."""
        query = self._base_query()
        if store_id:
            query = query.filter(ProcurementOrder.store_id == store_id)
        if region_id:
            query = query.join(Store, Store.id == ProcurementOrder.store_id).filter(Store.region_id == region_id)
        if phase and Phase(phase) is Phase.OUTBOUND:
            query = query.filter(ProcurementOrder.status.in_([s.value for s in OUTBOUND_VISIBLE_STATUSES]))
        return query.all()
