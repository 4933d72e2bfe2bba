# Overview: Per-(product, warehouse) quantities and their append-only movement log.

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from ..time_utils import utcnow
from .errors import NotFoundError
from .records import (
    DocumentRef,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_KINDS,
    StockLevel,
    StockMovement,
    ZERO_QUANTITY,
    to_quantity,
)

if TYPE_CHECKING:
    from ..storage.base import LedgerStore


class StockLedger:
    """
    Owns StockLevel and StockMovement.

    Every quantity change goes through apply_movement, so the sum of a
    cell's movement deltas always equals its quantity. Non-negativity is
    the caller's policy, not enforced here.
    """

    def __init__(self, store: "LedgerStore"):
        self._store = store

    def _require_cell(self, product_id: int, warehouse_id: int) -> None:
        if self._store.get_product(product_id) is None:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        if self._store.get_warehouse(warehouse_id) is None:
            raise NotFoundError(f"Warehouse {warehouse_id} not found", details={"warehouse_id": warehouse_id})

    def get_level(self, product_id: int, warehouse_id: int) -> Decimal:
        self._require_cell(product_id, warehouse_id)
        quantity = self._store.get_stock_quantity(product_id, warehouse_id)
        return ZERO_QUANTITY if quantity is None else to_quantity(quantity)

    def apply_movement(
        self,
        product_id: int,
        warehouse_id: int,
        delta,
        kind: str,
        document_ref: DocumentRef | None = None,
        *,
        note: str | None = None,
    ) -> StockMovement:
        if kind not in MOVEMENT_KINDS:
            raise ValueError(f"unknown movement kind: {kind}")
        self._require_cell(product_id, warehouse_id)

        delta = to_quantity(delta)
        current = self._store.get_stock_quantity(product_id, warehouse_id)
        current = ZERO_QUANTITY if current is None else to_quantity(current)
        self._store.put_stock_quantity(product_id, warehouse_id, current + delta)

        return self._store.add_stock_movement(
            StockMovement(
                id=None,
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity_delta=delta,
                kind=kind,
                occurred_at=utcnow(),
                document_id=document_ref.document_id if document_ref else None,
                document_type=document_ref.document_type if document_ref else None,
                note=note,
            )
        )

    def set_absolute(
        self,
        product_id: int,
        warehouse_id: int,
        quantity,
        kind: str = MOVEMENT_ADJUSTMENT,
        *,
        note: str | None = None,
    ) -> StockMovement:
        """Force a counted quantity; the movement records the change, not the snapshot."""
        target = to_quantity(quantity)
        current = self.get_level(product_id, warehouse_id)
        return self.apply_movement(product_id, warehouse_id, target - current, kind, note=note)

    def list_movements(
        self,
        *,
        product_id: int | None = None,
        warehouse_id: int | None = None,
        document_id: int | None = None,
    ) -> list[StockMovement]:
        return self._store.find_stock_movements(
            product_id=product_id,
            warehouse_id=warehouse_id,
            document_id=document_id,
        )

    def list_levels(self, *, warehouse_id: int | None = None) -> list[StockLevel]:
        if warehouse_id is not None and self._store.get_warehouse(warehouse_id) is None:
            raise NotFoundError(f"Warehouse {warehouse_id} not found", details={"warehouse_id": warehouse_id})
        return [
            StockLevel(product_id=level.product_id, warehouse_id=level.warehouse_id, quantity=to_quantity(level.quantity))
            for level in self._store.list_stock_levels(warehouse_id=warehouse_id)
        ]
