"""Stock levels, bulk availability checks and reservations.

A product without an inventory row has zero stock.
"""

import uuid
from datetime import timedelta
from typing import Any, Dict, Optional, Sequence

from core.exceptions import BoundViolationError, InsufficientStockError
from core.logging import get_logger
from models.cache import TTLTier
from models.database import utcnow
from services.query import UnifiedQueryService

logger = get_logger(__name__)

TABLE = "inventory"
RESERVATIONS_TABLE = "stock_reservations"
RESERVATION_TTL = timedelta(minutes=15)


def available_quantity(inventory: Optional[Dict[str, Any]]) -> int:
    if not inventory:
        return 0
    return int(inventory.get("quantity") or 0) - int(inventory.get("reserved") or 0)


class InventoryService:
    """Inventory operations composed from batched query-layer calls."""

    def __init__(self, query: UnifiedQueryService):
        self.query = query

    async def get_inventory(self, product_id: str) -> Optional[Dict[str, Any]]:
        return await self.query.find_by_id(TABLE, product_id, ttl_tier=TTLTier.SHORT)

    async def check_stock(self, product_id: str, quantity: int) -> bool:
        inventory = await self.get_inventory(product_id)
        return available_quantity(inventory) >= quantity

    async def check_bulk_stock(self, items: Sequence[Dict[str, Any]]) -> Dict[str, bool]:
        """Check ``[{"product_id", "quantity"}]`` with one batched lookup.

        Gives the same answer as calling ``check_stock`` per item; when a
        product appears twice the later item decides.
        """
        if not items:
            return {}
        rows = await self.query.find_by_ids(
            TABLE, [item["product_id"] for item in items], ttl_tier=TTLTier.SHORT
        )
        result = {}
        for item in items:
            product_id = item["product_id"]
            result[product_id] = available_quantity(rows.get(product_id)) >= item["quantity"]
        return result

    async def adjust_stock(self, deltas: Dict[str, int]) -> int:
        """Add (or subtract) quantities for many products in one statement.

        Deltas are applied relative to the stored quantity. If one would take
        a product below zero, ``InsufficientStockError`` is raised and nothing
        is written. Products without a row are skipped.
        """
        if not deltas:
            return 0
        try:
            updated = await self.query.batch_increment(TABLE, "quantity", deltas, minimum=0)
        except BoundViolationError as e:
            product_id = e.ids[0]
            row = await self.query.find_by_id(TABLE, product_id, use_cache=False)
            raise InsufficientStockError(
                product_id, -deltas[product_id], int(row["quantity"]) if row else 0
            ) from e

        if updated < len(deltas):
            logger.warning("Inventory rows missing for adjustment",
                           requested=len(deltas), updated=updated)
        return updated

    async def reserve_stock(self, product_id: str, quantity: int,
                            cart_id: Optional[str] = None,
                            order_id: Optional[str] = None) -> Dict[str, Any]:
        """Hold stock for a cart or order. Returns the reservation row.

        The ``reserved`` increment is conditional on availability and commits
        together with the reservation insert.
        """
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")

        reservation = {
            "id": str(uuid.uuid4()),
            "product_id": product_id,
            "cart_id": cart_id,
            "order_id": order_id,
            "quantity": quantity,
            "status": "active",
            "expires_at": utcnow() + RESERVATION_TTL,
        }
        claimed = await self.query.claim(
            TABLE, product_id, "reserved", quantity, limit_column="quantity",
            record=(RESERVATIONS_TABLE, reservation),
        )
        if not claimed:
            inventory = await self.query.find_by_id(TABLE, product_id, use_cache=False)
            raise InsufficientStockError(product_id, quantity, available_quantity(inventory))

        logger.info("Stock reserved", product_id=product_id, quantity=quantity,
                    reservation_id=reservation["id"])
        return await self.query.find_by_id(RESERVATIONS_TABLE, reservation["id"], use_cache=False)
