"""Inventory routes."""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.container import container
from services.inventory import InventoryService, available_quantity

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


class StockItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class StockCheckRequest(BaseModel):
    items: List[StockItem]


@router.get("/{product_id}")
async def get_inventory(
    product_id: str,
    inventory: InventoryService = Depends(lambda: container.inventory_service())
):
    row = await inventory.get_inventory(product_id)
    return {"success": True, "inventory": row, "available": available_quantity(row)}


@router.post("/check")
async def check_stock(
    request: StockCheckRequest,
    inventory: InventoryService = Depends(lambda: container.inventory_service())
):
    """Availability for many products with one batched lookup."""
    result = await inventory.check_bulk_stock([item.model_dump() for item in request.items])
    return {"success": True, "available": result, "all_available": all(result.values())}
