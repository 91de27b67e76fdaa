"""Cart routes. ``identifier`` is a guest session id unless ``user=true``."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.container import container
from services.cart import CartService

router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)
    attributes: Optional[Dict[str, Any]] = None


@router.get("/{identifier}")
async def get_cart(
    identifier: str,
    user: bool = False,
    carts: CartService = Depends(lambda: container.cart_service())
):
    cart = await carts.get_cart(identifier, is_user_id=user)
    return {"success": True, "cart": cart}


@router.post("/{identifier}/items")
async def add_item(
    identifier: str,
    request: AddItemRequest,
    user: bool = False,
    carts: CartService = Depends(lambda: container.cart_service())
):
    cart = await carts.add_to_cart(
        identifier,
        request.product_id,
        quantity=request.quantity,
        attributes=request.attributes,
        is_user_id=user,
    )
    return {"success": True, "cart": cart}
