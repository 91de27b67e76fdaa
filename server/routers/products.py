"""Product routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.container import container
from services.product import ProductService

router = APIRouter(prefix="/api/products", tags=["products"])


class ProductBatchRequest(BaseModel):
    ids: List[str] = Field(..., max_length=500)


@router.get("")
async def list_products(
    category_id: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
    products: ProductService = Depends(lambda: container.product_service())
):
    items = await products.get_public_products(category_id=category_id, limit=limit, offset=offset)
    return {"success": True, "products": items}


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    products: ProductService = Depends(lambda: container.product_service())
):
    product = await products.get_product(product_id)
    return {"success": True, "product": product}


@router.post("/batch")
async def get_products_batch(
    request: ProductBatchRequest,
    products: ProductService = Depends(lambda: container.product_service())
):
    """Batched lookup; unknown ids are omitted from ``products``."""
    found = await products.get_products(request.ids)
    return {"success": True, "products": found}
