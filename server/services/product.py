"""Product catalog reads and bulk writes."""

from typing import Any, Dict, List, Optional, Sequence, Union

from core.exceptions import ProductNotFoundError
from core.logging import get_logger
from models.cache import TTLTier
from models.database import Product
from models.query import OrderBy, Pagination, WhereCondition
from services.query import UnifiedQueryService

logger = get_logger(__name__)

TABLE = "products"


class ProductService:
    """Product lookups backed by the unified query layer."""

    def __init__(self, query: UnifiedQueryService):
        self.query = query
        self.products = query.table(Product)

    async def get_product(self, product_id: str) -> Dict[str, Any]:
        product = await self.query.find_by_id(TABLE, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def get_products(self, product_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        """Batched lookup; unknown ids are omitted."""
        return await self.query.find_by_ids(TABLE, product_ids)

    async def get_public_products(self, category_id: Optional[str] = None,
                                  limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        """Active products, newest first."""
        conditions = [WhereCondition("status", "=", "ACTIVE")]
        if category_id:
            conditions.append(WhereCondition("category_id", "=", category_id))
        return await self.query.find_by_conditions(
            TABLE,
            conditions,
            order_by=OrderBy("created_at", "DESC"),
            pagination=Pagination(limit=limit, offset=offset),
            ttl_tier=TTLTier.SHORT,
        )

    async def update_prices(self, prices: Dict[str, float]) -> int:
        """Set many prices in one statement. Returns rows updated."""
        updates = [{"id": product_id, "data": {"price": price}} for product_id, price in prices.items()]
        updated = await self.query.batch_update(TABLE, updates)
        logger.info("Prices updated", requested=len(prices), updated=updated)
        return updated

    async def create_products(self, rows: Sequence[Union[Product, Dict[str, Any]]]) -> bool:
        return await self.products.batch_insert(rows)
