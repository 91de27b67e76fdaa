"""Shopping carts hydrated with one batched product lookup.

Key schema:
    cart:user:{user_id}        -> signed-in cart with items, products and summary (SHORT)
    cart:session:{session_id}  -> guest cart, same shape (SHORT)
"""

import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

from core.exceptions import CartItemNotFoundError, InsufficientStockError, InvalidDiscountCodeError
from core.logging import get_logger
from models.cache import TTLTier
from models.database import utcnow
from models.query import OrderBy
from services.cache_aside import CacheAside
from services.inventory import InventoryService, available_quantity
from services.product import ProductService
from services.query import UnifiedQueryService

logger = get_logger(__name__)

CARTS = "carts"
CART_ITEMS = "cart_items"

TAX_RATE = 0.1
FREE_SHIPPING_THRESHOLD = 50000
SHIPPING_FEE = 3000
CART_LIFETIME = timedelta(days=30)


def _welcome10(subtotal: float) -> float:
    return round(subtotal * 0.1, 2)


def _save5000(subtotal: float) -> float:
    return 5000.0


DISCOUNT_CODES = {
    "WELCOME10": _welcome10,
    "SAVE5000": _save5000,
}


def calculate_summary(items: List[Dict[str, Any]], discount_code: Optional[str] = None) -> Dict[str, Any]:
    """Totals for a list of cart items (each with ``price`` and ``quantity``)."""
    subtotal = sum(float(item["price"]) * int(item["quantity"]) for item in items)
    discount = 0.0
    if discount_code in DISCOUNT_CODES:
        discount = min(DISCOUNT_CODES[discount_code](subtotal), subtotal)
    tax = round(subtotal * TAX_RATE, 2)
    if not items or subtotal >= FREE_SHIPPING_THRESHOLD:
        shipping = 0
    else:
        shipping = SHIPPING_FEE
    return {
        "item_count": sum(int(item["quantity"]) for item in items),
        "subtotal": subtotal,
        "discount": discount,
        "tax": tax,
        "shipping": shipping,
        "total": round(subtotal - discount + tax + shipping, 2),
    }


class CartService:
    """Cart reads and writes; every write drops the cart-level cache entry."""

    def __init__(self, query: UnifiedQueryService, cache_aside: CacheAside,
                 products: ProductService, inventory: InventoryService):
        self.query = query
        self.cache_aside = cache_aside
        self.products = products
        self.inventory = inventory

    @staticmethod
    def cache_key(identifier: str, is_user_id: bool = False) -> str:
        owner = "user" if is_user_id else "session"
        return f"cart:{owner}:{identifier}"

    async def _invalidate(self, identifier: str, is_user_id: bool) -> None:
        await self.query.cache.delete(self.cache_key(identifier, is_user_id))

    async def _find_or_create(self, identifier: str, is_user_id: bool) -> Dict[str, Any]:
        owner_field = "user_id" if is_user_id else "session_id"
        cart = await self.query.find_by_field(CARTS, owner_field, identifier, use_cache=False)
        if cart is not None:
            return cart

        cart_id = str(uuid.uuid4())
        await self.query.batch_insert(CARTS, [{
            "id": cart_id,
            "user_id": identifier if is_user_id else None,
            "session_id": None if is_user_id else identifier,
            "currency": "KRW",
            "discount_code": None,
            "discount_amount": 0,
            "expires_at": utcnow() + CART_LIFETIME,
        }])
        logger.info("Cart created", cart_id=cart_id, owner=owner_field)
        return await self.query.find_by_id(CARTS, cart_id, use_cache=False)

    async def _load(self, identifier: str, is_user_id: bool) -> Dict[str, Any]:
        cart = await self._find_or_create(identifier, is_user_id)
        items = await self.query.find_all_by_field(
            CART_ITEMS, "cart_id", cart["id"], order_by=OrderBy("created_at"), use_cache=False
        )
        products = await self.products.get_products([item["product_id"] for item in items])
        hydrated = [{**item, "product": products.get(item["product_id"])} for item in items]
        return {
            **cart,
            "items": hydrated,
            "summary": calculate_summary(hydrated, cart.get("discount_code")),
        }

    async def get_cart(self, identifier: str, is_user_id: bool = False) -> Dict[str, Any]:
        """Cart for a user or guest session, created on first use."""
        return await self.cache_aside.with_cache(
            self.cache_key(identifier, is_user_id),
            TTLTier.SHORT,
            lambda: self._load(identifier, is_user_id),
        )

    async def _fresh_cart(self, identifier: str, is_user_id: bool) -> Dict[str, Any]:
        await self._invalidate(identifier, is_user_id)
        return await self.get_cart(identifier, is_user_id)

    def _find_item(self, cart: Dict[str, Any], item_id: str) -> Dict[str, Any]:
        for item in cart["items"]:
            if item["id"] == item_id:
                return item
        raise CartItemNotFoundError(item_id)

    async def _ensure_stock(self, product_id: str, quantity: int) -> None:
        inventory = await self.inventory.get_inventory(product_id)
        available = available_quantity(inventory)
        if available < quantity:
            raise InsufficientStockError(product_id, quantity, available)

    async def add_to_cart(self, identifier: str, product_id: str, quantity: int = 1,
                          attributes: Optional[Dict[str, Any]] = None,
                          is_user_id: bool = False) -> Dict[str, Any]:
        """Add a product; an existing line with the same attributes is topped up."""
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")
        product = await self.products.get_product(product_id)
        cart = await self._fresh_cart(identifier, is_user_id)

        existing = next(
            (item for item in cart["items"]
             if item["product_id"] == product_id and (item.get("attributes") or None) == (attributes or None)),
            None,
        )
        new_quantity = quantity + (int(existing["quantity"]) if existing else 0)
        await self._ensure_stock(product_id, new_quantity)

        if existing:
            await self.query.update_by_id(CART_ITEMS, existing["id"], {"quantity": new_quantity})
        else:
            await self.query.batch_insert(CART_ITEMS, [{
                "id": str(uuid.uuid4()),
                "cart_id": cart["id"],
                "product_id": product_id,
                "quantity": quantity,
                "price": product["price"],
                "attributes": attributes,
            }])
        logger.info("Cart item added", cart_id=cart["id"], product_id=product_id, quantity=new_quantity)
        return await self._fresh_cart(identifier, is_user_id)

    async def update_cart_item(self, identifier: str, item_id: str, quantity: int,
                               is_user_id: bool = False) -> Dict[str, Any]:
        """Change a line's quantity; zero or less removes it."""
        if quantity <= 0:
            return await self.remove_from_cart(identifier, item_id, is_user_id)
        cart = await self._fresh_cart(identifier, is_user_id)
        item = self._find_item(cart, item_id)
        await self._ensure_stock(item["product_id"], quantity)
        await self.query.update_by_id(CART_ITEMS, item_id, {"quantity": quantity})
        return await self._fresh_cart(identifier, is_user_id)

    async def remove_from_cart(self, identifier: str, item_id: str,
                               is_user_id: bool = False) -> Dict[str, Any]:
        cart = await self._fresh_cart(identifier, is_user_id)
        self._find_item(cart, item_id)
        await self.query.delete_by_id(CART_ITEMS, item_id)
        return await self._fresh_cart(identifier, is_user_id)

    async def clear_cart(self, identifier: str, is_user_id: bool = False) -> Dict[str, Any]:
        cart = await self._fresh_cart(identifier, is_user_id)
        if cart["items"]:
            await self.query.delete_by_field(CART_ITEMS, "cart_id", cart["id"])
        await self.query.update_by_id(CARTS, cart["id"], {"discount_code": None, "discount_amount": 0})
        return await self._fresh_cart(identifier, is_user_id)

    async def get_cart_summary(self, identifier: str, is_user_id: bool = False) -> Dict[str, Any]:
        cart = await self.get_cart(identifier, is_user_id)
        return cart["summary"]

    async def apply_discount(self, identifier: str, code: str,
                             is_user_id: bool = False) -> Dict[str, Any]:
        """Attach a discount code; unknown codes raise ``InvalidDiscountCodeError``."""
        code = code.strip().upper()
        if code not in DISCOUNT_CODES:
            raise InvalidDiscountCodeError(code)
        cart = await self._fresh_cart(identifier, is_user_id)
        discount = calculate_summary(cart["items"], code)["discount"]
        await self.query.update_by_id(CARTS, cart["id"], {"discount_code": code, "discount_amount": discount})
        logger.info("Discount applied", cart_id=cart["id"], code=code, discount=discount)
        return await self._fresh_cart(identifier, is_user_id)
