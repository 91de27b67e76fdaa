"""Tests for cart hydration, totals and cart-level cache invalidation."""

from unittest.mock import patch

import pytest

from core.exceptions import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidDiscountCodeError,
    ProductNotFoundError,
)
from services.cart import calculate_summary


class TestSummary:

    def test_small_order_pays_shipping(self):
        summary = calculate_summary([{"price": 10.0, "quantity": 2}])
        assert summary == {
            "item_count": 2,
            "subtotal": 20.0,
            "discount": 0.0,
            "tax": 2.0,
            "shipping": 3000,
            "total": 3022.0,
        }

    def test_free_shipping_threshold(self):
        summary = calculate_summary([{"price": 25000.0, "quantity": 2}])
        assert summary["shipping"] == 0
        assert summary["total"] == 55000.0

    def test_empty_cart(self):
        assert calculate_summary([])["total"] == 0

    def test_discount_codes(self):
        items = [{"price": 60000.0, "quantity": 1}]
        assert calculate_summary(items, "WELCOME10")["discount"] == 6000.0
        assert calculate_summary(items, "SAVE5000")["discount"] == 5000.0

    def test_fixed_discount_capped_at_subtotal(self):
        assert calculate_summary([{"price": 10.0, "quantity": 1}], "SAVE5000")["discount"] == 10.0


class TestCartService:

    @pytest.mark.asyncio
    async def test_get_cart_creates_once(self, cart_service, redis_double):
        first = await cart_service.get_cart("sess-1")
        second = await cart_service.get_cart("sess-1")

        assert first["id"] == second["id"]
        assert first["session_id"] == "sess-1"
        assert first["items"] == []
        assert redis_double.ttls["cart:session:sess-1"] == 60

    @pytest.mark.asyncio
    async def test_user_cart(self, cart_service):
        cart = await cart_service.get_cart("user-7", is_user_id=True)
        assert cart["user_id"] == "user-7"
        assert cart["session_id"] is None

    @pytest.mark.asyncio
    async def test_user_and_session_with_same_id_stay_apart(self, cart_service, redis_double):
        guest = await cart_service.get_cart("abc")
        user = await cart_service.add_to_cart("abc", "p1", is_user_id=True)

        assert guest["id"] != user["id"]
        assert (await cart_service.get_cart("abc"))["items"] == []
        assert len((await cart_service.get_cart("abc", is_user_id=True))["items"]) == 1
        assert {"cart:session:abc", "cart:user:abc"} <= set(redis_double.store)

    @pytest.mark.asyncio
    async def test_add_to_cart_hydrates_products(self, cart_service):
        cart = await cart_service.add_to_cart("sess-1", "p1", quantity=2)

        assert len(cart["items"]) == 1
        item = cart["items"][0]
        assert item["product"]["name"] == "Linen Shirt"
        assert item["price"] == 10.0
        assert cart["summary"]["total"] == 3022.0

    @pytest.mark.asyncio
    async def test_add_same_product_tops_up(self, cart_service):
        await cart_service.add_to_cart("sess-1", "p1", quantity=2)
        cart = await cart_service.add_to_cart("sess-1", "p1", quantity=3)

        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 5

    @pytest.mark.asyncio
    async def test_different_attributes_make_new_line(self, cart_service):
        await cart_service.add_to_cart("sess-1", "p1", attributes={"size": "M"})
        cart = await cart_service.add_to_cart("sess-1", "p1", attributes={"size": "L"})

        assert sorted(item["attributes"]["size"] for item in cart["items"]) == ["L", "M"]

    @pytest.mark.asyncio
    async def test_hydration_is_one_product_lookup(self, cart_service, query_service, database):
        await cart_service.add_to_cart("sess-1", "p1")
        await cart_service.add_to_cart("sess-1", "p2")
        await cart_service.add_to_cart("sess-1", "p4")
        await query_service.invalidate_table_cache("products")
        await query_service.cache.delete(cart_service.cache_key("sess-1"))

        with patch.object(database, "query_many", wraps=database.query_many) as query_many:
            cart = await cart_service.get_cart("sess-1")

        assert {item["product"]["id"] for item in cart["items"]} == {"p1", "p2", "p4"}
        product_calls = [call for call in query_many.await_args_list if call.args[0] == "products"]
        assert len(product_calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_product(self, cart_service):
        with pytest.raises(ProductNotFoundError):
            await cart_service.add_to_cart("sess-1", "nope")

    @pytest.mark.asyncio
    async def test_add_beyond_stock(self, cart_service):
        with pytest.raises(InsufficientStockError):
            await cart_service.add_to_cart("sess-1", "p2", quantity=4)

    @pytest.mark.asyncio
    async def test_update_and_remove_item(self, cart_service):
        cart = await cart_service.add_to_cart("sess-1", "p1", quantity=2)
        item_id = cart["items"][0]["id"]

        cart = await cart_service.update_cart_item("sess-1", item_id, 4)
        assert cart["items"][0]["quantity"] == 4
        assert cart["summary"]["subtotal"] == 40.0

        cart = await cart_service.update_cart_item("sess-1", item_id, 0)
        assert cart["items"] == []

    @pytest.mark.asyncio
    async def test_item_from_another_cart(self, cart_service):
        other = await cart_service.add_to_cart("sess-2", "p1")
        await cart_service.get_cart("sess-1")

        with pytest.raises(CartItemNotFoundError):
            await cart_service.remove_from_cart("sess-1", other["items"][0]["id"])

    @pytest.mark.asyncio
    async def test_apply_discount(self, cart_service):
        await cart_service.add_to_cart("sess-1", "p4")

        cart = await cart_service.apply_discount("sess-1", "welcome10")

        assert cart["discount_code"] == "WELCOME10"
        assert cart["discount_amount"] == 6000.0
        assert cart["summary"] == {
            "item_count": 1,
            "subtotal": 60000.0,
            "discount": 6000.0,
            "tax": 6000.0,
            "shipping": 0,
            "total": 60000.0,
        }

    @pytest.mark.asyncio
    async def test_invalid_discount(self, cart_service):
        with pytest.raises(InvalidDiscountCodeError):
            await cart_service.apply_discount("sess-1", "FREESTUFF")

    @pytest.mark.asyncio
    async def test_clear_cart(self, cart_service):
        await cart_service.add_to_cart("sess-1", "p1")
        await cart_service.add_to_cart("sess-1", "p2")
        await cart_service.apply_discount("sess-1", "SAVE5000")

        cart = await cart_service.clear_cart("sess-1")

        assert cart["items"] == []
        assert cart["discount_code"] is None
        assert await cart_service.get_cart_summary("sess-1") == calculate_summary([])
