"""Tests for inventory checks, adjustments and reservations."""

import asyncio
from unittest.mock import patch

import pytest

from core.exceptions import InsufficientStockError


class TestStockChecks:

    @pytest.mark.asyncio
    async def test_check_stock_uses_available_quantity(self, inventory_service):
        assert await inventory_service.check_stock("p1", 100) is True
        assert await inventory_service.check_stock("p1", 101) is False
        # p2 has 5 on hand, 2 reserved
        assert await inventory_service.check_stock("p2", 3) is True
        assert await inventory_service.check_stock("p2", 4) is False

    @pytest.mark.asyncio
    async def test_missing_row_means_no_stock(self, inventory_service):
        assert await inventory_service.get_inventory("p5") is None
        assert await inventory_service.check_stock("p5", 1) is False

    @pytest.mark.asyncio
    async def test_bulk_check_is_one_batched_lookup(self, inventory_service, database):
        items = [
            {"product_id": "p1", "quantity": 10},
            {"product_id": "p2", "quantity": 4},
            {"product_id": "p4", "quantity": 10},
            {"product_id": "p5", "quantity": 1},
        ]

        with patch.object(database, "query_many", wraps=database.query_many) as query_many:
            result = await inventory_service.check_bulk_stock(items)

        assert result == {"p1": True, "p2": False, "p4": True, "p5": False}
        query_many.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bulk_check_matches_single_checks(self, inventory_service):
        items = [
            {"product_id": "p2", "quantity": 3},
            {"product_id": "p4", "quantity": 11},
            {"product_id": "p1", "quantity": 1},
        ]

        bulk = await inventory_service.check_bulk_stock(items)

        for item in items:
            assert bulk[item["product_id"]] == await inventory_service.check_stock(
                item["product_id"], item["quantity"]
            )

    @pytest.mark.asyncio
    async def test_bulk_check_empty(self, inventory_service):
        assert await inventory_service.check_bulk_stock([]) == {}


class TestAdjustments:

    @pytest.mark.asyncio
    async def test_adjust_stock_refreshes_cached_rows(self, inventory_service):
        await inventory_service.get_inventory("p1")

        updated = await inventory_service.adjust_stock({"p1": -10, "p4": 5, "p5": 3})

        assert updated == 2
        assert (await inventory_service.get_inventory("p1"))["quantity"] == 90
        assert (await inventory_service.get_inventory("p4"))["quantity"] == 15

    @pytest.mark.asyncio
    async def test_adjust_below_zero_writes_nothing(self, inventory_service, database):
        with patch.object(database, "increment_many", wraps=database.increment_many) as increment_many:
            with pytest.raises(InsufficientStockError) as exc_info:
                await inventory_service.adjust_stock({"p1": -1, "p2": -6})

        increment_many.assert_awaited_once()
        assert exc_info.value.product_id == "p2"
        assert exc_info.value.available == 5
        assert (await inventory_service.get_inventory("p1"))["quantity"] == 100
        assert (await inventory_service.get_inventory("p2"))["quantity"] == 5

    @pytest.mark.asyncio
    async def test_concurrent_adjustments_both_apply(self, inventory_service):
        await inventory_service.get_inventory("p1")

        await asyncio.gather(
            inventory_service.adjust_stock({"p1": -10}),
            inventory_service.adjust_stock({"p1": -10}),
        )

        assert (await inventory_service.get_inventory("p1"))["quantity"] == 80

    @pytest.mark.asyncio
    async def test_concurrent_adjustments_respect_zero(self, inventory_service):
        results = await asyncio.gather(
            inventory_service.adjust_stock({"p2": -3}),
            inventory_service.adjust_stock({"p2": -3}),
            return_exceptions=True,
        )

        assert sorted(type(r).__name__ for r in results) == ["InsufficientStockError", "int"]
        assert (await inventory_service.get_inventory("p2"))["quantity"] == 2

    @pytest.mark.asyncio
    async def test_reserve_stock(self, inventory_service):
        reservation = await inventory_service.reserve_stock("p2", 3, cart_id="cart-1")

        assert reservation["product_id"] == "p2"
        assert reservation["quantity"] == 3
        assert reservation["status"] == "active"
        assert (await inventory_service.get_inventory("p2"))["reserved"] == 5
        assert await inventory_service.check_stock("p2", 1) is False

    @pytest.mark.asyncio
    async def test_reserve_more_than_available(self, inventory_service):
        with pytest.raises(InsufficientStockError) as exc_info:
            await inventory_service.reserve_stock("p2", 4)

        assert exc_info.value.available == 3
        assert exc_info.value.requested == 4

    @pytest.mark.asyncio
    async def test_reserve_without_inventory_row(self, inventory_service):
        with pytest.raises(InsufficientStockError):
            await inventory_service.reserve_stock("p5", 1)

    @pytest.mark.asyncio
    async def test_concurrent_reservations_cannot_oversell(self, inventory_service, query_service):
        await inventory_service.get_inventory("p2")

        results = await asyncio.gather(
            inventory_service.reserve_stock("p2", 3, cart_id="cart-a"),
            inventory_service.reserve_stock("p2", 3, cart_id="cart-b"),
            return_exceptions=True,
        )

        reservations = [r for r in results if isinstance(r, dict)]
        failures = [r for r in results if isinstance(r, InsufficientStockError)]
        assert len(reservations) == 1
        assert len(failures) == 1
        assert failures[0].available == 0
        assert (await inventory_service.get_inventory("p2"))["reserved"] == 5
        assert await query_service.count_by_field("stock_reservations", "product_id", "p2",
                                                  use_cache=False) == 1

    @pytest.mark.asyncio
    async def test_failed_reservation_writes_nothing(self, inventory_service, query_service):
        with pytest.raises(InsufficientStockError):
            await inventory_service.reserve_stock("p2", 4, cart_id="cart-a")

        assert (await inventory_service.get_inventory("p2"))["reserved"] == 2
        assert await query_service.count_all("stock_reservations", use_cache=False) == 0
