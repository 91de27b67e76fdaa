"""SQLModel tables for the storefront.

``SQLModel.metadata`` doubles as the schema registry the query layer resolves
table handles against. Non-null columns carry server defaults so partial
rows can go through a bulk insert.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import func


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(SQLModel, table=True):
    """Product category."""

    __tablename__ = "categories"

    id: str = Field(primary_key=True, max_length=64)
    name: str = Field(max_length=255)
    slug: str = Field(index=True, unique=True, max_length=255)
    parent_id: Optional[str] = Field(default=None, max_length=64)
    position: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    created_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class Product(SQLModel, table=True):
    """Catalog product."""

    __tablename__ = "products"

    id: str = Field(primary_key=True, max_length=64)
    name: str = Field(max_length=255)
    slug: Optional[str] = Field(default=None, index=True, max_length=255)
    category_id: Optional[str] = Field(default=None, index=True, max_length=64)
    vendor_id: Optional[str] = Field(default=None, index=True, max_length=64)
    price: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    original_price: Optional[float] = Field(default=None)
    status: str = Field(default="ACTIVE", max_length=20, sa_column_kwargs={"server_default": "ACTIVE"})
    description: Optional[str] = Field(default=None, max_length=5000)
    created_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class Inventory(SQLModel, table=True):
    """Stock level per product (keyed by product id)."""

    __tablename__ = "inventory"

    product_id: str = Field(primary_key=True, max_length=64)
    quantity: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    reserved: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    warehouse_id: Optional[str] = Field(default=None, max_length=64)
    reorder_point: int = Field(default=10, sa_column_kwargs={"server_default": "10"})
    reorder_quantity: int = Field(default=50, sa_column_kwargs={"server_default": "50"})
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class StockReservation(SQLModel, table=True):
    """Stock held for a cart or order until it expires."""

    __tablename__ = "stock_reservations"

    id: str = Field(primary_key=True, max_length=64)
    product_id: str = Field(index=True, max_length=64)
    cart_id: Optional[str] = Field(default=None, max_length=64)
    order_id: Optional[str] = Field(default=None, max_length=64)
    quantity: int
    status: str = Field(default="active", max_length=20, sa_column_kwargs={"server_default": "active"})
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    created_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class Cart(SQLModel, table=True):
    """Shopping cart owned by a user or a guest session."""

    __tablename__ = "carts"

    id: str = Field(primary_key=True, max_length=64)
    user_id: Optional[str] = Field(default=None, index=True, max_length=64)
    session_id: Optional[str] = Field(default=None, index=True, max_length=128)
    currency: str = Field(default="KRW", max_length=3, sa_column_kwargs={"server_default": "KRW"})
    discount_code: Optional[str] = Field(default=None, max_length=64)
    discount_amount: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    created_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class CartItem(SQLModel, table=True):
    """Line in a cart."""

    __tablename__ = "cart_items"

    id: str = Field(primary_key=True, max_length=64)
    cart_id: str = Field(index=True, max_length=64)
    product_id: str = Field(index=True, max_length=64)
    quantity: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    price: float = Field(default=0, sa_column_kwargs={"server_default": "0"})
    attributes: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )
