"""Storefront exception hierarchy.

Store (SQLAlchemy) errors are not wrapped here; they reach callers unchanged.
Cache backend errors never leave ``CacheService``.
"""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""


class QueryError(StorefrontError):
    """Invalid query against the unified query layer."""


class UnknownTableError(QueryError):
    """Table handle is not registered in the model metadata."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Unknown table: {table}")


class UnknownColumnError(QueryError):
    """Column does not exist on the table."""

    def __init__(self, table: str, column: str):
        self.table = table
        self.column = column
        super().__init__(f"Unknown column '{column}' on table '{table}'")


class BoundViolationError(QueryError):
    """A guarded increment would push rows past their bound; nothing was written."""

    def __init__(self, table: str, column: str, ids: list):
        self.table = table
        self.column = column
        self.ids = ids
        super().__init__(f"Update of '{column}' on '{table}' out of bounds for {ids}")


class DomainError(StorefrontError):
    """Business rule violation raised by a domain service."""

    status_code = 400


class ProductNotFoundError(DomainError):
    """Product does not exist."""

    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class CartItemNotFoundError(DomainError):
    """Cart item does not belong to the cart or does not exist."""

    status_code = 404

    def __init__(self, cart_item_id: str):
        self.cart_item_id = cart_item_id
        super().__init__(f"Cart item not found: {cart_item_id}")


class InsufficientStockError(DomainError):
    """Requested quantity exceeds available stock."""

    status_code = 409

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id} "
            f"(requested {requested}, available {available})"
        )


class InvalidDiscountCodeError(DomainError):
    """Discount code is unknown or not applicable."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Invalid discount code: {code}")
