"""Repository abstractions for database interactions."""

from .order_repository import OrderRepository, SqlOrderStore

__all__ = [
    "OrderRepository",
    "SqlOrderStore",
]
