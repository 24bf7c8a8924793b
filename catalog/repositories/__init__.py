"""Product storage backends."""

from catalog.repositories.base import Document, ProductRepository
from catalog.repositories.cosmos_product_repository import (
    PARTITION_KEY_PATH,
    CosmosProductRepository,
)
from catalog.repositories.sqlite_product_repository import SqliteProductRepository

__all__ = [
    "Document",
    "PARTITION_KEY_PATH",
    "CosmosProductRepository",
    "ProductRepository",
    "SqliteProductRepository",
]
