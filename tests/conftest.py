"""Shared fixtures: an isolated in-memory product store per test."""

import pytest

from catalog.repositories import SqliteProductRepository
from catalog.services import ProductService

VALID_PRODUCT_DATA = {
    "name": "Test Product",
    "price": 99.99,
    "description": "Test Description",
    "category": "Electronics",
}

SEARCH_FIXTURE = [
    {"name": "iPhone 14", "price": 999, "description": "Latest Apple smartphone", "category": "Phones"},
    {"name": "Samsung Galaxy S23", "price": 899, "description": "Flagship Android phone", "category": "Phones"},
    {"name": "MacBook Pro", "price": 1999, "description": "Apple laptop with M2 chip", "category": "Computers"},
    {"name": "Gaming Chair", "price": 199, "description": "Ergonomic chair for gamers", "category": "Furniture"},
    {"name": "USB-C Cable", "price": 9.99, "description": "Fast charging cable", "category": "Accessories"},
]


@pytest.fixture
def valid_product_data():
    """A fresh copy of a valid product payload."""
    return dict(VALID_PRODUCT_DATA)


@pytest.fixture
async def product_service():
    """ProductService over an in-memory SQLite store."""
    service = ProductService(SqliteProductRepository(":memory:"))
    await service.connect()
    yield service
    await service.close()


@pytest.fixture
async def seeded_service(product_service):
    """ProductService holding the five-product search fixture."""
    await product_service.insert_many(SEARCH_FIXTURE)
    return product_service
