"""Exceptions raised by the product catalog."""

from typing import Mapping


class CatalogError(Exception):
    """Base class for catalog errors."""
    pass


class ProductValidationError(CatalogError):
    """Raised when one or more product fields fail validation.

    The ``errors`` mapping is keyed by field name so callers can ask
    whether a specific field failed and why.
    """

    def __init__(self, errors: Mapping[str, str]):
        self.errors = dict(errors)
        fields = ", ".join(f"{field}: {message}" for field, message in self.errors.items())
        super().__init__(f"Product validation failed ({fields})")

    def has_error(self, field: str) -> bool:
        """Return True if the given field failed validation."""
        return field in self.errors


class ProductNotFoundError(CatalogError):
    """Raised when an operation targets a product id that does not exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class StoreError(CatalogError):
    """Raised when the underlying document store fails."""
    pass


class InvalidFilterError(CatalogError, ValueError):
    """Raised when a query filters on a field that is not a product content field."""
    pass
