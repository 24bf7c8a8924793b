"""Data models module."""

from catalog.models.product import (
    CONTENT_FIELDS,
    IMMUTABLE_FIELDS,
    Product,
    ProductDraft,
    ProductSearchHit,
    cast_fields,
    validate_draft,
)

__all__ = [
    "CONTENT_FIELDS",
    "IMMUTABLE_FIELDS",
    "Product",
    "ProductDraft",
    "ProductSearchHit",
    "cast_fields",
    "validate_draft",
]
