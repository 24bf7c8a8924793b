"""Product models and the validation rules applied to them."""

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from catalog.exceptions import ProductValidationError

# Fields a caller may set; id and timestamps are owned by the service
CONTENT_FIELDS = ("name", "price", "description", "category")
IMMUTABLE_FIELDS = ("id", "created_at", "updated_at", "createdAt", "updatedAt")

# NaN and infinities have no JSON or SQLite REAL representation
Price = Annotated[float, Field(allow_inf_nan=False)]

_STRIPPED = ConfigDict(str_strip_whitespace=True)

_FIELD_ADAPTERS: Dict[str, TypeAdapter] = {
    "name": TypeAdapter(str, config=_STRIPPED),
    "price": TypeAdapter(Price),
    "description": TypeAdapter(str, config=_STRIPPED),
    "category": TypeAdapter(str, config=_STRIPPED),
}


class ProductDraft(BaseModel):
    """Candidate product content, validated before it is written."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(min_length=1)
    price: Price
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)


class Product(ProductDraft):
    """A stored product record."""

    id: str
    created_at: datetime
    updated_at: datetime

    def to_document(self) -> dict[str, Any]:
        """Convert to the persisted document shape."""
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "description": self.description,
            "category": self.category,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Product":
        """Build a Product from a persisted document.

        Stored values are trusted: an unvalidated update may have left a
        required field empty, so constraints are not re-checked here.
        """
        return cls.model_construct(
            id=document["id"],
            name=document.get("name", ""),
            price=float(document["price"]),
            description=document.get("description", ""),
            category=document.get("category", ""),
            created_at=_parse_timestamp(document["createdAt"]),
            updated_at=_parse_timestamp(document["updatedAt"]),
        )


@dataclass(frozen=True)
class ProductSearchHit:
    """A product matched by full-text search and its relevance score."""

    product: Product
    score: float


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _errors_by_field(error: ValidationError, prefix: str = "") -> dict[str, str]:
    errors: dict[str, str] = {}
    for detail in error.errors():
        field = str(detail["loc"][0]) if detail["loc"] else "__root__"
        # Keep the first message per field
        errors.setdefault(f"{prefix}{field}", detail["msg"])
    return errors


def validate_draft(data: Mapping[str, Any], prefix: str = "") -> ProductDraft:
    """
    Validate candidate product content.

    Args:
        data: Candidate field values.
        prefix: Optional prefix for error keys (used for bulk inserts).

    Returns:
        The validated ProductDraft.

    Raises:
        ProductValidationError: If any field is missing, empty or not coercible.
    """
    try:
        return ProductDraft.model_validate(dict(data))
    except ValidationError as e:
        raise ProductValidationError(_errors_by_field(e, prefix)) from e


def cast_fields(changes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Cast update values to their field types without enforcing required rules.

    Args:
        changes: Content field values keyed by field name.

    Returns:
        The cast values.

    Raises:
        ProductValidationError: If a value cannot be cast to its field type.
    """
    cast: dict[str, Any] = {}
    errors: dict[str, str] = {}
    for field, value in changes.items():
        try:
            cast[field] = _FIELD_ADAPTERS[field].validate_python(value)
        except ValidationError as e:
            errors[field] = e.errors()[0]["msg"]

    if errors:
        raise ProductValidationError(errors)
    return cast
