"""Storage interface shared by the product backends."""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional, Protocol, Sequence

from catalog.exceptions import StoreError

logger = logging.getLogger(__name__)

# A persisted product document: {"id", "name", "price", "description",
# "category", "createdAt", "updatedAt"}
Document = dict[str, Any]


class ProductRepository(Protocol):
    """Async storage operations on product documents.

    Each call is atomic with respect to the document(s) it targets.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def insert(self, document: Document) -> Document: ...

    async def insert_many(self, documents: Sequence[Document]) -> list[Document]: ...

    async def get(self, product_id: str) -> Optional[Document]: ...

    async def find(self, filters: dict[str, Any], limit: Optional[int] = None) -> list[Document]: ...

    async def update_fields(self, product_id: str, changes: dict[str, Any]) -> Optional[Document]: ...

    async def delete(self, product_id: str) -> bool: ...

    async def delete_many(self, filters: dict[str, Any]) -> int: ...

    async def search(
        self,
        terms: Sequence[str],
        sort_by_score: bool = False,
        limit: Optional[int] = None,
    ) -> list[tuple[Document, float]]: ...


@contextmanager
def store_errors(operation: str, *error_types: type[BaseException]) -> Generator[None, None, None]:
    """Re-raise engine-specific failures as StoreError."""
    try:
        yield
    except error_types as e:
        logger.error(f"Product store failed during {operation}: {e}")
        raise StoreError(f"Product store failed during {operation}: {e}") from e
