"""Product service: validation, timestamps and CRUD over a product store.

Supports two storage backends selected by ``database.backend``:
- sqlite: local file (or ``:memory:``) with an FTS5 search index
- cosmosdb: Azure Cosmos DB container partitioned by id
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional

from ..clients import CosmosDBClient
from ..config import SUPPORTED_BACKENDS, get_config
from ..exceptions import InvalidFilterError, ProductNotFoundError, ProductValidationError
from ..models import (
    CONTENT_FIELDS,
    IMMUTABLE_FIELDS,
    Product,
    ProductSearchHit,
    cast_fields,
    validate_draft,
)
from ..repositories import (
    PARTITION_KEY_PATH,
    CosmosProductRepository,
    ProductRepository,
    SqliteProductRepository,
)
from ..text_search import tokenize_query

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _next_timestamp(previous: datetime) -> datetime:
    """Current time, nudged forward so it is strictly after ``previous``."""
    now = _utcnow()
    if now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


def _create_repository() -> tuple[str, ProductRepository]:
    """Build the repository selected by configuration."""
    config = get_config()
    backend = config.database.backend

    if backend == "sqlite":
        return backend, SqliteProductRepository(config.database.sqlite_path)

    if backend == "cosmosdb":
        cosmos_config = config.cosmosdb
        client = CosmosDBClient(
            endpoint=cosmos_config.endpoint,
            key=cosmos_config.key,
            database_name=cosmos_config.database_name,
            container_name=cosmos_config.container_name,
            partition_key_path=PARTITION_KEY_PATH,
        )
        return backend, CosmosProductRepository(client)

    raise ValueError(
        f"Unknown database backend: {backend!r}. Expected one of {', '.join(SUPPORTED_BACKENDS)}."
    )


def _content_filters(filters: Mapping[str, Any]) -> dict[str, Any]:
    unknown = [field for field in filters if field not in CONTENT_FIELDS]
    if unknown:
        raise InvalidFilterError(f"Cannot filter products on: {', '.join(unknown)}")
    return cast_fields(filters)


class ProductService:
    """Create, read, update, delete and search products.

    Pass a repository to use a specific store; otherwise one is built from
    configuration. The store is opened on first use or by ``connect()``.
    """

    def __init__(self, repository: Optional[ProductRepository] = None):
        if repository is None:
            self._backend, self._repository = _create_repository()
        else:
            self._backend, self._repository = "custom", repository
        self._connected = False

    @property
    def backend(self) -> str:
        """Name of the configured backend, or "custom" for an injected repository."""
        return self._backend

    async def connect(self) -> None:
        """Open the underlying store."""
        if not self._connected:
            await self._repository.connect()
            self._connected = True
            logger.info(f"Product service connected ({self._backend} backend)")

    async def close(self) -> None:
        """Close the underlying store."""
        if self._connected:
            await self._repository.close()
            self._connected = False
            logger.info("Product service closed")

    async def __aenter__(self) -> "ProductService":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Async context manager exit with cleanup."""
        await self.close()
        return False

    async def _store(self) -> ProductRepository:
        await self.connect()
        return self._repository

    async def create_product(self, data: Mapping[str, Any]) -> Product:
        """
        Validate and store a new product.

        Args:
            data: Candidate fields (name, price, description, category).

        Returns:
            The stored Product with id and timestamps assigned.

        Raises:
            ProductValidationError: If a required field is missing or empty,
                or price is not numeric.
        """
        draft = validate_draft(data)
        now = _utcnow()
        product = Product(id=str(uuid.uuid4()), created_at=now, updated_at=now, **draft.model_dump())

        store = await self._store()
        stored = await store.insert(product.to_document())

        logger.info(f"Created product {product.id}: {product.name}")
        return Product.from_document(stored)

    async def insert_many(self, items: Iterable[Mapping[str, Any]]) -> list[Product]:
        """
        Validate and store several products; nothing is stored if any is invalid.

        Raises:
            ProductValidationError: Errors keyed "<index>.<field>" for every
                invalid item.
        """
        drafts = []
        errors: dict[str, str] = {}
        for index, item in enumerate(items):
            try:
                drafts.append(validate_draft(item, prefix=f"{index}."))
            except ProductValidationError as e:
                errors.update(e.errors)
        if errors:
            raise ProductValidationError(errors)

        now = _utcnow()
        documents = [
            Product(id=str(uuid.uuid4()), created_at=now, updated_at=now, **draft.model_dump()).to_document()
            for draft in drafts
        ]

        store = await self._store()
        stored = await store.insert_many(documents)

        logger.info(f"Inserted {len(stored)} products")
        return [Product.from_document(document) for document in stored]

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Return the product with the given id, or None if it does not exist."""
        store = await self._store()
        document = await store.get(product_id)
        return Product.from_document(document) if document else None

    async def find_products(self, limit: Optional[int] = None, **filters: Any) -> list[Product]:
        """
        Return products whose fields equal the given values, oldest first.

        Raises:
            InvalidFilterError: If a filter names a field that is not a content field.
            ProductValidationError: If a filter value cannot be cast to its field type.
        """
        store = await self._store()
        documents = await store.find(_content_filters(filters), limit=limit)
        return [Product.from_document(document) for document in documents]

    async def update_product(
        self,
        product_id: str,
        changes: Mapping[str, Any],
        validate: bool = False,
    ) -> Product:
        """
        Apply a partial update and refresh ``updated_at``.

        Values are always cast to their field types. Required-field rules are
        only enforced when ``validate`` is True, in which case the merged
        record must be valid or nothing is written.

        Args:
            product_id: Id of the product to update.
            changes: Field values to set; id and timestamps are ignored.
            validate: Validate the resulting record before writing.

        Returns:
            The product as stored after the update.

        Raises:
            ProductNotFoundError: If no product has this id.
            ProductValidationError: If a value cannot be cast, or validation
                was requested and the merged record is invalid.
        """
        content = {field: value for field, value in changes.items() if field in CONTENT_FIELDS}
        dropped = [field for field in changes if field not in CONTENT_FIELDS]
        if dropped:
            immutable = [field for field in dropped if field in IMMUTABLE_FIELDS]
            logger.warning(
                f"Ignoring fields in update of product {product_id}: {', '.join(dropped)}"
                + (f" (immutable: {', '.join(immutable)})" if immutable else "")
            )

        store = await self._store()
        current_document = await store.get(product_id)
        if current_document is None:
            raise ProductNotFoundError(product_id)
        current = Product.from_document(current_document)

        if validate:
            merged = {field: getattr(current, field) for field in CONTENT_FIELDS}
            merged.update(content)
            draft = validate_draft(merged)
            values = {field: getattr(draft, field) for field in content}
        else:
            values = cast_fields(content)

        values["updatedAt"] = _next_timestamp(current.updated_at).isoformat()

        document = await store.update_fields(product_id, values)
        if document is None:
            # Deleted between the read and the write
            raise ProductNotFoundError(product_id)

        logger.info(f"Updated product {product_id}: {', '.join(content) or 'timestamps only'}")
        return Product.from_document(document)

    async def delete_product(self, product_id: str) -> bool:
        """Delete a product by id. Returns True if it existed."""
        store = await self._store()
        deleted = await store.delete(product_id)
        if deleted:
            logger.info(f"Deleted product {product_id}")
        return deleted

    async def delete_many(self, **filters: Any) -> int:
        """Delete every product matching the filters (all products if none). Returns the count."""
        store = await self._store()
        deleted = await store.delete_many(_content_filters(filters))
        logger.info(f"Deleted {deleted} products")
        return deleted

    async def search_products(
        self,
        query: str,
        sort_by_score: bool = False,
        limit: Optional[int] = None,
    ) -> list[ProductSearchHit]:
        """
        Full-text search over product name and description.

        Args:
            query: Free text; its words are OR'ed.
            sort_by_score: Order hits by descending relevance.
            limit: Maximum number of hits.

        Returns:
            Matching products with their scores; empty when nothing matches.
        """
        terms = tokenize_query(query)
        if not terms:
            return []

        store = await self._store()
        results = await store.search(terms, sort_by_score=sort_by_score, limit=limit)

        logger.debug(f"Search {query!r} matched {len(results)} products")
        return [
            ProductSearchHit(product=Product.from_document(document), score=score)
            for document, score in results
        ]
