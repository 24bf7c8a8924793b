"""Azure Cosmos DB product storage.

Documents are partitioned by their own ``id``. Full-text search pre-filters
with case-insensitive CONTAINS in the database and scores the candidates
locally, dropping those without a whole-token match.
"""

import logging
from typing import Any, Optional, Sequence

from azure.core.exceptions import AzureError
from azure.cosmos.exceptions import CosmosResourceNotFoundError

from ..clients import CosmosDBClient
from ..text_search import SEARCH_FIELDS, relevance_score
from .base import Document, store_errors

logger = logging.getLogger(__name__)

PARTITION_KEY_PATH = "/id"

_DOCUMENT_KEYS = ("id", "name", "price", "description", "category", "createdAt", "updatedAt")


def _strip_system_fields(item: dict[str, Any]) -> Document:
    """Drop Cosmos system properties (_rid, _etag, _ts, ...)."""
    return {key: item[key] for key in _DOCUMENT_KEYS if key in item}


def _filter_query(filters: dict[str, Any]) -> tuple[str, list[dict[str, Any]]]:
    conditions = []
    parameters = []
    for index, (field, value) in enumerate(filters.items()):
        conditions.append(f"c.{field} = @p{index}")
        parameters.append({"name": f"@p{index}", "value": value})
    where = " WHERE " + " AND ".join(conditions) if conditions else ""
    return where, parameters


class CosmosProductRepository:
    """Product repository backed by an Azure Cosmos DB container."""

    def __init__(self, cosmosdb_client: CosmosDBClient):
        """Initialize the repository.

        Args:
            cosmosdb_client: Client whose container is partitioned on /id.
        """
        self._cosmosdb_client = cosmosdb_client

    async def connect(self) -> None:
        if self._cosmosdb_client.is_connected:
            return
        with store_errors("connect", AzureError):
            await self._cosmosdb_client.connect()
        logger.info("Connected to Cosmos DB product container")

    async def close(self) -> None:
        await self._cosmosdb_client.close()

    async def insert(self, document: Document) -> Document:
        with store_errors("insert", AzureError):
            result = await self._cosmosdb_client.create_item(dict(document))
        return _strip_system_fields(result)

    async def insert_many(self, documents: Sequence[Document]) -> list[Document]:
        # Cosmos has no cross-partition transaction; items are created one by one
        return [await self.insert(document) for document in documents]

    async def get(self, product_id: str) -> Optional[Document]:
        with store_errors("get", AzureError):
            try:
                result = await self._cosmosdb_client.read_item(product_id, product_id)
            except CosmosResourceNotFoundError:
                return None
        return _strip_system_fields(result)

    async def find(self, filters: dict[str, Any], limit: Optional[int] = None) -> list[Document]:
        where, parameters = _filter_query(filters)
        query = f"SELECT * FROM c{where} ORDER BY c.createdAt"
        if limit is not None:
            query += " OFFSET 0 LIMIT @limit"
            parameters.append({"name": "@limit", "value": limit})

        with store_errors("find", AzureError):
            items = await self._cosmosdb_client.query_items(query=query, parameters=parameters)
        return [_strip_system_fields(item) for item in items]

    async def update_fields(self, product_id: str, changes: dict[str, Any]) -> Optional[Document]:
        """Patch only the given fields and return the updated document, or None if absent."""
        with store_errors("update", AzureError):
            try:
                result = await self._cosmosdb_client.patch_item(product_id, product_id, changes)
            except CosmosResourceNotFoundError:
                return None
        return _strip_system_fields(result)

    async def delete(self, product_id: str) -> bool:
        with store_errors("delete", AzureError):
            try:
                await self._cosmosdb_client.delete_item(product_id, product_id)
            except CosmosResourceNotFoundError:
                return False
        return True

    async def delete_many(self, filters: dict[str, Any]) -> int:
        where, parameters = _filter_query(filters)
        with store_errors("delete_many", AzureError):
            items = await self._cosmosdb_client.query_items(
                query=f"SELECT c.id FROM c{where}",
                parameters=parameters,
            )

        deleted = 0
        for item in items:
            if await self.delete(item["id"]):
                deleted += 1
        return deleted

    async def search(
        self,
        terms: Sequence[str],
        sort_by_score: bool = False,
        limit: Optional[int] = None,
    ) -> list[tuple[Document, float]]:
        if not terms:
            return []

        conditions = []
        parameters = []
        for index, term in enumerate(terms):
            parameters.append({"name": f"@t{index}", "value": term})
            conditions.extend(f"CONTAINS(c.{field}, @t{index}, true)" for field in SEARCH_FIELDS)
        query = "SELECT * FROM c WHERE " + " OR ".join(conditions)

        logger.debug(f"Cosmos search candidates query: {query}")
        with store_errors("search", AzureError):
            items = await self._cosmosdb_client.query_items(query=query, parameters=parameters)

        hits = []
        for item in items:
            document = _strip_system_fields(item)
            score = relevance_score(terms, {field: document.get(field, "") for field in SEARCH_FIELDS})
            if score > 0:
                hits.append((document, score))

        if sort_by_score:
            hits.sort(key=lambda hit: hit[1], reverse=True)
        if limit is not None:
            hits = hits[:limit]
        return hits
