"""Azure Cosmos DB client for product document storage."""

import uuid
from typing import Any, Optional

from azure.cosmos.aio import CosmosClient
from azure.cosmos.aio._container import ContainerProxy
from azure.cosmos.aio._database import DatabaseProxy
from azure.cosmos.exceptions import CosmosResourceNotFoundError


class CosmosDBClient:
    """Async Cosmos DB client with connection management.

    Uses the NoSQL API for storing and querying product documents.
    Supports async context manager pattern for proper resource cleanup.
    """

    def __init__(
        self,
        endpoint: str,
        key: str,
        database_name: str,
        container_name: str,
        partition_key_path: str = "/id",
    ):
        """Initialize the Cosmos DB client.

        Args:
            endpoint: Cosmos DB account endpoint URL
            key: Cosmos DB account key
            database_name: Name of the database to use
            container_name: Name of the container to use
            partition_key_path: Path to the partition key field (default: /id)
        """
        self._endpoint = endpoint
        self._key = key
        self._database_name = database_name
        self._container_name = container_name
        self._partition_key_path = partition_key_path

        self._client: Optional[CosmosClient] = None
        self._database: Optional[DatabaseProxy] = None
        self._container: Optional[ContainerProxy] = None

    @property
    def is_connected(self) -> bool:
        """Whether connect() has completed and close() has not been called."""
        return self._container is not None

    async def connect(self) -> None:
        """Establish connection and ensure database/container exist."""
        self._client = CosmosClient(url=self._endpoint, credential=self._key)
        await self._client.__aenter__()

        # Get or create database
        try:
            self._database = self._client.get_database_client(self._database_name)
            await self._database.read()
        except CosmosResourceNotFoundError:
            self._database = await self._client.create_database(self._database_name)

        # Get or create container
        try:
            self._container = self._database.get_container_client(self._container_name)
            await self._container.read()
        except CosmosResourceNotFoundError:
            self._container = await self._database.create_container(
                id=self._container_name,
                partition_key={"paths": [self._partition_key_path], "kind": "Hash"},
            )

    async def close(self) -> None:
        """Close the Cosmos DB connection."""
        if self._client:
            await self._client.close()
            self._client = None
            self._database = None
            self._container = None

    async def __aenter__(self) -> "CosmosDBClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Async context manager exit with cleanup."""
        await self.close()
        return False

    def _require_container(self) -> ContainerProxy:
        if self._container is None:
            raise RuntimeError("CosmosDB client not connected. Call connect() first.")
        return self._container

    async def create_item(self, item: dict[str, Any]) -> dict[str, Any]:
        """Create a new item; fails if an item with the same id exists.

        Args:
            item: Dictionary containing the item data. An 'id' is generated
                  when missing.

        Returns:
            The created item with any system-generated fields.

        Raises:
            RuntimeError: If client is not connected.
            CosmosResourceExistsError: If the id is already taken.
        """
        container = self._require_container()

        if "id" not in item:
            item["id"] = str(uuid.uuid4())

        result = await container.create_item(body=item)
        return dict(result)

    async def query_items(
        self,
        query: str,
        parameters: Optional[list[dict[str, Any]]] = None,
        partition_key: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Query items from the container.

        Args:
            query: SQL query string
            parameters: Optional query parameters as list of {"name": "@param", "value": value}
            partition_key: Optional partition key to scope the query

        Returns:
            List of matching items.

        Raises:
            RuntimeError: If client is not connected.
        """
        container = self._require_container()

        query_options = {}
        if partition_key is not None:
            query_options["partition_key"] = partition_key

        items = []
        async for item in container.query_items(
            query=query,
            parameters=parameters,
            **query_options,
        ):
            items.append(dict(item))

        return items

    async def read_item(self, item_id: str, partition_key: str) -> dict[str, Any]:
        """Read a single item by id and partition key.

        Raises:
            RuntimeError: If client is not connected.
            CosmosResourceNotFoundError: If item not found.
        """
        container = self._require_container()

        result = await container.read_item(item=item_id, partition_key=partition_key)
        return dict(result)

    async def patch_item(
        self,
        item_id: str,
        partition_key: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """Atomically set the given top-level fields on an item.

        Args:
            item_id: The item's id
            partition_key: The partition key value
            fields: Field name to new value; every entry becomes a "set" operation

        Returns:
            The patched item.

        Raises:
            RuntimeError: If client is not connected.
            CosmosResourceNotFoundError: If item not found.
        """
        container = self._require_container()

        operations = [
            {"op": "set", "path": f"/{field}", "value": value}
            for field, value in fields.items()
        ]
        result = await container.patch_item(
            item=item_id,
            partition_key=partition_key,
            patch_operations=operations,
        )
        return dict(result)

    async def delete_item(self, item_id: str, partition_key: str) -> None:
        """Delete an item by id and partition key.

        Raises:
            RuntimeError: If client is not connected.
            CosmosResourceNotFoundError: If item not found.
        """
        container = self._require_container()

        await container.delete_item(item=item_id, partition_key=partition_key)
