"""SQLite product storage with an FTS5 full-text index.

Products live in a plain table; an external-content FTS5 table over
``name`` and ``description`` is kept in sync by triggers so inserts,
updates and deletes never leave the index stale.
"""

import logging
import sqlite3
from typing import Any, Optional, Sequence

from ..clients import SqliteClient
from ..text_search import build_fts_query
from .base import Document, store_errors

logger = logging.getLogger(__name__)

# Document key -> column name
_COLUMNS = {
    "id": "id",
    "name": "name",
    "price": "price",
    "description": "description",
    "category": "category",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

_SELECT_COLUMNS = ", ".join(f"p.{column}" for column in _COLUMNS.values())

# SQL statements
CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS products (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    price REAL NOT NULL,
    description TEXT NOT NULL,
    category TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_products_category ON products(category);

CREATE VIRTUAL TABLE IF NOT EXISTS products_fts USING fts5(
    name,
    description,
    content='products',
    content_rowid='seq',
    tokenize='porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS products_fts_insert AFTER INSERT ON products BEGIN
    INSERT INTO products_fts(rowid, name, description)
    VALUES (new.seq, new.name, new.description);
END;

CREATE TRIGGER IF NOT EXISTS products_fts_delete AFTER DELETE ON products BEGIN
    INSERT INTO products_fts(products_fts, rowid, name, description)
    VALUES ('delete', old.seq, old.name, old.description);
END;

CREATE TRIGGER IF NOT EXISTS products_fts_update AFTER UPDATE ON products BEGIN
    INSERT INTO products_fts(products_fts, rowid, name, description)
    VALUES ('delete', old.seq, old.name, old.description);
    INSERT INTO products_fts(rowid, name, description)
    VALUES (new.seq, new.name, new.description);
END;
"""

INSERT_SQL = """INSERT INTO products
   (id, name, price, description, category, created_at, updated_at)
   VALUES (?, ?, ?, ?, ?, ?, ?)"""


def _row_to_document(row: sqlite3.Row) -> Document:
    return {key: row[column] for key, column in _COLUMNS.items()}


def _insert_params(document: Document) -> tuple:
    return tuple(document[key] for key in _COLUMNS)


def _where_clause(filters: dict[str, Any], table_alias: str = "p.") -> tuple[str, list[Any]]:
    if not filters:
        return "", []
    conditions = [f"{table_alias}{_COLUMNS[key]} = ?" for key in filters]
    return " WHERE " + " AND ".join(conditions), list(filters.values())


class SqliteProductRepository:
    """Product repository backed by SQLite.

    Use ``":memory:"`` as the path for an isolated, throwaway store.
    """

    def __init__(self, db_path: str = "products.db"):
        """Initialize the repository.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = db_path
        self._sqlite_client: Optional[SqliteClient] = None

    @property
    def _client(self) -> SqliteClient:
        if self._sqlite_client is None:
            raise RuntimeError("SQLite repository not connected. Call connect() first.")
        return self._sqlite_client

    async def connect(self) -> None:
        """Open the database and create the schema if missing."""
        if self._sqlite_client is not None:
            return
        with store_errors("connect", sqlite3.Error):
            self._sqlite_client = SqliteClient(self._db_path)
            self._sqlite_client.execute_script(CREATE_SCHEMA_SQL)
        logger.debug(f"Product tables initialized in {self._db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._sqlite_client is not None:
            self._sqlite_client.close()
            self._sqlite_client = None

    async def insert(self, document: Document) -> Document:
        with store_errors("insert", sqlite3.Error):
            self._client.execute_query(INSERT_SQL, _insert_params(document))
        return dict(document)

    async def insert_many(self, documents: Sequence[Document]) -> list[Document]:
        with store_errors("insert_many", sqlite3.Error):
            with self._client.transaction() as client:
                client.execute_many(INSERT_SQL, [_insert_params(doc) for doc in documents])
        return [dict(doc) for doc in documents]

    async def get(self, product_id: str) -> Optional[Document]:
        with store_errors("get", sqlite3.Error):
            rows = self._client.execute_query(
                f"SELECT {_SELECT_COLUMNS} FROM products p WHERE p.id = ?",
                (product_id,),
            )
        return _row_to_document(rows[0]) if rows else None

    async def find(self, filters: dict[str, Any], limit: Optional[int] = None) -> list[Document]:
        where, params = _where_clause(filters)
        query = f"SELECT {_SELECT_COLUMNS} FROM products p{where} ORDER BY p.seq"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with store_errors("find", sqlite3.Error):
            rows = self._client.execute_query(query, params)
        return [_row_to_document(row) for row in rows]

    async def update_fields(self, product_id: str, changes: dict[str, Any]) -> Optional[Document]:
        """Set only the given fields and return the updated document, or None if absent."""
        assignments = ", ".join(f"{_COLUMNS[key]} = ?" for key in changes)
        params = [*changes.values(), product_id]

        with store_errors("update", sqlite3.Error):
            updated = self._client.execute_write(
                f"UPDATE products SET {assignments} WHERE id = ?",
                params,
            )
        if not updated:
            return None
        return await self.get(product_id)

    async def delete(self, product_id: str) -> bool:
        with store_errors("delete", sqlite3.Error):
            deleted = self._client.execute_write("DELETE FROM products WHERE id = ?", (product_id,))
        return deleted > 0

    async def delete_many(self, filters: dict[str, Any]) -> int:
        where, params = _where_clause(filters, table_alias="")
        with store_errors("delete_many", sqlite3.Error):
            return self._client.execute_write(f"DELETE FROM products{where}", params)

    async def search(
        self,
        terms: Sequence[str],
        sort_by_score: bool = False,
        limit: Optional[int] = None,
    ) -> list[tuple[Document, float]]:
        """Match terms against the FTS5 index; score is the negated bm25 rank."""
        if not terms:
            return []

        query = (
            f"SELECT {_SELECT_COLUMNS}, bm25(products_fts) AS bm25_rank "
            "FROM products_fts JOIN products p ON p.seq = products_fts.rowid "
            "WHERE products_fts MATCH ?"
        )
        params: list[Any] = [build_fts_query(terms)]
        if sort_by_score:
            query += " ORDER BY bm25_rank"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        logger.debug(f"Full-text query: {params[0]}")
        with store_errors("search", sqlite3.Error):
            rows = self._client.execute_query(query, params)
        return [(_row_to_document(row), -row["bm25_rank"]) for row in rows]
