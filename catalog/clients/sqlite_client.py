import sqlite3
from contextlib import contextmanager
from typing import Any, Generator, Iterable, Optional, Sequence

_WRITE_PREFIXES = ("INSERT", "UPDATE", "DELETE", "REPLACE")


class SqliteClient:
    """SQLite database client with connection management."""

    def __init__(self, connection_string: str):
        self.connection_string = connection_string
        # The API test client drives the connection from a worker thread
        self._connection = sqlite3.connect(self.connection_string, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._in_transaction = False

    def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> list[sqlite3.Row]:
        """Execute a query and return all results."""
        cursor = self._connection.cursor()
        if params:
            cursor.execute(query, params)
        else:
            cursor.execute(query)

        results = cursor.fetchall()
        cursor.close()

        # Commit for write operations unless a transaction block owns the commit
        if not self._in_transaction and query.strip().upper().startswith(_WRITE_PREFIXES):
            self._connection.commit()

        return results

    def execute_write(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """Execute a write statement and return the number of affected rows."""
        cursor = self._connection.cursor()
        cursor.execute(query, params or ())
        row_count = cursor.rowcount
        cursor.close()

        if not self._in_transaction:
            self._connection.commit()
        return row_count

    def execute_many(self, query: str, params: Iterable[Sequence[Any]]) -> int:
        """Execute a write statement for each parameter set and return the row count."""
        cursor = self._connection.cursor()
        cursor.executemany(query, params)
        row_count = cursor.rowcount
        cursor.close()

        if not self._in_transaction:
            self._connection.commit()
        return row_count

    def execute_script(self, script: str) -> None:
        """Execute a multi-statement script (schema setup)."""
        self._connection.executescript(script)

    @contextmanager
    def transaction(self) -> Generator["SqliteClient", None, None]:
        """Group several statements into one commit, rolling back on error."""
        self._in_transaction = True
        try:
            yield self
            self._connection.commit()
        except Exception:
            self._connection.rollback()
            raise
        finally:
            self._in_transaction = False

    def close(self):
        """Close the database connection."""
        self._connection.close()
