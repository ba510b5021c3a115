"""
JSON document collections on top of SQLite.

Each collection is a table ``col_<name>`` with two columns:
- _id: JSON-encoded document id (primary key)
- body: JSON object holding every other field

Filters are a small subset of the MongoDB query language:
- {"field": value}           equality on value and JSON type (None matches an
                             explicit null, True never matches 1)
- {"field": {"$exists": b}}  field presence
Dotted field names address nested objects.
"""

import json
import logging
import re
import sqlite3
import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from ..errors import IndexExistsError, IndexNotFoundError, InvalidArgument

if TYPE_CHECKING:
    from .sqlite_store import DocumentStore

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_FIELD_PATH = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

IndexKey = str | tuple[str, int]


def _json_path(field: str) -> str:
    """Convert a dotted field name to a SQLite JSON path."""
    if not isinstance(field, str) or not _FIELD_PATH.match(field):
        raise InvalidArgument(f"Invalid field name: {field!r}")
    return f"$.{field}"


def _compile_filter(query: dict[str, Any] | None) -> tuple[str, list[Any]]:
    """Compile a filter document into a WHERE clause and its parameters."""
    clauses: list[str] = []
    params: list[Any] = []

    for field, condition in (query or {}).items():
        if field == "_id":
            if isinstance(condition, dict):
                raise InvalidArgument("Filter operators are not supported on _id")
            clauses.append("_id = ?")
            params.append(json.dumps(condition))
            continue

        path = _json_path(field)

        if isinstance(condition, dict):
            for op, operand in condition.items():
                if op != "$exists":
                    raise InvalidArgument(f"Unsupported filter operator: {op}")
                if operand:
                    clauses.append("json_type(body, ?) IS NOT NULL")
                else:
                    clauses.append("json_type(body, ?) IS NULL")
                params.append(path)
        elif condition is None:
            clauses.append("json_type(body, ?) = 'null'")
            params.append(path)
        elif isinstance(condition, bool):
            # json_extract yields 1/0 for true/false, so match on the JSON type
            clauses.append("json_type(body, ?) = ?")
            params.extend([path, "true" if condition else "false"])
        elif isinstance(condition, (int, float)):
            clauses.append(
                "json_extract(body, ?) = ? AND json_type(body, ?) IN ('integer', 'real')"
            )
            params.extend([path, condition, path])
        elif isinstance(condition, str):
            clauses.append("json_extract(body, ?) = ? AND json_type(body, ?) = 'text'")
            params.extend([path, condition, path])
        else:
            raise InvalidArgument(
                f"Unsupported filter value for {field}: {type(condition).__name__}"
            )

    where = " AND ".join(clauses) if clauses else "1"
    return where, params


def _row_to_document(row: sqlite3.Row) -> dict[str, Any]:
    body = json.loads(row["body"])
    return {"_id": json.loads(row["_id"]), **body}


class Collection:
    """A named collection of JSON documents."""

    def __init__(self, store: "DocumentStore", name: str):
        if not isinstance(name, str) or not _IDENTIFIER.match(name):
            raise InvalidArgument(f"Invalid collection name: {name!r}")
        self.store = store
        self.name = name
        self.table = f"col_{name}"

    def __repr__(self) -> str:
        return f"Collection({self.name!r})"

    def _table_exists(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (self.table,)
        ).fetchone()
        return row is not None

    def _ensure_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            f'CREATE TABLE IF NOT EXISTS "{self.table}" ('
            "_id TEXT PRIMARY KEY, body TEXT NOT NULL)"
        )

    # Document methods

    def insert_one(self, document: dict[str, Any]) -> Any:
        """
        Insert a document. Returns its ``_id``.

        A random hex id is generated when the document has none.

        Raises:
            sqlite3.IntegrityError: If a document with the same _id exists
        """
        body = dict(document)
        doc_id = body.pop("_id", None)
        if doc_id is None:
            doc_id = uuid.uuid4().hex

        with self.store.transaction() as conn:
            self._ensure_table(conn)
            conn.execute(
                f'INSERT INTO "{self.table}" (_id, body) VALUES (?, ?)',
                (json.dumps(doc_id), json.dumps(body)),
            )
        return doc_id

    def find_one(self, query: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """Get the first document matching the filter."""
        documents = self.find(query, limit=1)
        return documents[0] if documents else None

    def find(
        self,
        query: dict[str, Any] | None = None,
        sort: Sequence[tuple[str, int]] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Get documents matching the filter.

        Args:
            query: Filter document
            sort: (field, direction) pairs; direction 1 ascending, -1 descending.
                  Insertion order when omitted.
            limit: Maximum number of documents to return
        """
        where, params = _compile_filter(query)
        sql = f'SELECT _id, body FROM "{self.table}" WHERE {where}'

        if sort:
            order_terms = []
            for field, direction in sort:
                order_terms.append(
                    f"json_extract(body, ?) {'DESC' if direction < 0 else 'ASC'}"
                )
                params.append(_json_path(field))
            sql += " ORDER BY " + ", ".join(order_terms)
        else:
            sql += " ORDER BY rowid"

        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self.store.transaction() as conn:
            if not self._table_exists(conn):
                return []
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_document(row) for row in rows]

    def count_documents(self, query: dict[str, Any] | None = None) -> int:
        """Count documents matching the filter."""
        where, params = _compile_filter(query)
        with self.store.transaction() as conn:
            if not self._table_exists(conn):
                return 0
            row = conn.execute(
                f'SELECT COUNT(*) FROM "{self.table}" WHERE {where}', params
            ).fetchone()
        return row[0]

    def update_many(
        self,
        query: dict[str, Any] | None,
        set_fields: dict[str, Any] | None = None,
        unset_fields: Sequence[str] | None = None,
    ) -> int:
        """
        Set and/or remove fields on every matching document in one statement.

        Returns:
            Number of documents modified
        """
        if not set_fields and not unset_fields:
            raise InvalidArgument("update_many requires set_fields or unset_fields")

        expr = "body"
        expr_params: list[Any] = []

        if set_fields:
            parts = []
            for field, value in set_fields.items():
                if field == "_id":
                    raise InvalidArgument("_id cannot be modified")
                parts.append("?, json(?)")
                expr_params.extend([_json_path(field), json.dumps(value)])
            expr = f"json_set({expr}, {', '.join(parts)})"

        if unset_fields:
            paths = []
            for field in unset_fields:
                if field == "_id":
                    raise InvalidArgument("_id cannot be removed")
                paths.append(_json_path(field))
            expr = f"json_remove({expr}, {', '.join('?' for _ in paths)})"
            expr_params.extend(paths)

        where, where_params = _compile_filter(query)

        with self.store.transaction() as conn:
            if not self._table_exists(conn):
                return 0
            cursor = conn.execute(
                f'UPDATE "{self.table}" SET body = {expr} WHERE {where}',
                expr_params + where_params,
            )
            return cursor.rowcount

    def delete_many(self, query: dict[str, Any] | None = None) -> int:
        """Delete matching documents. Returns the number deleted."""
        where, params = _compile_filter(query)
        with self.store.transaction() as conn:
            if not self._table_exists(conn):
                return 0
            cursor = conn.execute(f'DELETE FROM "{self.table}" WHERE {where}', params)
            return cursor.rowcount

    # Index methods

    def _index_table_name(self, name: str) -> str:
        if not isinstance(name, str) or not _IDENTIFIER.match(name):
            raise InvalidArgument(f"Invalid index name: {name!r}")
        return f"{self.table}__{name}"

    def create_index(
        self,
        name: str,
        keys: Sequence[IndexKey],
        sparse: bool = False,
        unique: bool = False,
    ) -> None:
        """
        Create a named index over one or more fields.

        Args:
            name: Index name, unique within the collection
            keys: Field names, or (field, direction) pairs
            sparse: Only index documents where at least one key field exists
            unique: Enforce uniqueness of the indexed values

        Raises:
            IndexExistsError: If an index with this name already exists
        """
        if not keys:
            raise InvalidArgument("An index needs at least one key")

        index_table = self._index_table_name(name)
        columns = []
        paths = []
        for key in keys:
            field, direction = (key, 1) if isinstance(key, str) else key
            path = _json_path(field)
            paths.append(path)
            # Expression indexes cannot take bound parameters; paths are validated above.
            columns.append(
                f"json_extract(body, '{path}') {'DESC' if direction < 0 else 'ASC'}"
            )

        sql = (
            f'CREATE {"UNIQUE " if unique else ""}INDEX "{index_table}" '
            f'ON "{self.table}" ({", ".join(columns)})'
        )
        if sparse:
            sql += " WHERE " + " OR ".join(
                f"json_type(body, '{path}') IS NOT NULL" for path in paths
            )

        with self.store.transaction() as conn:
            self._ensure_table(conn)
            try:
                conn.execute(sql)
            except sqlite3.OperationalError as e:
                if "already exists" in str(e):
                    raise IndexExistsError(
                        f"Index {name} already exists on {self.name}"
                    ) from e
                raise

        logger.debug(f"Created index {name} on {self.name}")

    def drop_index(self, name: str) -> None:
        """
        Drop a named index.

        Raises:
            IndexNotFoundError: If the index does not exist
        """
        index_table = self._index_table_name(name)
        with self.store.transaction() as conn:
            try:
                conn.execute(f'DROP INDEX "{index_table}"')
            except sqlite3.OperationalError as e:
                if "no such index" in str(e):
                    raise IndexNotFoundError(f"Index {name} not found on {self.name}") from e
                raise

        logger.debug(f"Dropped index {name} on {self.name}")

    def index_names(self) -> list[str]:
        """Names of the indexes created on this collection."""
        prefix = f"{self.table}__"
        with self.store.transaction() as conn:
            rows = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ?",
                (self.table,),
            ).fetchall()
        return sorted(row[0][len(prefix):] for row in rows if row[0].startswith(prefix))
