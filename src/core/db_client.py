"""SQLite document store with CRUD, transactions, batch writes and live listeners.

Documents are JSON objects addressed by a collection path (e.g. ``chores/group/123456``)
and an opaque string id. Every committed write re-broadcasts the full document list of
the affected collection to the listeners registered on it.
"""

import asyncio
import inspect
import json
import logging
import re
import threading
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from src.core.config import settings


logger = logging.getLogger(__name__)

_COLLECTION_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(/[A-Za-z0-9_-]+)*$")
_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_META_FIELDS = ("id", "created", "updated")


class DatabaseError(RuntimeError):
    """Raised when a document store operation fails."""


class RecordNotFoundError(DatabaseError, KeyError):
    """Raised when a document does not exist."""


class TransactionConflictError(DatabaseError):
    """Raised when a write could not acquire the database for its transaction."""


def _validate_collection_name(collection: str) -> None:
    """Validate a collection path: identifier segments separated by '/'."""
    if not _COLLECTION_PATTERN.match(collection):
        msg = f"Invalid collection name: {collection}. Use segments of letters, digits, '_' or '-' separated by '/'."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple | set | frozenset):
        return list(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _serialize(data: dict[str, Any]) -> str:
    """Serialize document data, dropping store-managed meta fields."""
    payload = {key: value for key, value in data.items() if key not in _META_FIELDS}
    return json.dumps(payload, default=_json_default)


def _row_to_record(row: tuple[str, str, str, str]) -> dict[str, Any]:
    record_id, data, created, updated = row
    return {"id": record_id, "created": created, "updated": updated, **json.loads(data)}


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        return value.replace("%", "\\%").replace("_", "\\_")

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _field_expr(field: str) -> str:
    """Return the SQL expression reading a document field."""
    if not _FIELD_PATTERN.match(field):
        msg = f"Invalid field name: {field}"
        raise ValueError(msg)
    if field in _META_FIELDS:
        return field
    return f"json_extract(data, '$.{field}')"


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | None]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.match(
        r"""(\w+)\s*(=|!=|>|<|>=|<=|~)\s*(['"])([^'"]*)\3""",
        comparison,
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = match.group(4)

    sql_op = _get_sql_operator(op)
    expr = _field_expr(field)
    if sql_op == "LIKE":
        # PocketBase-style "~" is a contains match
        return f"{expr} LIKE ? ESCAPE '\\'", f"%{_parse_value(raw_value, is_like=True)}%"

    return f"{expr} {sql_op} ?", _parse_value(raw_value)


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]  # Remove parentheses
    or_parts = [p.strip() for p in inner.split("||")]
    or_conditions = []
    or_params = []

    for part in or_parts:
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0

    for char in filter_query:
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        current += char

        if paren_depth == 0 and current.endswith("&&"):
            parts.append(current[:-2].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params = []

    for raw_part in parts:
        part = raw_part.strip()

        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def parse_sort(sort: str) -> str:
    """Translate ``field``, ``+field``, ``-field`` or ``field ASC|DESC`` into an ORDER BY clause."""
    default = "created ASC, id ASC"
    if not sort:
        return default

    match = re.match(r"^([+-]?)([A-Za-z_][A-Za-z0-9_]*)\s*(ASC|DESC)?$", sort.strip(), re.IGNORECASE)
    if not match:
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return default

    prefix, field, direction = match.groups()
    if prefix == "-":
        direction = "DESC"
    return f"{_field_expr(field)} {(direction or 'ASC').upper()}, id ASC"


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_write_locks: dict[tuple[int, int, str], asyncio.Lock] = {}
_db_lock = asyncio.Lock()


def _cache_key(db_path: str | None = None) -> tuple[int, int, str]:
    return (threading.get_ident(), id(asyncio.get_running_loop()), str(get_db_path(db_path)))


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    loop = asyncio.get_running_loop()
    cache_key = _cache_key(db_path)
    path = get_db_path(db_path)

    if cache_key in _db_connections:
        cached_conn = _db_connections[cache_key]
        if not loop.is_closed():
            return cached_conn
        async with _db_lock:
            _db_connections.pop(cache_key, None)
            _write_locks.pop(cache_key, None)

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA journal_mode = WAL")
        await conn.execute("PRAGMA busy_timeout = 5000")

        _db_connections[cache_key] = conn
        _write_locks[cache_key] = asyncio.Lock()

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": cache_key[0], "loop_id": cache_key[1]},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)

    if cache_key not in _db_connections:
        return

    try:
        async with _db_lock:
            if cache_key in _db_connections:
                conn = _db_connections.pop(cache_key)
                _write_locks.pop(cache_key, None)
                await conn.close()
                logger.info(
                    "Closed SQLite connection",
                    extra={"thread_id": cache_key[0], "loop_id": cache_key[1], "db_path": cache_key[2]},
                )
    except Exception as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": cache_key[0], "loop_id": cache_key[1]},
        )


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from src.core import schema  # noqa: PLC0415 - schema imports this module

    await schema.init_db(db_path=db_path)


@asynccontextmanager
async def _write_transaction() -> AsyncIterator[aiosqlite.Connection]:
    """Run a block as one IMMEDIATE transaction, serialized with other writers on this connection."""
    conn = await get_connection()
    lock = _write_locks[_cache_key()]
    async with lock:
        try:
            await conn.execute("BEGIN IMMEDIATE")
        except aiosqlite.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                msg = f"Could not start transaction: {e}"
                raise TransactionConflictError(msg) from e
            raise
        try:
            yield conn
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise


def _wrap_error(e: Exception, action: str, collection: str) -> DatabaseError:
    if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
        return DatabaseError(f"Table 'documents' does not exist. Call init_db() first. ({collection})")
    if isinstance(e, aiosqlite.OperationalError) and "locked" in str(e):
        return TransactionConflictError(f"Failed to {action} in {collection}: {e}")
    return DatabaseError(f"Failed to {action} in {collection}: {e}")


async def create_record(*, collection: str, data: dict[str, Any], record_id: str | None = None) -> dict[str, Any]:
    """Insert a new document and return it with its assigned id."""
    _validate_collection_name(collection)
    new_id = record_id or uuid.uuid4().hex
    now = _now()
    try:
        async with _write_transaction() as conn:
            await conn.execute(
                "INSERT INTO documents (collection, id, data, created, updated) VALUES (?, ?, ?, ?, ?)",
                (collection, new_id, _serialize(data), now, now),
            )
    except aiosqlite.IntegrityError as e:
        msg = f"Document already exists in {collection}: {new_id}"
        raise DatabaseError(msg) from e
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error(e, "create record", collection) from e

    logger.info("Created record", extra={"collection": collection, "record_id": new_id})
    await _notify_listeners(collection)
    return {"id": new_id, "created": now, "updated": now, **json.loads(_serialize(data))}


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single document by id, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()
        cursor = await conn.execute(
            "SELECT id, data, created, updated FROM documents WHERE collection = ? AND id = ?",
            (collection, record_id),
        )
        row = await cursor.fetchone()
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, "get record", collection) from e

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return _row_to_record(row)


async def set_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Overwrite every field of an existing document."""
    _validate_collection_name(collection)
    now = _now()
    try:
        async with _write_transaction() as conn:
            cursor = await conn.execute(
                "UPDATE documents SET data = ?, updated = ? WHERE collection = ? AND id = ?",
                (_serialize(data), now, collection, record_id),
            )
            if cursor.rowcount == 0:
                msg = f"Record not found in {collection}: {record_id}"
                raise RecordNotFoundError(msg)
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("set_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, "set record", collection) from e

    logger.info("Overwrote record", extra={"collection": collection, "record_id": record_id})
    await _notify_listeners(collection)
    return await get_record(collection=collection, record_id=record_id)


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into an existing document and return the updated document."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    return await run_transaction(
        collection=collection,
        record_id=record_id,
        update_fn=lambda current: {**current, **data},
    )


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a document by id, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        async with _write_transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            if cursor.rowcount == 0:
                msg = f"Record not found in {collection}: {record_id}"
                raise RecordNotFoundError(msg)
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, "delete record", collection) from e

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    await _notify_listeners(collection)


async def batch_delete_records(*, collection: str, record_ids: list[str]) -> int:
    """Delete several documents in one transaction: all of them are removed or none are.

    Returns:
        Number of documents deleted
    """
    _validate_collection_name(collection)
    if not record_ids:
        return 0

    deleted = 0
    try:
        async with _write_transaction() as conn:
            for record_id in record_ids:
                cursor = await conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    (collection, record_id),
                )
                deleted += cursor.rowcount
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("batch_delete_failed", extra={"collection": collection, "count": len(record_ids), "error": str(e)})
        raise _wrap_error(e, "batch delete records", collection) from e

    logger.info("Batch deleted records", extra={"collection": collection, "count": deleted})
    await _notify_listeners(collection)
    return deleted


async def run_transaction(
    *,
    collection: str,
    record_id: str,
    update_fn: Callable[[dict[str, Any]], dict[str, Any] | None],
) -> dict[str, Any]:
    """Atomically read a document, compute its new state and write it back.

    ``update_fn`` receives a copy of the current document and returns the full new
    document, or None to leave it unchanged. The read and the write happen inside
    a single IMMEDIATE transaction, so concurrent transactions on the same document
    cannot interleave.

    Returns:
        The document as committed (unchanged when update_fn returned None)

    Raises:
        RecordNotFoundError: If the document does not exist
    """
    _validate_collection_name(collection)
    changed = False
    try:
        async with _write_transaction() as conn:
            cursor = await conn.execute(
                "SELECT id, data, created, updated FROM documents WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            row = await cursor.fetchone()
            if row is None:
                msg = f"Record not found in {collection}: {record_id}"
                raise RecordNotFoundError(msg)

            current = _row_to_record(row)
            new_data = update_fn(dict(current))
            result = current
            if new_data is not None:
                now = _now()
                await conn.execute(
                    "UPDATE documents SET data = ?, updated = ? WHERE collection = ? AND id = ?",
                    (_serialize(new_data), now, collection, record_id),
                )
                result = {"id": record_id, "created": current["created"], "updated": now}
                result.update(json.loads(_serialize(new_data)))
                changed = True
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("transaction_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, "run transaction", collection) from e

    if changed:
        logger.info("Committed transaction", extra={"collection": collection, "record_id": record_id})
        await _notify_listeners(collection)
    return result


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List documents with optional filtering, sorting, and pagination."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()

        where_clause, params = parse_filter(filter_query)
        where_sql = f"AND {where_clause}" if where_clause else ""
        order_by = parse_sort(sort)
        offset = (page - 1) * per_page

        query = (
            f"SELECT id, data, created, updated FROM documents WHERE collection = ? {where_sql} "  # noqa: S608 - fields are validated
            f"ORDER BY {order_by} LIMIT ? OFFSET ?"
        )
        cursor = await conn.execute(query, [collection, *params, per_page, offset])
        rows = await cursor.fetchall()
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error(e, "list records", collection) from e

    records = [_row_to_record(row) for row in rows]
    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def get_full_list(*, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
    """Return every document of a collection matching the filter (no pagination)."""
    _validate_collection_name(collection)
    try:
        conn = await get_connection()

        where_clause, params = parse_filter(filter_query)
        where_sql = f"AND {where_clause}" if where_clause else ""
        order_by = parse_sort(sort)

        query = f"SELECT id, data, created, updated FROM documents WHERE collection = ? {where_sql} ORDER BY {order_by}"  # noqa: S608 - fields are validated
        cursor = await conn.execute(query, [collection, *params])
        rows = await cursor.fetchall()
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("get_full_list_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error(e, "list records", collection) from e

    return [_row_to_record(row) for row in rows]


Listener = Callable[[list[dict[str, Any]]], Awaitable[None] | None]


class ListenerRegistration:
    """Handle for a live collection listener; call remove() to stop receiving snapshots."""

    def __init__(self, *, collection: str, callback: Listener, filter_query: str = "") -> None:
        self.collection = collection
        self.filter_query = filter_query
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def deliver(self) -> None:
        """Send the current full snapshot of the collection to the callback."""
        if not self._active:
            return
        records = await get_full_list(collection=self.collection, filter_query=self.filter_query)
        result = self._callback(records)
        if inspect.isawaitable(result):
            await result

    def remove(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        registrations = _listeners.get(self.collection, [])
        if self in registrations:
            registrations.remove(self)
        logger.info("Removed listener", extra={"collection": self.collection})


_listeners: dict[str, list[ListenerRegistration]] = {}


async def add_listener(*, collection: str, callback: Listener, filter_query: str = "") -> ListenerRegistration:
    """Register a live listener and deliver the current snapshot immediately."""
    _validate_collection_name(collection)
    parse_filter(filter_query)
    registration = ListenerRegistration(collection=collection, callback=callback, filter_query=filter_query)
    _listeners.setdefault(collection, []).append(registration)
    logger.info("Added listener", extra={"collection": collection})
    await registration.deliver()
    return registration


async def _notify_listeners(collection: str) -> None:
    """Deliver a fresh snapshot to every listener of a collection."""
    for registration in list(_listeners.get(collection, [])):
        try:
            await registration.deliver()
        except Exception as e:
            # A failing subscriber must not fail the write that triggered it
            logger.error("listener_delivery_failed", extra={"collection": collection, "error": str(e)})


def clear_listeners() -> None:
    """Remove every registered listener."""
    for registrations in list(_listeners.values()):
        for registration in list(registrations):
            registration.remove()
    _listeners.clear()
