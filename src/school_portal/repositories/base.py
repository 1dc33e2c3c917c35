"""Generic validated CRUD over one table.

Subclasses declare the table, entity name, model and schemas, plus hooks for
junction tables and delete dependencies. All store errors leave this module
as ``ServiceError`` subclasses.
"""

import sqlite3
from contextlib import contextmanager
from typing import Any, ClassVar, Generic, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel

from school_portal.database import Database, Page
from school_portal.database.sqlutils import FilterBuilder, new_id, now_timestamp, to_db_value
from school_portal.errors import (
    DependencyError,
    DuplicateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from school_portal.logutils import get_logger, with_context
from school_portal.validation import CreateSchema, PageParams, UpdateSchema, validate
from school_portal.validation.common import Columns

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ReadRepository(Generic[ModelT]):
    """Lookups, filtered listings and store-error translation for one table.

    Class attributes:
        table: Table name (also used to qualify columns).
        entity: Lower-case entity name used in error codes and log events.
        model: Pydantic model rows are mapped into.
        soft_delete_status: Terminal status hidden from reads, or None.
        order_by: ORDER BY clause; ``id`` is always appended as tiebreaker.
    """

    table: ClassVar[str]
    entity: ClassVar[str]
    model: ClassVar[Type[BaseModel]]
    filter_schema: ClassVar[Type[PageParams]] = PageParams
    soft_delete_status: ClassVar[Optional[str]] = None
    order_by: ClassVar[str] = "created_at DESC"

    def __init__(self, db: Database):
        self.db = db

    def _select_sql(self) -> str:
        return f"SELECT {self.table}.* FROM {self.table}"

    def _apply_filters(self, where: FilterBuilder, params: Any) -> None:
        """Add entity-specific filter clauses."""

    @property
    def _label(self) -> str:
        return self.entity.capitalize()

    def _to_model(self, row: sqlite3.Row) -> ModelT:
        return self.model.model_validate(dict(row))

    def _visible(self, where: FilterBuilder) -> FilterBuilder:
        if self.soft_delete_status:
            where.not_equals(f"{self.table}.status", self.soft_delete_status)
        return where

    def _fetch(self, conn: sqlite3.Connection, entity_id: str) -> Optional[sqlite3.Row]:
        return self._fetch_by(conn, "id", entity_id)

    def _fetch_by(self, conn: sqlite3.Connection, column: str, value: Any) -> Optional[sqlite3.Row]:
        where = self._visible(FilterBuilder().equals(f"{self.table}.{column}", value))
        sql, params = where.build()
        return conn.execute(f"{self._select_sql()}{sql}", params).fetchone()

    def _require(self, conn: sqlite3.Connection, entity_id: str) -> sqlite3.Row:
        row = self._fetch(conn, entity_id)
        if row is None:
            raise NotFoundError(self.entity, entity_id)
        return row

    def _count(self, conn: sqlite3.Connection, sql: str, *params: Any) -> int:
        return conn.execute(sql, params).fetchone()[0]

    def _log_write(self, action: str, entity_id: str, **data: Any) -> None:
        logger.info(
            f"{self._label} {action}",
            extra={"extra_data": {"entity": self.entity, "id": entity_id, **data}},
        )

    @contextmanager
    def _store_errors(self, operation: str) -> Iterator[None]:
        """Translate sqlite3 failures raised inside the block."""
        try:
            yield
        except sqlite3.IntegrityError as exc:
            error = self._translate_integrity(exc, operation)
            logger.warning(
                f"{self._label} {operation} rejected by store",
                extra={"extra_data": {"entity": self.entity, "code": error.code, "reason": str(exc)}},
            )
            raise error from exc
        except sqlite3.Error as exc:
            logger.error(
                f"{self._label} {operation} failed",
                extra={"extra_data": {"entity": self.entity, "error": str(exc)}},
                exc_info=True,
            )
            raise StorageError(f"Failed to {operation} {self.entity}") from exc

    def _translate_integrity(self, exc: sqlite3.IntegrityError, operation: str):
        message = str(exc)
        if message.startswith("UNIQUE constraint failed"):
            columns = [part.strip().split(".")[-1] for part in message.split(":", 1)[1].split(",")]
            return DuplicateError(self.entity, columns)
        if message.startswith("FOREIGN KEY constraint failed"):
            if operation == "delete":
                return DependencyError(
                    f"{self._label} is still referenced by other records",
                    code=f"{self.entity.upper()}_IN_USE",
                )
            return ValidationError.single(None, "referenced record does not exist", code="INVALID_REFERENCE")
        return ValidationError.single(None, message, code="CONSTRAINT_VIOLATION")

    def get_by_id(self, entity_id: str) -> ModelT:
        with self._store_errors("read"):
            with self.db.connection() as conn:
                row = self._fetch(conn, entity_id)
        if row is None:
            raise NotFoundError(self.entity, entity_id)
        return self._to_model(row)

    def get_all(self, filters: Any = None) -> Page[ModelT]:
        params = validate(self.filter_schema, filters)
        where = FilterBuilder()
        # An explicit status filter may ask for soft-deleted rows.
        if getattr(params, "status", None) is None:
            self._visible(where)
        self._apply_filters(where, params)
        sql, args = where.build()

        with self._store_errors("list"):
            with self.db.connection() as conn:
                total = self._count(conn, f"SELECT COUNT(*) FROM {self.table}{sql}", *args)
                rows = conn.execute(
                    f"{self._select_sql()}{sql} ORDER BY {self.order_by}, {self.table}.id LIMIT ? OFFSET ?",
                    args + [params.limit, params.offset],
                ).fetchall()

        return Page[self.model](
            items=[self._to_model(row) for row in rows],
            total=total,
            page=params.page,
            limit=params.limit,
        )

    def list_where(self, column: str, value: Any) -> List[ModelT]:
        """All visible rows whose ``column`` equals ``value``, in list order."""
        where = self._visible(FilterBuilder().equals(f"{self.table}.{column}", value))
        sql, args = where.build()
        with self._store_errors("list"):
            with self.db.connection() as conn:
                rows = conn.execute(
                    f"{self._select_sql()}{sql} ORDER BY {self.order_by}, {self.table}.id", args
                ).fetchall()
        return [self._to_model(row) for row in rows]


class BaseRepository(ReadRepository[ModelT]):
    """Adds validated create, sparse update and delete.

    ``soft_delete_status`` selects the delete strategy: a terminal status
    for soft delete, or None to hard-delete after ``_check_dependencies``.
    """

    create_schema: ClassVar[Type[CreateSchema]]
    update_schema: ClassVar[Type[UpdateSchema]]

    # ==================== HOOKS ====================

    def _insert_columns(self, conn: sqlite3.Connection, schema: CreateSchema) -> Columns:
        """Columns for the INSERT of a new row."""
        return schema.columns()

    def _after_create(self, conn: sqlite3.Connection, entity_id: str, schema: CreateSchema) -> None:
        """Write junction rows for a new entity."""

    def _after_update(self, conn: sqlite3.Connection, entity_id: str, schema: UpdateSchema) -> None:
        """Rewrite junction rows touched by an update."""

    def _check_dependencies(self, conn: sqlite3.Connection, entity_id: str) -> None:
        """Raise DependencyError if dependent rows forbid a hard delete."""

    def _delete_links(self, conn: sqlite3.Connection, entity_id: str) -> None:
        """Remove junction rows before a hard delete."""

    # ==================== WRITES ====================

    def _insert(self, conn: sqlite3.Connection, entity_id: str, columns: Columns) -> None:
        now = now_timestamp()
        pairs = [("id", entity_id)] + list(columns) + [("created_at", now), ("updated_at", now)]
        names = ", ".join(name for name, _ in pairs)
        marks = ", ".join("?" for _ in pairs)
        conn.execute(
            f"INSERT INTO {self.table} ({names}) VALUES ({marks})",
            [to_db_value(value) for _, value in pairs],
        )

    def _apply_changes(self, conn: sqlite3.Connection, entity_id: str, changes: Columns) -> None:
        pairs = list(changes) + [("updated_at", now_timestamp())]
        assignments = ", ".join(f"{name} = ?" for name, _ in pairs)
        conn.execute(
            f"UPDATE {self.table} SET {assignments} WHERE id = ?",
            [to_db_value(value) for _, value in pairs] + [entity_id],
        )

    def create(self, data: Any) -> ModelT:
        schema = validate(self.create_schema, data)
        entity_id = new_id()

        with with_context(operation=f"{self.entity}.create", entity=self.entity, entity_id=entity_id):
            with self._store_errors("create"):
                with self.db.transaction() as conn:
                    self._insert(conn, entity_id, self._insert_columns(conn, schema))
                    self._after_create(conn, entity_id, schema)
                    # Re-read: triggers and junction tables shape the result.
                    row = self._require(conn, entity_id)
            self._log_write("created", entity_id)

        return self._to_model(row)

    def update(self, entity_id: str, data: Any) -> ModelT:
        schema = validate(self.update_schema, data)

        with with_context(operation=f"{self.entity}.update", entity=self.entity, entity_id=entity_id):
            with self._store_errors("update"):
                with self.db.transaction() as conn:
                    current = self._require(conn, entity_id)
                    # Only columns whose stored value differs reach the store,
                    # so unique constraints are re-checked just for real changes.
                    changes = [
                        (column, value)
                        for column, value in schema.changes()
                        if to_db_value(value) != current[column]
                    ]
                    self._apply_changes(conn, entity_id, changes)
                    self._after_update(conn, entity_id, schema)
                    row = self._require(conn, entity_id)
            self._log_write("updated", entity_id, fields=[column for column, _ in changes])

        return self._to_model(row)

    def delete(self, entity_id: str) -> None:
        with with_context(operation=f"{self.entity}.delete", entity=self.entity, entity_id=entity_id):
            with self._store_errors("delete"):
                with self.db.transaction() as conn:
                    if self.soft_delete_status:
                        cursor = conn.execute(
                            f"UPDATE {self.table} SET status = ?, updated_at = ? WHERE id = ? AND status != ?",
                            (self.soft_delete_status, now_timestamp(), entity_id, self.soft_delete_status),
                        )
                        if cursor.rowcount == 0:
                            raise NotFoundError(self.entity, entity_id)
                    else:
                        self._require(conn, entity_id)
                        self._check_dependencies(conn, entity_id)
                        self._delete_links(conn, entity_id)
                        conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (entity_id,))
            self._log_write("deleted", entity_id, soft=bool(self.soft_delete_status))
