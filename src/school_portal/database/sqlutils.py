"""Helpers for building parameterized SQL and converting values for SQLite."""

import json
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

# Same shape as TIMESTAMP_FORMAT (millisecond precision), evaluated by SQLite.
NOW_SQL = "strftime('%Y-%m-%d %H:%M:%f', 'now')"


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)[:-3]


def now_timestamp() -> str:
    return format_timestamp(utcnow())


def to_db_value(value: Any) -> Any:
    """Convert a Python value to something sqlite3 stores as intended."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return json.dumps(sorted(to_db_value(v) for v in value))
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True)
    return value


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FilterBuilder:
    """Accumulates a conjunction of WHERE clauses and their parameters.

    Column names are always supplied by repository code, never by callers;
    only values are bound as parameters.

    Example:
        where = FilterBuilder().equals("status", "active").contains(["name"], "ann")
        sql = f"SELECT * FROM students{where.sql()}"
        conn.execute(sql, where.params)
    """

    def __init__(self) -> None:
        self.clauses: List[str] = []
        self.params: List[Any] = []

    def equals(self, column: str, value: Any) -> "FilterBuilder":
        if value is not None:
            self.clauses.append(f"{column} = ?")
            self.params.append(to_db_value(value))
        return self

    def not_equals(self, column: str, value: Any) -> "FilterBuilder":
        if value is not None:
            self.clauses.append(f"{column} != ?")
            self.params.append(to_db_value(value))
        return self

    def range(self, column: str, low: Any = None, high: Any = None) -> "FilterBuilder":
        if low is not None:
            self.clauses.append(f"{column} >= ?")
            self.params.append(to_db_value(low))
        if high is not None:
            self.clauses.append(f"{column} <= ?")
            self.params.append(to_db_value(high))
        return self

    def contains(self, columns: Sequence[str], text: Optional[str]) -> "FilterBuilder":
        """Case-insensitive substring match against any of ``columns``."""
        if text:
            pattern = f"%{escape_like(text.lower())}%"
            ors = " OR ".join(f"LOWER({c}) LIKE ? ESCAPE '\\'" for c in columns)
            self.clauses.append(f"({ors})")
            self.params.extend([pattern] * len(columns))
        return self

    def raw(self, clause: str, *params: Any) -> "FilterBuilder":
        self.clauses.append(clause)
        self.params.extend(to_db_value(p) for p in params)
        return self

    def sql(self) -> str:
        if not self.clauses:
            return ""
        return " WHERE " + " AND ".join(self.clauses)

    def build(self) -> Tuple[str, List[Any]]:
        return self.sql(), list(self.params)
