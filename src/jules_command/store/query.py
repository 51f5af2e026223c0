"""Structured read-only queries over the store tables.

Backs the ``jules_query`` tool. Callers name a table, equality filters and
an ordering column; every identifier is checked against the table's real
columns before any SQL is built, and values are always bound as parameters.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

from jules_command.constants import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from jules_command.store.models import Activity, PrReview, Session

if TYPE_CHECKING:
    from jules_command.store.core import CommandStore

# Public table name -> (SQL table, row model)
QUERY_TABLES: dict[str, tuple[str, Any]] = {
    "sessions": ("jules_sessions", Session),
    "activities": ("jules_activities", Activity),
    "pr_reviews": ("pr_reviews", PrReview),
}


def table_columns(conn: sqlite3.Connection, sql_table: str) -> list[str]:
    cursor = conn.execute(f"PRAGMA table_info({sql_table})")  # noqa: S608 - trusted table name
    return [row[1] for row in cursor.fetchall()]


def _order_clause(order_by: str | None, columns: list[str]) -> str:
    if not order_by:
        return "ORDER BY rowid DESC"
    parts = order_by.split()
    column = parts[0]
    direction = parts[1].upper() if len(parts) > 1 else "ASC"
    if column not in columns:
        raise ValueError(f"Unknown order_by column: {column}")
    if len(parts) > 2 or direction not in ("ASC", "DESC"):
        raise ValueError(f"Invalid order_by: {order_by!r} (expected '<column> [asc|desc]')")
    return f"ORDER BY {column} {direction}"


def query_table(
    store: CommandStore,
    table: str,
    where: dict[str, Any] | None = None,
    order_by: str | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[dict[str, Any]]:
    """Select rows from one table with equality filters.

    Args:
        store: The CommandStore instance.
        table: One of ``sessions``, ``activities`` or ``pr_reviews``.
        where: Column -> value equality filters. ``None`` matches NULL.
        order_by: ``"<column>"`` or ``"<column> desc"``. Newest rows first by default.
        limit: Maximum rows, capped at MAX_LIST_LIMIT.

    Returns:
        Matching rows as tool-output dicts.

    Raises:
        ValueError: If the table or any column name is unknown.
    """
    if table not in QUERY_TABLES:
        raise ValueError(f"Unknown table: {table}. Must be one of: {', '.join(QUERY_TABLES)}")
    sql_table, model = QUERY_TABLES[table]

    conn = store._get_readonly_connection()
    columns = table_columns(conn, sql_table)

    clauses: list[str] = []
    params: list[Any] = []
    for column, value in (where or {}).items():
        if column not in columns:
            raise ValueError(f"Unknown column for {table}: {column}")
        if value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(value)
    where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    order_sql = _order_clause(order_by, columns)

    params.append(max(1, min(limit, MAX_LIST_LIMIT)))
    cursor = conn.execute(
        f"SELECT * FROM {sql_table} {where_sql} {order_sql} LIMIT ?",  # noqa: S608
        params,
    )
    return [model.from_row(row).to_dict() for row in cursor.fetchall()]
