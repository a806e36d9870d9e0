from __future__ import annotations

from typing import Tuple

READ_ONLY_PREFIXES: Tuple[str, ...] = ("select", "with", "explain", "show")

WRITE_OPERATIONS: Tuple[str, ...] = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "CREATE",
    "ALTER",
    "DROP",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
)


def is_read_only_query(sql: str) -> bool:
    return sql.strip().lower().startswith(READ_ONLY_PREFIXES)


def operation_type(sql: str) -> str:
    normalized = sql.strip().upper()
    for operation in WRITE_OPERATIONS:
        if normalized.startswith(operation):
            return operation
    return "UNKNOWN"


def preview(sql: str, length: int = 100) -> str:
    """Shorten a statement for log lines."""
    sql = " ".join(sql.split())
    if len(sql) <= length:
        return sql
    return sql[:length] + "..."
