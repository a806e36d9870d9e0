"""Schema introspection operations for the ``public`` schema."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from pgstage.database import Database
from pgstage.responses import ErrorResponse, Response, SuccessResponse, error_response
from pgstage.utils import release_quietly

logger = logging.getLogger(__name__)

LIST_TABLES = """
SELECT
    t.table_name,
    obj_description(pgc.oid, 'pg_class') AS description,
    (SELECT count(*) FROM information_schema.columns c
     WHERE c.table_name = t.table_name) AS column_count
FROM information_schema.tables t
JOIN pg_catalog.pg_class pgc ON pgc.relname = t.table_name
WHERE t.table_schema = 'public' AND t.table_type = 'BASE TABLE'
ORDER BY t.table_name
"""

TABLE_EXISTS = """
SELECT EXISTS (
    SELECT 1 FROM information_schema.tables
    WHERE table_schema = 'public' AND table_name = $1
) AS exists
"""

TABLE_COLUMNS = """
SELECT
    c.column_name,
    c.data_type,
    c.is_nullable,
    c.column_default,
    col_description(pgc.oid, c.ordinal_position) AS description,
    c.character_maximum_length,
    c.numeric_precision,
    c.numeric_scale
FROM information_schema.columns c
JOIN pg_catalog.pg_class pgc ON pgc.relname = c.table_name
WHERE c.table_schema = 'public' AND c.table_name = $1
ORDER BY c.ordinal_position
"""

PRIMARY_KEY = """
SELECT tc.constraint_name, kcu.column_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
    ON tc.constraint_name = kcu.constraint_name
WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_name = $1
ORDER BY kcu.ordinal_position
"""

FOREIGN_KEYS = """
SELECT
    tc.constraint_name,
    kcu.column_name,
    ccu.table_name AS foreign_table_name,
    ccu.column_name AS foreign_column_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
    ON tc.constraint_name = kcu.constraint_name
JOIN information_schema.constraint_column_usage ccu
    ON ccu.constraint_name = tc.constraint_name
WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_name = $1
"""

INDEXES = """
SELECT
    i.relname AS index_name,
    a.attname AS column_name,
    idx.indisunique AS is_unique,
    am.amname AS index_type
FROM pg_catalog.pg_class t
JOIN pg_catalog.pg_index idx ON t.oid = idx.indrelid
JOIN pg_catalog.pg_class i ON i.oid = idx.indexrelid
JOIN pg_catalog.pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(idx.indkey)
JOIN pg_catalog.pg_am am ON am.oid = i.relam
WHERE t.relname = $1 AND NOT idx.indisprimary
ORDER BY i.relname, a.attnum
"""

ROW_ESTIMATE = "SELECT reltuples::bigint AS estimate FROM pg_class WHERE relname = $1"

TABLE_DESCRIPTION = """
SELECT obj_description(pgc.oid, 'pg_class') AS description
FROM pg_catalog.pg_class pgc
WHERE pgc.relname = $1
"""


def group_indexes(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    indexes: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        index = indexes.setdefault(
            row["index_name"],
            {
                "name": row["index_name"],
                "columns": [],
                "unique": row["is_unique"],
                "type": row["index_type"],
            },
        )
        index["columns"].append(row["column_name"])
    return list(indexes.values())


async def list_tables(database: Database) -> Response:
    try:
        conn = await database.connection()
    except Exception as e:
        logger.exception("Failed to acquire a connection")
        return error_response(e)

    try:
        result = await conn.execute(LIST_TABLES)
    except Exception as e:
        return error_response(e)
    finally:
        await release_quietly(conn)

    tables = [
        {
            "table_name": row["table_name"],
            "description": row["description"],
            "column_count": row["column_count"],
        }
        for row in result.rows
    ]
    return SuccessResponse(data={"table_count": len(tables), "tables": tables})


async def describe_table(database: Database, table_name: str) -> Response:
    try:
        conn = await database.connection()
    except Exception as e:
        logger.exception("Failed to acquire a connection")
        return error_response(e, table=table_name)

    try:
        exists = await conn.execute(TABLE_EXISTS, table_name)
        if not exists.rows or not exists.rows[0]["exists"]:
            return ErrorResponse(
                message=f"Table '{table_name}' does not exist",
                code="not_found",
            )

        # A single connection runs one statement at a time.
        columns = await conn.execute(TABLE_COLUMNS, table_name)
        primary_key = await conn.execute(PRIMARY_KEY, table_name)
        foreign_keys = await conn.execute(FOREIGN_KEYS, table_name)
        indexes = await conn.execute(INDEXES, table_name)
        estimate = await conn.execute(ROW_ESTIMATE, table_name)
        description = await conn.execute(TABLE_DESCRIPTION, table_name)
    except Exception as e:
        return error_response(e, table=table_name)
    finally:
        await release_quietly(conn)

    table = {
        "name": table_name,
        "description": description.rows[0]["description"] if description.rows else None,
        "estimated_row_count": (estimate.rows[0]["estimate"] if estimate.rows else 0) or 0,
        "columns": [
            {
                "name": col["column_name"],
                "type": col["data_type"],
                "nullable": col["is_nullable"] == "YES",
                "default": col["column_default"],
                "description": col["description"],
                "max_length": col["character_maximum_length"],
                "precision": col["numeric_precision"],
                "scale": col["numeric_scale"],
            }
            for col in columns.rows
        ],
        "primary_key": {
            "name": primary_key.rows[0]["constraint_name"] if primary_key.rows else None,
            "columns": [row["column_name"] for row in primary_key.rows],
        },
        "foreign_keys": [
            {
                "name": fk["constraint_name"],
                "column": fk["column_name"],
                "references": {
                    "table": fk["foreign_table_name"],
                    "column": fk["foreign_column_name"],
                },
            }
            for fk in foreign_keys.rows
        ],
        "indexes": group_indexes(indexes.rows),
    }
    return SuccessResponse(data={"table": table})
