from __future__ import annotations

from typing import Any, Optional, Tuple

import asyncpg
import asyncpg.transaction

from pgstage.database import Connection, Database, FieldInfo, QueryResult, Transaction
from pgstage.statements import is_read_only_query


def parse_status(status: Optional[str]) -> Tuple[str, int]:
    """Split a command tag such as ``INSERT 0 3`` into ``("INSERT", 3)``."""
    if not status:
        return "", 0

    parts = status.split()
    command = parts[0].upper()
    if len(parts) > 1 and parts[-1].isdigit():
        return command, int(parts[-1])
    return command, 0


class PostgresqlDatabasePool(Database):
    pool: Optional[asyncpg.pool.Pool]

    def __init__(self) -> None:
        self.pool = None

    async def init(self, *args: Any, **kwargs: Any) -> None:
        self.pool = await asyncpg.create_pool(*args, **kwargs)

    async def connection(self) -> PostgresqlConnection:
        if self.pool is None:
            raise RuntimeError("Database pool has not been initialized.")

        conn = await self.pool.acquire()
        return PostgresqlConnection(self.pool, conn)

    async def close(self) -> None:
        if self.pool is not None:
            pool, self.pool = self.pool, None
            await pool.close()


class PostgresqlConnection(Connection):
    def __init__(self, pool: asyncpg.pool.Pool, conn: asyncpg.Connection):
        self.pool = pool
        self.conn = conn

    async def execute(self, query: str, *args: Any) -> QueryResult:
        # Prepared statements hold a single command. Parameterless writes go
        # through the simple protocol so scripts like "INSERT ...; UPDATE ..."
        # run whole; only the last command tag is reported.
        if not args and not is_read_only_query(query):
            command, row_count = parse_status(await self.conn.execute(query))
            return QueryResult(row_count=row_count, command=command)

        statement = await self.conn.prepare(query)
        records = await statement.fetch(*args)
        command, row_count = parse_status(statement.get_statusmsg())
        fields = [
            FieldInfo(attr.name, attr.type.oid, attr.type.name)
            for attr in statement.get_attributes()
        ]
        return QueryResult(
            rows=list(map(dict, records)),
            row_count=row_count,
            command=command,
            fields=fields,
        )

    async def transaction(self, readonly: bool = False) -> PostgresqlTransaction:
        transaction = self.conn.transaction(readonly=readonly)
        await transaction.start()
        return PostgresqlTransaction(transaction)

    async def release(self) -> None:
        await self.pool.release(self.conn)


class PostgresqlTransaction(Transaction):
    def __init__(self, transaction: asyncpg.transaction.Transaction):
        self.transaction = transaction

    async def commit(self) -> None:
        await self.transaction.commit()

    async def rollback(self) -> None:
        await self.transaction.rollback()
