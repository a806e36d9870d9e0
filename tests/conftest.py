from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import pytest

from pgstage.database import Connection, Database, FieldInfo, QueryResult, Transaction
from pgstage.registry import TransactionRegistry

ResultFactory = Callable[[str, tuple], QueryResult]


def default_result(query: str, args: tuple) -> QueryResult:
    command = query.strip().split()[0].upper() if query.strip() else ""
    if command == "SELECT":
        return QueryResult(
            rows=[{"x": 1}],
            row_count=1,
            command="SELECT",
            fields=[FieldInfo("x", 23, "int4")],
        )
    return QueryResult(row_count=1, command=command)


class FakeTransaction(Transaction):
    def __init__(self, connection: FakeConnection) -> None:
        self.connection = connection

    async def commit(self) -> None:
        self.connection.statements.append("COMMIT")
        await self.connection.pause()
        if self.connection.fail_commit:
            raise RuntimeError("commit failed")

    async def rollback(self) -> None:
        self.connection.statements.append("ROLLBACK")
        await self.connection.pause()
        if self.connection.fail_rollback:
            raise RuntimeError("rollback failed")


class FakeConnection(Connection):
    def __init__(self, result_factory: ResultFactory = default_result) -> None:
        self.result_factory = result_factory
        self.statements: List[str] = []
        self.release_count = 0
        self.fail_execute = False
        self.fail_commit = False
        self.fail_rollback = False
        self.fail_release = False
        self.gate: Optional[asyncio.Event] = None

    async def pause(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

    async def execute(self, query: str, *args: Any) -> QueryResult:
        self.statements.append(query)
        await self.pause()
        if self.fail_execute:
            raise RuntimeError("relation does not exist")
        return self.result_factory(query, args)

    async def transaction(self, readonly: bool = False) -> FakeTransaction:
        self.statements.append("BEGIN READ ONLY" if readonly else "BEGIN")
        return FakeTransaction(self)

    async def release(self) -> None:
        self.release_count += 1
        if self.fail_release:
            raise RuntimeError("release failed")

    def count(self, statement: str) -> int:
        return self.statements.count(statement)


class FakeDatabase(Database):
    def __init__(self, result_factory: ResultFactory = default_result) -> None:
        self.result_factory = result_factory
        self.connections: List[FakeConnection] = []
        self.init_kwargs: Optional[Dict[str, Any]] = None
        self.closed = False
        self.fail_execute = False
        self.gate: Optional[asyncio.Event] = None

    async def init(self, *args: Any, **kwargs: Any) -> None:
        self.init_kwargs = kwargs

    async def connection(self) -> FakeConnection:
        conn = FakeConnection(self.result_factory)
        conn.fail_execute = self.fail_execute
        conn.gate = self.gate
        self.connections.append(conn)
        return conn

    async def close(self) -> None:
        self.closed = True

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


@pytest.fixture()
def database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture()
def registry() -> TransactionRegistry:
    return TransactionRegistry(timeout_ms=15000, monitor_interval_ms=5000, enable_monitor=False)


StageFn = Callable[[TransactionRegistry, str], Awaitable[FakeConnection]]


@pytest.fixture()
def stage() -> StageFn:
    """Register a fresh transaction on its own fake connection."""

    async def _stage(registry: TransactionRegistry, id: str) -> FakeConnection:
        conn = FakeConnection()
        transaction = await conn.transaction()
        registry.add(id, conn, transaction, "UPDATE t SET x = 1")
        return conn

    return _stage
