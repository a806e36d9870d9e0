from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from pgstage.database import Connection, Database, QueryResult, Transaction
from pgstage.errors import (
    ConcurrencyLimitError,
    ExecutionError,
    NotFoundError,
    PgStageError,
    ValidationError,
)
from pgstage.registry import TransactionRegistry
from pgstage.responses import (
    Response,
    SuccessResponse,
    WarningResponse,
    error_response,
)
from pgstage.statements import is_read_only_query, operation_type, preview
from pgstage.utils import generate_transaction_id, release_quietly

logger = logging.getLogger(__name__)


def format_query_result(result: QueryResult, execution_time_ms: int) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "command": result.command,
        "row_count": result.row_count,
    }
    if result.command == "SELECT":
        data["fields"] = [
            {"name": field.name, "type": field.type_oid} for field in result.fields
        ]
    data["execution_time_ms"] = execution_time_ms
    if result.command == "SELECT":
        data["rows"] = result.rows
    return data


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def _rollback_quietly(transaction: Optional[Transaction]) -> None:
    if transaction is None:
        return

    try:
        await transaction.rollback()
    except Exception:
        logger.exception("Failed to roll back after statement error")


class StagedExecutor:
    """Runs read-only statements to completion and stages write statements.

    A staged write keeps its connection checked out inside ``registry``
    until :meth:`commit` or :meth:`rollback` is called for the returned id,
    or the registry times it out or shuts down.
    """

    def __init__(
        self,
        database: Database,
        registry: TransactionRegistry,
        max_concurrent_transactions: int,
    ) -> None:
        self.database = database
        self.registry = registry
        self.max_concurrent_transactions = max_concurrent_transactions
        self._pending = 0

    def _is_open(self, transaction_id: str) -> bool:
        entry = self.registry.get(transaction_id)
        return entry is not None and entry.active

    async def execute_query(self, sql: str) -> Response:
        if not is_read_only_query(sql):
            return error_response(
                ValidationError(
                    "Only SELECT, WITH, EXPLAIN or SHOW statements can be run as "
                    "queries. Use execute_dml_ddl_dcl_tcl to modify data."
                ),
                query_type="non-select",
            )

        logger.info("Executing read-only query", extra={"sql": preview(sql)})
        try:
            conn = await self.database.connection()
        except Exception as e:
            logger.exception("Failed to acquire a connection")
            return error_response(ExecutionError(str(e)), query=sql)

        transaction = None
        try:
            transaction = await conn.transaction(readonly=True)
            started = time.perf_counter()
            result = await conn.execute(sql)
            execution_time_ms = _elapsed_ms(started)
            await transaction.commit()
        except Exception as e:
            await _rollback_quietly(transaction)
            logger.warning("Read-only query failed", extra={"error": str(e)})
            return error_response(ExecutionError(str(e)), query=sql)
        finally:
            await release_quietly(conn)

        logger.info(
            "Query completed",
            extra={"row_count": result.row_count, "execution_time_ms": execution_time_ms},
        )
        return SuccessResponse(data=format_query_result(result, execution_time_ms))

    async def execute_write(self, sql: str) -> Response:
        if is_read_only_query(sql):
            return WarningResponse(
                message="Use execute_query for read-only statements. "
                "This operation is for statements that modify the database.",
                data={"query_type": "select", "code": ValidationError.code},
            )

        # The slot is reserved before the first suspension point so that
        # interleaved stagings cannot overshoot the limit.
        if self.registry.count + self._pending >= self.max_concurrent_transactions:
            logger.warning(
                "Concurrent transaction limit reached",
                extra={"limit": self.max_concurrent_transactions},
            )
            return error_response(
                ConcurrencyLimitError(self.max_concurrent_transactions)
            )

        self._pending += 1
        try:
            return await self._stage(sql)
        finally:
            self._pending -= 1

    async def _stage(self, sql: str) -> Response:
        logger.info("Staging write statement", extra={"sql": preview(sql)})
        try:
            conn: Connection = await self.database.connection()
        except Exception as e:
            logger.exception("Failed to acquire a connection")
            return error_response(ExecutionError(str(e)), query=sql)

        staged = False
        transaction = None
        try:
            transaction = await conn.transaction()
            started = time.perf_counter()
            result = await conn.execute(sql)
            execution_time_ms = _elapsed_ms(started)

            transaction_id = generate_transaction_id()
            self.registry.add(transaction_id, conn, transaction, sql)
            staged = True
        except Exception as e:
            await _rollback_quietly(transaction)
            logger.warning("Write statement failed", extra={"error": str(e)})
            return error_response(ExecutionError(str(e)), query=sql)
        finally:
            if not staged:
                await release_quietly(conn)

        operation = operation_type(sql)
        return SuccessResponse(
            message=f"{operation} executed. Commit or roll back transaction "
            f"{transaction_id} to finish it.",
            data={
                "transaction_id": transaction_id,
                "operation_type": operation,
                "rows_affected": result.row_count,
                "execution_time_ms": execution_time_ms,
                "timeout_ms": self.registry.timeout_ms,
            },
        )

    async def commit(self, transaction_id: str) -> Response:
        if not self._is_open(transaction_id):
            return error_response(
                NotFoundError(transaction_id), transaction_id=transaction_id
            )

        try:
            await self.registry.commit_and_remove(transaction_id)
        except PgStageError as e:
            return error_response(e, transaction_id=transaction_id)

        return SuccessResponse(
            message="Transaction committed",
            data={"transaction_id": transaction_id},
        )

    async def rollback(self, transaction_id: str) -> Response:
        if not self._is_open(transaction_id):
            return error_response(
                NotFoundError(transaction_id), transaction_id=transaction_id
            )

        await self.registry.rollback_and_remove(
            transaction_id, "user", "rollback requested"
        )
        return SuccessResponse(
            message="Transaction rolled back",
            data={"transaction_id": transaction_id},
        )
