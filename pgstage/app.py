from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type

from pgstage import schema
from pgstage.config import Settings
from pgstage.database import Database
from pgstage.errors import ValidationError
from pgstage.handlers import StagedExecutor
from pgstage.postgresql import PostgresqlDatabasePool
from pgstage.registry import TransactionRegistry
from pgstage.responses import Response, error_response
from pgstage.utils import release_quietly

logger = logging.getLogger(__name__)

CHECK_CONNECTION = "SELECT current_database() AS db_name"

Handler = Callable[[Mapping[str, Any]], Awaitable[Response]]


class Application:
    """Owns the pool, the transaction registry and the named operations."""

    def __init__(self, settings: Settings, database: Optional[Database] = None) -> None:
        self.settings = settings
        self.database = database if database is not None else PostgresqlDatabasePool()
        self.registry = TransactionRegistry(
            settings.transaction_timeout_ms,
            settings.monitor_interval_ms,
            settings.enable_transaction_monitor,
        )
        self.executor = StagedExecutor(
            self.database, self.registry, settings.max_concurrent_transactions
        )
        self._started = False
        self._closed = False
        self._operations: Dict[str, Handler] = {
            "execute_query": lambda args: self.executor.execute_query(
                _require(args, "sql")
            ),
            "execute_dml_ddl_dcl_tcl": lambda args: self.executor.execute_write(
                _require(args, "sql")
            ),
            "execute_commit": lambda args: self.executor.commit(
                _require(args, "transaction_id")
            ),
            "execute_rollback": lambda args: self.executor.rollback(
                _require(args, "transaction_id")
            ),
            "list_tables": lambda args: schema.list_tables(self.database),
            "describe_table": lambda args: schema.describe_table(
                self.database, _require(args, "table_name")
            ),
        }

    @property
    def operations(self) -> List[str]:
        return list(self._operations)

    async def start(self) -> None:
        if self._started:
            return

        await self.database.init(**self.settings.pool_options())
        self.registry.start()
        self._started = True
        logger.info(
            "Started",
            extra={
                "database_url": self.settings.redacted_database_url,
                "transaction_timeout_ms": self.settings.transaction_timeout_ms,
                "max_concurrent_transactions": self.settings.max_concurrent_transactions,
            },
        )

    async def check_connection(self) -> Optional[str]:
        """Run a trivial query and return the name of the connected database."""
        conn = await self.database.connection()
        try:
            result = await conn.execute(CHECK_CONNECTION)
        finally:
            await release_quietly(conn)
        return result.rows[0].get("db_name") if result.rows else None

    async def dispatch(self, name: str, arguments: Mapping[str, Any]) -> Response:
        handler = self._operations.get(name)
        if handler is None:
            return error_response(ValidationError(f"Unknown operation: {name}"))

        try:
            return await handler(arguments)
        except ValidationError as e:
            return error_response(e)
        except Exception as e:
            logger.exception("Operation failed", extra={"operation": name})
            return error_response(e)

    async def close(self) -> None:
        if self._closed:
            return

        self._closed = True
        await self.registry.destroy()
        await self.database.close()
        logger.info("Shut down")

    async def __aenter__(self) -> Application:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.close()


def _require(arguments: Mapping[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing required argument: {key}")
    return value
