from pgstage.app import Application
from pgstage.config import Settings, get_settings
from pgstage.database import Connection, Database, FieldInfo, QueryResult, Transaction
from pgstage.errors import (
    ConcurrencyLimitError,
    ExecutionError,
    NotFoundError,
    PgStageError,
    ReleaseError,
    ValidationError,
)
from pgstage.handlers import StagedExecutor
from pgstage.monitor import TimeoutMonitor
from pgstage.postgresql import PostgresqlDatabasePool
from pgstage.registry import TrackedTransaction, TransactionRegistry, TransactionState
from pgstage.responses import ErrorResponse, Response, SuccessResponse, WarningResponse
from pgstage.statements import is_read_only_query, operation_type
from pgstage.utils import generate_transaction_id, release_quietly

__all__ = [
    "Application",
    "Settings",
    "get_settings",
    "Database",
    "Connection",
    "Transaction",
    "QueryResult",
    "FieldInfo",
    "PostgresqlDatabasePool",
    "PgStageError",
    "ValidationError",
    "NotFoundError",
    "ConcurrencyLimitError",
    "ExecutionError",
    "ReleaseError",
    "TransactionRegistry",
    "TrackedTransaction",
    "TransactionState",
    "TimeoutMonitor",
    "StagedExecutor",
    "Response",
    "SuccessResponse",
    "WarningResponse",
    "ErrorResponse",
    "is_read_only_query",
    "operation_type",
    "generate_transaction_id",
    "release_quietly",
]
