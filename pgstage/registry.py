from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from pgstage.database import Connection, Transaction
from pgstage.errors import ExecutionError, NotFoundError
from pgstage.monitor import TimeoutMonitor
from pgstage.utils import release_quietly

logger = logging.getLogger(__name__)


class TransactionState(Enum):
    ACTIVE = "active"
    TERMINATING = "terminating"


@dataclass
class TrackedTransaction:
    id: str
    connection: Connection
    transaction: Transaction
    sql: str
    start_time: float = field(default_factory=time.monotonic)
    state: TransactionState = TransactionState.ACTIVE
    released: bool = False

    @property
    def age(self) -> float:
        return time.monotonic() - self.start_time

    @property
    def active(self) -> bool:
        return self.state is TransactionState.ACTIVE


class TransactionRegistry:
    """Open, uncommitted transactions keyed by id.

    The registry owns the connection of every entry it holds. Whichever path
    ends a transaction (commit, rollback, timeout or shutdown) goes through
    :meth:`remove`, which hands the connection back to its pool exactly once.
    """

    _transactions: Dict[str, TrackedTransaction]

    def __init__(
        self, timeout_ms: int, monitor_interval_ms: int, enable_monitor: bool = True
    ) -> None:
        self._transactions = {}
        self.timeout_ms = timeout_ms
        self.enable_monitor = enable_monitor
        self.monitor = TimeoutMonitor(self.rollback_expired, monitor_interval_ms)

    def start(self) -> None:
        if self.enable_monitor:
            self.monitor.start()

    @property
    def count(self) -> int:
        return len(self._transactions)

    def ids(self) -> List[str]:
        return list(self._transactions)

    def has(self, id: str) -> bool:
        return id in self._transactions

    def get(self, id: str) -> Optional[TrackedTransaction]:
        return self._transactions.get(id)

    def add(
        self, id: str, connection: Connection, transaction: Transaction, sql: str
    ) -> TrackedTransaction:
        if id in self._transactions:
            raise ValueError(f"Transaction {id} is already registered.")

        entry = self._transactions[id] = TrackedTransaction(
            id=id, connection=connection, transaction=transaction, sql=sql
        )
        logger.info("Transaction staged", extra={"transaction_id": id})
        return entry

    async def remove(self, id: str) -> None:
        entry = self._transactions.pop(id, None)
        if entry is None:
            return

        if not entry.released:
            entry.released = True
            await release_quietly(entry.connection)
        logger.info("Transaction removed", extra={"transaction_id": id})

    async def commit_and_remove(self, id: str) -> None:
        entry = self._transactions.get(id)
        if entry is None or not entry.active:
            raise NotFoundError(id)

        entry.state = TransactionState.TERMINATING
        try:
            await entry.transaction.commit()
        except Exception as e:
            logger.error(
                "Failed to commit transaction",
                extra={"transaction_id": id, "error": str(e)},
            )
            raise ExecutionError(f"Commit failed: {e}") from e
        finally:
            await self.remove(id)
        logger.info("Transaction committed", extra={"transaction_id": id})

    async def rollback_and_remove(self, id: str, initiator: str, reason: str) -> None:
        """Roll back and drop ``id``.

        Unknown or already terminating ids are ignored, since a timeout or
        shutdown sweep may lose the race against an explicit commit or
        rollback. Rollback failures are logged and not raised.
        """
        entry = self._transactions.get(id)
        if entry is None or not entry.active:
            logger.info(
                "Ignoring rollback of unknown transaction",
                extra={"transaction_id": id, "initiator": initiator},
            )
            return

        entry.state = TransactionState.TERMINATING
        extra = {"transaction_id": id, "initiator": initiator, "reason": reason}
        try:
            logger.info("Rolling back transaction", extra=extra)
            await entry.transaction.rollback()
            logger.info("Transaction rolled back", extra=extra)
        except Exception:
            logger.exception("Failed to roll back transaction", extra=extra)
        finally:
            await self.remove(id)

    async def rollback_expired(self) -> List[str]:
        expired = []
        for id in self.ids():
            entry = self._transactions.get(id)
            if entry is None or not entry.active:
                continue
            if entry.age * 1000 > self.timeout_ms:
                logger.warning(
                    "Transaction timed out",
                    extra={"transaction_id": id, "timeout_ms": self.timeout_ms},
                )
                expired.append(id)
                await self.rollback_and_remove(id, "automatic", "timed out")
        return expired

    async def destroy(self) -> None:
        self.monitor.stop()
        await self.monitor.join()

        ids = self.ids()
        if ids:
            logger.info(
                "Rolling back open transactions before shutdown",
                extra={"count": len(ids)},
            )
        results = await asyncio.gather(
            *(
                self.rollback_and_remove(id, "shutdown", "system shutting down")
                for id in ids
            ),
            return_exceptions=True,
        )
        for id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to clean up transaction during shutdown",
                    extra={"transaction_id": id},
                    exc_info=result,
                )
