from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class TimeoutMonitor:
    """Periodically await ``callback`` on the running event loop.

    The monitor is a plain task, so it never holds the process open: the
    owner stops it explicitly and ``asyncio.run`` cancels it on loop exit.
    """

    _task: Optional[asyncio.Task[None]]
    _sweep: Optional[asyncio.Future[Any]]

    def __init__(
        self, callback: Callable[[], Awaitable[Any]], interval_ms: int
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("Monitor interval must be positive.")

        self._callback = callback
        self.interval_ms = interval_ms
        self._task = None
        self._sweep = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            self._task.cancel()

        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="pgstage-timeout-monitor"
        )
        logger.info(
            "Transaction monitor started",
            extra={"interval_ms": self.interval_ms},
        )

    def stop(self) -> None:
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        logger.info("Transaction monitor stopped")

    async def join(self) -> None:
        """Wait for a sweep that was already running when the monitor stopped."""
        sweep = self._sweep
        if sweep is None:
            return

        try:
            await sweep
        except asyncio.CancelledError:
            if not sweep.cancelled():
                raise
        except Exception:
            logger.exception("Transaction monitor tick failed")

    async def _run(self) -> None:
        interval = self.interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            # A sweep that has started finishes even if the monitor is stopped;
            # join() waits for it.
            self._sweep = asyncio.ensure_future(self._callback())
            try:
                await asyncio.shield(self._sweep)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Transaction monitor tick failed")
