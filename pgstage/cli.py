"""Process entry point: start the application and tear it down on a signal."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, Dict, Optional, Sequence

import typer

from pgstage.app import Application
from pgstage.config import get_settings
from pgstage.log import configure_logging

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

cli = typer.Typer(
    name="pgstage",
    help="Serve staged PostgreSQL access until SIGINT or SIGTERM.",
    add_completion=False,
)


async def serve(
    application: Application,
    *,
    ready: Optional[asyncio.Event] = None,
    signals: Sequence[signal.Signals] = SHUTDOWN_SIGNALS,
) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def _request_stop(signum: signal.Signals) -> None:
        logger.info("Received signal, shutting down", extra={"signal": signum.name})
        stop.set()

    for signum in signals:
        loop.add_signal_handler(signum, _request_stop, signum)
    try:
        await application.start()
        database_name = await application.check_connection()
        logger.info("Database connection verified", extra={"database": database_name})
        if ready is not None:
            ready.set()
        await stop.wait()
    finally:
        for signum in signals:
            loop.remove_signal_handler(signum)
        await application.close()


@cli.command()
def run(
    database_url: Optional[str] = typer.Argument(
        None, help="PostgreSQL URL; defaults to DATABASE_URL"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
) -> None:
    settings = get_settings()
    overrides: Dict[str, Any] = {}
    if database_url:
        overrides["database_url"] = database_url
    if log_level:
        overrides["log_level"] = log_level
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(settings)
    try:
        asyncio.run(serve(Application(settings)))
    except Exception:
        logger.exception("Server stopped with an error")
        raise typer.Exit(code=1)


def main() -> None:
    cli()
