from __future__ import annotations

import logging
import secrets
import string
import time
from typing import Optional

from pgstage.database import Connection
from pgstage.errors import ReleaseError

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("Negative values have no base36 representation.")

    digits = []
    while True:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
        if not value:
            break
    return "".join(reversed(digits))


def generate_transaction_id() -> str:
    """Return an opaque id like ``tx_lz3k9q1a_4f8g2k0p``.

    The first part is the current time in milliseconds and the second is
    random, so ids never repeat within a process and are safe to log.
    """
    timestamp = to_base36(time.time_ns() // 1_000_000)
    random_part = "".join(secrets.choice(_BASE36) for _ in range(8))
    return f"tx_{timestamp}_{random_part}"


async def release_quietly(connection: Optional[Connection]) -> None:
    """Return ``connection`` to its pool, logging instead of raising on failure.

    Callers use this from cleanup paths, so a failing release must never
    replace the exception (or result) they are already handling.
    """
    if connection is None:
        return

    try:
        await connection.release()
    except Exception:
        logger.exception(
            "Failed to release database connection",
            extra={"code": ReleaseError.code},
        )
