"""Human-readable, roughly time-sortable identifiers for requests and tickets.

Format: ``<PREFIX>-<base36 millisecond timestamp>-<4 random base36 chars>``.
The generators are pure; uniqueness against stored rows is checked by
:func:`allocate_number`.
"""
from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import ConflictError
from ..core.settings import settings

logger = logging.getLogger(__name__)

REQUEST_PREFIX = "REQ"
TICKET_PREFIX = "TKT"

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SUFFIX_LENGTH = 4


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_number(prefix: str, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}-{to_base36(now_ms)}-{suffix}"


def generate_request_number() -> str:
    return generate_number(REQUEST_PREFIX)


def generate_ticket_number() -> str:
    return generate_number(TICKET_PREFIX)


def allocate_number(
    session: Session,
    column,
    generator: Callable[[], str],
    attempts: int | None = None,
) -> str:
    """Generate a number not yet present in ``column``.

    The check is not atomic with the later insert; the unique constraint on
    the column is the final guard.
    """
    attempts = attempts or settings.NUMBER_ALLOCATION_ATTEMPTS
    for _ in range(attempts):
        candidate = generator()
        exists = session.execute(select(column).where(column == candidate).limit(1)).first()
        if not exists:
            return candidate
        logger.warning("number collision, retrying: %s", candidate)
    raise ConflictError(f"could not allocate a unique number after {attempts} attempts")
