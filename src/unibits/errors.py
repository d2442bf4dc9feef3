"""Domain error kinds raised by the core services.

Every error carries a stable ``code`` and an HTTP ``status_code``; extra keyword
context (ids, shortfall, ...) is rendered verbatim by the API error handler.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnibitsError(Exception):
    """Base class for all domain errors."""

    code = "error"
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.context}


class NotFoundError(UnibitsError):
    code = "not_found"
    status_code = 404


class ItemUnavailableError(NotFoundError):
    """Shop item is missing or inactive."""

    code = "item_unavailable"


class UnauthorizedError(UnibitsError):
    code = "unauthorized"
    status_code = 403


class InsufficientFundsError(UnibitsError):
    code = "insufficient_funds"
    status_code = 402

    def __init__(self, message: str, *, shortfall: int, **context: Any) -> None:
        super().__init__(message, shortfall=shortfall, **context)
        self.shortfall = shortfall


class AlreadyExistsError(UnibitsError):
    code = "already_exists"
    status_code = 409


class AlreadyOwnedError(AlreadyExistsError):
    code = "already_owned"


class InvalidStateError(UnibitsError):
    code = "invalid_state"
    status_code = 409


class ConfigurationError(UnibitsError):
    code = "configuration_error"
    status_code = 422


class ConflictError(UnibitsError):
    """Concurrent write conflict reported by the database. Safe to retry once."""

    code = "conflict"
    status_code = 409


@asynccontextmanager
async def conflict_guard() -> AsyncIterator[None]:
    """Translate lock/serialization failures from the database into ConflictError."""
    try:
        yield
    except OperationalError as exc:
        raise ConflictError("Concurrent update conflict, please retry") from exc


async def retry_on_conflict(db: AsyncSession, operation: Callable[[], Awaitable[T]]) -> T:
    """Run ``operation``; on ConflictError roll back and run it exactly once more."""
    try:
        return await operation()
    except ConflictError:
        logger.info("Write conflict, retrying once")
        await db.rollback()
        return await operation()
