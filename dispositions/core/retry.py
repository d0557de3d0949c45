"""
Bounded retry for store operations.

Transient failures (lost connections, timeouts, lock contention) are retried
with exponential backoff: ``retry_base_delay_seconds`` → x2 → x4 ... up to
``retry_attempts`` tries in total. Everything else is converted to
``DatabaseError`` straight away. Domain errors raised inside the operation
(validation, authorization, reference) propagate untouched on the first try.
"""
import time
from typing import Callable, Optional, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from dispositions.config import get_settings
from dispositions.core.exceptions import MESSAGES, DatabaseError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """True for store errors that may succeed on a later attempt."""
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


def _database_error(exc: SQLAlchemyError, context: str) -> DatabaseError:
    if isinstance(exc, IntegrityError):
        return DatabaseError(MESSAGES["DATABASE_CONFLICT"], original=exc)
    if "timeout" in str(exc).lower() or isinstance(exc, PoolTimeoutError):
        return DatabaseError(MESSAGES["DATABASE_TIMEOUT"], original=exc)
    return DatabaseError(f"Database error in {context}", original=exc)


def handle_database_operation(
    db: Session,
    operation: Callable[[], T],
    context: str,
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
) -> T:
    """
    Run ``operation`` with retry on transient store failures.

    The session is rolled back between attempts so each retry starts clean;
    operations must therefore re-apply their changes when called again.
    """
    settings = get_settings()
    attempts = attempts or settings.retry_attempts
    base_delay = settings.retry_base_delay_seconds if base_delay is None else base_delay

    for attempt in range(attempts):
        try:
            return operation()
        except SQLAlchemyError as exc:
            db.rollback()
            if not is_transient(exc) or attempt == attempts - 1:
                logger.error(
                    "database_operation_failed",
                    context=context,
                    attempt=attempt + 1,
                    attempts=attempts,
                    error=str(exc),
                )
                raise _database_error(exc, context) from exc

            delay = base_delay * (2 ** attempt)
            logger.warning(
                "database_operation_retry",
                context=context,
                attempt=attempt + 1,
                attempts=attempts,
                delay_seconds=delay,
                error=str(exc),
            )
            time.sleep(delay)

    # attempts < 1
    raise DatabaseError(f"Database error in {context}")
