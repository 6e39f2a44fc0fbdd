"""
Bounded retry loop around a unit of work.

Each attempt opens a fresh session, runs the work and commits. Lost
compare-and-swap races and lock / serialization failures raised by the
database are retried with exponential backoff; once the budget is spent
the caller gets a `ContentionError`.
"""

from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from checkin.config import Settings, get_settings
from checkin.exceptions import ContentionError, TransactionConflict
from checkin.utils.logger import logger

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected / lock_not_available
RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}
RETRYABLE_MESSAGES = ("database is locked", "database table is locked", "deadlock detected")


def is_retryable_db_error(exc: DBAPIError) -> bool:
    if isinstance(exc, IntegrityError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(marker in message for marker in RETRYABLE_MESSAGES)


def _log_retry(label: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        reason = outcome.exception() if outcome is not None else None
        logger.debug(f"{label}: attempt {retry_state.attempt_number} conflicted ({reason}), retrying")

    return before_sleep


async def run_in_transaction(
    session_maker: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    label: str = "transaction",
    settings: Optional[Settings] = None,
) -> T:
    """
    Run `work` in its own transaction, retrying on conflict.

    Domain errors raised by `work` abort the transaction and propagate
    unchanged; nothing is committed for a failed attempt.
    """
    settings = settings or get_settings()
    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TransactionConflict),
            stop=stop_after_attempt(settings.transaction_max_attempts),
            wait=wait_exponential(
                multiplier=settings.transaction_backoff_initial_seconds,
                max=settings.transaction_backoff_max_seconds,
            ) + wait_random(0, settings.transaction_backoff_initial_seconds),
            before_sleep=_log_retry(label),
            reraise=True,
        ):
            with attempt:
                async with session_maker() as session:
                    try:
                        result = await work(session)
                        await session.commit()
                    except DBAPIError as exc:
                        if is_retryable_db_error(exc):
                            raise TransactionConflict(str(exc.orig)) from exc
                        raise
    except TransactionConflict as exc:
        logger.warning(
            f"{label}: gave up after {settings.transaction_max_attempts} attempts ({exc})"
        )
        raise ContentionError("The system is busy, please try again.") from exc
    return result
