"""
Consistency coordinator: the unit of work behind every circulation operation.

A unit of work is a plain function that receives a session, performs its
reads and writes through the repositories, and returns a result. The
coordinator commits when it returns, rolls back when it raises, and retries
only failures the store reports as lock contention, serialization conflicts
or statement timeouts. Nothing a unit of work writes survives a failure.
Lookups and listings go through ``read``, which never takes the write lock.
"""

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from ..config import ServerConfig, get_config
from .repository import (
    ConflictError,
    InvariantViolationError,
    RepositoryException,
    TransactionTimeoutError,
)
from .session import DatabaseManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available, query_canceled
RETRYABLE_PG_CODES = frozenset({"40001", "40P01", "55P03", "57014"})
RETRYABLE_SQLITE_MESSAGES = ("database is locked", "database table is locked", "database is busy")
UNIQUE_VIOLATION_PG_CODE = "23505"
CHECK_VIOLATION_PG_CODE = "23514"


def is_retryable_error(error: DBAPIError) -> bool:
    """True for store failures that a fresh attempt may get past."""
    orig = error.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code is not None:
        return code in RETRYABLE_PG_CODES
    message = str(orig).lower()
    return any(fragment in message for fragment in RETRYABLE_SQLITE_MESSAGES)


def is_unique_violation(error: IntegrityError) -> bool:
    """True when a primary key or unique index rejected the write."""
    orig = error.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code is not None:
        return code == UNIQUE_VIOLATION_PG_CODE
    message = str(orig).lower()
    return "unique constraint" in message or "duplicate key" in message


def is_check_violation(error: IntegrityError) -> bool:
    orig = error.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code is not None:
        return code == CHECK_VIOLATION_PG_CODE
    return "check constraint" in str(orig).lower()


class ConsistencyCoordinator:
    """
    Runs units of work atomically within the configured transaction budgets.

    - wait budget (``transaction_max_wait_ms``): total time spent acquiring the
      store across attempts; once spent, no further retry is made
    - execution budget (``transaction_timeout_ms``): time one attempt may run;
      an attempt that overruns is rolled back instead of committed
    """

    def __init__(self, db_manager: DatabaseManager, config: ServerConfig | None = None):
        self.db_manager = db_manager
        self.config = config or db_manager.config or get_config()

    def run(self, operation: str, work: Callable[[Session], T]) -> T:
        """
        Execute ``work`` in one transaction and commit its result.

        Args:
            operation: Name used in logs and error messages
            work: Unit of work; receives the transaction's session

        Returns:
            Whatever ``work`` returned

        Raises:
            RepositoryException: Any typed failure raised by ``work``
            ConflictError: A unique constraint lost a race with another writer
            InvariantViolationError: A constraint other than a unique key rejected the write
            TransactionTimeoutError: Wait or execution budget exhausted
        """
        return self._execute(operation, work, read_only=False)

    def read(self, operation: str, work: Callable[[Session], T]) -> T:
        """
        Execute a read-only ``work`` without taking the write lock.

        The transaction is always rolled back; anything ``work`` stages is
        discarded. Retry and budget handling match ``run``.
        """
        return self._execute(operation, work, read_only=True)

    def _execute(self, operation: str, work: Callable[[Session], T], read_only: bool) -> T:
        wait_deadline = time.monotonic() + self.config.transaction_max_wait
        attempt = 0

        while True:
            attempt += 1
            session = self.db_manager.create_session(read_only=read_only)
            started = time.monotonic()
            try:
                self.db_manager.apply_statement_timeout(session, self.config.transaction_timeout_ms)
                result = work(session)
                if not read_only:
                    session.flush()

                elapsed = time.monotonic() - started
                if elapsed > self.config.transaction_timeout:
                    raise TransactionTimeoutError(
                        f"{operation} exceeded its execution budget "
                        f"({elapsed * 1000:.0f}ms > {self.config.transaction_timeout_ms}ms)"
                    )

                if read_only:
                    session.rollback()
                else:
                    session.commit()
                logger.debug("%s finished on attempt %d", operation, attempt)
                return result

            except InvariantViolationError:
                session.rollback()
                logger.exception("Copy invariant violated during %s", operation)
                raise
            except RepositoryException:
                session.rollback()
                raise
            except IntegrityError as e:
                session.rollback()
                if is_unique_violation(e):
                    raise ConflictError(f"{operation} conflicts with an existing record") from e
                if is_check_violation(e):
                    logger.exception("Store rejected counters during %s", operation)
                    raise InvariantViolationError(
                        f"{operation} would break a copy-counter invariant"
                    ) from e
                logger.exception("Store rejected a write during %s", operation)
                raise InvariantViolationError(
                    f"{operation} broke a referential or required-field constraint"
                ) from e
            except DBAPIError as e:
                session.rollback()
                if not is_retryable_error(e):
                    raise
                remaining = wait_deadline - time.monotonic()
                if attempt >= self.config.transaction_max_attempts or remaining <= 0:
                    logger.warning(
                        "%s gave up after %d attempt(s): %s", operation, attempt, e.orig
                    )
                    raise TransactionTimeoutError(
                        f"{operation} could not acquire the store within its budget"
                    ) from e
                backoff = min(remaining, random.uniform(0.01, 0.05) * 2 ** (attempt - 1))
                logger.warning(
                    "%s hit a retryable store failure, retrying in %.3fs (attempt %d)",
                    operation,
                    backoff,
                    attempt,
                )
                time.sleep(backoff)
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
