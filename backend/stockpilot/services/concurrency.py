# Overview: Row locking, conditional batch decrements and retry on contention.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InfrastructureError, StaleStockError
from ..extensions import db
from ..models import ProductBatch

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError, StaleStockError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def decrement_batch(batch_id: int, quantity: int) -> None:
    """
    Take `quantity` from a batch only if it still has that much left.

    The guard lives in the UPDATE itself, so two writers racing for the same
    batch cannot both succeed. A miss raises StaleStockError and the caller's
    unit of work is retried from scratch.
    """
    updated = (
        db.session.query(ProductBatch)
        .filter(ProductBatch.id == batch_id, ProductBatch.remaining_quantity >= quantity)
        .update(
            {ProductBatch.remaining_quantity: ProductBatch.remaining_quantity - quantity},
            synchronize_session="fetch",
        )
    )
    if updated != 1:
        raise StaleStockError(f"batch {batch_id} no longer has {quantity} remaining")


def increment_batch(batch_id: int, quantity: int) -> None:
    updated = (
        db.session.query(ProductBatch)
        .filter(
            ProductBatch.id == batch_id,
            ProductBatch.remaining_quantity + quantity <= ProductBatch.initial_quantity,
        )
        .update(
            {ProductBatch.remaining_quantity: ProductBatch.remaining_quantity + quantity},
            synchronize_session="fetch",
        )
    )
    if updated != 1:
        raise StaleStockError(f"batch {batch_id} cannot take back {quantity}")


def _configured_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("STOCK_RETRY_ATTEMPTS", 3))
    return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and StaleStockError (a conditional batch
    decrement lost its race). The session is rolled back before each retry
    and on any other failure, which is re-raised unchanged.
    When contention persists the last attempt surfaces as a 503.
    """
    if attempts is None:
        attempts = _configured_attempts()
    attempts = max(attempts, 1)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise InfrastructureError(
                    "The stock records are busy right now. Please try again.",
                    status_code=503,
                ) from exc
            logger.info("Retrying after contention (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
