"""Transactional store helpers.

run_in_transaction() gives single-entity workflows all-or-nothing commits
with retry on optimistic-concurrency conflicts. BatchWriter gives bulk jobs
bounded-size commits where a failed flush only loses its own items.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from gymledger.services import settings
from gymledger.services.errors import BatchItemError, TransientStoreConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreConflict(Exception):
    """Raised inside a unit of work to request a retry from run_in_transaction."""


RETRYABLE_ERRORS = (StaleDataError, OperationalError, StoreConflict)


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    max_retries: int | None = None,
    retry_delay: float = 0.05,
) -> T:
    """Run work(db) and commit it as one atomic unit.

    Reads inside work() must come before writes; the version counters on
    members, memberships and daily aggregates detect concurrent writers at
    flush time.

    Args:
        db: Session to run in
        work: Callable performing reads then writes; its result is returned
        max_retries: Attempts before giving up (default: configured value)
        retry_delay: Base back-off between attempts, in seconds

    Returns:
        Whatever work() returned

    Raises:
        TransientStoreConflictError: Conflicts persisted for every attempt
        Any exception raised by work(), after rollback
    """
    attempts = max_retries or settings.max_transaction_retries
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work(db)
            db.commit()
            return result
        except RETRYABLE_ERRORS as e:
            db.rollback()
            if attempt >= attempts:
                logger.error("Store conflict persisted after %d attempts: %s", attempt, e)
                raise TransientStoreConflictError(
                    f"Store conflict persisted after {attempt} attempts: {e}"
                ) from e
            logger.warning("Store conflict on attempt %d/%d, retrying: %s", attempt, attempts, e)
            time.sleep(retry_delay * attempt)
        except Exception:
            db.rollback()
            raise


@dataclass
class PendingUpdate:
    """Deferred attribute assignment on a loaded ORM object."""

    target: Any
    values: dict[str, Any]
    member_id: int | None = None
    membership_id: int | None = None
    expect: dict[str, Any] | None = None

    def still_applies(self) -> bool:
        """Re-read the guarded attributes; an expired target is reloaded from the store."""
        if not self.expect:
            return True
        return all(getattr(self.target, key) == value for key, value in self.expect.items())


@dataclass
class WriteBatch:
    """Operations queued for the next flush."""

    operations: list[PendingUpdate] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.operations)


class BatchWriter:
    """Accumulate updates and commit them in bounded flushes.

    Each flush swaps in a new empty WriteBatch before committing, so the
    operation count of one flush never leaks into the next.

    Updates queued with expect= are re-checked when their flush runs. A
    commit expires every loaded object, so an item queued before an earlier
    flush is re-read at that point; if another writer moved it out of the
    expected state in between, the item is skipped rather than overwritten.
    """

    def __init__(self, db: Session, max_operations: int | None = None):
        self.db = db
        self.max_operations = max_operations or settings.batch_size
        self.committed = 0
        self.skipped = 0
        self.flushes = 0
        self.failures: list[BatchItemError] = []
        self._batch = WriteBatch()

    @property
    def pending(self) -> int:
        return len(self._batch)

    def update(
        self,
        target: Any,
        member_id: int | None = None,
        membership_id: int | None = None,
        expect: dict[str, Any] | None = None,
        **values: Any,
    ) -> None:
        """Queue attribute changes on target; flushes when the batch is full.

        Args:
            expect: Attribute values target must still have when the flush runs
        """
        self._batch.operations.append(
            PendingUpdate(
                target, values, member_id=member_id, membership_id=membership_id, expect=expect
            )
        )
        if len(self._batch) >= self.max_operations:
            self.flush()

    def flush(self) -> int:
        """Apply and commit the current batch.

        Returns:
            Number of operations committed (0 if the batch was empty or failed)
        """
        batch, self._batch = self._batch, WriteBatch()
        if not batch:
            return 0

        applied = 0
        skipped = 0
        try:
            for op in batch.operations:
                if not op.still_applies():
                    logger.info(
                        "Skipping queued update of member %s, membership %s: state changed",
                        op.member_id,
                        op.membership_id,
                    )
                    skipped += 1
                    continue
                for key, value in op.values.items():
                    setattr(op.target, key, value)
                applied += 1
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Batch flush of %d operations failed: %s", len(batch), e)
            for op in batch.operations:
                self.failures.append(
                    BatchItemError(
                        message=f"batch write failed: {e}",
                        member_id=op.member_id,
                        membership_id=op.membership_id,
                    )
                )
            return 0

        self.flushes += 1
        self.committed += applied
        self.skipped += skipped
        logger.debug(
            "Batch flush %d committed %d operations, skipped %d", self.flushes, applied, skipped
        )
        return applied


__all__ = [
    "StoreConflict",
    "run_in_transaction",
    "BatchWriter",
    "WriteBatch",
    "PendingUpdate",
]
