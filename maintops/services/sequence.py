"""
Sequence allocator - unique, strictly increasing, human-readable identifiers.

Two backing strategies share one atomicity contract:

- CounterStrategy keeps an explicit Counter row per key (asset codes).
  The row is read FOR UPDATE and written back with a compare-and-set, so a
  concurrent increment is detected even where the store ignores row locks.
- MaxScanStrategy derives the next value from the highest identifier already
  stored under the key (date-bucketed work order numbers). It must run in the
  same unit of work that inserts the new entity; the UNIQUE constraint on the
  identifier column turns a concurrent duplicate into a retryable conflict.

Either way the allocator never hands out the same identifier twice for a key.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from maintops import config
from maintops.database import run_atomic
from maintops.models.domain import Counter, WorkOrder
from maintops.services.errors import ConflictError, UnknownKeyError

logger = logging.getLogger(__name__)

WORK_ORDER_PREFIX = "WO"


def format_identifier(key: str, value: int, width: Optional[int] = None) -> str:
    """
    Format KEY-000042. The suffix is zero-padded to ``width`` and widens
    past it instead of wrapping or truncating.
    """
    if value < 1:
        raise ValueError(f"Sequence values start at 1, got {value}")
    width = config.SEQUENCE_WIDTH if width is None else width
    return f"{key}-{value:0{width}d}"


def parse_sequence(identifier: str) -> int:
    """Numeric suffix of an identifier produced by format_identifier."""
    return int(identifier.rsplit("-", 1)[-1])


def work_order_key(moment: datetime) -> str:
    """Daily bucket for work order numbers: WO-YYYYMMDD."""
    return f"{WORK_ORDER_PREFIX}-{moment:%Y%m%d}"


class SequenceStrategy:
    """Claims the next value for a key inside the caller's unit of work."""

    def claim_next(self, db: Session, key: str) -> int:
        raise NotImplementedError


class CounterStrategy(SequenceStrategy):
    """
    Explicit counter rows.

    With ``require_provisioned`` the counter must already exist (created by an
    administrative action such as defining an asset type); otherwise a missing
    counter is created on first use.
    """

    def __init__(self, require_provisioned: bool = True):
        self.require_provisioned = require_provisioned

    def claim_next(self, db: Session, key: str) -> int:
        counter = db.execute(
            select(Counter).where(Counter.key == key).with_for_update()
        ).scalar_one_or_none()

        if counter is None:
            if self.require_provisioned:
                raise UnknownKeyError(key)
            # A concurrent first allocation trips the unique key at flush
            counter = Counter(key=key, value=0)
            db.add(counter)
            db.flush()

        current = counter.value
        result = db.execute(
            update(Counter)
            .where(Counter.key == key, Counter.value == current)
            .values(value=current + 1)
        )
        if result.rowcount != 1:
            raise ConflictError(f"Counter {key!r} moved past {current} during allocation")
        return current + 1


class MaxScanStrategy(SequenceStrategy):
    """
    Next value = highest stored suffix under ``key`` + 1.

    ``column`` is the identifier column to scan, e.g. WorkOrder.number.
    Ordering by length first keeps widened suffixes above padded ones.
    """

    def __init__(self, column):
        self.column = column

    def claim_next(self, db: Session, key: str) -> int:
        latest = db.execute(
            select(self.column)
            .where(self.column.like(f"{key}-%"))
            .order_by(func.length(self.column).desc(), self.column.desc())
            .limit(1)
        ).scalar_one_or_none()

        if latest is None:
            return 1
        return parse_sequence(latest) + 1


class SequenceAllocator:
    """Issues identifiers for a key through one backing strategy."""

    def __init__(self, strategy: SequenceStrategy, width: Optional[int] = None,
                 max_retries: Optional[int] = None, retry_delay: Optional[float] = None):
        self.strategy = strategy
        self.width = width
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def next_identifier(self, db: Session, key: str) -> str:
        """
        Claim the next identifier inside the caller's open unit of work.

        Nothing is committed here. The caller commits (or rolls back) the
        claim together with the entity that uses it, and re-runs the whole
        unit on ConflictError.
        """
        if not key:
            raise ValueError("Sequence key must be a non-empty string")
        value = self.strategy.claim_next(db, key)
        identifier = format_identifier(key, value, self.width)
        logger.debug("Allocated %s", identifier)
        return identifier

    def allocate(self, db: Session, key: str) -> str:
        """Allocate one identifier as its own atomic unit, retrying on conflict."""
        return run_atomic(
            db,
            lambda: self.next_identifier(db, key),
            name=f"allocate {key}",
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
        )

    def provision(self, db: Session, key: str) -> Counter:
        """Create the counter for ``key`` at zero if missing. Does not commit."""
        counter = db.execute(select(Counter).where(Counter.key == key)).scalar_one_or_none()
        if counter is None:
            counter = Counter(key=key, value=0)
            db.add(counter)
            db.flush()
        return counter


def asset_code_allocator() -> SequenceAllocator:
    """Asset codes come from counters provisioned with their asset type."""
    return SequenceAllocator(CounterStrategy(require_provisioned=True))


def work_order_number_allocator() -> SequenceAllocator:
    return SequenceAllocator(MaxScanStrategy(WorkOrder.number))
