# entitlements/ledger.py
"""
Usage ledger: per-account, per-period render and minute counters.

Period keys:
- monthly: "YYYY-MM"
- daily:   "YYYY-MM-DD"

Rollover is implicit. Once the clock crosses a boundary the current key
changes and get() returns a fresh zero record; there is no reset job.

Every write is a compare-and-set against the versions that were read, so
several processes sharing one store never overwrite each other.
apply_if_unchanged() writes one or more period records atomically and
reports a conflict instead of retrying, which lets the enforcer re-decide
against fresh usage. Writers in one process are additionally serialized
per account by a striped lock pool.
"""
from __future__ import annotations

import logging
import math
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

_logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_MAX_RETRIES = 5
DEFAULT_LOCK_STRIPES = 64


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


# =============================================================================
# Errors
# =============================================================================


class InvalidUsageDelta(ValueError):
    """Raised for negative or non-finite usage deltas. This is a caller bug."""
    pass


class LedgerUnavailableError(RuntimeError):
    """
    Transient storage fault.

    Quota checks fail closed on this error: callers must deny the
    operation rather than allow unmetered consumption.
    """
    pass


class LedgerConflictError(LedgerUnavailableError):
    """Compare-and-set kept losing to concurrent writers."""
    pass


# =============================================================================
# Periods and Records
# =============================================================================


class PeriodKind(str, Enum):
    """Usage window granularity."""
    MONTHLY = "monthly"
    DAILY = "daily"


def current_period_key(kind: PeriodKind, now: datetime) -> str:
    """
    Period key for `now`.

    Naive datetimes are treated as UTC; aware ones are converted to UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)

    if kind == PeriodKind.MONTHLY:
        return f"{now.year:04d}-{now.month:02d}"
    return now.date().isoformat()


@dataclass(frozen=True)
class UsageRecord:
    """Accumulated consumption for one account within one period."""
    account_id: str
    period_key: str
    renders_used: int = 0
    minutes_used: float = 0.0
    version: int = 0  # 0 = not yet stored

    def to_dict(self) -> dict:
        return {
            "accountId": self.account_id,
            "period": self.period_key,
            "rendersUsed": self.renders_used,
            "minutesUsed": round(self.minutes_used, 3),
        }


def validate_delta(renders: int, minutes: float) -> None:
    """Reject negative or non-finite deltas."""
    if isinstance(renders, bool) or not isinstance(renders, int):
        raise InvalidUsageDelta(f"renders must be an integer, got {renders!r}")
    if renders < 0:
        raise InvalidUsageDelta(f"renders must be non-negative, got {renders}")
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
        raise InvalidUsageDelta(f"minutes must be a number, got {minutes!r}")
    if not math.isfinite(minutes) or minutes < 0:
        raise InvalidUsageDelta(f"minutes must be finite and non-negative, got {minutes}")


# =============================================================================
# Storage Backends
# =============================================================================


class UsageStore(ABC):
    """
    Storage contract for usage records.

    Implementations raise LedgerUnavailableError when the backend cannot
    be reached.
    """

    @abstractmethod
    def load(self, account_id: str, period_key: str) -> Optional[UsageRecord]:
        """Return the stored record, or None if the period has no usage yet."""
        pass

    @abstractmethod
    def compare_and_set_many(self, entries: Sequence[Tuple[UsageRecord, int]]) -> bool:
        """
        Store every record whose stored version still equals its expected
        version, all or nothing.

        Each entry is (record, expected_version). expected_version 0 means
        "insert; no row exists yet". A stored record takes version
        expected_version + 1. If any entry conflicts, nothing is written.

        Returns:
            True if all written, False on a version conflict
        """
        pass

    def compare_and_set(self, record: UsageRecord, expected_version: int) -> bool:
        """Single-record compare_and_set_many()."""
        return self.compare_and_set_many([(record, expected_version)])


class InMemoryUsageStore(UsageStore):
    """
    Thread-safe in-process store.

    Suitable for tests and single-instance deployments that can afford to
    lose counters on restart.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[Tuple[str, str], UsageRecord] = {}

    def load(self, account_id: str, period_key: str) -> Optional[UsageRecord]:
        with self._lock:
            return self._records.get((account_id, period_key))

    def compare_and_set_many(self, entries: Sequence[Tuple[UsageRecord, int]]) -> bool:
        with self._lock:
            for record, expected_version in entries:
                current = self._records.get((record.account_id, record.period_key))
                current_version = current.version if current else 0
                if current_version != expected_version:
                    return False
            for record, expected_version in entries:
                key = (record.account_id, record.period_key)
                self._records[key] = replace(record, version=expected_version + 1)
            return True

    def clear(self) -> None:
        """Drop all records (for testing)."""
        with self._lock:
            self._records.clear()


# =============================================================================
# Ledger
# =============================================================================


class UsageLedger:
    """
    Usage counters over a UsageStore.

    Attributes:
        store: Storage backend
        clock: Callable returning the current time (for testing)
        max_retries: Compare-and-set attempts before LedgerConflictError
    """

    def __init__(
        self,
        store: UsageStore,
        clock: Clock = utc_now,
        max_retries: int = DEFAULT_MAX_RETRIES,
        lock_stripes: int = DEFAULT_LOCK_STRIPES,
    ):
        self.store = store
        self.clock = clock
        self.max_retries = max_retries
        # Fixed pool: accounts hash onto stripes, so the table never grows.
        self._locks = tuple(threading.RLock() for _ in range(max(1, lock_stripes)))

    def current_period_key(self, kind: PeriodKind, now: Optional[datetime] = None) -> str:
        """Period key for `now` (defaults to one read of the ledger clock)."""
        return current_period_key(kind, now if now is not None else self.clock())

    def get(self, account_id: str, period_key: str) -> UsageRecord:
        """Usage for a period; a zero record if nothing has been recorded."""
        record = self.store.load(account_id, period_key)
        if record is None:
            return UsageRecord(account_id=account_id, period_key=period_key)
        return record

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    @contextmanager
    def account_lock(self, account_id: str) -> Iterator[None]:
        """
        Hold the account's writer lock.

        The lock is re-entrant, so increment() may be called while held.
        It only serializes writers in this process; the store's
        compare-and-set covers writers in other processes.
        """
        with self._locks[hash(account_id) % len(self._locks)]:
            yield

    def apply_if_unchanged(
        self,
        records: Sequence[UsageRecord],
        renders: int = 0,
        minutes: float = 0.0,
    ) -> Optional[List[UsageRecord]]:
        """
        Add usage to each record's period in one atomic write, but only if
        none of them changed since it was read.

        Returns:
            The updated records, or None on a version conflict (re-read,
            re-decide and try again)

        Raises:
            InvalidUsageDelta: If a delta is negative or non-finite
            LedgerUnavailableError: If the store is unreachable
        """
        validate_delta(renders, minutes)

        updated = [
            replace(
                record,
                renders_used=record.renders_used + renders,
                minutes_used=record.minutes_used + float(minutes),
            )
            for record in records
        ]
        entries = [(new, old.version) for new, old in zip(updated, records)]
        if not self.store.compare_and_set_many(entries):
            return None
        return [replace(new, version=old.version + 1) for new, old in zip(updated, records)]

    def increment(
        self,
        account_id: str,
        period_key: str,
        renders: int = 0,
        minutes: float = 0.0,
    ) -> UsageRecord:
        """
        Add usage to a period unconditionally.

        Raises:
            InvalidUsageDelta: If a delta is negative or non-finite
            LedgerConflictError: If compare-and-set kept conflicting
            LedgerUnavailableError: If the store is unreachable
        """
        validate_delta(renders, minutes)

        with self.account_lock(account_id):
            for attempt in range(1, self.max_retries + 1):
                current = self.get(account_id, period_key)
                if renders == 0 and minutes == 0:
                    return current

                written = self.apply_if_unchanged([current], renders, minutes)
                if written is not None:
                    return written[0]

                _logger.info(
                    f"Usage write conflict for {account_id}/{period_key}, retrying",
                    extra={"attempt": attempt},
                )

        raise LedgerConflictError(
            f"Could not record usage for {account_id}/{period_key} "
            f"after {self.max_retries} attempts"
        )
