"""At-most-once bookkeeping for expiry notifications.

A notification is identified by ``(type, reference_id, recipient)``. The
notification log in the database is the durable record; the ledger adds an
in-process reservation so two workers cannot both pass the "not yet sent"
check for the same tuple before either has written its record.
"""

import threading
from dataclasses import dataclass
from typing import Optional, Set

from hosting_notifier.domain.models import DispatchRecord, DispatchStatus
from hosting_notifier.logging import get_logger
from hosting_notifier.persistence import NotificationLogRepository, get_session
from hosting_notifier.utils.timestamps import utc_now

logger = get_logger(__name__, component="ledger")


@dataclass(frozen=True)
class LedgerKey:
    type: str
    reference_id: int
    recipient: str

    def normalized(self) -> "LedgerKey":
        return LedgerKey(self.type, self.reference_id, self.recipient.strip().lower())


class NotificationLedger:
    """Check-then-reserve over the notification log.

    Usage::

        if ledger.check_and_reserve(key):
            try:
                ...send...
                ledger.complete(key, DispatchStatus.SENT)
            except SomeError as e:
                ledger.complete(key, DispatchStatus.FAILED, str(e))

    A reservation that is never completed (e.g. the send raised something
    unexpected) must be released with :meth:`release`.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight: Set[LedgerKey] = set()

    def check_and_reserve(self, key: LedgerKey) -> bool:
        """True if the caller now owns the right to send for ``key``.

        False when a record already exists or another worker holds the
        reservation.

        Raises:
            PersistenceError: If the log cannot be read; nothing is reserved
        """
        norm = key.normalized()
        with self._lock:
            if norm in self._in_flight:
                return False

            with get_session() as session:
                if NotificationLogRepository(session).exists(
                    key.type, key.reference_id, key.recipient
                ):
                    return False

            self._in_flight.add(norm)
            return True

    def complete(
        self,
        key: LedgerKey,
        status: DispatchStatus,
        error: Optional[str] = None,
    ) -> DispatchRecord:
        """Write the outcome and drop the reservation."""
        try:
            return record_dispatch(key, status, error)
        finally:
            self.release(key)

    def release(self, key: LedgerKey) -> None:
        with self._lock:
            self._in_flight.discard(key.normalized())

    def is_reserved(self, key: LedgerKey) -> bool:
        with self._lock:
            return key.normalized() in self._in_flight


def record_dispatch(
    key: LedgerKey,
    status: DispatchStatus,
    error: Optional[str] = None,
) -> DispatchRecord:
    """Append one record in its own transaction.

    Also used directly by paths that do not go through the ledger check
    (manual triggers and recurring rules).
    """
    record = DispatchRecord(
        type=key.type,
        reference_id=key.reference_id,
        recipient=key.recipient,
        status=status,
        error=error,
        sent_at=utc_now(),
    )
    with get_session() as session:
        stored = NotificationLogRepository(session).append(record)

    logger.debug(
        "Dispatch recorded",
        extra={
            "event": "ledger.recorded",
            "ledger_type": key.type,
            "reference_id": key.reference_id,
            "status": stored.status,
        },
    )
    return stored
