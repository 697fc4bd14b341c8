"""
Detached (write-behind) persistence of successful conversions.

The request path only assigns an id and enqueues; a dedicated writer
thread performs the INSERT. Write latency and write failures therefore
never reach the HTTP response: a failed write is logged and dropped.
"""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from code_converter.logging_config import logger
from code_converter.models import Conversion
from code_converter.services.conversion_service import ConversionResult

# 2024-01-01T00:00:00Z
_ID_EPOCH_MS = 1_704_067_200_000
_SEQUENCE_BITS = 10
_SEQUENCE_MASK = (1 << _SEQUENCE_BITS) - 1


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class RecordIdGenerator:
    """
    Time-ordered integer ids: (ms since 2024-01-01) << 10 | sequence.

    Ids stay below 2**53 for a few centuries, so JavaScript clients can
    hold them as plain numbers. Unique within one process.
    """

    def __init__(self, clock_ms: Callable[[], int] = _wall_clock_ms) -> None:
        self._clock_ms = clock_ms
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def next_id(self) -> int:
        with self._lock:
            # Never step backwards if the wall clock does.
            now = max(self._clock_ms() - _ID_EPOCH_MS, self._last_ms)
            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & _SEQUENCE_MASK
                if self._sequence == 0:
                    # Sequence exhausted for this millisecond; borrow the next one.
                    now += 1
            else:
                self._sequence = 0
            self._last_ms = now
            return (now << _SEQUENCE_BITS) | self._sequence


@dataclass(frozen=True)
class ConversionRecord:
    id: int
    source_text: str
    result: str
    model: str
    tokens: Optional[int]
    elapsed_ms: int
    input_length: int
    created_at: datetime

    def to_model(self) -> Conversion:
        return Conversion(
            id=self.id,
            source_text=self.source_text,
            result=self.result,
            model=self.model,
            tokens=self.tokens,
            elapsed_ms=self.elapsed_ms,
            input_length=self.input_length,
            created_at=self.created_at,
        )


class HistoryWriter:
    """
    Queue + writer thread; `submit()` never blocks on the store.

    Records stay visible through `pending_record()` until their INSERT has
    committed, and `discard()` can withdraw one that has not been written
    yet, so an id handed to a client is readable and deletable at once.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        id_generator: RecordIdGenerator | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.id_generator = id_generator or RecordIdGenerator()
        self._queue: "queue.Queue[ConversionRecord | None]" = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        # Signalled whenever the record being written is settled.
        self._settled = threading.Condition(self._lock)
        self._pending: dict[int, ConversionRecord] = {}
        self._in_flight: int | None = None
        self._stopped = False

    def _ensure_thread(self) -> None:
        # Caller holds self._lock.
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._run, name="history-writer", daemon=True
        )
        self._thread.start()

    def start(self) -> None:
        """(Re)open the writer; called by the application lifespan."""
        with self._lock:
            self._stopped = False
            self._ensure_thread()

    def submit(self, source_text: str, result: ConversionResult) -> Optional[ConversionRecord]:
        """
        Assign an id and timestamp, enqueue the write, return immediately.

        Returns None when the writer has been shut down.
        """
        with self._lock:
            if self._stopped:
                logger.warning("history writer is stopped; conversion not saved")
                return None
            self._ensure_thread()

            record = ConversionRecord(
                id=self.id_generator.next_id(),
                source_text=source_text,
                result=result.result,
                model=result.model,
                tokens=result.tokens,
                elapsed_ms=result.elapsed_ms,
                input_length=len(source_text),
                created_at=datetime.now(timezone.utc),
            )
            self._pending[record.id] = record
            self._queue.put(record)
        return record

    def pending_record(self, record_id: int) -> Optional[ConversionRecord]:
        """The queued record with this id, if its INSERT has not committed yet."""
        with self._lock:
            return self._pending.get(record_id)

    def discard(self, record_id: int) -> bool:
        """
        Withdraw a record that has not been written yet.

        Returns False when the id is unknown or already committed; the
        caller then deletes it from the store.
        """
        with self._lock:
            while self._in_flight == record_id:
                self._settled.wait()
            return self._pending.pop(record_id, None) is not None

    def flush(self) -> None:
        """Block until every submitted record has been handled."""
        self._queue.join()

    def pending(self) -> int:
        return self._queue.qsize()

    def shutdown(self, timeout: float = 10.0) -> None:
        """Stop accepting records, drain the queue, stop the thread."""
        with self._lock:
            self._stopped = True
            thread = self._thread
            if thread is None or not thread.is_alive():
                return
            self._queue.put(None)
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning(
                "history writer did not drain within %.1fs (%d pending)",
                timeout,
                self.pending(),
            )

    def _run(self) -> None:
        while True:
            record = self._queue.get()
            try:
                if record is None:
                    return
                self._persist(record)
            finally:
                self._queue.task_done()

    def _persist(self, record: ConversionRecord) -> None:
        with self._lock:
            if record.id not in self._pending:
                logger.info("conversion %s was deleted before it was saved", record.id)
                return
            self._in_flight = record.id
        try:
            with self.session_factory() as db:
                db.add(record.to_model())
                db.commit()
        except Exception:
            # Best-effort write: the client already has its result.
            logger.exception("failed to save conversion %s to history", record.id)
            return
        finally:
            with self._lock:
                self._pending.pop(record.id, None)
                self._in_flight = None
                self._settled.notify_all()
        logger.info("conversion %s saved to history", record.id)


__all__ = ["ConversionRecord", "HistoryWriter", "RecordIdGenerator"]
