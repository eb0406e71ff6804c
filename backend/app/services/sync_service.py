from __future__ import annotations

import logging
import threading
import time
from datetime import date, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.config import settings
from app.core.errors import SyncAlreadyRunning, SyncCancelled
from app.core.logging_config import structured_log
from app.db.session import SessionLocal
from app.services import sync_ledger
from app.services.entity_mapper import (
    DATE_BOUNDED_KINDS,
    EntityKind,
    map_batch,
    parse_kind,
)
from app.services.reconciliation import ReconcileResult, reconcile
from app.services.record_fetcher import HttpRecordFetcher, RecordFetcher
from app.services.sync_ledger import SyncLedger, run_to_dict

logger = logging.getLogger(__name__)


class CancelToken(threading.Event):
    """threading.Event that remembers why it was set."""

    def __init__(self) -> None:
        super().__init__()
        self.reason = 'cancel requested'

    def cancel(self, reason: str) -> None:
        self.reason = reason
        self.set()


def arm_timeout(token: CancelToken, seconds: float) -> threading.Timer | None:
    if seconds <= 0:
        return None
    timer = threading.Timer(seconds, token.cancel, args=(f'timeout after {seconds:g}s',))
    timer.daemon = True
    timer.start()
    return timer


def resolve_window(kind: EntityKind, date_from: date | None, date_to: date | None) -> tuple[date | None, date | None]:
    """Date-bounded kinds need an ordered range; full-table kinds ignore it."""
    if kind not in DATE_BOUNDED_KINDS:
        return None, None
    if date_from is None or date_to is None:
        raise ValueError(f'dateFrom y dateTo son obligatorios para {kind.value}')
    if date_from > date_to:
        raise ValueError('dateFrom no puede ser posterior a dateTo')
    return date_from, date_to


def chunk_windows(date_from: date | None, date_to: date | None, chunk_days: int) -> list[tuple[date | None, date | None]]:
    if date_from is None or date_to is None:
        return [(None, None)]
    step = max(1, int(chunk_days))
    out: list[tuple[date | None, date | None]] = []
    current = date_from
    while current <= date_to:
        end = min(date_to, current + timedelta(days=step - 1))
        out.append((current, end))
        current = end + timedelta(days=1)
    return out


class SyncService:
    """Fetch -> map -> reconcile -> ledger for one entity kind per call.

    Runs of the same kind are serialized by a lock owned by this instance.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        fetcher: RecordFetcher | None = None,
        clock: Clock = utcnow,
        chunk_days: int | None = None,
        lock_wait_seconds: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.fetcher = fetcher if fetcher is not None else HttpRecordFetcher.from_settings()
        self.clock = clock
        self.chunk_days = int(chunk_days if chunk_days is not None else settings.sync_chunk_days)
        self.lock_wait_seconds = float(
            lock_wait_seconds if lock_wait_seconds is not None else settings.sync_lock_wait_seconds
        )
        self._locks = {kind: threading.Lock() for kind in EntityKind}

    def is_running(self, kind: EntityKind | str) -> bool:
        return self._locks[parse_kind(kind)].locked()

    def _acquire(self, kind: EntityKind) -> threading.Lock:
        lock = self._locks[kind]
        if self.lock_wait_seconds > 0:
            acquired = lock.acquire(timeout=self.lock_wait_seconds)
        else:
            acquired = lock.acquire(blocking=False)
        if not acquired:
            raise SyncAlreadyRunning(f'Ya existe una sincronizacion en curso para {kind.value}')
        return lock

    @staticmethod
    def _check_cancel(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SyncCancelled(getattr(cancel_event, 'reason', None) or 'cancel requested')

    def run_sync(
        self,
        kind: EntityKind | str,
        date_from: date | None = None,
        date_to: date | None = None,
        user_id: str = 'system',
        cancel_event: threading.Event | None = None,
    ) -> dict:
        kind = parse_kind(kind)
        date_from, date_to = resolve_window(kind, date_from, date_to)
        lock = self._acquire(kind)
        try:
            db = self.session_factory()
            try:
                return self._run_locked(db, kind, date_from, date_to, user_id, cancel_event)
            finally:
                db.close()
        finally:
            lock.release()

    def _run_locked(
        self,
        db: Session,
        kind: EntityKind,
        date_from: date | None,
        date_to: date | None,
        user_id: str,
        cancel_event: threading.Event | None,
    ) -> dict:
        ledger = SyncLedger(db, clock=self.clock)
        run = ledger.start(kind.value, date_from, date_to, user_id)
        started = time.perf_counter()
        structured_log('info', 'sync_started', entity_kind=kind.value, run_id=run.id, actor=user_id)
        totals = ReconcileResult()
        try:
            for window_from, window_to in chunk_windows(date_from, date_to, self.chunk_days):
                self._check_cancel(cancel_event)
                for raws in self.fetcher.fetch(kind, window_from, window_to):
                    self._check_cancel(cancel_event)
                    outcome = map_batch(raws, kind)
                    for source_id, error in outcome.failures:
                        logger.warning(
                            '[sync:%s:%s] record %s rejected: %s',
                            kind.value,
                            run.id,
                            source_id or '-',
                            error,
                        )
                    # committed together with the batch below
                    ledger.add_failures(run, len(outcome.failures), commit=False)
                    if outcome.entities:
                        totals.add(reconcile(db, kind, outcome.entities, run, now=self.clock()))
                    else:
                        db.commit()
            run = ledger.complete(run)
        except Exception as exc:
            message = f'cancelled: {exc.reason}' if isinstance(exc, SyncCancelled) else str(exc)
            run = ledger.fail(run, message or exc.__class__.__name__)
            structured_log(
                'error',
                'sync_failed',
                entity_kind=kind.value,
                run_id=run.id,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=run.error_message,
            )
            raise

        result = run_to_dict(run)
        result['records_duplicated'] = totals.duplicates
        structured_log(
            'info',
            'sync_completed',
            entity_kind=kind.value,
            run_id=run.id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            processed=result['records_processed'],
            inserted=result['records_inserted'],
            updated=result['records_updated'],
            skipped=result['records_skipped'],
            failed=result['records_failed'],
        )
        return result

    def last_successful(self, kind: EntityKind | str) -> dict | None:
        kind = parse_kind(kind)
        db = self.session_factory()
        try:
            run = sync_ledger.last_successful(db, kind.value)
            return run_to_dict(run) if run is not None else None
        finally:
            db.close()

    def list_runs(self, kind: EntityKind | str | None = None, limit: int = 50) -> list[dict]:
        entity_kind = parse_kind(kind).value if kind else None
        db = self.session_factory()
        try:
            return [run_to_dict(run) for run in sync_ledger.list_runs(db, entity_kind, limit)]
        finally:
            db.close()
