"""
Durable record of sync runs: pending -> in_progress -> success | error.

Every transition commits immediately so a run is visible while it executes.
The last successful run per kind is materialized in sync_kind_status.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Mapping

from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.errors import SyncRunFinalized
from app.models.sync import SyncKindStatus, SyncRun

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_SUCCESS = 'success'
STATUS_ERROR = 'error'
TERMINAL_STATUSES = frozenset({STATUS_SUCCESS, STATUS_ERROR})

COUNTER_FIELDS = {
    'processed': 'records_processed',
    'inserted': 'records_inserted',
    'updated': 'records_updated',
    'skipped': 'records_skipped',
    'failed': 'records_failed',
}

_ERROR_MESSAGE_MAX = 2000


def _kind_status(db: Session, entity_kind: str) -> SyncKindStatus:
    row = db.query(SyncKindStatus).filter(SyncKindStatus.entity_kind == entity_kind).first()
    if row is None:
        row = SyncKindStatus(entity_kind=entity_kind)
        db.add(row)
    return row


def _finish(run: SyncRun, status: str, now: datetime) -> None:
    if run.status in TERMINAL_STATUSES:
        raise SyncRunFinalized(f'sync run {run.id} ya finalizada con estado {run.status}')
    run.status = status
    run.finished_at = now
    if run.started_at is not None:
        run.duration_seconds = round(max(0.0, (now - run.started_at).total_seconds()), 3)


def start_run(
    db: Session,
    entity_kind: str,
    date_from: date | None = None,
    date_to: date | None = None,
    triggered_by: str = 'system',
    clock: Clock = utcnow,
) -> SyncRun:
    run = SyncRun(
        entity_kind=entity_kind,
        date_from=date_from,
        date_to=date_to,
        triggered_by=triggered_by or 'system',
        status=STATUS_PENDING,
        records_processed=0,
        records_inserted=0,
        records_updated=0,
        records_skipped=0,
        records_failed=0,
        started_at=clock(),
    )
    db.add(run)
    db.commit()
    run.status = STATUS_IN_PROGRESS
    db.commit()
    db.refresh(run)
    logger.info('[sync:%s:%s] run started by %s', entity_kind, run.id, run.triggered_by)
    return run


def add_failures(db: Session, run: SyncRun, count: int, commit: bool = True) -> SyncRun:
    """Count records rejected before reconciliation.

    With commit=False the counters ride on the caller's unit of work, so a
    rolled back batch also drops its failures.
    """
    if count <= 0:
        return run
    run.records_failed = int(run.records_failed or 0) + count
    run.records_processed = int(run.records_processed or 0) + count
    if commit:
        db.commit()
    return run


def complete_run(
    db: Session,
    run: SyncRun,
    counts: Mapping[str, int] | None = None,
    clock: Clock = utcnow,
) -> SyncRun:
    now = clock()
    for key, value in (counts or {}).items():
        column = COUNTER_FIELDS.get(key)
        if column is not None:
            setattr(run, column, int(value))
    _finish(run, STATUS_SUCCESS, now)
    status = _kind_status(db, run.entity_kind)
    status.last_success_run_id = run.id
    status.last_success_at = now
    db.commit()
    db.refresh(run)
    logger.info(
        '[sync:%s:%s] success processed=%s inserted=%s updated=%s skipped=%s failed=%s',
        run.entity_kind,
        run.id,
        run.records_processed,
        run.records_inserted,
        run.records_updated,
        run.records_skipped,
        run.records_failed,
    )
    return run


def fail_run(db: Session, run: SyncRun, error: str | BaseException, clock: Clock = utcnow) -> SyncRun:
    """Mark the run as error. Counters keep whatever was committed before the failure."""
    now = clock()
    db.rollback()
    message = str(error) or error.__class__.__name__
    _finish(run, STATUS_ERROR, now)
    run.error_message = message[:_ERROR_MESSAGE_MAX]
    status = _kind_status(db, run.entity_kind)
    status.last_error_run_id = run.id
    status.last_error_at = now
    db.commit()
    db.refresh(run)
    logger.warning('[sync:%s:%s] error: %s', run.entity_kind, run.id, run.error_message)
    return run


def last_successful(db: Session, entity_kind: str) -> SyncRun | None:
    status = db.query(SyncKindStatus).filter(SyncKindStatus.entity_kind == entity_kind).first()
    if status is None or status.last_success_run_id is None:
        return None
    return db.get(SyncRun, status.last_success_run_id)


def list_runs(db: Session, entity_kind: str | None = None, limit: int = 50) -> list[SyncRun]:
    query = db.query(SyncRun)
    if entity_kind:
        query = query.filter(SyncRun.entity_kind == entity_kind)
    return query.order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(max(1, min(int(limit), 500))).all()


def run_to_dict(run: SyncRun) -> dict:
    return {
        'run_id': run.id,
        'entity_kind': run.entity_kind,
        'date_from': run.date_from.isoformat() if run.date_from else None,
        'date_to': run.date_to.isoformat() if run.date_to else None,
        'triggered_by': run.triggered_by,
        'status': run.status,
        'records_processed': int(run.records_processed or 0),
        'records_inserted': int(run.records_inserted or 0),
        'records_updated': int(run.records_updated or 0),
        'records_skipped': int(run.records_skipped or 0),
        'records_failed': int(run.records_failed or 0),
        'error_message': run.error_message,
        'started_at': run.started_at.isoformat() if run.started_at else None,
        'finished_at': run.finished_at.isoformat() if run.finished_at else None,
        'duration_seconds': run.duration_seconds,
    }


class SyncLedger:
    """Session-bound facade over the run transitions."""

    def __init__(self, db: Session, clock: Clock = utcnow) -> None:
        self.db = db
        self.clock = clock

    def start(self, entity_kind: str, date_from: date | None, date_to: date | None, user_id: str) -> SyncRun:
        return start_run(self.db, entity_kind, date_from, date_to, user_id, clock=self.clock)

    def add_failures(self, run: SyncRun, count: int, commit: bool = True) -> SyncRun:
        return add_failures(self.db, run, count, commit=commit)

    def complete(self, run: SyncRun, counts: Mapping[str, int] | None = None) -> SyncRun:
        return complete_run(self.db, run, counts, clock=self.clock)

    def fail(self, run: SyncRun, error: str | BaseException) -> SyncRun:
        return fail_run(self.db, run, error, clock=self.clock)

    def last_successful(self, entity_kind: str) -> SyncRun | None:
        return last_successful(self.db, entity_kind)

    def list_runs(self, entity_kind: str | None = None, limit: int = 50) -> list[SyncRun]:
        return list_runs(self.db, entity_kind, limit)
