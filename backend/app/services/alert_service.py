"""
Deadline and stalled-task alerts derived from onboarding tasks.

Each scan computes the set of conditions that currently hold, opens an alert
for every condition without one and resolves open alerts whose condition no
longer holds. At most one unresolved alert exists per (kind, task, condition);
the unique index on alerts.open_key enforces it in storage.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.config import settings
from app.core.errors import PersistenceError
from app.core.logging_config import structured_log
from app.core.lookup_cache import LookupCache
from app.db.session import SessionLocal
from app.repositories import alerts as alerts_repo
from app.repositories.audit import add_audit

logger = logging.getLogger(__name__)

KIND_DEADLINE = 'deadline'
KIND_STALLED = 'stalled'
CONDITION_DUE_PASSED = 'due_date_passed'
CONDITION_DUE_APPROACHING = 'due_date_approaching'

SETTING_STALLED_DAYS = 'stalled_task_days'
SETTING_HOURS_BEFORE_DEADLINE = 'alert_hours_before_deadline'


def stalled_condition(days: int) -> str:
    return f'no_activity_{days}d'


@dataclass(frozen=True)
class _Wanted:
    subject_id: int
    condition: str
    title: str
    message: str
    provider_id: int | None
    user_id: str | None


def _as_int(value, default: int, minimum: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= minimum else default


class AlertService:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Clock = utcnow,
        cache: LookupCache | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock
        self.cache = cache if cache is not None else LookupCache(ttl_seconds=settings.settings_cache_ttl_seconds)

    # thresholds

    def _setting(self, db: Session, key: str):
        return self.cache.get_or_load(f'setting:{key}', lambda: alerts_repo.get_setting(db, key))

    def stalled_days(self, db: Session) -> int:
        return _as_int(self._setting(db, SETTING_STALLED_DAYS), settings.stalled_task_days, 1)

    def hours_before_deadline(self, db: Session) -> int:
        return _as_int(self._setting(db, SETTING_HOURS_BEFORE_DEADLINE), settings.alert_hours_before_deadline, 0)

    def invalidate_settings(self) -> None:
        self.cache.invalidate_prefix('setting:')

    def update_setting(self, key: str, value) -> None:
        db = self.session_factory()
        try:
            alerts_repo.save_setting(db, key, value)
        finally:
            db.close()
        self.invalidate_settings()

    # scans

    def _apply(self, db: Session, kind: str, wanted: list[_Wanted], now: datetime) -> dict[str, int]:
        desired = {alerts_repo.build_open_key(kind, w.subject_id, w.condition): w for w in wanted}
        created = 0
        resolved = 0
        try:
            current = alerts_repo.open_alerts(db, kind)
            for key, alert in current.items():
                if key not in desired:
                    alerts_repo.resolve_alert(alert, now)
                    resolved += 1
            db.flush()
            for key, w in desired.items():
                if key in current:
                    continue
                alerts_repo.create_alert(
                    db,
                    kind,
                    w.subject_id,
                    w.condition,
                    w.title,
                    w.message,
                    now,
                    provider_id=w.provider_id,
                    user_id=w.user_id,
                )
                created += 1
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise PersistenceError(f'alerta abierta duplicada para {kind}: {exc.orig}') from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(str(exc)) from exc
        return {'created': created, 'resolved': resolved}

    def _deadline_wanted(self, db: Session, now: datetime) -> list[_Wanted]:
        hours = self.hours_before_deadline(db)
        horizon = now + timedelta(hours=hours)
        out: list[_Wanted] = []
        for task, provider_id in alerts_repo.pending_tasks(db):
            if task.due_at is None:
                continue
            if task.due_at < now:
                out.append(
                    _Wanted(
                        task.id,
                        CONDITION_DUE_PASSED,
                        f'Tarea vencida: {task.name}',
                        f'La tarea "{task.name}" vencio el {task.due_at:%d-%m-%Y %H:%M}.',
                        provider_id,
                        task.owner_id,
                    )
                )
            elif hours > 0 and task.due_at <= horizon:
                out.append(
                    _Wanted(
                        task.id,
                        CONDITION_DUE_APPROACHING,
                        f'Tarea por vencer: {task.name}',
                        f'La tarea "{task.name}" vence el {task.due_at:%d-%m-%Y %H:%M}.',
                        provider_id,
                        task.owner_id,
                    )
                )
        return out

    def _stalled_wanted(self, db: Session, now: datetime) -> list[_Wanted]:
        days = self.stalled_days(db)
        cutoff = now - timedelta(days=days)
        condition = stalled_condition(days)
        out: list[_Wanted] = []
        for task, provider_id in alerts_repo.pending_tasks(db):
            if task.last_activity_at is None or task.last_activity_at >= cutoff:
                continue
            out.append(
                _Wanted(
                    task.id,
                    condition,
                    f'Tarea sin actividad: {task.name}',
                    f'La tarea "{task.name}" no tiene actividad hace mas de {days} dias.',
                    provider_id,
                    task.owner_id,
                )
            )
        return out

    def deadline_scan(self, db: Session | None = None) -> dict[str, int]:
        return self._scan(db, KIND_DEADLINE, self._deadline_wanted)

    def stalled_scan(self, db: Session | None = None) -> dict[str, int]:
        return self._scan(db, KIND_STALLED, self._stalled_wanted)

    def _scan(self, db: Session | None, kind: str, collect) -> dict[str, int]:
        owned = db is None
        db = db if db is not None else self.session_factory()
        try:
            now = self.clock()
            result = self._apply(db, kind, collect(db, now), now)
            logger.info('[alerts:%s] created=%s resolved=%s', kind, result['created'], result['resolved'])
            return result
        finally:
            if owned:
                db.close()

    def generate_all(self, actor: str = 'system') -> dict[str, dict[str, int]]:
        db = self.session_factory()
        try:
            result = {
                KIND_DEADLINE: self.deadline_scan(db),
                KIND_STALLED: self.stalled_scan(db),
            }
            add_audit(db, 'alerts', 'generate', actor, result)
        finally:
            db.close()
        structured_log('info', 'alerts_generated', actor=actor, **result)
        return result

    # reads

    def card_risk_status(self, card_id: int) -> dict | None:
        db = self.session_factory()
        try:
            if alerts_repo.get_card(db, card_id) is None:
                return None
            now = self.clock()
            hours = self.hours_before_deadline(db)
            cutoff = now - timedelta(days=self.stalled_days(db))
            horizon = now + timedelta(hours=hours)
            has_overdue = False
            has_approaching = False
            has_stalled = False
            for task, _provider_id in alerts_repo.pending_tasks(db, card_id=card_id):
                if task.due_at is not None:
                    if task.due_at < now:
                        has_overdue = True
                    elif hours > 0 and task.due_at <= horizon:
                        has_approaching = True
                if task.last_activity_at is not None and task.last_activity_at < cutoff:
                    has_stalled = True
            return {
                'card_id': card_id,
                'has_overdue': has_overdue,
                'has_approaching_deadline': has_approaching,
                'has_stalled': has_stalled,
            }
        finally:
            db.close()

    def list_alerts(self, open_only: bool = True, kind: str | None = None, limit: int = 100) -> list[dict]:
        db = self.session_factory()
        try:
            return [alerts_repo.alert_to_dict(row) for row in alerts_repo.list_alerts(db, open_only, kind, limit)]
        finally:
            db.close()
