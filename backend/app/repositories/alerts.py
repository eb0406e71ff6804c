import json
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.onboarding import Alert, AppSetting, OnboardingCard, OnboardingTask

TASK_PENDING = 'pending'


def build_open_key(kind: str, subject_id: int, condition: str) -> str:
    return f'{kind}:{subject_id}:{condition}'


def pending_tasks(db: Session, card_id: int | None = None) -> list[tuple[OnboardingTask, int | None]]:
    """Pending tasks with the provider of their card."""
    query = (
        db.query(OnboardingTask, OnboardingCard.provider_id)
        .outerjoin(OnboardingCard, OnboardingCard.id == OnboardingTask.card_id)
        .filter(OnboardingTask.status == TASK_PENDING)
    )
    if card_id is not None:
        query = query.filter(OnboardingTask.card_id == card_id)
    return [(task, provider_id) for task, provider_id in query.order_by(OnboardingTask.id.asc()).all()]


def get_card(db: Session, card_id: int) -> OnboardingCard | None:
    return db.get(OnboardingCard, card_id)


def open_alerts(db: Session, kind: str) -> dict[str, Alert]:
    rows = db.query(Alert).filter(Alert.kind == kind, Alert.resolved_at.is_(None)).all()
    return {row.open_key: row for row in rows if row.open_key}


def create_alert(
    db: Session,
    kind: str,
    subject_id: int,
    condition: str,
    title: str,
    message: str,
    now: datetime,
    provider_id: int | None = None,
    user_id: str | None = None,
) -> Alert:
    row = Alert(
        kind=kind,
        subject_type='onboarding_task',
        subject_id=subject_id,
        trigger_condition=condition,
        provider_id=provider_id,
        user_id=user_id,
        title=title,
        message=message,
        open_key=build_open_key(kind, subject_id, condition),
        created_at=now,
    )
    db.add(row)
    return row


def resolve_alert(row: Alert, now: datetime) -> Alert:
    row.resolved_at = now
    row.open_key = None
    return row


def list_alerts(db: Session, open_only: bool = True, kind: str | None = None, limit: int = 100) -> list[Alert]:
    query = db.query(Alert)
    if open_only:
        query = query.filter(Alert.resolved_at.is_(None))
    if kind:
        query = query.filter(Alert.kind == kind)
    return query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(max(1, min(int(limit), 1000))).all()


def get_setting(db: Session, key: str) -> Any:
    row = db.query(AppSetting).filter(AppSetting.key == key).first()
    if row is None:
        return None
    try:
        return json.loads(row.value_json or 'null')
    except ValueError:
        return None


def save_setting(db: Session, key: str, value: Any) -> AppSetting:
    row = db.query(AppSetting).filter(AppSetting.key == key).first()
    if row is None:
        row = AppSetting(key=key)
        db.add(row)
    row.value_json = json.dumps(value, ensure_ascii=False)
    row.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(row)
    return row


def alert_to_dict(row: Alert) -> dict:
    return {
        'id': row.id,
        'kind': row.kind,
        'subject_type': row.subject_type,
        'subject_id': row.subject_id,
        'trigger_condition': row.trigger_condition,
        'provider_id': row.provider_id,
        'user_id': row.user_id,
        'title': row.title,
        'message': row.message,
        'created_at': row.created_at.isoformat() if row.created_at else None,
        'resolved_at': row.resolved_at.isoformat() if row.resolved_at else None,
    }
