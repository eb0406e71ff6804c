import json
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.onboarding import Alert, OnboardingCard, OnboardingTask
from app.models.providers import PriorityAssignment, Provider, ProviderHistory, ProviderNote
from app.models.sync import SyncedEntity

STATUS_ARCHIVED = 'archived'

# tables whose provider_id follows the kept provider on merge
PROVIDER_REFERENCES = (
    ('provider_notes', ProviderNote),
    ('provider_history', ProviderHistory),
    ('priority_assignments', PriorityAssignment),
    ('alerts', Alert),
    ('synced_entities', SyncedEntity),
)


def load_list(value: str | None) -> list:
    try:
        data = json.loads(value or '[]')
    except ValueError:
        return []
    return data if isinstance(data, list) else []


def dump_list(values: Iterable[Any]) -> str:
    return json.dumps(list(values), ensure_ascii=False)


def active_providers(db: Session) -> list[Provider]:
    return (
        db.query(Provider)
        .filter(
            or_(Provider.status.is_(None), Provider.status != STATUS_ARCHIVED),
            Provider.merged_into_id.is_(None),
        )
        .order_by(Provider.created_at.asc(), Provider.id.asc())
        .all()
    )


def get_providers(db: Session, ids: Iterable[int]) -> dict[int, Provider]:
    ids = list(ids)
    if not ids:
        return {}
    return {row.id: row for row in db.query(Provider).filter(Provider.id.in_(ids)).all()}


def reassign_references(db: Session, from_ids: list[int], to_id: int) -> dict[str, int]:
    out: dict[str, int] = {}
    for table, model in PROVIDER_REFERENCES:
        out[table] = int(
            db.query(model)
            .filter(model.provider_id.in_(from_ids))
            .update({model.provider_id: to_id}, synchronize_session=False)
            or 0
        )
    return out


def cards_for(db: Session, provider_id: int) -> list[OnboardingCard]:
    return (
        db.query(OnboardingCard)
        .filter(OnboardingCard.provider_id == provider_id)
        .order_by(OnboardingCard.id.asc())
        .all()
    )


def move_tasks(db: Session, from_card_id: int, to_card_id: int) -> int:
    return int(
        db.query(OnboardingTask)
        .filter(OnboardingTask.card_id == from_card_id)
        .update({OnboardingTask.card_id: to_card_id}, synchronize_session=False)
        or 0
    )


def add_history(
    db: Session,
    provider_id: int,
    description: str,
    old_value: Any = None,
    new_value: Any = None,
    created_by: str | None = None,
    event_type: str = 'outros',
) -> ProviderHistory:
    row = ProviderHistory(
        provider_id=provider_id,
        event_type=event_type,
        description=description,
        old_value_json=None if old_value is None else json.dumps(old_value, ensure_ascii=False, default=str),
        new_value_json=None if new_value is None else json.dumps(new_value, ensure_ascii=False, default=str),
        created_by=created_by,
    )
    db.add(row)
    return row


def archive_provider(row: Provider, merged_into_id: int, now: datetime) -> Provider:
    row.status = STATUS_ARCHIVED
    row.merged_into_id = merged_into_id
    row.archived_at = now
    row.updated_at = now
    return row


def provider_to_dict(row: Provider) -> dict:
    return {
        'id': row.id,
        'name': row.name,
        'email': row.email,
        'phone': row.phone,
        'fiscal_id': row.fiscal_id,
        'status': row.status,
        'website': row.website,
        'entity_type': row.entity_type,
        'services': load_list(row.services_json),
        'districts': load_list(row.districts_json),
        'application_count': int(row.application_count or 0),
        'first_application_at': row.first_application_at.isoformat() if row.first_application_at else None,
        'merged_into_id': row.merged_into_id,
        'archived_at': row.archived_at.isoformat() if row.archived_at else None,
        'created_at': row.created_at.isoformat() if row.created_at else None,
    }
