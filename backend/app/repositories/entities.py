import hashlib
import json
from datetime import datetime
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.sync import SyncedEntity

_IN_CHUNK = 500


def payload_to_json(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)


def payload_hash(payload_json: str) -> str:
    return hashlib.sha256(payload_json.encode('utf-8')).hexdigest()


def load_payload(row: SyncedEntity) -> dict:
    try:
        data = json.loads(row.payload_json or '{}')
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def get_by_source_ids(db: Session, entity_kind: str, source_ids: Iterable[str]) -> dict[str, SyncedEntity]:
    ids = list(dict.fromkeys(source_ids))
    out: dict[str, SyncedEntity] = {}
    for i in range(0, len(ids), _IN_CHUNK):
        chunk = ids[i:i + _IN_CHUNK]
        rows = (
            db.query(SyncedEntity)
            .filter(SyncedEntity.entity_kind == entity_kind, SyncedEntity.source_id.in_(chunk))
            .all()
        )
        for row in rows:
            out[row.source_id] = row
    return out


def get_by_source_id(db: Session, entity_kind: str, source_id: str) -> SyncedEntity | None:
    return (
        db.query(SyncedEntity)
        .filter(SyncedEntity.entity_kind == entity_kind, SyncedEntity.source_id == source_id)
        .first()
    )


def insert_entity(
    db: Session,
    entity_kind: str,
    source_id: str,
    payload: dict,
    now: datetime,
    run_id: int | None = None,
) -> SyncedEntity:
    body = payload_to_json(payload)
    row = SyncedEntity(
        entity_kind=entity_kind,
        source_id=source_id,
        payload_json=body,
        payload_hash=payload_hash(body),
        last_sync_run_id=run_id,
        created_at=now,
        updated_at=now,
        synced_at=now,
    )
    db.add(row)
    return row


def update_entity(row: SyncedEntity, payload: dict, now: datetime, run_id: int | None = None) -> SyncedEntity:
    body = payload_to_json(payload)
    row.payload_json = body
    row.payload_hash = payload_hash(body)
    row.updated_at = now
    row.synced_at = now
    row.last_sync_run_id = run_id
    return row


def touch_entity(row: SyncedEntity, now: datetime, run_id: int | None = None) -> SyncedEntity:
    row.synced_at = now
    row.last_sync_run_id = run_id
    return row


def count_by_kind(db: Session, entity_kind: str) -> int:
    return int(db.query(func.count(SyncedEntity.id)).filter(SyncedEntity.entity_kind == entity_kind).scalar() or 0)
