"""
Merge a batch of canonical entities into synced_entities keyed by (kind, source_id).

One call is one unit of work: every insert/update of the batch plus the run
counters commit together, or the session is rolled back and PersistenceError
is raised. Rows absent from a batch are never deleted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.errors import PersistenceError
from app.models.sync import SyncRun
from app.repositories import entities as entities_repo
from app.services.entity_mapper import Entity, EntityKind

logger = logging.getLogger(__name__)

VOLATILE_FIELDS = frozenset({'synced_at'})


@dataclass
class ReconcileResult:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    duplicates: int = 0

    def add(self, other: 'ReconcileResult') -> None:
        self.inserted += other.inserted
        self.updated += other.updated
        self.skipped += other.skipped
        self.duplicates += other.duplicates


def collapse_duplicates(entities: Sequence[Entity]) -> tuple[list[Entity], int]:
    """Keep the last occurrence of each source_id, in first-seen order."""
    by_source: dict[str, Entity] = {}
    for entity in entities:
        by_source[entity.source_id] = entity
    return list(by_source.values()), len(entities) - len(by_source)


def changed_fields(stored: dict, incoming: dict) -> list[str]:
    keys = (set(stored) | set(incoming)) - VOLATILE_FIELDS
    return sorted(k for k in keys if stored.get(k) != incoming.get(k))


def reconcile(
    db: Session,
    kind: EntityKind,
    entities: Sequence[Entity],
    run: SyncRun | None = None,
    now: datetime | None = None,
) -> ReconcileResult:
    now = now or utcnow()
    batch, duplicates = collapse_duplicates(entities)
    result = ReconcileResult(duplicates=duplicates)
    run_id = run.id if run is not None else None
    kind_value = EntityKind(kind).value

    try:
        existing = entities_repo.get_by_source_ids(db, kind_value, [e.source_id for e in batch])
        for entity in batch:
            if entity.kind != kind:
                raise ValueError(f'entity {entity.source_id} is {entity.kind.value}, batch is {kind_value}')
            payload = entity.canonical_payload()
            row = existing.get(entity.source_id)
            if row is None:
                existing[entity.source_id] = entities_repo.insert_entity(
                    db, kind_value, entity.source_id, payload, now, run_id,
                )
                result.inserted += 1
                continue
            diff = changed_fields(entities_repo.load_payload(row), payload)
            if diff:
                entities_repo.update_entity(row, payload, now, run_id)
                result.updated += 1
                logger.debug('updated %s/%s fields=%s', kind_value, entity.source_id, diff)
            else:
                entities_repo.touch_entity(row, now, run_id)
                result.skipped += 1

        if run is not None:
            run.records_processed = int(run.records_processed or 0) + len(entities)
            run.records_inserted = int(run.records_inserted or 0) + result.inserted
            run.records_updated = int(run.records_updated or 0) + result.updated
            run.records_skipped = int(run.records_skipped or 0) + result.skipped
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('reconcile batch failed for %s (%s entities)', kind_value, len(batch))
        raise PersistenceError(str(exc)) from exc
    except Exception:
        db.rollback()
        raise

    return result
