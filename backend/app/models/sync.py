from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text

from app.db.base import Base


class SyncedEntity(Base):
    __tablename__ = 'synced_entities'

    id = Column(Integer, primary_key=True, index=True)
    entity_kind = Column(String(32), nullable=False, index=True)
    source_id = Column(String(128), nullable=False)
    payload_json = Column(Text, nullable=False, default='{}')
    payload_hash = Column(String(64), nullable=False)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=True, index=True)
    last_sync_run_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    synced_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class SyncRun(Base):
    __tablename__ = 'sync_runs'

    id = Column(Integer, primary_key=True, index=True)
    entity_kind = Column(String(32), nullable=False, index=True)
    date_from = Column(Date, nullable=True)
    date_to = Column(Date, nullable=True)
    triggered_by = Column(String(128), nullable=False, default='system')
    status = Column(String(16), nullable=False, default='pending', index=True)
    records_processed = Column(Integer, nullable=False, default=0)
    records_inserted = Column(Integer, nullable=False, default=0)
    records_updated = Column(Integer, nullable=False, default=0)
    records_skipped = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    finished_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)


class SyncKindStatus(Base):
    __tablename__ = 'sync_kind_status'

    id = Column(Integer, primary_key=True, index=True)
    entity_kind = Column(String(32), nullable=False, unique=True, index=True)
    last_success_run_id = Column(Integer, ForeignKey('sync_runs.id'), nullable=True)
    last_success_at = Column(DateTime, nullable=True)
    last_error_run_id = Column(Integer, ForeignKey('sync_runs.id'), nullable=True)
    last_error_at = Column(DateTime, nullable=True)


Index('ux_synced_entities_kind_source', SyncedEntity.entity_kind, SyncedEntity.source_id, unique=True)
Index('ix_sync_runs_kind_status_started', SyncRun.entity_kind, SyncRun.status, SyncRun.started_at)
