from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from app.db.base import Base


class Provider(Base):
    __tablename__ = 'providers'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(64), nullable=True)
    fiscal_id = Column(String(32), nullable=True, index=True)
    status = Column(String(32), nullable=False, default='novo', index=True)
    website = Column(String(255), nullable=True)
    entity_type = Column(String(32), nullable=True)
    services_json = Column(Text, nullable=False, default='[]')
    districts_json = Column(Text, nullable=False, default='[]')
    application_count = Column(Integer, nullable=False, default=0)
    first_application_at = Column(DateTime, nullable=True)
    merged_into_id = Column(Integer, ForeignKey('providers.id'), nullable=True)
    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProviderNote(Base):
    __tablename__ = 'provider_notes'

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False, index=True)
    content = Column(Text, nullable=False, default='')
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class ProviderHistory(Base):
    __tablename__ = 'provider_history'

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False, index=True)
    event_type = Column(String(32), nullable=False, default='outros')
    description = Column(Text, nullable=False, default='')
    old_value_json = Column(Text, nullable=True)
    new_value_json = Column(Text, nullable=True)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class PriorityAssignment(Base):
    __tablename__ = 'priority_assignments'

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False, index=True)
    priority_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id = Column(Integer, primary_key=True, index=True)
    entity = Column(String(64), nullable=False)
    action = Column(String(32), nullable=False)
    actor = Column(String(128), nullable=False, default='system')
    payload_json = Column(Text, nullable=False, default='{}')
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class AuthUser(Base):
    __tablename__ = 'auth_users'

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(128), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default='viewer')
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
