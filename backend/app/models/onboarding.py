from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from app.db.base import Base


class OnboardingStage(Base):
    __tablename__ = 'onboarding_stages'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    position = Column(Integer, nullable=False, default=0)


class OnboardingCard(Base):
    __tablename__ = 'onboarding_cards'

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False, index=True)
    stage_id = Column(Integer, ForeignKey('onboarding_stages.id'), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class OnboardingTask(Base):
    __tablename__ = 'onboarding_tasks'

    id = Column(Integer, primary_key=True, index=True)
    card_id = Column(Integer, ForeignKey('onboarding_cards.id'), nullable=False, index=True)
    stage_id = Column(Integer, ForeignKey('onboarding_stages.id'), nullable=True)
    name = Column(String(255), nullable=False, default='Tarefa')
    owner_id = Column(String(128), nullable=True)
    status = Column(String(16), nullable=False, default='pending', index=True)
    due_at = Column(DateTime, nullable=True, index=True)
    last_activity_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Alert(Base):
    __tablename__ = 'alerts'

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(16), nullable=False, index=True)
    subject_type = Column(String(32), nullable=False, default='onboarding_task')
    subject_id = Column(Integer, nullable=False, index=True)
    trigger_condition = Column(String(64), nullable=False)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=True, index=True)
    user_id = Column(String(128), nullable=True)
    title = Column(String(255), nullable=False, default='')
    message = Column(Text, nullable=True)
    # "<kind>:<subject_id>:<condition>" while open, NULL once resolved
    open_key = Column(String(160), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    resolved_at = Column(DateTime, nullable=True)


class AppSetting(Base):
    __tablename__ = 'app_settings'

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(64), nullable=False, unique=True, index=True)
    value_json = Column(Text, nullable=False, default='null')
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


Index('ux_alerts_open_key', Alert.open_key, unique=True)
Index('ix_onboarding_tasks_status_due', OnboardingTask.status, OnboardingTask.due_at)
