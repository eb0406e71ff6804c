from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

import app.models  # noqa: F401  registers every table on Base.metadata
from app.core.config import settings
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models.onboarding import AppSetting

logger = logging.getLogger(__name__)

_PROBE_KEY = '__bootstrap_probe__'


def bootstrap_database_with_demo_probe() -> None:
    """
    Ensure schema exists and run a short insert/delete probe to validate write path.
    The probe leaves no demo data persisted.
    """
    Base.metadata.create_all(bind=engine)

    if not settings.db_demo_probe_on_start:
        logger.info('DB bootstrap completed (schema ensured, demo probe disabled)')
        return

    db = SessionLocal()
    try:
        probe = AppSetting(key=_PROBE_KEY, value_json='null', updated_at=datetime.utcnow())
        db.add(probe)
        db.flush()
        db.delete(probe)
        db.commit()
        logger.info('DB bootstrap completed (schema ensured + demo probe insert/delete)')
    except SQLAlchemyError:
        db.rollback()
        logger.exception('DB bootstrap failed')
        raise
    finally:
        db.close()
