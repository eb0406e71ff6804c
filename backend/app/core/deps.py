from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.rate_limit import build_rate_limit_dependency
from app.core.security import assert_permission, decode_token
from app.db.session import SessionLocal
from app.services.alert_service import AlertService
from app.services.duplicate_service import DuplicateService
from app.services.sync_service import SyncService

bearer_scheme = HTTPBearer(auto_error=False)
write_rate_limiter = build_rate_limit_dependency(
    'write_ops',
    settings.write_rate_limit,
    settings.write_rate_window_seconds,
)

# Process-wide service instances; tests swap them through app.dependency_overrides.
_sync_service = SyncService(session_factory=SessionLocal)
_alert_service = AlertService(session_factory=SessionLocal)
_duplicate_service = DuplicateService(session_factory=SessionLocal)


def get_sync_service() -> SyncService:
    return _sync_service


def get_alert_service() -> AlertService:
    return _alert_service


def get_duplicate_service() -> DuplicateService:
    return _duplicate_service


def get_token_payload(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)):
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={'error_code': 'UNAUTHORIZED', 'message': 'Falta token', 'details': None},
        )
    return decode_token(credentials.credentials)


def require_permission(permission: str):
    def _checker(payload: dict = Depends(get_token_payload)):
        assert_permission(payload, permission)
        return payload

    return _checker
