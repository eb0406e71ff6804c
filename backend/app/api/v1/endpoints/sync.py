from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.config import settings
from app.core.deps import get_sync_service, require_permission, write_rate_limiter
from app.core.errors import (
    FetchError,
    InvalidDate,
    InvalidEnum,
    PersistenceError,
    SyncAlreadyRunning,
    SyncCancelled,
)
from app.schemas.common import ErrorBody
from app.schemas.sync import SyncRunIn, SyncRunOut, SyncRunRecordOut
from app.services.entity_mapper import EntityKind, parse_external_date, parse_kind
from app.services.sync_service import CancelToken, SyncService, arm_timeout, resolve_window

router = APIRouter()

_RUN_ERRORS = {code: {'model': ErrorBody} for code in (400, 403, 404, 409, 500, 502, 503)}


def _error(status_code: int, error_code: str, message: str, details=None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={'error_code': error_code, 'message': message, 'details': details},
    )


def _kind_or_404(kind: str) -> EntityKind:
    try:
        return parse_kind(kind)
    except InvalidEnum:
        raise _error(404, 'UNKNOWN_ENTITY_KIND', f'Tipo de entidad desconocido: {kind}', {'allowed': [k.value for k in EntityKind]})


def _date_or_400(value: str | None):
    if value is None or not str(value).strip():
        return None
    try:
        return parse_external_date(value)
    except InvalidDate:
        raise _error(400, 'INVALID_DATE', f'Fecha invalida: {value} (formato dd-mm-yyyy)')


@router.get('/runs', response_model=list[SyncRunRecordOut])
def list_sync_runs(
    kind: str | None = Query(default=None, max_length=32),
    limit: int = Query(default=50, ge=1, le=500),
    service: SyncService = Depends(get_sync_service),
    user=Depends(require_permission('sync:read')),
):
    entity_kind = _kind_or_404(kind) if kind else None
    return service.list_runs(entity_kind, limit=limit)


@router.get('/{kind}/last', response_model=SyncRunRecordOut | None)
def last_successful_sync(
    kind: str,
    service: SyncService = Depends(get_sync_service),
    user=Depends(require_permission('sync:read')),
):
    return service.last_successful(_kind_or_404(kind))


@router.post('/{kind}', response_model=SyncRunOut, responses=_RUN_ERRORS)
def run_sync(
    kind: str,
    payload: SyncRunIn | None = None,
    _rl=Depends(write_rate_limiter),
    service: SyncService = Depends(get_sync_service),
    user=Depends(require_permission('sync:run')),
):
    entity_kind = _kind_or_404(kind)
    payload = payload or SyncRunIn()
    date_from = _date_or_400(payload.date_from)
    date_to = _date_or_400(payload.date_to)
    try:
        date_from, date_to = resolve_window(entity_kind, date_from, date_to)
    except ValueError as exc:
        raise _error(400, 'INVALID_RANGE', str(exc))
    actor = str(user.get('sub', 'system'))

    token = CancelToken()
    timer = arm_timeout(token, settings.sync_request_timeout_seconds)
    try:
        return service.run_sync(entity_kind, date_from, date_to, user_id=actor, cancel_event=token)
    except SyncAlreadyRunning as exc:
        raise _error(409, 'SYNC_ALREADY_RUNNING', str(exc))
    except SyncCancelled as exc:
        raise _error(503, 'SYNC_CANCELLED', f'Sincronizacion cancelada: {exc.reason}')
    except FetchError as exc:
        raise _error(502, 'FETCH_FAILED', 'Error obteniendo registros del sistema externo', str(exc))
    except PersistenceError as exc:
        raise _error(500, 'PERSISTENCE_ERROR', 'Error guardando registros', str(exc))
    finally:
        if timer is not None:
            timer.cancel()
