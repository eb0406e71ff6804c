from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.deps import get_alert_service, require_permission, write_rate_limiter
from app.core.errors import PersistenceError
from app.schemas.alerts import AlertOut, AlertsGenerateOut, CardRiskOut
from app.services.alert_service import AlertService

router = APIRouter()


@router.post('/generate', response_model=AlertsGenerateOut)
def generate_alerts(
    _rl=Depends(write_rate_limiter),
    service: AlertService = Depends(get_alert_service),
    user=Depends(require_permission('alerts:generate')),
):
    try:
        return service.generate_all(actor=str(user.get('sub', 'system')))
    except PersistenceError as exc:
        raise HTTPException(
            status_code=500,
            detail={'error_code': 'PERSISTENCE_ERROR', 'message': 'Error guardando alertas', 'details': str(exc)},
        )


@router.get('', response_model=list[AlertOut])
def list_alerts(
    open_only: bool = Query(default=True),
    kind: str | None = Query(default=None, pattern='^(deadline|stalled)$'),
    limit: int = Query(default=100, ge=1, le=1000),
    service: AlertService = Depends(get_alert_service),
    user=Depends(require_permission('alerts:read')),
):
    return service.list_alerts(open_only=open_only, kind=kind, limit=limit)


@router.get('/cards/{card_id}/risk', response_model=CardRiskOut)
def card_risk(
    card_id: int,
    service: AlertService = Depends(get_alert_service),
    user=Depends(require_permission('alerts:read')),
):
    status = service.card_risk_status(card_id)
    if status is None:
        raise HTTPException(
            status_code=404,
            detail={'error_code': 'NOT_FOUND', 'message': f'Tarjeta no encontrada: {card_id}', 'details': None},
        )
    return status
