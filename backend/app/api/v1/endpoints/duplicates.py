from fastapi import APIRouter, Depends, HTTPException

from app.core.deps import get_duplicate_service, require_permission, write_rate_limiter
from app.core.errors import DuplicateGroupNotFound, MergeError, PersistenceError
from app.schemas.common import ErrorBody
from app.schemas.duplicates import DuplicateScanOut, MergeAllOut, MergeIn, MergeOut
from app.services.duplicate_service import DuplicateService

router = APIRouter()


@router.get('', response_model=DuplicateScanOut)
def scan_duplicates(
    service: DuplicateService = Depends(get_duplicate_service),
    user=Depends(require_permission('providers:read')),
):
    return service.scan()


@router.post(
    '/merge',
    response_model=MergeOut,
    responses={code: {'model': ErrorBody} for code in (400, 403, 404, 409, 500)},
)
def merge_duplicates(
    payload: MergeIn,
    _rl=Depends(write_rate_limiter),
    service: DuplicateService = Depends(get_duplicate_service),
    user=Depends(require_permission('providers:merge')),
):
    # MergeConflict is rendered by the app-level handler (409 with the fields)
    try:
        return service.merge(payload.group_id, payload.keep_id, payload.resolutions, actor=str(user.get('sub', 'system')))
    except DuplicateGroupNotFound as exc:
        raise HTTPException(status_code=404, detail={'error_code': 'GROUP_NOT_FOUND', 'message': str(exc), 'details': None})
    except MergeError as exc:
        raise HTTPException(status_code=400, detail={'error_code': 'INVALID_MERGE', 'message': str(exc), 'details': None})
    except PersistenceError as exc:
        raise HTTPException(
            status_code=500,
            detail={'error_code': 'PERSISTENCE_ERROR', 'message': 'Error fusionando prestadores', 'details': str(exc)},
        )


@router.post('/merge-all', response_model=MergeAllOut)
def merge_all_duplicates(
    _rl=Depends(write_rate_limiter),
    service: DuplicateService = Depends(get_duplicate_service),
    user=Depends(require_permission('providers:merge')),
):
    try:
        return service.merge_all(actor=str(user.get('sub', 'system')))
    except PersistenceError as exc:
        raise HTTPException(
            status_code=500,
            detail={'error_code': 'PERSISTENCE_ERROR', 'message': 'Error fusionando prestadores', 'details': str(exc)},
        )
