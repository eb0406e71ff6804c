from fastapi import APIRouter

from app.api.v1.endpoints import alerts, auth, duplicates, health, sync

router = APIRouter(prefix='/api/v1')
router.include_router(health.router, tags=['health'])
router.include_router(auth.router, prefix='/auth', tags=['auth'])
router.include_router(sync.router, prefix='/sync', tags=['sync'])
router.include_router(alerts.router, prefix='/alerts', tags=['alerts'])
router.include_router(duplicates.router, prefix='/duplicates', tags=['duplicates'])
