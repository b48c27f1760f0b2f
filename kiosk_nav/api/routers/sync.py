from fastapi import APIRouter, Depends

from kiosk_nav.api.deps import get_settings_dep, get_store, get_sync_service
from kiosk_nav.core.config import Settings
from kiosk_nav.db.store import LocalStore
from kiosk_nav.schemas.navigation import SyncResponse, SyncStatus
from kiosk_nav.services.api_sync import SyncService

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("/", response_model=SyncResponse, summary="Запустить синхронизацию вручную")
async def sync_data(sync_service: SyncService = Depends(get_sync_service)):
    return await sync_service.sync_data()


@router.get("/online", summary="Проверить доступность сервера")
async def check_online(sync_service: SyncService = Depends(get_sync_service)):
    return {"online": await sync_service.is_online()}


@router.get("/status", response_model=SyncStatus, summary="Состояние синхронизации")
def sync_status(
    settings: Settings = Depends(get_settings_dep),
    store: LocalStore = Depends(get_store),
    sync_service: SyncService = Depends(get_sync_service),
):
    return SyncStatus(
        api_url=settings.api_base_url,
        kiosk_id=settings.KIOSK_ID,
        online=sync_service.online,
        in_progress=sync_service.in_progress,
        save_count=store.save_count,
        sync_info=store.get_all_sync_info(),
    )
