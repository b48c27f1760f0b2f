from fastapi import APIRouter, Depends

from kiosk_nav.api.deps import get_navigation_service
from kiosk_nav.schemas.navigation import FindPathRequest, PathResponse
from kiosk_nav.services.navigation import NavigationService

router = APIRouter(prefix="/navigation", tags=["Navigation"])


@router.post(
    "/find-path",
    response_model=PathResponse,
    summary="Построить маршрут",
    description=(
        "Сначала запрашивает маршрут у удалённого сервера, при ошибке строит его "
        "локально от киоска или начального помещения. Если путь не найден, success=false."
    ),
)
async def find_path(
    data: FindPathRequest,
    navigation: NavigationService = Depends(get_navigation_service),
):
    return await navigation.find_path(data.start_room_id, data.end_room_id, data.kiosk_id)
