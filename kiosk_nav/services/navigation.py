import logging

import httpx
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

from kiosk_nav.schemas.navigation import NavigationResult, PathResponse
from kiosk_nav.services.api_sync import SyncService
from kiosk_nav.services.pathfinding import Pathfinder

logger = logging.getLogger(__name__)

__all__ = [
    "NavigationService",
    "PATH_NOT_FOUND",
]

PATH_NOT_FOUND = "Path not found"


class NavigationService:
    """
    Фасад поиска пути: сначала удалённый сервер, при любой ошибке
    локальный A* от киоска (если задан) или от начального помещения.
    """

    def __init__(self, sync_service: SyncService, pathfinder: Pathfinder):
        self.sync_service = sync_service
        self.pathfinder = pathfinder

    async def find_path(self, start_room_id: int, end_room_id: int, kiosk_id: int | None = None) -> PathResponse:
        logger.info(f"[NAV] Path request: start={start_room_id}, end={end_room_id}, kiosk={kiosk_id}")

        try:
            data = await self.sync_service.find_path(start_room_id, end_room_id, kiosk_id)
            if not isinstance(data, dict):
                raise ValueError("unexpected find-path payload")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[NAV] Online pathfinding failed: {e}")
        else:
            logger.info(f"[NAV] Online path found: {len(data.get('path') or [])} steps")
            return PathResponse(success=True, data=data)

        logger.info("[NAV] Trying offline pathfinding...")
        try:
            result = await run_in_threadpool(self._find_offline, start_room_id, end_room_id, kiosk_id)
        except SQLAlchemyError as e:
            logger.error(f"[NAV] Offline pathfinding failed on local store: {e}")
            result = None

        if result is None:
            logger.warning("[NAV] No path found")
            return PathResponse(success=False, error=PATH_NOT_FOUND)

        logger.info(f"[NAV] Offline path found: {len(result.path)} steps")
        return PathResponse(success=True, data=result, offline=True)

    def _find_offline(self, start_room_id: int, end_room_id: int, kiosk_id: int | None) -> NavigationResult | None:
        if kiosk_id and kiosk_id > 0:
            return self.pathfinder.find_path_from_kiosk(kiosk_id, end_room_id)
        if start_room_id and start_room_id > 0:
            return self.pathfinder.find_path_offline(start_room_id, end_room_id)
        return None
