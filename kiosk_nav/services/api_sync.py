import logging
import os
import posixpath
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Type
from urllib.parse import urlsplit

import httpx
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from kiosk_nav.core.config import Settings
from kiosk_nav.db.store import LocalStore
from kiosk_nav.exceptions import AppException, RemoteUnavailableError, ServiceError, SyncInProgressError
from kiosk_nav.schemas.navigation import (
    ConnectionSchema,
    FloorSchema,
    KioskSchema,
    RoomSchema,
    SyncReport,
    SyncResponse,
    WaypointSchema,
)
from kiosk_nav.services.fingerprint import FingerprintCache, ResourceKey, fingerprint

logger = logging.getLogger(__name__)

__all__ = [
    "SyncService",
    "image_filename",
    "SYNCED",
    "UNCHANGED",
    "FAILED",
    "SKIPPED",
]

SYNCED = "synced"
UNCHANGED = "unchanged"
FAILED = "failed"
# получено, но не записано: запись отложена до следующей синхронизации
SKIPPED = "skipped"

HEALTH_PATHS = ("/api/health", "/health")


def image_filename(floor_id: int, image_url: str) -> str:
    """Стабильное локальное имя плана: floor_<id>_<basename>."""
    basename = posixpath.basename(urlsplit(image_url).path)
    return f"floor_{floor_id}_{basename or 'image'}"


def _write_atomic(target: Path, content: bytes) -> None:
    tmp_target = target.with_name(target.name + ".tmp")
    tmp_target.write_bytes(content)
    os.replace(tmp_target, target)


class SyncService:
    """
    Синхронизация локальной реплики с удалённым сервером.

    - is_online: проверка доступности, никогда не бросает исключений;
    - sync_all: floors → floor images → rooms → kiosks → waypoints → connections,
      ошибка одного ресурса не прерывает остальные;
    - find_path: удалённый поиск маршрута (основной путь для фасада навигации).

    Неизменённые коллекции (тот же отпечаток) не перезаписываются.
    """

    def __init__(
        self,
        settings: Settings,
        store: LocalStore,
        fingerprints: FingerprintCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.store = store
        self.base_url = settings.api_base_url
        self.fingerprints = fingerprints if fingerprints is not None else FingerprintCache()
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.HTTP_TIMEOUT,
            verify=settings.VERIFY_SSL,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self.online = False
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def aclose(self) -> None:
        await self.client.aclose()

    # ==================== ДОСТУПНОСТЬ ====================

    async def is_online(self) -> bool:
        for path in HEALTH_PATHS:
            try:
                response = await self.client.get(path, timeout=self.settings.HEALTH_TIMEOUT)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.debug(f"Health probe {path} failed: {e}")
                continue
            self.online = True
            return True
        self.online = False
        return False

    # ==================== РЕСУРСЫ ====================

    async def _fetch_collection(self, path: str) -> list[Any]:
        response = await self.client.get(path)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, list):
            raise ServiceError(f"Unexpected payload for {path}: expected a list")
        return payload

    async def _sync_collection(
        self,
        key: ResourceKey,
        path: str,
        schema: Type[BaseModel],
        write: Callable[[list], None],
    ) -> str:
        payload = await self._fetch_collection(path)
        digest = fingerprint(payload)
        if self.fingerprints.matches(key, digest):
            logger.info(f"[SYNC] {key} unchanged, skip")
            return UNCHANGED

        items = [schema.model_validate(item) for item in payload]
        await run_in_threadpool(write, items)
        # Отпечаток запоминаем только после успешной записи
        self.fingerprints.remember(key, digest)
        logger.info(f"[SYNC] Synced {len(items)} {key}")
        return SYNCED

    async def sync_floors(self) -> str:
        return await self._sync_collection(
            ResourceKey("floors"), "/api/floors/", FloorSchema, self.store.replace_floors
        )

    async def sync_rooms(self) -> str:
        return await self._sync_collection(
            ResourceKey("rooms"), "/api/rooms/", RoomSchema, self.store.replace_rooms
        )

    async def sync_kiosks(self) -> str:
        return await self._sync_collection(
            ResourceKey("kiosks"), "/api/kiosks/", KioskSchema, self.store.replace_kiosks
        )

    async def sync_waypoints_for_floor(self, floor_id: int) -> str:
        return await self._sync_collection(
            ResourceKey("waypoints", floor_id),
            f"/api/waypoints/floor/{floor_id}",
            WaypointSchema,
            lambda items: self.store.replace_waypoints_for_floor(floor_id, items),
        )

    async def _fetch_floor_connections(
        self,
        floor_id: int,
        fetched: dict[ResourceKey, tuple[list[ConnectionSchema], bytes]],
    ) -> str:
        key = ResourceKey("connections", floor_id)
        payload = await self._fetch_collection(f"/api/waypoints/connections/floor/{floor_id}")
        digest = fingerprint(payload)
        fetched[key] = ([ConnectionSchema.model_validate(item) for item in payload], digest)
        return UNCHANGED if self.fingerprints.matches(key, digest) else SYNCED

    async def sync_connections(self, floor_ids: Iterable[int], report: SyncReport | None = None) -> dict[str, str]:
        """
        Рёбра всех этажей записываются одной заменой таблицы: ребро между
        этажами сервер может вернуть в списке только одного из них.

        - таблица перезаписывается, если изменился хотя бы один этаж;
        - если хотя бы один этаж не получен, таблица не трогается,
          изменённые этажи помечаются skipped.

        Returns:
            Статус по ключу connections_<floor_id>.
        """
        if report is None:
            report = SyncReport(started_at=datetime.now(timezone.utc))

        fetched: dict[ResourceKey, tuple[list[ConnectionSchema], bytes]] = {}
        keys = [ResourceKey("connections", floor_id) for floor_id in floor_ids]
        for key in keys:
            await self._run_step(report, str(key), self._fetch_floor_connections(key.floor_id, fetched))

        names = [str(key) for key in keys]
        changed = [name for name in names if report.resources[name] == SYNCED]
        if changed and len(fetched) < len(keys):
            logger.warning(f"[SYNC] Connections not written, some floors failed: {changed} skipped")
            for name in changed:
                report.resources[name] = SKIPPED
        elif changed:
            # одно и то же ребро может прийти в списках обоих этажей
            items: dict[str, ConnectionSchema] = {}
            for floor_items, _ in fetched.values():
                for item in floor_items:
                    items.setdefault(item.id, item)
            try:
                await run_in_threadpool(self.store.replace_connections, list(items.values()))
            except SQLAlchemyError as e:
                logger.warning(f"[SYNC] connections sync failed: {e}")
                for name in changed:
                    report.resources[name] = FAILED
                report.errors.append(f"connections: {e}")
            else:
                for key, (_, digest) in fetched.items():
                    self.fingerprints.remember(key, digest)
                logger.info(f"[SYNC] Synced {len(items)} connections ({', '.join(changed)} changed)")
        else:
            logger.info("[SYNC] connections unchanged, skip")

        return {name: report.resources[name] for name in names}

    # ==================== ПЛАНЫ ЭТАЖЕЙ ====================

    def resolve_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    async def sync_floor_images(self) -> str:
        """
        Скачивает планы этажей в DATA_DIR/images.
        Уже скачанный файл не загружается повторно, но путь к нему
        всё равно записывается в этаж (восстановление потерянной ссылки).
        Диск и база трогаются из пула потоков, не из цикла событий.
        """
        floors = await run_in_threadpool(self.store.get_floors)
        if not floors:
            return UNCHANGED

        images_dir = Path(self.settings.images_dir)
        await run_in_threadpool(images_dir.mkdir, parents=True, exist_ok=True)

        downloaded = failed = 0
        for floor in floors:
            if not floor.image_url:
                continue

            target = images_dir / image_filename(floor.id, floor.image_url)
            if await run_in_threadpool(target.exists):
                await run_in_threadpool(self.store.set_floor_local_image_path, floor.id, str(target))
                continue

            try:
                response = await self.client.get(self.resolve_url(floor.image_url))
                response.raise_for_status()
                await run_in_threadpool(_write_atomic, target, response.content)
            except (httpx.HTTPError, OSError) as e:
                logger.warning(f"Failed to download floor image (floor={floor.id}): {e}")
                failed += 1
                continue

            await run_in_threadpool(self.store.set_floor_local_image_path, floor.id, str(target))
            downloaded += 1
            logger.info(f"[SYNC] Floor {floor.id} image downloaded")

        if failed:
            return FAILED
        return SYNCED if downloaded else UNCHANGED

    # ==================== ПОЛНАЯ СИНХРОНИЗАЦИЯ ====================

    async def _run_step(self, report: SyncReport, name: str, step: Awaitable[str]) -> None:
        try:
            status = await step
        except Exception as e:
            logger.warning(f"[SYNC] {name} sync failed: {e}")
            report.resources[name] = FAILED
            report.errors.append(f"{name}: {e}")
            return
        report.resources[name] = status
        if status == FAILED:
            report.errors.append(f"{name}: partially failed")

    async def sync_all(self) -> SyncReport:
        if self._in_progress:
            raise SyncInProgressError("Sync already in progress")
        self._in_progress = True
        try:
            return await self._sync_all()
        finally:
            self._in_progress = False

    async def _sync_all(self) -> SyncReport:
        logger.info("[SYNC] Starting data synchronization...")

        if not await self.is_online():
            raise RemoteUnavailableError("Server is not reachable")

        report = SyncReport(started_at=datetime.now(timezone.utc))

        await self._run_step(report, "floors", self.sync_floors())
        await self._run_step(report, "floor_images", self.sync_floor_images())
        await self._run_step(report, "rooms", self.sync_rooms())
        await self._run_step(report, "kiosks", self.sync_kiosks())

        # Сначала точки всех этажей, потом рёбра: межэтажные рёбра
        # ссылаются на точки соседних этажей
        floors = await run_in_threadpool(self.store.get_floors)
        for floor in floors:
            await self._run_step(report, f"waypoints_{floor.id}", self.sync_waypoints_for_floor(floor.id))
        await self.sync_connections([floor.id for floor in floors], report)

        await run_in_threadpool(self.store.set_sync_info, "last_sync", datetime.now(timezone.utc).isoformat())
        report.orphans_removed = await run_in_threadpool(self.store.cleanup_orphans)
        # Таблица больше не совпадает с последней записанной коллекцией
        for resource, removed in report.orphans_removed.items():
            if removed:
                self.fingerprints.forget_resource(resource)
        report.finished_at = datetime.now(timezone.utc)

        if report.partial:
            logger.warning(f"[SYNC] Sync completed with errors: {report.errors}")
        else:
            logger.info("[SYNC] Sync completed successfully")
        return report

    async def run_scheduled_sync(self) -> SyncReport | None:
        """
        Точка входа для таймера: пересекающиеся запуски схлопываются в no-op,
        любые ошибки только логируются.
        """
        if self._in_progress:
            logger.debug("[SYNC] Sync already in progress, scheduled run skipped")
            return None
        try:
            return await self.sync_all()
        except AppException as e:
            logger.warning(f"[SYNC] Sync failed (offline mode): {e}")
        except SQLAlchemyError as e:
            logger.error(f"[SYNC] Sync failed on local store: {e}")
        return None

    async def sync_data(self) -> SyncResponse:
        """Ручной запуск синхронизации, результат вместо исключения."""
        try:
            report = await self.sync_all()
        except AppException as e:
            return SyncResponse(success=False, error=str(e))
        except SQLAlchemyError as e:
            logger.error(f"[SYNC] Sync failed on local store: {e}")
            return SyncResponse(success=False, error="Local store error")
        return SyncResponse(success=True, report=report)

    # ==================== УДАЛЁННЫЙ ПОИСК ПУТИ ====================

    async def find_path(self, start_room_id: int, end_room_id: int, kiosk_id: int | None = None) -> dict:
        body: dict[str, int] = {"end_room_id": end_room_id}
        if start_room_id and start_room_id > 0:
            body["start_room_id"] = start_room_id
        if kiosk_id and kiosk_id > 0:
            body["kiosk_id"] = kiosk_id

        response = await self.client.post("/api/navigation/find-path", json=body)
        response.raise_for_status()
        return response.json()
