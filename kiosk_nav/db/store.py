import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import create_engine, delete, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from kiosk_nav.core.config import Settings
from kiosk_nav.db.migrations import ensure_schema
from kiosk_nav.db.models import Connection, Floor, Kiosk, Room, SyncInfo, Waypoint
from kiosk_nav.schemas.navigation import (
    ConnectionSchema,
    FloorOut,
    FloorSchema,
    KioskSchema,
    RoomSchema,
    SyncInfoOut,
    WaypointSchema,
)
from kiosk_nav.utils.debounce import DebouncedCall

logger = logging.getLogger(__name__)

__all__ = [
    "LocalStore",
    "SEARCH_LIMIT",
]

# Ограничение размера ответа для интерфейса, а не корректности поиска
SEARCH_LIMIT = 20

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _payload(schema: Type[BaseModel], item: Any) -> dict:
    """Приводит dict / ORM-объект / pydantic-модель к словарю полей схемы."""
    return schema.model_validate(item, from_attributes=True).model_dump()


def _to_schemas(schema: Type[SchemaT], rows: Iterable[Any]) -> list[SchemaT]:
    return [schema.model_validate(row) for row in rows]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class LocalStore:
    """
    Локальная реплика данных здания.

    Рабочая копия живёт в SQLite в памяти, файл на диске обновляется
    через backup API:
    - каждая запись помечает базу «грязной» и перезапускает отложенное сохранение;
    - flush_save() пишет сразу, его нужно вызвать перед остановкой процесса.

    Все операции выполняются под одной реентерабельной блокировкой.
    Чтение возвращает отсоединённые pydantic-модели.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.db_path = Path(settings.db_path)
        self.engine = create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._lock = threading.RLock()
        self._saver = DebouncedCall(
            self._save_to_disk,
            delay=settings.SAVE_DEBOUNCE_MS / 1000,
            name="kiosk-db-save",
        )
        self._dirty = False
        self._initialized = False
        self.save_count = 0

    @property
    def storage_dir(self) -> Path:
        return self.db_path.parent

    @property
    def save_pending(self) -> bool:
        return self._saver.pending

    # ==================== ЖИЗНЕННЫЙ ЦИКЛ ====================

    def init(self) -> None:
        if self._initialized:
            return

        logger.info(f"Initializing local database at {self.db_path}")
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            existed = self.db_path.exists()
            with self._lock:
                if existed:
                    self._load_from_disk()
                with self.engine.begin() as conn:
                    added = ensure_schema(conn)
                self._initialized = True
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Database init failed: {e}")
            raise

        # Новый файл или обновлённая схема: сразу пишем на диск
        if not existed or added:
            self._dirty = True
            self.flush_save()
        logger.info("Database initialized successfully")

    def close(self) -> None:
        self.flush_save()
        self.engine.dispose()
        self._initialized = False

    def ping(self) -> bool:
        """SELECT 1 по рабочей копии. Ошибка только логируется."""
        try:
            with self._read() as session:
                return bool(session.execute(text("SELECT 1")).scalar())
        except SQLAlchemyError as e:
            logger.error(f"Database ping failed: {e}")
            return False

    def flush_save(self) -> bool:
        """
        Синхронное сохранение в обход отложенного.
        Возвращает True, если файл был записан.
        """
        self._saver.cancel()
        return self._save_to_disk()

    def _mark_dirty(self) -> None:
        self._dirty = True
        self._saver.schedule()

    @contextmanager
    def _driver_connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.engine.raw_connection()
        try:
            yield conn.driver_connection
        finally:
            conn.close()

    def _load_from_disk(self) -> None:
        source = sqlite3.connect(self.db_path)
        try:
            with self._driver_connection() as target:
                source.backup(target)
        finally:
            source.close()

    def _save_to_disk(self) -> bool:
        with self._lock:
            if not self._dirty:
                return False
            tmp_path = self.db_path.with_name(self.db_path.name + ".tmp")
            try:
                tmp_path.unlink(missing_ok=True)
                target = sqlite3.connect(tmp_path)
                try:
                    with self._driver_connection() as source:
                        source.backup(target)
                finally:
                    target.close()
                os.replace(tmp_path, self.db_path)
            except (OSError, sqlite3.Error) as e:
                # Данные в памяти остаются актуальными, повтор при следующей записи
                logger.error(f"Database save failed: {e}")
                return False
            self._dirty = False
            self.save_count += 1
        logger.debug("Database saved to disk")
        return True

    @contextmanager
    def _read(self) -> Iterator[Session]:
        with self._lock, self.SessionLocal() as session:
            yield session

    @contextmanager
    def _write(self) -> Iterator[Session]:
        with self._lock:
            with self.SessionLocal() as session, session.begin():
                yield session
            self._mark_dirty()

    # ==================== FLOORS ====================

    def get_floors(self) -> list[FloorOut]:
        with self._read() as session:
            rows = session.scalars(select(Floor).order_by(Floor.floor_number, Floor.id)).all()
            return _to_schemas(FloorOut, rows)

    def get_floor(self, floor_id: int) -> FloorOut | None:
        with self._read() as session:
            floor = session.get(Floor, floor_id)
            return FloorOut.model_validate(floor) if floor else None

    def upsert_floors(self, floors: Iterable[FloorSchema | dict]) -> None:
        with self._write() as session:
            for item in floors:
                session.merge(Floor(**_payload(FloorSchema, item)))

    def clear_floors(self) -> int:
        with self._write() as session:
            return session.execute(delete(Floor)).rowcount

    def replace_floors(self, floors: Iterable[FloorSchema | dict]) -> None:
        """
        clear + upsert в одной транзакции.
        Путь к скачанному плану сохраняется, пока файл существует
        и у этажа на сервере всё ещё есть image_url.
        """
        payloads = [_payload(FloorSchema, item) for item in floors]
        with self._write() as session:
            kept_paths = dict(
                session.execute(
                    select(Floor.id, Floor.local_image_path).where(Floor.local_image_path.is_not(None))
                ).all()
            )
            session.execute(delete(Floor))
            for data in payloads:
                path = kept_paths.get(data["id"])
                if path and data.get("image_url") and os.path.exists(path):
                    data["local_image_path"] = path
                session.merge(Floor(**data))

    def set_floor_local_image_path(self, floor_id: int, path: str) -> bool:
        """Записывает путь к локальному плану. Если путь не изменился, записи нет."""
        with self._lock:
            with self.SessionLocal() as session, session.begin():
                floor = session.get(Floor, floor_id)
                if floor is None or floor.local_image_path == path:
                    return False
                floor.local_image_path = path
            self._mark_dirty()
        return True

    # ==================== WAYPOINTS ====================

    def get_waypoints_by_floor(self, floor_id: int) -> list[WaypointSchema]:
        with self._read() as session:
            rows = session.scalars(select(Waypoint).where(Waypoint.floor_id == floor_id)).all()
            return _to_schemas(WaypointSchema, rows)

    def get_all_waypoints(self) -> list[WaypointSchema]:
        with self._read() as session:
            return _to_schemas(WaypointSchema, session.scalars(select(Waypoint)).all())

    def get_waypoint(self, waypoint_id: str) -> WaypointSchema | None:
        with self._read() as session:
            waypoint = session.get(Waypoint, waypoint_id)
            return WaypointSchema.model_validate(waypoint) if waypoint else None

    def upsert_waypoints(self, waypoints: Iterable[WaypointSchema | dict]) -> None:
        with self._write() as session:
            for item in waypoints:
                session.merge(Waypoint(**_payload(WaypointSchema, item)))

    def clear_waypoints_by_floor(self, floor_id: int) -> int:
        with self._write() as session:
            return session.execute(delete(Waypoint).where(Waypoint.floor_id == floor_id)).rowcount

    def replace_waypoints_for_floor(self, floor_id: int, waypoints: Iterable[WaypointSchema | dict]) -> None:
        payloads = [_payload(WaypointSchema, item) for item in waypoints]
        with self._write() as session:
            session.execute(delete(Waypoint).where(Waypoint.floor_id == floor_id))
            for data in payloads:
                session.merge(Waypoint(**data))

    # ==================== CONNECTIONS ====================

    @staticmethod
    def _touches_floor(floor_id: int):
        floor_waypoints = select(Waypoint.id).where(Waypoint.floor_id == floor_id)
        return or_(
            Connection.from_waypoint_id.in_(floor_waypoints),
            Connection.to_waypoint_id.in_(floor_waypoints),
        )

    def get_connections_by_floor(self, floor_id: int) -> list[ConnectionSchema]:
        with self._read() as session:
            rows = session.scalars(select(Connection).where(self._touches_floor(floor_id))).all()
            return _to_schemas(ConnectionSchema, rows)

    def get_all_connections(self) -> list[ConnectionSchema]:
        with self._read() as session:
            return _to_schemas(ConnectionSchema, session.scalars(select(Connection)).all())

    def upsert_connections(self, connections: Iterable[ConnectionSchema | dict]) -> None:
        with self._write() as session:
            for item in connections:
                session.merge(Connection(**_payload(ConnectionSchema, item)))

    def clear_connections_by_floor(self, floor_id: int) -> int:
        with self._write() as session:
            stmt = delete(Connection).where(self._touches_floor(floor_id))
            return session.execute(stmt.execution_options(synchronize_session=False)).rowcount

    def replace_connections(self, connections: Iterable[ConnectionSchema | dict]) -> None:
        """
        Полная замена таблицы рёбер. Поэтажной замены нет: ребро между этажами
        сервер может вернуть в списке только одного из них.
        """
        payloads = [_payload(ConnectionSchema, item) for item in connections]
        with self._write() as session:
            session.execute(delete(Connection))
            for data in payloads:
                session.merge(Connection(**data))

    # ==================== ROOMS ====================

    def get_rooms(self) -> list[RoomSchema]:
        with self._read() as session:
            return _to_schemas(RoomSchema, session.scalars(select(Room).order_by(Room.name)).all())

    def get_room(self, room_id: int) -> RoomSchema | None:
        with self._read() as session:
            room = session.get(Room, room_id)
            return RoomSchema.model_validate(room) if room else None

    def search_rooms(self, query: str, limit: int = SEARCH_LIMIT) -> list[RoomSchema]:
        """
        Поиск без учёта регистра по названию ИЛИ ключевым словам,
        сортировка по названию, не больше limit результатов.
        """
        pattern = f"%{_escape_like(query or '')}%"
        stmt = (
            select(Room)
            .where(or_(Room.name.ilike(pattern, escape="\\"), Room.keywords.ilike(pattern, escape="\\")))
            .order_by(Room.name)
            .limit(min(limit, SEARCH_LIMIT))
        )
        with self._read() as session:
            return _to_schemas(RoomSchema, session.scalars(stmt).all())

    def upsert_rooms(self, rooms: Iterable[RoomSchema | dict]) -> None:
        with self._write() as session:
            for item in rooms:
                session.merge(Room(**_payload(RoomSchema, item)))

    def clear_rooms(self) -> int:
        with self._write() as session:
            return session.execute(delete(Room)).rowcount

    def replace_rooms(self, rooms: Iterable[RoomSchema | dict]) -> None:
        payloads = [_payload(RoomSchema, item) for item in rooms]
        with self._write() as session:
            session.execute(delete(Room))
            for data in payloads:
                session.merge(Room(**data))

    # ==================== KIOSKS ====================

    def get_kiosks(self) -> list[KioskSchema]:
        with self._read() as session:
            return _to_schemas(KioskSchema, session.scalars(select(Kiosk).order_by(Kiosk.name)).all())

    def get_kiosk(self, kiosk_id: int) -> KioskSchema | None:
        with self._read() as session:
            kiosk = session.get(Kiosk, kiosk_id)
            return KioskSchema.model_validate(kiosk) if kiosk else None

    def upsert_kiosks(self, kiosks: Iterable[KioskSchema | dict]) -> None:
        with self._write() as session:
            for item in kiosks:
                session.merge(Kiosk(**_payload(KioskSchema, item)))

    def clear_kiosks(self) -> int:
        with self._write() as session:
            return session.execute(delete(Kiosk)).rowcount

    def replace_kiosks(self, kiosks: Iterable[KioskSchema | dict]) -> None:
        payloads = [_payload(KioskSchema, item) for item in kiosks]
        with self._write() as session:
            session.execute(delete(Kiosk))
            for data in payloads:
                session.merge(Kiosk(**data))

    # ==================== SYNC INFO ====================

    def set_sync_info(self, key: str, value: str) -> None:
        with self._write() as session:
            session.merge(SyncInfo(key=key, value=value, updated_at=datetime.now(timezone.utc)))

    def get_sync_info(self, key: str) -> str | None:
        with self._read() as session:
            info = session.get(SyncInfo, key)
            return info.value if info else None

    def get_all_sync_info(self) -> list[SyncInfoOut]:
        with self._read() as session:
            return _to_schemas(SyncInfoOut, session.scalars(select(SyncInfo).order_by(SyncInfo.key)).all())

    # ==================== ORPHANS ====================

    def cleanup_orphans(self) -> dict[str, int]:
        """
        Удаляет строки, чей родитель исчез:
        - точки без этажа;
        - рёбра, у которых нет хотя бы одного конца;
        - помещения с несуществующим этажом (floor_id задан);
        - киоски без этажа.
        Запускать после полной замены всех коллекций.
        """
        floor_ids = select(Floor.id)
        with self._lock:
            with self.SessionLocal() as session, session.begin():
                removed = {
                    "waypoints": session.execute(
                        delete(Waypoint).where(Waypoint.floor_id.not_in(floor_ids))
                        .execution_options(synchronize_session=False)
                    ).rowcount,
                }
                waypoint_ids = select(Waypoint.id)
                removed["connections"] = session.execute(
                    delete(Connection).where(
                        or_(
                            Connection.from_waypoint_id.not_in(waypoint_ids),
                            Connection.to_waypoint_id.not_in(waypoint_ids),
                        )
                    ).execution_options(synchronize_session=False)
                ).rowcount
                removed["rooms"] = session.execute(
                    delete(Room).where(Room.floor_id.is_not(None), Room.floor_id.not_in(floor_ids))
                    .execution_options(synchronize_session=False)
                ).rowcount
                removed["kiosks"] = session.execute(
                    delete(Kiosk).where(Kiosk.floor_id.not_in(floor_ids))
                    .execution_options(synchronize_session=False)
                ).rowcount
            if any(removed.values()):
                self._mark_dirty()

        if any(removed.values()):
            logger.info(f"Orphan cleanup removed: {removed}")
        return removed
