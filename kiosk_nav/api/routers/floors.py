from typing import List

from fastapi import APIRouter, Depends

from kiosk_nav.api.deps import get_store
from kiosk_nav.db.store import LocalStore
from kiosk_nav.exceptions import NotFoundError
from kiosk_nav.schemas.navigation import ConnectionSchema, FloorOut, WaypointSchema

router = APIRouter(prefix="/floors", tags=["Floor"])


def _require_floor(store: LocalStore, floor_id: int) -> FloorOut:
    floor = store.get_floor(floor_id)
    if floor is None:
        raise NotFoundError(f"Floor id={floor_id} not found")
    return floor


@router.get(
    "/",
    response_model=List[FloorOut],
    summary="Получить список этажей",
    description="Возвращает все этажи из локальной реплики, упорядоченные по номеру этажа."
)
def list_floors(store: LocalStore = Depends(get_store)):
    return store.get_floors()


@router.get(
    "/{floor_id}",
    response_model=FloorOut,
    summary="Получить этаж по ID",
)
def get_floor(floor_id: int, store: LocalStore = Depends(get_store)):
    return _require_floor(store, floor_id)


@router.get(
    "/{floor_id}/waypoints",
    response_model=List[WaypointSchema],
    summary="Точки графа на этаже",
)
def list_floor_waypoints(floor_id: int, store: LocalStore = Depends(get_store)):
    _require_floor(store, floor_id)
    return store.get_waypoints_by_floor(floor_id)


@router.get(
    "/{floor_id}/connections",
    response_model=List[ConnectionSchema],
    summary="Рёбра графа на этаже",
    description="Рёбра, у которых хотя бы один конец лежит на этаже."
)
def list_floor_connections(floor_id: int, store: LocalStore = Depends(get_store)):
    _require_floor(store, floor_id)
    return store.get_connections_by_floor(floor_id)
