from typing import List

from fastapi import APIRouter, Depends, Query

from kiosk_nav.api.deps import get_store
from kiosk_nav.db.store import LocalStore
from kiosk_nav.exceptions import NotFoundError
from kiosk_nav.schemas.navigation import RoomSchema

router = APIRouter(prefix="/rooms", tags=["Room"])


@router.get("/", response_model=List[RoomSchema], summary="Получить список помещений")
def list_rooms(store: LocalStore = Depends(get_store)):
    return store.get_rooms()


@router.get(
    "/search",
    response_model=List[RoomSchema],
    summary="Поиск помещений",
    description="Поиск без учёта регистра по названию и ключевым словам, не больше 20 результатов."
)
def search_rooms(q: str = Query("", max_length=100), store: LocalStore = Depends(get_store)):
    return store.search_rooms(q)


@router.get("/{room_id}", response_model=RoomSchema, summary="Получить помещение по ID")
def get_room(room_id: int, store: LocalStore = Depends(get_store)):
    room = store.get_room(room_id)
    if room is None:
        raise NotFoundError(f"Room id={room_id} not found")
    return room
