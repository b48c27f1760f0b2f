from typing import List

from fastapi import APIRouter, Depends

from kiosk_nav.api.deps import get_store
from kiosk_nav.db.store import LocalStore
from kiosk_nav.exceptions import NotFoundError
from kiosk_nav.schemas.navigation import KioskSchema

router = APIRouter(prefix="/kiosks", tags=["Kiosk"])


@router.get("/", response_model=List[KioskSchema], summary="Получить список киосков")
def list_kiosks(store: LocalStore = Depends(get_store)):
    return store.get_kiosks()


@router.get("/{kiosk_id}", response_model=KioskSchema, summary="Получить киоск по ID")
def get_kiosk(kiosk_id: int, store: LocalStore = Depends(get_store)):
    kiosk = store.get_kiosk(kiosk_id)
    if kiosk is None:
        raise NotFoundError(f"Kiosk id={kiosk_id} not found")
    return kiosk
