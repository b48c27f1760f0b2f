# kiosk_nav/api/routers/health.py
from fastapi import APIRouter, Depends

from kiosk_nav.api.deps import get_store
from kiosk_nav.db.store import LocalStore

router = APIRouter()


@router.get("/health", summary="Health check")
def health_check(store: LocalStore = Depends(get_store)):
    db_ok = store.ping()
    floors = len(store.get_floors()) if db_ok else 0
    return {"status": "ok" if db_ok else "degraded", "db_ok": db_ok, "floors": floors}
