# kiosk_nav/api/deps.py

from fastapi import Request

from kiosk_nav.core.config import Settings
from kiosk_nav.db.store import LocalStore
from kiosk_nav.services.api_sync import SyncService
from kiosk_nav.services.navigation import NavigationService


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> LocalStore:
    """
    Зависимость FastAPI, возвращающая локальную реплику,
    созданную при старте приложения.
    """
    return request.app.state.store


def get_sync_service(request: Request) -> SyncService:
    return request.app.state.sync_service


def get_navigation_service(request: Request) -> NavigationService:
    return request.app.state.navigation_service
