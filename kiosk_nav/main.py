import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kiosk_nav.core.config import Settings, get_settings
from kiosk_nav.core.logging_config import setup_logging
from kiosk_nav.db.store import LocalStore
from kiosk_nav.exceptions import NotFoundError
from kiosk_nav.services.api_sync import SyncService
from kiosk_nav.services.navigation import NavigationService
from kiosk_nav.services.pathfinding import Pathfinder
from kiosk_nav.tasks.scheduler import start_scheduler

from kiosk_nav.api.routers.health import router as health_router
from kiosk_nav.api.routers.floors import router as floors_router
from kiosk_nav.api.routers.rooms import router as rooms_router
from kiosk_nav.api.routers.kiosks import router as kiosks_router
from kiosk_nav.api.routers.navigation import router as navigation_router
from kiosk_nav.api.routers.sync import router as sync_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Собирает приложение. Все компоненты создаются при старте и
    кладутся в app.state; transport позволяет подменить удалённый сервер в тестах.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        debug=settings.DEBUG,
    )
    app.state.settings = settings
    app.state.scheduler = None

    # CORS: интерфейс киоска открывается из локального файла/браузера
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def on_startup():
        setup_logging(settings)
        logger.info(f"Starting {settings.APP_NAME} (env={settings.ENV}, api={settings.api_base_url})")

        store = LocalStore(settings)
        store.init()
        sync_service = SyncService(settings, store, transport=transport)
        pathfinder = Pathfinder(
            store,
            vertical_cost=settings.VERTICAL_EDGE_COST,
            floor_penalty=settings.FLOOR_CHANGE_PENALTY,
            walking_speed=settings.WALKING_SPEED,
        )

        app.state.store = store
        app.state.sync_service = sync_service
        app.state.navigation_service = NavigationService(sync_service, pathfinder)

        if settings.SYNC_ENABLED:
            app.state.scheduler = start_scheduler(sync_service, settings)
        logger.info("Application ready")

    @app.on_event("shutdown")
    async def on_shutdown():
        logger.info("Application shutting down")
        if app.state.scheduler is not None:
            app.state.scheduler.shutdown(wait=False)
            app.state.scheduler = None
        await app.state.sync_service.aclose()
        # Последняя порция отложенных записей
        app.state.store.close()

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    # Подключаем роутеры
    app.include_router(health_router, tags=["health"])
    app.include_router(floors_router, prefix=settings.API_PREFIX)
    app.include_router(rooms_router, prefix=settings.API_PREFIX)
    app.include_router(kiosks_router, prefix=settings.API_PREFIX)
    app.include_router(navigation_router, prefix=settings.API_PREFIX)
    app.include_router(sync_router, prefix=settings.API_PREFIX)

    return app


app = create_app()
