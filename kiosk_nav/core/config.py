from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Окружение: production, development, testing
    ENV: str = Field(
        "production",
        description="Application environment",
    )
    DEBUG: bool = Field(
        False,
        description="Turn on debug mode (detailed errors)",
    )

    # Общие параметры локального API
    API_PREFIX: str = Field(
        "/v1",
        description="Base prefix for all API routes",
    )
    APP_NAME: str = Field(
        "Kiosk Navigation Server",
        description="Application name for docs/title",
    )

    # Удалённый сервер и идентификатор киоска
    API_URL: str = Field(
        "http://127.0.0.1:8000",
        description="Base URL of the remote navigation server",
    )
    KIOSK_ID: int = Field(
        0,
        description="Kiosk id used as default path origin (0 = not set)",
    )
    HTTP_TIMEOUT: float = Field(
        10.0,
        description="Timeout for remote resource pulls and path queries, seconds",
    )
    HEALTH_TIMEOUT: float = Field(
        5.0,
        description="Timeout for the reachability probe, seconds",
    )
    VERIFY_SSL: bool = Field(
        False,
        description="Verify TLS certificates of the remote server",
    )

    # Локальное хранилище
    DATA_DIR: Path = Field(
        Path("data"),
        description="Directory for the local replica and cached images",
    )
    DB_FILENAME: str = Field(
        "kiosk-data.db",
        description="SQLite file name of the local replica",
    )
    IMAGES_DIRNAME: str = Field(
        "images",
        description="Sub-directory of DATA_DIR for cached floor images",
    )
    SAVE_DEBOUNCE_MS: int = Field(
        500,
        description="Quiet window before a pending write is flushed to disk",
    )

    # Синхронизация
    SYNC_ENABLED: bool = Field(
        True,
        description="Run the startup sync and the recurring sync job",
    )
    SYNC_INTERVAL_SECONDS: int = Field(
        300,
        description="Interval of the recurring sync job",
    )

    # Поиск пути
    VERTICAL_EDGE_COST: float = Field(
        50.0,
        description="Flat cost of a stairs/elevator transition between floors",
    )
    FLOOR_CHANGE_PENALTY: float = Field(
        100.0,
        description="A* heuristic penalty when the candidate is on another floor",
    )
    WALKING_SPEED: float = Field(
        50.0,
        description="Average walking speed, map units per minute",
    )

    # Логи
    LOG_LEVEL: str = Field(
        "INFO",
        description="Logging level",
    )
    LOG_DIR: Path | None = Field(
        None,
        description="Directory for log files (default: DATA_DIR/logs)",
    )
    LOG_FILENAME: str = Field(
        "kiosk.log",
        description="Log file name",
    )

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @property
    def db_path(self) -> Path:
        return self.DATA_DIR / self.DB_FILENAME

    @property
    def images_dir(self) -> Path:
        return self.DATA_DIR / self.IMAGES_DIRNAME

    @property
    def log_path(self) -> Path:
        log_dir = self.LOG_DIR if self.LOG_DIR is not None else self.DATA_DIR / "logs"
        return log_dir / self.LOG_FILENAME

    @property
    def api_base_url(self) -> str:
        """
        Адрес сервера без завершающих "/" и "/api":
        пути ресурсов всегда начинаются с "/api/...".
        """
        url = self.API_URL.rstrip("/")
        if url.lower().endswith("/api"):
            url = url[: -len("/api")]
        return url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """
    Единственный экземпляр настроек для приложения.
    Компоненты получают его явно через конструктор.
    """
    return Settings()
