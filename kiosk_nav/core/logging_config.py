import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from kiosk_nav.core.config import Settings


def setup_logging(settings: Settings) -> None:
    """
    Инициализация логгирования:
    - Создаёт папку для логов, если её нет.
    - Ротирующая запись в файл + вывод в stdout.
    """
    log_path = settings.log_path
    os.makedirs(log_path.parent, exist_ok=True)

    # Ротирующий файловый обработчик: до 10 МБ, 5 файлов-архивов
    file_handler = RotatingFileHandler(
        filename=log_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8"
    )

    fmt = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    file_handler.setFormatter(fmt)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(fmt)

    level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    # Конфигурируем root logger
    logging.basicConfig(
        level=level,
        handlers=[file_handler, stream_handler]
    )
