from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Импорт моделей, чтобы таблицы создавались автоматически
from kiosk_nav.db.models import (  # noqa: E402,F401
    floor,
    waypoint,
    connection,
    room,
    kiosk,
    sync_info,
)
