# Пакет моделей локальной реплики
# Здесь импортируются все модели, чтобы метаданные знали обо всех таблицах
from .floor import Floor
from .waypoint import Waypoint
from .connection import Connection
from .room import Room
from .kiosk import Kiosk
from .sync_info import SyncInfo
