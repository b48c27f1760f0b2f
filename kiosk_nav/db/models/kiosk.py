from sqlalchemy import Column, Integer, String, Text
from kiosk_nav.db.base import Base


class Kiosk(Base):
    __tablename__ = "kiosks"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False)
    floor_id = Column(Integer, nullable=False)
    waypoint_id = Column(String(64), nullable=True, comment="Начальная точка маршрута по умолчанию")
    description = Column(Text, nullable=True)
