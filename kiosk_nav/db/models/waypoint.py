from sqlalchemy import Column, Integer, String, Float
from kiosk_nav.db.base import Base


class Waypoint(Base):
    __tablename__ = "waypoints"

    id = Column(String(64), primary_key=True)
    floor_id = Column(Integer, nullable=False, index=True)
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    type = Column(String(32), nullable=False, comment="Тип точки: room, stairs, elevator, corridor и т.д.")
    label = Column(String(255), nullable=True)
    connects_to_floor = Column(Integer, nullable=True, comment="Только для stairs/elevator")
    connects_to_waypoint = Column(String(64), nullable=True, comment="Парная точка на другом этаже")
