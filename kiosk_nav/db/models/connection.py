from sqlalchemy import Column, String, Float
from kiosk_nav.db.base import Base


class Connection(Base):
    __tablename__ = "connections"

    id = Column(String(64), primary_key=True)
    from_waypoint_id = Column(String(64), nullable=False, index=True)
    to_waypoint_id = Column(String(64), nullable=False, index=True)
    distance = Column(Float, nullable=False, comment="В тех же единицах, что и координаты точек")
