from sqlalchemy import Column, Integer, String, Text
from kiosk_nav.db.base import Base


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, index=True)
    waypoint_id = Column(String(64), nullable=True, comment="Точка графа, к которой привязана комната")
    floor_id = Column(Integer, nullable=True)
    keywords = Column(Text, nullable=True, comment="Дополнительные слова для поиска")
