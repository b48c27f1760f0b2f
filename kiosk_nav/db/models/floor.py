from sqlalchemy import Column, Integer, String
from kiosk_nav.db.base import Base


class Floor(Base):
    __tablename__ = "floors"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False)
    floor_number = Column(Integer, nullable=False, comment="Ключ сортировки этажей, не обязательно подряд")
    image_url = Column(String(1024), nullable=True, comment="Адрес плана этажа на сервере")
    image_width = Column(Integer, nullable=True)
    image_height = Column(Integer, nullable=True)
    local_image_path = Column(String(1024), nullable=True, comment="Путь к скачанной копии плана")
