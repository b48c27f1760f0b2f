from sqlalchemy import Column, String, Text, DateTime, func
from kiosk_nav.db.base import Base


class SyncInfo(Base):
    __tablename__ = "sync_info"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
