from sqlalchemy import Column, String, JSON, TIMESTAMP
from sqlalchemy.sql import func
from .db import Base

class AccessoryContext(Base):
    """Last known observed values per accessory, used to seed the cache on restart."""
    __tablename__ = "accessory_context"
    device_id = Column(String, primary_key=True)
    device_type = Column(String)
    values = Column(JSON)
    device_version = Column(String)
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

class HistoryEntry(Base):
    __tablename__ = "history"
    id = Column(String, primary_key=True)
    device_id = Column(String, index=True)
    ts = Column(TIMESTAMP, server_default=func.now())
    payload = Column(JSON)
