import logging, uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker
from .db import Base, SessionLocal
from .models import AccessoryContext, HistoryEntry

log = logging.getLogger("context")

class ContextStore:
    """Best-effort persistence of accessory context between restarts."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session = session_factory

    def init_db(self):
        Base.metadata.create_all(self._session.kw["bind"])

    def load(self, device_id: str) -> Dict[str, Any]:
        with self._session() as s:
            ctx = s.get(AccessoryContext, device_id)
            return dict(ctx.values or {}) if ctx else {}

    def save(self, device_id: str, device_type: str, values: Mapping[str, Any]):
        with self._session() as s:
            ctx = s.get(AccessoryContext, device_id) or AccessoryContext(device_id=device_id)
            ctx.device_type = device_type
            ctx.values = dict(values)
            ctx.device_version = values.get("firmware_revision")
            s.merge(ctx)
            s.commit()

    def add_history(self, device_id: str, payload: Mapping[str, Any]):
        with self._session() as s:
            s.add(HistoryEntry(id=str(uuid.uuid4()), device_id=device_id,
                               ts=datetime.now(timezone.utc), payload=dict(payload)))
            s.commit()

    def history(self, device_id: str, limit: int = 100):
        with self._session() as s:
            stmt = (select(HistoryEntry).where(HistoryEntry.device_id == device_id)
                    .order_by(HistoryEntry.ts.desc()).limit(limit))
            return [{"ts": e.ts.isoformat() if e.ts else None, **(e.payload or {})} for e in s.scalars(stmt)]
