from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from .settings import settings

class Base(DeclarativeBase):
    pass

def make_engine(url: str, **kw) -> Engine:
    # sqlite connections are shared between the loop and the sync API handler threads
    if url.startswith("sqlite"):
        kw.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, future=True, **kw)

def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

engine = make_engine(settings.DB_URL)
SessionLocal = session_factory(engine)
