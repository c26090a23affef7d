from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from mgnrega_tracker.core.config import settings


def _database_url(url):
    # psycopg3 driver instead of psycopg2
    url = url or "sqlite:///./mgnrega.db"
    return url.replace("postgresql://", "postgresql+psycopg://", 1)


SQLALCHEMY_DATABASE_URL = _database_url(settings.DATABASE_URL)

_engine_kwargs = {"pool_pre_ping": True, "future": True}
if not SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(pool_size=20, max_overflow=40)

engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()
