from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from app.config.settings import settings


def _engine_options(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {"connect_timeout": 30},
        "isolation_level": "READ COMMITTED",
    }


engine = create_engine(
    str(settings.DATABASE_URL), echo=False, **_engine_options(str(settings.DATABASE_URL))
)

SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False)


def get_sync_session():
    """Dependency to get sync database session"""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
