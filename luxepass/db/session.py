from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from luxepass.core.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite connections are shared across the worker thread pool and background tasks
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
