"""Database session management"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from budget_engine.config import settings


def make_engine(database_url: str):
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    # Server databases: verify pooled connections, recycle after 1 hour
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = make_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
