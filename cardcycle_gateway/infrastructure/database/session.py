"""Database engine and session lifecycle"""

from typing import Generator
from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from cardcycle_gateway.config import settings


class Database:
    """Owns the engine and session factory; created on startup, disposed on shutdown"""

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        url = database_url or settings.database_url
        if engine is None:
            if url.startswith("sqlite"):
                engine = create_engine(url, connect_args={"check_same_thread": False})
            else:
                # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
                engine = create_engine(
                    url,
                    pool_pre_ping=True,  # Verify connections before using
                    pool_size=10,
                    max_overflow=10,
                    pool_recycle=3600,
                )
        self.engine = engine
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency injection for database sessions"""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
