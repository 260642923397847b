from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import Config


class Base(DeclarativeBase):
    pass


class Database:
    """Process-wide connection pool and session factory.

    Built once at startup and handed to the HTTP app and the tool server.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_config(cls, config: Config) -> Database:
        engine = create_engine(
            config.database_url,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=config.db_pool_timeout,
        )
        return cls(engine)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> Database:
        return cls(create_engine(url, **engine_kwargs))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        from . import models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
