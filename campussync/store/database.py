"""
Database connection and session management.
Uses synchronous SQLAlchemy; SQLite by default, any SQLAlchemy URL works.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from campussync.config import CampusSyncConfig, DatabaseConfig

logger = logging.getLogger("campussync.store.database")

# Base class for models
Base = declarative_base()


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    kwargs: dict = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, echo=echo, **kwargs)


class Database:
    """Engine plus session factory for one storage backend."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_db_engine(url, echo=echo)
        self.session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_config(cls, config: CampusSyncConfig | DatabaseConfig) -> "Database":
        db_cfg = config.database if isinstance(config, CampusSyncConfig) else config
        return cls(db_cfg.url, echo=db_cfg.echo)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on any error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create all tables."""
        # Registers the ORM classes on Base.metadata
        from campussync.store import models  # noqa: F401

        Base.metadata.create_all(self.engine)
        logger.info(f"Database initialized: {self.engine.url.render_as_string(hide_password=True)}")

    def close(self) -> None:
        """Close database connections."""
        self.engine.dispose()
