"""
Database engine, sessions and the unit of work used by every store call.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session

logger = logging.getLogger(__name__)

Base = declarative_base()


class PersistenceError(Exception):
    """Raised when a database statement or commit fails."""
    pass


class Database:
    """Owns the SQLAlchemy engine and hands out transactional sessions."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        if url.startswith("sqlite"):
            self.engine = create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False}
            )
        else:
            self.engine = create_engine(
                url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                pool_recycle=300,
                echo=echo
            )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def create_tables(self) -> None:
        """Create the vector extension (PostgreSQL) and all tables if missing."""
        # Import models to register them with Base
        from . import models  # noqa: F401

        try:
            if self.dialect == "postgresql":
                with self.engine.begin() as conn:
                    conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                logger.info("PostgreSQL vector extension enabled")
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create schema: {e}") from e

    def drop_tables(self) -> None:
        from . import models  # noqa: F401
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def unit_of_work(self) -> Generator[Session, None, None]:
        """
        Transactional scope around a series of operations.

        Commits when the block exits normally. Any exception rolls back
        everything done in the block and is re-raised; database errors
        are re-raised as PersistenceError.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
