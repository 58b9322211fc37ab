import os
from contextlib import contextmanager
from typing import Iterator

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base


class DatabaseManager:
    def __init__(self, db_url: str = "sqlite:///data/layersync.db"):
        self.db_url = db_url
        self._ensure_data_dir()
        kwargs = {}
        if self.db_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty database
            kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
        self.engine = create_engine(self.db_url, echo=False, **kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def _ensure_data_dir(self):
        if self.db_url.startswith("sqlite:///") and ":memory:" not in self.db_url:
            path = self.db_url.replace("sqlite:///", "")
            directory = os.path.dirname(path)
            if directory and not os.path.exists(directory):
                os.makedirs(directory)

    def init_db(self):
        """Initialize database schema."""
        logger.info(f"Initializing storage at {self.db_url}")
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()
