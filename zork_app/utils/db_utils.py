# zork_app/utils/db_utils.py

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session as SQLAlchemySession
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from ..models import Base

logger = logging.getLogger(__name__)

db_session: Optional[scoped_session] = None
engine = None
_SessionFactory = None


def _engine_kwargs(db_uri: str, echo: bool) -> dict:
    url = make_url(db_uri)
    kwargs = {"echo": echo}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every checkout sees an empty database.
            kwargs["poolclass"] = StaticPool
        elif url.database:
            os.makedirs(os.path.dirname(os.path.abspath(url.database)), exist_ok=True)
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = 3600
    return kwargs


def init_db(app) -> bool:
    """
    Initialize the SQLAlchemy engine and session factories using app config.
    The engine is created lazily; the first query opens the first connection.
    """
    global engine, _SessionFactory, db_session

    if engine is not None:
        return True

    db_uri = app.config.get('SQLALCHEMY_DATABASE_URI')
    if not db_uri:
        logger.error("SQLALCHEMY_DATABASE_URI not configured. Database features will fail.")
        return False

    try:
        db_uri_parts = db_uri.split('@')
        loggable_db_uri = db_uri_parts[-1] if len(db_uri_parts) > 1 else db_uri
        logger.info(f"Initializing database engine for: {loggable_db_uri}")

        engine = create_engine(db_uri, **_engine_kwargs(db_uri, app.config.get('SQLALCHEMY_ECHO', False)))
        _SessionFactory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
        db_session = scoped_session(_SessionFactory)
        logger.info("SQLAlchemy engine and session factory have been configured successfully.")
        return True

    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        engine = None; _SessionFactory = None; db_session = None
        return False


def dispose_db() -> None:
    """Drop the engine and session registry so the next ``init_db`` starts fresh."""
    global engine, _SessionFactory, db_session
    if db_session is not None:
        db_session.remove()
    if engine is not None:
        engine.dispose()
        logger.info("Database engine disposed.")
    engine = None; _SessionFactory = None; db_session = None


@contextmanager
def get_db_session() -> Generator[Optional[SQLAlchemySession], None, None]:
    """
    Yields a SQLAlchemy Session, handles rollback on error, and always removes the session.
    """
    if not db_session:
        logger.error("db_session (ScopedSessionFactory) not initialized. Cannot create DB session.")
        yield None
        return

    session: SQLAlchemySession = db_session()
    logger.debug(f"DB Session {id(session)} acquired from ScopedSessionFactory.")
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error(f"DB Session {id(session)} SQLAlchemy error: {e}", exc_info=True)
        session.rollback()
        raise
    except Exception as e:
        logger.error(f"DB Session {id(session)} unexpected error: {e}", exc_info=True)
        session.rollback()
        raise
    finally:
        db_session.remove()
        logger.debug(f"DB Session {id(session)} removed from current scope by ScopedSessionFactory.")


def create_all_tables() -> bool:
    """Create all tables from SQLAlchemy models (no-op for tables that already exist)."""
    if not engine:
        logger.error("Database engine not initialized. Cannot create tables.")
        return False
    try:
        logger.info("Attempting to create tables from SQLAlchemy models (if they don't already exist)...")
        Base.metadata.create_all(bind=engine)
        logger.info("SQLAlchemy Base.metadata.create_all() executed.")
        return True
    except Exception as e:
        logger.error(f"Error during create_all_tables: {e}", exc_info=True)
        return False


def drop_all_tables() -> bool:
    if not engine:
        logger.error("Database engine not initialized. Cannot drop tables.")
        return False
    Base.metadata.drop_all(bind=engine)
    logger.info("SQLAlchemy Base.metadata.drop_all() executed.")
    return True
