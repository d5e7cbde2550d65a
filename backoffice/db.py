from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from . import config
from .errors import DatastoreError

logger = structlog.get_logger(__name__)

DATABASE_URL = config.get_settings().database_url

# For SQLite, enable check_same_thread=False for multithreading in FastAPI
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, future=True)

# Ensure SQLite enforces foreign keys
if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# expire_on_commit=False: services hand back rows after their own session is closed
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine, future=True)
Base = declarative_base()

SessionFactory = Callable[[], Session]


@contextmanager
def unit_of_work(session_factory: SessionFactory, session: Optional[Session] = None) -> Iterator[Session]:
    """Yield a session to run one logical operation in.

    A caller-supplied ``session`` belongs to the caller: it is only flushed
    here, never committed, rolled back or closed. Without one, a new session
    is opened and exactly one of commit-then-close or rollback-then-close
    happens on the way out.

    Any SQLAlchemy failure surfaces as ``DatastoreError``.
    """
    if session is not None:
        try:
            yield session
            session.flush()
        except SQLAlchemyError as e:
            raise DatastoreError(str(e)) from e
        return

    db = session_factory()
    try:
        db.begin()
        yield db
        db.flush()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("transaction aborted", error=str(e))
        raise DatastoreError(str(e)) from e
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()
